"""RSS feeds for NIP-05 identities, gathered from their nostr relays."""
