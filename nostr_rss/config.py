"""Configuration module for the nostr RSS gateway."""

import os
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class Settings(BaseModel):
    """Application settings with environment variable support."""

    # Collection Configuration
    collection_budget: float = Field(default=10.0, gt=0)  # seconds per request
    since_floor: int = Field(default=0, ge=0)  # unix seconds, 0 = full history
    filter_match: str = Field(default="authors")
    event_kinds: List[int] = Field(default_factory=list)  # empty = every kind
    event_limit: Optional[int] = Field(default=None, ge=1)
    close_on_eose: bool = Field(default=False)
    verify_event_ids: bool = Field(default=True)

    # Network Configuration
    resolve_timeout: float = Field(default=5.0, gt=0)
    relay_connect_timeout: float = Field(default=5.0, gt=0)
    relay_close_grace: float = Field(default=2.0, ge=0)

    # Feed Configuration
    item_order: str = Field(default="arrival")
    item_link_template: Optional[str] = Field(default=None)
    feed_title: str = Field(default="Channel Title")
    feed_link: str = Field(default="http://example.com")
    feed_description: str = Field(default="An RSS feed.")

    # Server Configuration
    service_name: str = Field(default="nostr-rss")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000)
    metrics_enabled: bool = Field(default=True)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    def __init__(self, **kwargs):
        # Load from environment variables
        env_values = {}

        # Map environment variables to settings
        env_mapping = {
            "COLLECTION_BUDGET": "collection_budget",
            "SINCE_FLOOR": "since_floor",
            "FILTER_MATCH": "filter_match",
            "EVENT_KINDS": "event_kinds",
            "EVENT_LIMIT": "event_limit",
            "CLOSE_ON_EOSE": "close_on_eose",
            "VERIFY_EVENT_IDS": "verify_event_ids",
            "RESOLVE_TIMEOUT": "resolve_timeout",
            "RELAY_CONNECT_TIMEOUT": "relay_connect_timeout",
            "RELAY_CLOSE_GRACE": "relay_close_grace",
            "ITEM_ORDER": "item_order",
            "ITEM_LINK_TEMPLATE": "item_link_template",
            "FEED_TITLE": "feed_title",
            "FEED_LINK": "feed_link",
            "FEED_DESCRIPTION": "feed_description",
            "SERVICE_NAME": "service_name",
            "HOST": "host",
            "PORT": "port",
            "METRICS_ENABLED": "metrics_enabled",
            "LOG_LEVEL": "log_level",
            "LOG_FORMAT": "log_format",
        }

        for env_var, field_name in env_mapping.items():
            if env_var in os.environ:
                value = os.environ[env_var]

                # Convert types; anything pydantic cannot coerce fails validation
                if field_name == "event_kinds":
                    value = [part.strip() for part in value.split(",") if part.strip()]
                elif field_name == "event_limit" and not value.strip():
                    value = None
                elif field_name in ["close_on_eose", "verify_event_ids", "metrics_enabled"]:
                    value = value.lower() in ("true", "1", "yes", "on")

                env_values[field_name] = value

        # Merge kwargs with env values (kwargs take precedence)
        final_values = {**env_values, **kwargs}
        super().__init__(**final_values)

    @field_validator("filter_match")
    @classmethod
    def validate_filter_match(cls, v: str) -> str:
        v = v.lower()
        if v not in ("authors", "mentions"):
            raise ValueError(f"filter_match must be 'authors' or 'mentions', got {v!r}")
        return v

    @field_validator("item_order")
    @classmethod
    def validate_item_order(cls, v: str) -> str:
        v = v.lower()
        if v not in ("arrival", "newest"):
            raise ValueError(f"item_order must be 'arrival' or 'newest', got {v!r}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {v!r}")
        return v

    @field_validator("event_kinds")
    @classmethod
    def validate_event_kinds(cls, v: List[int]) -> List[int]:
        for kind in v:
            if not 0 <= kind <= 65535:
                raise ValueError(f"Event kind {kind} out of valid range (0-65535)")
        return v

    @field_validator("feed_title", "feed_link", "feed_description")
    @classmethod
    def validate_channel_template(cls, v: str) -> str:
        try:
            v.format_map({"identifier": "alice@example.com", "pubkey": "0" * 64})
        except (KeyError, ValueError, IndexError) as e:
            raise ValueError(
                f"invalid template {v!r}: only {{identifier}} and {{pubkey}} are available ({e})"
            ) from e
        return v

    @field_validator("item_link_template")
    @classmethod
    def validate_item_link_template(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            v.format(id="0" * 64, pubkey="0" * 64)
        except (KeyError, ValueError, IndexError) as e:
            raise ValueError(
                f"invalid item_link_template {v!r}: only {{id}} and {{pubkey}} are available ({e})"
            ) from e
        return v
