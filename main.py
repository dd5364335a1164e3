"""Main entry point for the nostr RSS gateway."""

import argparse
import sys

from pydantic import ValidationError

from nostr_rss.config import Settings
from nostr_rss.service import main as service_main


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve RSS feeds for NIP-05 identities")
    parser.add_argument("--host", help="listen address (env HOST)")
    parser.add_argument("--port", type=int, help="listen port (env PORT)")
    parser.add_argument("--budget", type=float, dest="collection_budget",
                        help="seconds to collect relay events per request (env COLLECTION_BUDGET)")
    parser.add_argument("--log-level", help="log level (env LOG_LEVEL)")
    parser.add_argument("--log-format", choices=["console", "json"], help="log format (env LOG_FORMAT)")
    return parser.parse_args(argv)


def main(argv=None):
    """Entry point: command-line flags override the environment."""
    args = parse_args(argv)
    overrides = {key: value for key, value in vars(args).items() if value is not None}

    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}")
        sys.exit(2)

    try:
        service_main(settings)
    except KeyboardInterrupt:
        print("\nService interrupted by user")
        sys.exit(0)
    except Exception as e:
        print(f"Service failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
