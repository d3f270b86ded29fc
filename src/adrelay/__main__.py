"""adrelay entry point.

Examples:
  adrelay                        Serve on the configured host/port
  adrelay --port 8080            Serve on another port
  adrelay --dev                  Serve with auto-reload
"""

import argparse
import logging

from adrelay import __version__
from adrelay.config import get_settings
from adrelay.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="adrelay - credential-holding gateway for ad and social platform APIs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1] if __doc__ else None,
    )
    parser.add_argument("--host", type=str, default=None, help="Host to bind (default: settings)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind (default: settings)")
    parser.add_argument("--dev", action="store_true", help="Auto-reload on source changes")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level")
    parser.add_argument("--version", action="version", version=f"adrelay {__version__}")

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(level=args.log_level or settings.log_level)

    from adrelay.api.serve import run_api_server

    try:
        run_api_server(host=args.host, port=args.port, dev=args.dev)
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
