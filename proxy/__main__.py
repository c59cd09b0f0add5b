import argparse
import sys

import structlog
import uvicorn
from pydantic import ValidationError

from config.logging import configure_logging
from config.settings import ProxySettings
from .api import create_app

logger = structlog.get_logger()


def build_settings(args: argparse.Namespace) -> ProxySettings:
    """Environment settings, overridden by whatever flags were given."""
    overrides = {
        "bind_ip": args.bind_ip,
        "bind_port": args.bind_port,
        "cache_ttl": args.cache_ttl,
        "request_timeout": args.timeout,
        "log_level": args.log_level,
    }
    return ProxySettings(**{name: value for name, value in overrides.items() if value is not None})


def main(argv=None):
    """Main entry point for the TurtleCoin API proxy."""
    parser = argparse.ArgumentParser(description="TurtleCoin daemon caching API proxy")
    parser.add_argument("--bind-ip", help="Address to listen on")
    parser.add_argument("--bind-port", type=int, help="Port to listen on")
    parser.add_argument("--cache-ttl", type=int, help="Seconds a daemon response stays cached")
    parser.add_argument("--timeout", type=float, help="Upstream request timeout in seconds")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")

    args = parser.parse_args(argv)

    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}")
        return 1

    configure_logging(settings.log_level)
    app = create_app(settings)

    logger.info("proxy_ready", bind_ip=settings.bind_ip, bind_port=settings.bind_port)
    try:
        uvicorn.run(app, host=settings.bind_ip, port=settings.bind_port,
                    log_config=None, log_level=settings.log_level.lower())
    except KeyboardInterrupt:
        logger.info("proxy_shutdown", reason="keyboard_interrupt")

    return 0


if __name__ == "__main__":
    sys.exit(main())
