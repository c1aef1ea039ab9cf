"""Entry point for running the subscription manager as a module."""

import argparse
import os
import sys
from typing import List, Optional

import uvicorn

from subscription_manager.config import Config, ConfigurationError


def processor_mode(secret_key: Optional[str]) -> str:
    """Stripe key mode from its prefix: ``test``, ``live`` or ``unset``."""
    if not secret_key:
        return "unset"
    if secret_key.startswith(("sk_live_", "rk_live_")):
        return "live"
    return "test"


def check_config(config_path: str) -> int:
    """Load settings and report processor secrets; returns the exit code."""
    try:
        config = Config(config_path)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    mode = processor_mode(config.stripe_secret_key)
    print(f"Config: {config.config_path}")
    print(f"Stripe mode: {mode}")
    print(f"Webhook secret: {'set' if config.stripe_webhook_secret else 'missing'}")
    if mode == "unset" or not config.stripe_webhook_secret:
        print("STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET must both be set", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the subscription manager."""
    parser = argparse.ArgumentParser(
        description="Subscription Manager - Stripe-backed subscription lifecycle service"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to bind to (default: 8080)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=os.getenv("LOG_FORMAT", "json"),
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config/settings.yaml"),
        help="Path to settings.yaml configuration file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate settings and Stripe secrets, then exit",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Enable auto-reload for development (default: false)",
    )

    args = parser.parse_args(argv)

    if args.check_config:
        sys.exit(check_config(args.config))

    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    os.environ["CONFIG_PATH"] = args.config

    if args.log_format == "console":
        print("=" * 60)
        print("Subscription Manager v0.1.0")
        print("=" * 60)
        print(f"Host: {args.host}")
        print(f"Port: {args.port}")
        print(f"Log Level: {args.log_level}")
        print(f"Config: {args.config}")
        print(f"Stripe mode: {processor_mode(os.getenv('STRIPE_SECRET_KEY'))}")
        print("Webhook: POST /webhook/stripe")
        print("=" * 60)

    try:
        uvicorn.run(
            "subscription_manager.main:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # request logging comes from RequestLoggingMiddleware
        )
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
        sys.exit(0)
    except Exception as e:
        print(f"Failed to start subscription manager: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
