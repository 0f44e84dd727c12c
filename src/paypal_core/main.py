"""
Command-line entry point — acquire a token and optionally check a certificate URL.

Composition root: loads SdkSettings from the environment, configures
structlog, and wires the concrete adapters.

    paypal-token                        → fetch an OAuth token, log app id + expiry
    paypal-token --validate-url URL     → also validate the certificate bundle at URL
"""

from __future__ import annotations

import argparse
import logging
import sys

import structlog
from pydantic import ValidationError

from paypal_core import __version__
from paypal_core.adapters.certificates import CertificateManager
from paypal_core.adapters.http_client import HttpExecutor
from paypal_core.adapters.oauth import OAuthTokenCredential
from paypal_core.config import SdkSettings
from paypal_core.errors import PayPalError


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for human-readable console output.

    Unknown level names fall back to INFO.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="paypal-token",
        description="Acquire a PayPal OAuth token using PAYPAL_* environment settings.",
    )
    parser.add_argument(
        "--validate-url",
        metavar="URL",
        help="download the certificate bundle at URL and validate it against the trusted root",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Load settings, acquire a token, and optionally validate a certificate URL."""
    args = _parse_args(argv)

    try:
        settings = SdkSettings()
    except ValidationError as e:
        print(f"FATAL: Configuration error: {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()
    log.info("app.starting", version=__version__, mode=settings.mode)

    config = settings.to_config()

    try:
        with HttpExecutor(config) as executor:
            credential = OAuthTokenCredential(config=config, executor=executor)
            credential.get_access_token()
        log.info(
            "app.token_acquired",
            app_id=credential.application_id,
            expires_in=credential.access_token_expiration_in_seconds,
        )

        if args.validate_url:
            manager = CertificateManager.instance()
            if not manager.validate_url(args.validate_url, config):
                log.error("app.certificate_untrusted", url=args.validate_url)
                sys.exit(2)
            log.info("app.certificate_trusted", url=args.validate_url)
    except PayPalError as e:
        log.error("app.failed", error_type=type(e).__name__, error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
