"""Main entry point for the IdP registrar webhook server."""

import logging
import sys

import uvicorn
from dotenv import load_dotenv

from idp_registrar.config import get_settings


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()

    log_format = (
        '{"time": "%(asctime)s", "level": "%(levelname)s", '
        '"logger": "%(name)s", "message": "%(message)s"}'
        if settings.log_format == "json"
        else "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def main() -> None:
    """Run the admission webhook server."""
    load_dotenv()
    setup_logging()

    settings = get_settings()
    logger = logging.getLogger(__name__)

    from idp_registrar.telemetry import setup_telemetry, shutdown_telemetry

    setup_telemetry()

    logger.info(
        "Starting IdP registrar on %s:%d (keycloak=%s, denied realms=%d)",
        settings.webhook_host,
        settings.webhook_port,
        settings.keycloak_base_url,
        len(settings.realm_deny_list),
    )

    from idp_registrar.api.app import create_app

    app = create_app()

    try:
        uvicorn.run(
            app,
            host=settings.webhook_host,
            port=settings.webhook_port,
            log_level=settings.log_level.lower(),
            ssl_certfile=settings.webhook_tls_cert_file,
            ssl_keyfile=settings.webhook_tls_key_file,
        )
    finally:
        shutdown_telemetry()


if __name__ == "__main__":
    main()
