"""Service entry point."""

import sys

from txpipe.core.logging import get_logger, setup_logging
from txpipe.core.settings import get_settings
from txpipe.exceptions import ServiceBindError
from txpipe.factory import create_app
from txpipe.lifecycle import start_http_service, start_https_service


def run() -> None:
    """Bind the service and block until it is shut down."""
    settings = get_settings()
    setup_logging(settings)
    logger = get_logger(__name__)

    app = create_app(settings)
    tls = settings.tls_config()
    try:
        if tls is not None:
            binding = start_https_service(app, settings.http_port, tls)
        else:
            binding = start_http_service(app, settings.http_port)
    except ServiceBindError as exc:
        logger.critical("Service failed to start", error=str(exc))
        sys.exit(1)

    binding.wait()


if __name__ == "__main__":
    run()
