"""Run the relay with uvicorn: ``python -m naql_otp``."""

from __future__ import annotations

import logging
import sys

import uvicorn

from naql_otp.config import get_settings
from naql_otp.errors import ConfigurationError
from naql_otp.main import LOG_FORMAT, create_app

logger = logging.getLogger("naql_otp")


def _log_uncaught(exc_type, exc, tb) -> None:
    logger.critical("❌ Uncaught exception", exc_info=(exc_type, exc, tb))


def main() -> None:
    sys.excepthook = _log_uncaught
    try:
        settings = get_settings()
        app = create_app(settings)
    except ConfigurationError as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error("❌ %s", exc)
        sys.exit(1)

    logger.info("🚀 Server running on http://localhost:%s", settings.port)
    logger.info("🔧 Mode: %s", settings.environment)

    config = uvicorn.Config(app, host="0.0.0.0", port=settings.port, log_level="info")
    uvicorn.Server(config).run()


if __name__ == "__main__":
    main()
