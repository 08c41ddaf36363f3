"""
Expense Tracker API — Process Entry Point
===========================================

Usage:
    python -m app            (or the `expense-tracker-api` console script)

Exit codes:
    0  graceful shutdown after SIGINT/SIGTERM
    1  configuration error, fatal runtime error, or failed/timed-out drain
"""

import asyncio
import logging
import sys

from pydantic import ValidationError as SettingsValidationError

from app.application import Application
from app.config import Settings
from app.exceptions import ConfigError
from app.main import create_app, setup_logging

logger = logging.getLogger("app")


def main() -> None:
    setup_logging()

    try:
        settings = Settings()
        settings.validate_required()
    except (ConfigError, SettingsValidationError) as e:
        logger.error("%s", e)
        logger.error("Fix the configuration and restart the server.")
        sys.exit(1)

    setup_logging(settings.log_level)
    application = Application(settings)
    create_app(application)

    try:
        exit_code = asyncio.run(application.run())
    except Exception:
        logger.critical("Unhandled error; exiting", exc_info=True)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
