"""
Main entry point for the Encode Orchestrator application.

This script configures a default logger, then hands the command line over to
`encode_orchestrator.cli.main`, which loads the settings, re-configures logging
and runs the requested command.
"""

import sys

from loguru import logger

from encode_orchestrator.cli import main
from encode_orchestrator.config.common import LOGGER_FORMAT

# Configure the logger for initial setup.
# The level is overridden once the settings and arguments are known.
logger.remove()
log_level = "DEBUG" if __debug__ else "INFO"
logger.add(sys.stderr, level=log_level, format=LOGGER_FORMAT)


if __name__ == "__main__":
    sys.exit(main())
