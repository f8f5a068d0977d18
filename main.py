#!/usr/bin/env python3
"""
Calendar Herald - Main Entry Point

A Discord bot that posts a daily and a weekly digest of a Google or ICS
calendar, and announces each newly added event once.
"""

import sys
import asyncio

from config.settings import load_settings
from utils.error_handling import ConfigError
from utils.logging import get_log_file_location, logger, shutdown_logging


def main():
    """Main application entry point."""
    exit_code = 0
    try:
        logger.info("=" * 60)
        logger.info("🏰 Calendar Herald Starting")
        logger.info("=" * 60)
        logger.info(f"📝 Log file: {get_log_file_location()}")

        try:
            settings = load_settings()
        except ConfigError as e:
            logger.error(f"❌ Invalid configuration: {e}")
            logger.error("Please check your environment variables and try again.")
            exit_code = 1
            return exit_code
        logger.info(f"⚙️ {settings.describe()}")

        from bot.core import main as herald_main
        exit_code = asyncio.run(herald_main(settings))

    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.exception(f"Fatal error starting bot: {e}")
        exit_code = 1
    finally:
        logger.info("🏰 Calendar Herald Shutdown Complete")
        shutdown_logging()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
