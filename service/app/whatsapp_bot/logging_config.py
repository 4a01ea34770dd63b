"""
Logging configuration for the WhatsApp bot and its sub-bots.
"""

import logging
import sys


def setup_logging(name: str = "whatsapp_bot", level: int = logging.DEBUG):
    """Setup a named logger writing to stdout."""

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Reconfiguring must not duplicate output
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    formatter = logging.Formatter(
        '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    logger.propagate = False

    return logger


def get_logger(suffix: str) -> logging.Logger:
    """Child logger (e.g. whatsapp_bot.gastos) sharing the bot handler."""
    child = logging.getLogger(f"whatsapp_bot.{suffix}")
    child.propagate = True
    return child


# Global logger instance
bot_logger = setup_logging()
