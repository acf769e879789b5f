"""
Rich logging utility for colored terminal output.

Every logger shares one RichHandler. A redaction filter masks tax ids and
phone numbers that slip into log messages, since customer data flows through
most of the pipeline.
"""
import logging
import re
from typing import Optional
from rich.logging import RichHandler
from rich.console import Console
from rich.traceback import install as install_traceback
from origination.core.config import settings

# Locals are not shown: they routinely hold customer records
install_traceback(show_locals=False)

# Create a shared console instance
_console = Console()

# 11 digits, bare or formatted as 000.000.000-00
_TAX_ID_PATTERN = re.compile(r"(?<!\d)(\d{3})\.?(\d{3})\.?(\d{3})-?(\d{2})(?!\d)")
# 12-13 digit international phone numbers (country + area code + number)
_PHONE_PATTERN = re.compile(r"(?<!\d)(\d{4})\d{4,5}(\d{4})(?!\d)")


def redact(text: str) -> str:
    """Mask tax ids and phone numbers inside free text."""
    text = _PHONE_PATTERN.sub(lambda m: f"{m.group(1)}*****{m.group(2)}", text)
    return _TAX_ID_PATTERN.sub(lambda m: f"***.{m.group(2)}.{m.group(3)}-**", text)


class RedactingFilter(logging.Filter):
    """Logging filter that masks sensitive identifiers in the final message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


_handler: Optional[RichHandler] = None


def _get_handler() -> RichHandler:
    global _handler
    if _handler is None:
        _handler = RichHandler(
            console=_console,
            show_time=True,
            show_path=True,
            show_level=True,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=True,  # Enable rich markup in log messages
            log_time_format="[%Y-%m-%d %H:%M:%S]",
        )
        _handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%Y-%m-%d %H:%M:%S]"))
        _handler.addFilter(RedactingFilter())
    return _handler


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance with Rich formatting and colors.
    All loggers share the same RichHandler for consistent output.

    Args:
        name: Logger name (typically __name__)
        level: Optional log level override (defaults to settings.log_level)

    Returns:
        Configured logger instance with RichHandler
    """
    logger = logging.getLogger(name)

    log_level = level.upper() if level else settings.log_level.upper()
    logger.setLevel(getattr(logging, log_level))

    # Avoid adding multiple handlers
    if not logger.handlers:
        logger.addHandler(_get_handler())

    # Prevent propagation to root logger to avoid duplicate messages
    logger.propagate = False

    return logger


def get_shared_logger() -> logging.Logger:
    """
    Get the shared application logger for lifecycle events that don't
    belong to a specific module.
    """
    return get_logger("origination")


# Create a shared application logger instance
app_logger = get_shared_logger()
