import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Messages emitted by platform libraries that are never worth showing
NOISE_PATTERNS = (
    "VSGating:",
    "MADService",
    "RTIInputSystemClient",
    "perform input operation requires a valid sessionID",
    "has passed an invalid numeric value (NaN, or not-a-number) to CoreGraphics API",
    "Backtrace:",
    "<redacted>",
)


class DebugOutputFilter(logging.Filter):
    """Pass DEBUG records only while debug output is enabled in settings"""

    def __init__(self, settings=None, min_level: int = logging.INFO):
        super().__init__()
        self.settings = settings
        self.min_level = min_level

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if any(pattern in message for pattern in NOISE_PATTERNS):
            return False
        if record.levelno <= logging.DEBUG:
            return bool(self.settings is not None and self.settings.debug_output_enabled)
        return record.levelno >= self.min_level


def setup_logging(log_level: str = "INFO", data_dir: str = "/app/data",
                  settings=None) -> logging.Logger:
    """Setup rotating file logger to <data_dir>/uploader/log.log"""

    # Ensure log directory exists
    log_dir = Path(data_dir) / "uploader"
    log_dir.mkdir(parents=True, exist_ok=True)

    # Create logger
    level = getattr(logging, log_level.upper())
    logger = logging.getLogger("video_uploader")
    # With settings attached, DEBUG records reach the filter, which decides
    logger.setLevel(logging.DEBUG if settings is not None else level)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    debug_filter = DebugOutputFilter(settings, min_level=level)

    # Create rotating file handler
    log_file = log_dir / "log.log"
    handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3
    )

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    handler.setFormatter(formatter)
    handler.addFilter(debug_filter)
    logger.addHandler(handler)

    # Also add console handler for development
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(debug_filter)
    logger.addHandler(console_handler)

    logger.info(f"Logging initialized. Log file: {log_file}")
    return logger


def log_exception(logger: logging.Logger, message: str, exc: Optional[BaseException] = None) -> None:
    """Log an error with the active (or given) exception's traceback"""
    if exc is not None:
        logger.error(message, exc_info=(type(exc), exc, exc.__traceback__))
    else:
        logger.error(message, exc_info=True)
