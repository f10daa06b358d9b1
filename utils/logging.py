import logging
import colorlog
from pathlib import Path

class RaffleContextFilter(logging.Filter):
    """Add raffle context to log records."""
    def filter(self, record):
        # Ensure all records have certain attributes, even if empty
        for attr in ['user_id', 'raffle_id', 'purchase_id']:
            if not hasattr(record, attr):
                setattr(record, attr, None)
        return True

class ContextFormatterMixin:
    """Append whichever context attributes are set to the message."""
    CONTEXT_LABELS = (
        ('raffle_id', 'raffle'),
        ('purchase_id', 'purchase'),
        ('user_id', 'user'),
    )

    def format(self, record):
        result = super().format(record)
        context = " ".join(
            f"[{label}:{getattr(record, attr)}]"
            for attr, label in self.CONTEXT_LABELS
            if getattr(record, attr, None) is not None
        )
        return f"{result} {context}" if context else result

class ColoredContextFormatter(ContextFormatterMixin, colorlog.ColoredFormatter):
    pass

class ContextFormatter(ContextFormatterMixin, logging.Formatter):
    pass

def setup_logger(name: str, log_file: str = None, level: str = "INFO") -> logging.Logger:
    """Set up a colored logger instance with optional file output."""

    # Get or create logger
    logger = logging.getLogger(name)

    # Clear any existing handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.setLevel(level)
    logger.propagate = False

    # Add raffle context filter
    logger.addFilter(RaffleContextFilter())

    # Create console handler with colored formatting
    console_handler = colorlog.StreamHandler()
    console_handler.setLevel(level)

    color_formatter = ColoredContextFormatter(
        "%(asctime)s - %(log_color)s%(levelname)-8s%(reset)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        reset=True,
        log_colors={
            'DEBUG':    'cyan',
            'INFO':     'green',
            'WARNING':  'yellow',
            'ERROR':    'red',
            'CRITICAL': 'red,bg_white',
        }
    )

    console_handler.setFormatter(color_formatter)
    logger.addHandler(console_handler)

    # Add file handler if specified
    if log_file:
        log_dir = Path("logs")
        log_dir.mkdir(exist_ok=True)

        file_handler = logging.FileHandler(
            filename=log_dir / log_file,
            encoding="utf-8",
            mode="a"
        )
        # Detailed formatter for file logs
        file_formatter = ContextFormatter(
            "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger
