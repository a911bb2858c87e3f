"""Logging configuration."""
import logging

LOGGER_NAME = "alertengine"
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level="INFO", log_file=None):
    """Configure the alertengine logger with a rich console and optional file handler."""
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(numeric_level)

    if not root.handlers:
        from rich.logging import RichHandler
        console_handler = RichHandler(level=numeric_level, rich_tracebacks=True, markup=False,
                                      show_path=False)
        root.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(logging.Formatter(_FORMAT))
            root.addHandler(file_handler)

    return root
