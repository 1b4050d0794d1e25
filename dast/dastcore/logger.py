import logging
from logging.handlers import RotatingFileHandler
from rich.logging import RichHandler

LOGGER_NAME = "dast"

def get_logger(name: str = None) -> logging.Logger:
    # name = "auditor" -> "dast.auditor"
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)

def init_logger(
    verbose: bool = False,
    log_file: str = None,
    *,
    console_output: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    # central logger setup, idempotent
    logger = get_logger()

    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if console_output:
        # RichHandler brings its own formatting
        logger.addHandler(RichHandler(rich_tracebacks=True, show_time=True, show_level=True))

    if log_file:
        fmt = logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")
        fh = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger
