import logging
import os
import sys

from tqdm import tqdm

# Parent of every module logger in the package (``translation_manager.*``).
PACKAGE_LOGGER_NAME = "translation_manager"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class TqdmLoggingHandler(logging.Handler):
    """Console handler that prints through ``tqdm.write`` so progress bars stay intact."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
            self.flush()
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def setup_logger(log_level_str: str, log_file_path: str, log_to_console: bool) -> logging.Logger:
    """
    Configure the package logger once for the whole process.

    Module loggers created with ``logging.getLogger(__name__)`` inherit its
    handlers. Calling this again replaces the handlers instead of adding to them.

    Args:
        log_level_str: Level name such as 'INFO' or 'DEBUG'; unknown names mean INFO.
        log_file_path: Log file to append to. An empty value disables file logging.
        log_to_console: Whether to also log to stderr.

    Returns:
        The configured ``translation_manager`` logger.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    package_logger.setLevel(getattr(logging, log_level_str.upper(), logging.INFO))
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = []
    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file_path, encoding='utf-8'))
    if log_to_console:
        handlers.append(TqdmLoggingHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)
    return package_logger
