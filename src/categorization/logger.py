"""
Categorization Logger
One stdout handler on the package logger; every module below it logs through
logging.getLogger(__name__) and inherits the level chosen here.

Modes (LOG_MODE env variable, or the mode argument):
- 'debug': everything, with timestamps and module names
- 'info': progress of each categorization run (default)
- 'production': errors only; Flask's per-request access log is muted too
"""
import logging
import sys
from typing import Optional

from .config import config

PACKAGE_LOGGER = 'src.categorization'

LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'production': logging.ERROR,
}

DEBUG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
DEFAULT_FORMAT = '[%(levelname)s] [Keywords Categorize] %(message)s'


def setup_logger(name: str = PACKAGE_LOGGER, mode: Optional[str] = None) -> logging.Logger:
    """
    Configure the categorization logger.

    Calling it again with another mode switches level and format in place
    instead of stacking a second handler.

    Args:
        name: Logger to configure
        mode: 'debug', 'info' or 'production'; defaults to config.LOG_MODE
    """
    mode = (mode or config.LOG_MODE).lower()
    logger = logging.getLogger(name)
    logger.setLevel(LEVELS.get(mode, logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.DEBUG)
        logger.addHandler(handler)

    fmt = DEBUG_FORMAT if mode == 'debug' else DEFAULT_FORMAT
    for handler in logger.handlers:
        handler.setFormatter(logging.Formatter(fmt, datefmt='%H:%M:%S'))

    # werkzeug logs one INFO line per request
    logging.getLogger('werkzeug').setLevel(logging.ERROR if mode == 'production' else logging.INFO)

    return logger


log = setup_logger()
