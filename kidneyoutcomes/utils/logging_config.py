"""
Logging configuration for kidneyoutcomes.

Library modules never touch handlers; they only ask for a named logger:

    from kidneyoutcomes.utils.logging_config import get_logger
    logger = get_logger('episodes.core')

Applications (or the orchestrator) call ``setup_logging()`` once to route
the ``kidneyoutcomes`` namespace to the console and, optionally, a file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER_NAME = 'kidneyoutcomes'

FILE_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
CONSOLE_FORMAT = '%(levelname)s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Marker attribute so repeated setup_logging() calls replace our handlers only
_HANDLER_TAG = '_kidneyoutcomes_handler'


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger inside the package namespace.

    Parameters
    ----------
    name : str
        Dotted suffix, e.g. ``'episodes.grid'``. A name that already starts
        with ``'kidneyoutcomes'`` is used as is.

    Returns
    -------
    logging.Logger
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + '.'):
        return logging.getLogger(name)
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure handlers on the package root logger.

    Safe to call more than once: handlers added by a previous call are
    removed before new ones are attached.

    Parameters
    ----------
    level : int or str, default logging.INFO
        Level for the package logger and its handlers.
    log_file : str or Path, optional
        If given, also write records to this file (parent directories are
        created).
    console : bool, default True
        Attach a stdout handler.

    Returns
    -------
    logging.Logger
        The configured ``kidneyoutcomes`` root logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown logging level: {level}")

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            logger.removeHandler(handler)
            handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        setattr(console_handler, _HANDLER_TAG, True)
        logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        setattr(file_handler, _HANDLER_TAG, True)
        logger.addHandler(file_handler)
        logger.info(f"Log file: {log_path}")

    return logger
