import logging
import sys

LOGGER_NAME = 'chapterdl'
LOG_FORMAT = '[%(asctime)s %(levelname)s %(module)s:%(lineno)d] %(message)s'
DATE_FORMAT = '%H:%M:%S'

logger = logging.getLogger(LOGGER_NAME)
logger.addHandler(logging.NullHandler())


def setup_logging(debug: bool = False, stream=None):
    """Attach a stream handler to the project logger.

    Calling it again only updates the level and stream, so the CLI can run it
    per command.
    """
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)

    for handler in logger.handlers:
        if getattr(handler, '_chapterdl_handler', False):
            handler.setLevel(level)
            handler.setStream(stream or sys.stderr)
            return logger

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    handler.setLevel(level)
    handler._chapterdl_handler = True
    logger.addHandler(handler)
    return logger
