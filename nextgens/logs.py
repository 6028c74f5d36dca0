import logging
from typing import Callable

LogFn = Callable[[str], None]

logger = logging.getLogger("nextgens")

_TAG_LEVELS = {
    "[FATAL]": logging.CRITICAL,
    "[ERR]": logging.ERROR,
    "[ERROR]": logging.ERROR,
    "[WARN]": logging.WARNING,
}


def level_for(message: str) -> int:
    head = message.split(" ", 1)[0]
    return _TAG_LEVELS.get(head, logging.INFO)


def default_log(message: str):
    # Used when the host does not inject its own log_fn.
    logger.log(level_for(message), message)
