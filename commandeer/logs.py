"""
Logging setup for applications built on commandeer.

The library only creates module loggers (logging.getLogger(__name__)) and
never installs handlers; configure() is for the host application.
"""
import logging

from rich.logging import RichHandler

LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def configure(level="warning", /, *, console=None):
    """
    Route the "commandeer" logger tree through a rich handler.

    level accepts a logging level number or one of LEVELS (case-insensitive).
    Calling it again replaces the handler installed before.
    """
    if isinstance(level, str):
        try:
            level = LEVELS[level.strip().lower()]
        except KeyError:
            raise ValueError(f"configure() unknown log level {level!r}") from None
    elif not isinstance(level, int) or isinstance(level, bool):
        raise TypeError("configure() level must be a string or an integer")

    logger = logging.getLogger("commandeer")
    for handler in [handler for handler in logger.handlers if isinstance(handler, RichHandler)]:
        logger.removeHandler(handler)
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


__all__ = (
    "configure",
)
