"""Log sinks for the dattormm package.

Library modules only ever call ``logging.getLogger(__name__)``. The CLI (or
any other entry point) calls ``configure_logging`` once to decide where the
records go: the console, a file, and optionally the operating system's event
log (Windows Event Log, or syslog elsewhere).
"""
import logging
import logging.handlers
import os
import sys
from typing import Optional

PACKAGE_LOGGER = "dattormm"
EVENT_LOG_APP_NAME = "DattoRMM"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Marks handlers installed here so a second call can replace them
_HANDLER_FLAG = "_dattormm_handler"


def _event_log_handler() -> logging.Handler:
    if sys.platform == "win32":
        handler = logging.handlers.NTEventLogHandler(EVENT_LOG_APP_NAME)
        handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
        return handler

    address = "/dev/log" if os.path.exists("/dev/log") else ("localhost", 514)
    handler = logging.handlers.SysLogHandler(address=address)
    handler.setFormatter(logging.Formatter(f"{EVENT_LOG_APP_NAME}: %(name)s - %(levelname)s - %(message)s"))
    return handler


def configure_logging(
    console: bool = True,
    log_file: Optional[str] = None,
    event_log: bool = False,
    verbose: bool = False,
) -> logging.Logger:
    """Attach the requested sinks to the package logger.

    Args:
        console: Write records to stderr
        log_file: Also append records to this file
        event_log: Also send WARNING and above to the OS event log
        verbose: Log at DEBUG instead of INFO

    Returns:
        The configured ``dattormm`` logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = []

    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(formatter)
        handlers.append(stream)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if event_log:
        system_handler = _event_log_handler()
        system_handler.setLevel(logging.WARNING)
        handlers.append(system_handler)

    for handler in handlers:
        setattr(handler, _HANDLER_FLAG, True)
        logger.addHandler(handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    logger.debug(
        f"Logging configured: console={console}, log_file={log_file}, "
        f"event_log={event_log}, level={logging.getLevelName(level)}"
    )
    return logger
