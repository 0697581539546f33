"""
Logging configuration: root handler on stdout, uvicorn and tgshop loggers aligned.
Payment code logs under tgshop.payments.*; gateway credentials are never logged.
"""
import logging
import sys


def setup_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
) -> None:
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=format_string,
        stream=sys.stdout,
        force=True,
    )
    # Keep uvicorn access/error loggers at the same level
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        log = logging.getLogger(name)
        if level is not None:
            log.setLevel(level)
    logging.getLogger("tgshop").setLevel(level)
    # httpx logs every request line at INFO, including the bot token in sendMessage URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
