from __future__ import annotations
import sys, os, logging, asyncio
from pathlib import Path
from typing import TypedDict, Optional
from loguru import logger

# stdlib loggers routed through Loguru
BRIDGED_LOGGERS = ("asyncio", "aiohttp", "aiohttp.access", "aiohttp.server", "aiohttp.web")


class LoggingOptions(TypedDict, total=False):
    show_file: bool
    show_function: bool
    to_file: bool
    file_path: str
    rotation: str
    keep_total: int
    compression: str


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records (aiohttp, asyncio) into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        msg = record.getMessage()

        # Successful requests and WebSocket upgrades are noise at INFO
        if record.name == "aiohttp.access" and any(f'" {code} ' in msg for code in (101, 200, 201)):
            logger.opt(depth=6, exception=record.exc_info).debug(msg)
            return

        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, msg)


def _build_format(show_file: bool, show_function: bool) -> str:
    location = ""
    if show_file:
        location += "{file:>15.15}:"
    if show_function:
        location += "{function:>15.15}"
    if location:
        location += ":{line:<4} | "
    return (
        "<n><d><level>{time:YYYY-MM-DD HH:mm:ss.SSS} | "
        f"{location}"
        "{level:1.1} | </level></d></n><level>{message}</level>"
    )


def setup_logging(log_lvl: str = "DEBUG", options: Optional[LoggingOptions] = None) -> None:
    """
    Console sink, optional rotating file sink, stdlib bridge for aiohttp and
    hooks for unhandled exceptions (sync and asyncio).
    """
    options = options or {}
    log_fmt = _build_format(
        bool(options.get("show_file", False)),
        bool(options.get("show_function", False)),
    )

    # Remove defaults to avoid duplicates if setup called twice
    logger.remove()
    logger.add(sys.stdout, level=log_lvl, format=log_fmt, colorize=True, backtrace=True, enqueue=True)

    file_path = options.get("file_path", "logs/geodispatch.log")
    if options.get("to_file", False):
        Path(os.path.dirname(file_path) or ".").mkdir(parents=True, exist_ok=True)
        logger.add(
            file_path,
            level=log_lvl,
            format=log_fmt,
            colorize=False,
            backtrace=True,
            rotation=options.get("rotation", "5 MB"),
            # keep_total counts the live file too
            retention=max(0, int(options.get("keep_total", 5)) - 1),
            compression=options.get("compression", "gz"),
            enqueue=True,
        )

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(logging.getLevelName(log_lvl))
    for name in BRIDGED_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers = [InterceptHandler()]
        lg.propagate = False
        lg.setLevel(logging.getLevelName(log_lvl))

    def _excepthook(exc_type, exc, tb):
        if issubclass(exc_type, KeyboardInterrupt):
            return
        logger.opt(exception=(exc_type, exc, tb)).error("Unhandled exception")

    sys.excepthook = _excepthook

    # asyncio task exceptions, only when called from inside a running loop
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is not None:
        def _asyncio_excepthook(loop, context):
            err = context.get("exception")
            msg = context.get("message", "")
            if err:
                logger.opt(exception=err).error(f"Unhandled asyncio exception: {msg}")
            else:
                logger.error(f"Unhandled asyncio error: {msg or context}")

        loop.set_exception_handler(_asyncio_excepthook)

    logger.debug(f"Loguru configured (lvl={log_lvl}, to_file={options.get('to_file', False)}, file={file_path})")


__all__ = ["logger", "setup_logging", "InterceptHandler"]
