from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

_LOGGER = logging.getLogger("stepsynth.logging")
LOG_DIR_ENV = "STEPSYNTH_LOG_DIR"
DEBUG_ENV = "STEPSYNTH_DEBUG"
_LOG_FILE = "stepsynth.log"
_CONSOLE_FORMAT = "%(level_prefix)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVEL_PREFIXES = {
    logging.DEBUG: "🐛",
    logging.INFO: "ℹ️",
    logging.WARNING: "⚠️",
    logging.ERROR: "❌",
    logging.CRITICAL: "💥",
}

_console_handler: logging.Handler | None = None
_file_handler: logging.FileHandler | None = None


class _ConsoleEmojiFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.level_prefix = _LEVEL_PREFIXES.get(record.levelno, "")
        return super().format(record)


def get_log_dir() -> Path:
    configured = os.environ.get(LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "stepsynth" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / _LOG_FILE


def _attach_file_handler(logger: logging.Logger, path: Path) -> None:
    global _file_handler
    if _file_handler is not None:
        logger.removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        _LOGGER.warning("Failed to configure file logging: %s", exc, exc_info=True)
        return
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATE_FORMAT))
    logger.addHandler(handler)
    _file_handler = handler


def configure_logging(*, force: bool = False) -> None:
    """Attach console and file handlers to the ``stepsynth`` logger.

    Safe to call repeatedly: the console handler is added once, and the file
    handler is only replaced when ``STEPSYNTH_LOG_DIR`` now points elsewhere.
    ``force`` rebuilds both.
    """
    global _console_handler
    logger = logging.getLogger("stepsynth")
    logger.setLevel(logging.DEBUG)

    if force:
        for handler in list(logger.handlers):
            if handler is not _file_handler:
                logger.removeHandler(handler)
                handler.close()
        _console_handler = None

    if _console_handler is None and (force or not logging.getLogger().handlers):
        console_handler = logging.StreamHandler(stream=sys.__stderr__)
        console_level = logging.DEBUG if os.environ.get(DEBUG_ENV) else logging.INFO
        console_handler.setLevel(console_level)
        console_handler.setFormatter(_ConsoleEmojiFormatter(_CONSOLE_FORMAT))
        logger.addHandler(console_handler)
        _console_handler = console_handler

    path = get_log_path()
    if force or _file_handler is None or _file_handler.baseFilename != os.path.abspath(path):
        _attach_file_handler(logger, path)

    # Let pytest's caplog and host applications see our records too.
    logger.propagate = True


def log_exception(context: str, exc: BaseException) -> Path | None:
    """Write ``exc`` and its traceback to the log file only, not the console."""
    configure_logging()
    handler = _file_handler
    if handler is None:
        return None
    record = _LOGGER.makeRecord(
        _LOGGER.name,
        logging.ERROR,
        __file__,
        0,
        "%s failed: %s: %s",
        (context, type(exc).__name__, exc),
        (type(exc), exc, exc.__traceback__),
    )
    handler.handle(record)
    handler.flush()
    return Path(handler.baseFilename)
