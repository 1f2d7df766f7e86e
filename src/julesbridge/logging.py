"""Process-wide logging for jules-bridge.

Everything logs through children of the ``julesbridge`` logger. Where the
records go is decided once, by ``setup_logging``:

1. a log file, from ``logging.file`` in config or the ``JB_LOG`` variable;
2. otherwise stderr, but only when stderr is a terminal or the caller asks
   for it;
3. otherwise nowhere.

Stdout is off limits because ``jules-bridge serve`` writes JSON-RPC frames
to it. An editor that spawns the bridge usually pipes stderr too, so the
bridge stays quiet there unless a log file is configured.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from julesbridge.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("julesbridge")

# -v count, quietest first; anything past the end is TRACE
_VERBOSITY = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_FORMAT = "%(asctime)s %(levelname)s: %(message)s"

_configured = False


class _BridgeFormatter(logging.Formatter):
    """``14:03:22 warning: message``"""

    def __init__(self) -> None:
        super().__init__(_FORMAT, datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers still see the original level name
        shown = logging.makeLogRecord(record.__dict__)
        shown.levelname = record.levelname.lower()
        return super().format(shown)


def resolve_level(config: LoggingConfig | None) -> int:
    """Numeric level for ``config``; a verbosity count beats a level name."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY[max(0, min(config.verbose, len(_VERBOSITY) - 1))]
    if config.level:
        level = logging.getLevelNamesMapping().get(config.level.upper())
        if level is not None:
            return level
    return logging.INFO


def _open_log_file(path: str) -> logging.Handler | None:
    try:
        return logging.FileHandler(os.path.expanduser(path), mode="a", encoding="utf-8")
    except OSError as e:
        if sys.stderr.isatty():
            print(f"[jules-bridge] cannot write log file {path}: {e}", file=sys.stderr)
        return None


def setup_logging(config: LoggingConfig | None = None, *, force_stderr: bool = False) -> None:
    """Attach the process's log handler. Only the first call has any effect.

    ``force_stderr`` is for the one-shot CLI commands, whose stderr is the
    user's terminal even when it is redirected. ``serve`` never sets it.
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = resolve_level(config)
    logger.setLevel(level)

    path = config.file if config is not None and config.file else os.environ.get("JB_LOG")
    handler = _open_log_file(path) if path else None
    if handler is None and (force_stderr or sys.stderr.isatty()):
        handler = logging.StreamHandler(sys.stderr)
    if handler is None:
        return

    handler.setLevel(level)
    handler.setFormatter(_BridgeFormatter())
    logger.addHandler(handler)


def reset_logging() -> None:
    """Close and detach every handler so ``setup_logging`` runs again."""
    global _configured
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    _configured = False


def get_logger(name: str | None = None) -> logging.Logger:
    """``julesbridge.<name>``, or the package logger itself."""
    return logger.getChild(name) if name else logger
