"""
statetool Logging
=================

Root logging for the runner, configured once per process. Console output goes
through `rich` with a highlighter tuned for runner messages (outcome levels,
`id#path` keys, addresses); an optional rotating log file receives the same
sanitized lines. The scheduler's worker threads all log through the root
logger configured here.

Usage:
    >>> from statetool.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Loaded %d state tests", 12)
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_FILE,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
)

# Libraries that are too chatty at the runner's level
QUIET_LOGGERS = ("eth", "trie")

RUNNER_THEME = Theme({
    "statetool.address":        "cyan",
    "statetool.level":          "bold",
    "statetool.logger_name":    "magenta",
    "statetool.result_fail":    "bold red",
    "statetool.result_ignored": "bold yellow",
    "statetool.result_panic":   "bold red reverse",
    "statetool.result_success": "bold green",
    "statetool.test_key":       "bold white",
    "statetool.timestamp":      "bold cyan",
})

_FORMAT_KEY_RE = re.compile(r"\([a-zA-Z_][a-zA-Z0-9_]*\)[a-zA-Z]")
_STRFTIME_RE = re.compile(
    r"^(?=.*%(?!%)(?:[EO])?(?:[-_0^#])*(?:[A-DF-HIM-NPR-VW-Za-hj-lm-npr-uw-z]))"
    r"(?:%%|%(?:[EO])?(?:[-_0^#])*(?:[A-DF-HIM-NPR-VW-Za-hj-lm-npr-uw-z])|[0-9 \t:\-\/\.,TZ+])+$"
)


def _warn(message: str) -> None:
    # Logging is not configured yet, so report straight to stderr
    stamp = time.strftime(str(LOG_DATE_FORMAT.default()))
    print(f"{stamp} - statetool.logger - {message}", file=sys.stderr)


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that strips ANSI escapes and control characters.

    Fixture names and tracer fault text end up in log messages verbatim.
    """

    _ansi_escape_re = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    # 0x00-0x1F except tab and newline, plus DEL
    _control_chars_re = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._control_chars_re.sub("", cls._ansi_escape_re.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class StateToolLogHighlighter(RegexHighlighter):
    """Highlights log levels, test outcomes, `id#path` keys and addresses."""

    base_style = "statetool."
    highlights = [
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<level>\b(?:CRITICAL|ERROR|WARNING|INFO|DEBUG)\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<result_fail>\bFail\b)",
        r"(?P<result_ignored>\bIgnored\b)",
        r"(?P<result_panic>\bPanic\b)",
        r"(?P<result_success>\bSuccess\b)",
        r"(?P<test_key>\b[\w.-]+#\S+)",
        r"(?P<timestamp>^\S+ UTC)",
    ]


class LogManager:
    """
    Process-wide logging setup (singleton).

    `configure()` runs at most once; later calls are no-ops. `get_logger()`
    configures with the `.env` defaults on first use.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._configured = False
                    cls._instance = instance
        return cls._instance

    @staticmethod
    def validate_log_format(log_format: str) -> str:
        """
        Return `log_format` if it formats a record cleanly, else the default.

        Every `(key)x` specifier must be preceded by `%`.
        """
        if not log_format:
            return str(LOG_FORMAT.default())
        log_format = str(log_format)
        try:
            for match in _FORMAT_KEY_RE.finditer(log_format):
                if match.start() == 0 or log_format[match.start() - 1] != "%":
                    raise ValueError(f"specifier at offset {match.start()} lacks '%'")

            record = logging.LogRecord("statetool", logging.INFO, "", 0, "check", (), None)
            if _FORMAT_KEY_RE.search(logging.Formatter(fmt=log_format).format(record)):
                raise ValueError("unexpanded specifier in output")
        except (ValueError, KeyError, TypeError) as e:
            _warn(f"Validation Error: {e}. Using default.")
            return str(LOG_FORMAT.default())
        return log_format

    @staticmethod
    def validate_date_format(date_format: str) -> str:
        """Return `date_format` if it only holds strftime directives and separators."""
        if date_format and _STRFTIME_RE.match(str(date_format)):
            return str(date_format)
        if date_format:
            _warn("Invalid date format. Using default.")
        return str(LOG_DATE_FORMAT.default())

    def _console_handler(self, level: int) -> logging.Handler:
        if not LOG_CONSOLE_HIGHLIGHTING:
            return logging.StreamHandler(sys.stderr)
        return RichHandler(
            console=Console(theme=RUNNER_THEME, highlight=False, stderr=True),
            highlighter=StateToolLogHighlighter(),
            keywords=[],
            rich_tracebacks=True,
            omit_repeated_times=False,
            show_path=False,
            show_time=False,
            show_level=False,
            markup=False,
            level=level,
        )

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
    ) -> None:
        """
        Configure the root logger.

        Args:
            log_level: Level name; defaults to LOG_LEVEL.
            log_file: Rotating log file; defaults to LOG_FILE, none when empty.
            console_output: Attach the console handler.
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()
            for name in QUIET_LOGGERS:
                logging.getLogger(name).setLevel(logging.WARNING)

            # Timestamps in UTC so shards on different machines line up
            formatter = TerminalSafeFormatter(
                fmt=self.validate_log_format(LOG_FORMAT),
                datefmt=self.validate_date_format(LOG_DATE_FORMAT) + " UTC",
            )
            formatter.converter = time.gmtime

            handlers = []
            if console_output:
                handlers.append(self._console_handler(level))

            path = log_file or (Path(str(LOG_FILE)) if str(LOG_FILE) else None)
            if path is not None:
                path.parent.mkdir(parents=True, exist_ok=True)
                handlers.append(logging.handlers.RotatingFileHandler(
                    filename=str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                ))

            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            self._configured = True

    def set_level(self, log_level: str) -> None:
        """Change the level of the root logger and its handlers."""
        level = getattr(logging, str(log_level).upper(), logging.INFO)
        root = logging.getLogger()
        root.setLevel(level)
        for handler in root.handlers:
            handler.setLevel(level)

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    @property
    def is_configured(self) -> bool:
        return self._configured


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Logger for `name`, configuring the logging system on first use."""
    return _manager.get_logger(name)


def set_level(log_level: str) -> None:
    """Change the active log level, e.g. for a `--verbose` run."""
    _manager.set_level(log_level)
