"""
Result store.

Outcomes are keyed "{test_id}#{path}", written once and shared by every
worker of the scheduler. When backed by a cache file, each insert is
appended as `LEVEL;key;details` so a later run can resume.
"""

import json
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional
from urllib.parse import quote, unquote

from rich.console import Console
from rich.table import Table

from ..logger import get_logger
from ..constants import RESULT_KEY_SEPARATOR
from ..exceptions import DuplicateResultError, ResultStoreError

logger = get_logger(__name__)


class ResultLevel(Enum):
    Success = "Success"
    Ignored = "Ignored"
    Fail = "Fail"
    Panic = "Panic"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ResultInfo:
    test_id: str
    level: ResultLevel
    details: str
    path: str

    @property
    def key(self) -> str:
        return f"{self.test_id}{RESULT_KEY_SEPARATOR}{self.path}"

    def to_cache_line(self) -> str:
        return f"{self.level.value};{self.key};{quote(self.details)}"

    @classmethod
    def from_cache_line(cls, line: str) -> "ResultInfo":
        try:
            level, key, details = line.rstrip("\n").split(";", 2)
            test_id, path = key.split(RESULT_KEY_SEPARATOR, 1)
            return cls(test_id, ResultLevel(level), unquote(details), path)
        except ValueError as e:
            raise ResultStoreError(f"invalid cache line {line!r}: {e}")

    def to_dict(self) -> Dict[str, str]:
        return {
            "test_id": self.test_id,
            "path": self.path,
            "level": self.level.value,
            "details": self.details,
        }


class RWLock:
    """Readers-writer lock: shared reads, exclusive writes."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class Results:
    """Append-only, insertion-ordered store of test outcomes."""

    def __init__(self, cache_path: Optional[Path] = None):
        self.tests: Dict[str, ResultInfo] = {}
        self.cache_path = Path(cache_path) if cache_path else None
        self._lock = RWLock()

    @classmethod
    def with_cache(cls, cache_path: Path) -> "Results":
        """Load the outcomes recorded in a cache file; new inserts are appended to it."""
        results = cls(cache_path)
        path = Path(cache_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    info = ResultInfo.from_cache_line(line)
                    results.tests[info.key] = info
            logger.info("Loaded %d cached results from %s", len(results.tests), path)
        return results

    def contains(self, key: str) -> bool:
        with self._lock.read():
            return key in self.tests

    def insert(self, info: ResultInfo) -> None:
        """
        Record an outcome.

        The outcome is kept in memory even when appending it to the cache
        file fails; it is then re-run on resume.

        Raises:
            DuplicateResultError: If the key already holds an outcome
            ResultStoreError: If the cache file could not be written
        """
        with self._lock.write():
            if info.key in self.tests:
                raise DuplicateResultError(info.key)
            try:
                self._append_to_cache(info)
            finally:
                self.tests[info.key] = info
        logger.debug("%s %s %s", info.level, info.key, info.details)

    def _append_to_cache(self, info: ResultInfo) -> None:
        if self.cache_path is None:
            return
        try:
            with open(self.cache_path, "a", encoding="utf-8") as f:
                f.write(info.to_cache_line() + "\n")
        except OSError as e:
            raise ResultStoreError(f"cannot append {info.key} to {self.cache_path}: {e}") from e

    def get(self, key: str) -> Optional[ResultInfo]:
        with self._lock.read():
            return self.tests.get(key)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self.tests)

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def entries(self) -> List[ResultInfo]:
        with self._lock.read():
            return list(self.tests.values())

    # --- reporting --------------------------------------------------------

    def summary(self) -> Dict[str, int]:
        counts = {level.value: 0 for level in ResultLevel}
        for info in self.entries():
            counts[info.level.value] += 1
        return counts

    def pass_rate(self) -> float:
        counts = self.summary()
        total = sum(counts.values()) - counts[ResultLevel.Ignored.value]
        if total <= 0:
            return 0.0
        return counts[ResultLevel.Success.value] / total * 100

    def write_json_report(self, path: Path) -> Path:
        """
        Write all outcomes as a JSON report.

        Returns:
            Path to written file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        report = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "total_tests": len(self),
            "counts": self.summary(),
            "pass_rate": round(self.pass_rate(), 2),
            "results": [info.to_dict() for info in self.entries()],
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)
        return path

    def print_summary(self, console: Optional[Console] = None, show_failures: bool = True) -> None:
        console = console or Console()

        table = Table(title="State test results")
        table.add_column("Level")
        table.add_column("Count", justify="right")
        styles = {"Success": "green", "Ignored": "yellow", "Fail": "red", "Panic": "bold red"}
        for level, count in self.summary().items():
            table.add_row(f"[{styles[level]}]{level}[/]", str(count))
        console.print(table)
        console.print(f"Pass rate: {self.pass_rate():.1f}%")

        if show_failures:
            failures = [i for i in self.entries() if i.level in (ResultLevel.Fail, ResultLevel.Panic)]
            if failures:
                detail = Table(title="Failures")
                detail.add_column("Level")
                detail.add_column("Test")
                detail.add_column("Details", overflow="fold")
                for info in failures:
                    detail.add_row(info.level.value, info.key, info.details)
                console.print(detail)
