from __future__ import annotations

import json
import threading
import time
from collections import Counter
from typing import Any, Dict, Optional

from .models import ExpectedFile


class ProgressListener:
    """Receives progress events from the verifier worker threads.

    Events are observational only; implementations must not raise.
    """

    def file_started(self, expected: ExpectedFile) -> None:
        pass

    def bytes_read(self, expected: ExpectedFile, count: int) -> None:
        pass

    def file_finished(self, expected: ExpectedFile, problem: Optional[Any]) -> None:
        pass


class VerifyProgress(ProgressListener):
    def __init__(self, total_files: int = 0, total_bytes: int = 0, log_interval_sec: int = 30) -> None:
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter()
        self._current: Optional[str] = None
        self._total_files = max(0, int(total_files))
        self._total_bytes = max(0, int(total_bytes))
        self._started = time.time()
        self._last_log = self._started
        self._log_interval_sec = max(1, int(log_interval_sec))

    def inc(self, name: str, count: int = 1) -> None:
        if not name:
            return
        with self._lock:
            self._counters[name] += count

    def file_started(self, expected: ExpectedFile) -> None:
        with self._lock:
            self._current = expected.filename

    def bytes_read(self, expected: ExpectedFile, count: int) -> None:
        self.inc("bytes.hashed_total", count)

    def file_finished(self, expected: ExpectedFile, problem: Optional[Any]) -> None:
        self.inc("files.done_total")
        if problem is None:
            self.inc("files.ok_total")
            self.inc("files.hashed_total")
            return
        kind = getattr(problem, "kind", "unknown")
        if kind == "wrong_signature":
            self.inc("files.hashed_total")
        self.inc(f"problems.{kind}_total")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "current": self._current,
                "total_files": self._total_files,
                "total_bytes": self._total_bytes,
                "elapsed_sec": round(time.time() - self._started, 3),
            }

    def maybe_log(self, logger) -> None:
        now = time.time()
        if now - self._last_log < self._log_interval_sec:
            return
        self._last_log = now
        payload = self.snapshot()
        payload["event"] = "verify_progress"
        logger.info(json.dumps(payload, separators=(",", ":")))
