from __future__ import annotations

import hashlib
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Mapping, Optional

from .inventory import FileEntry
from .models import ExpectedFile
from .observability import ProgressListener
from .problem import CheckError, NotFound, Problem, WrongSignature, WrongSize

logger = logging.getLogger(__name__)

BUF_SIZE = 8 * 1024


class Verifier:
    """Checks expected archives against a directory inventory.

    Each file is checked to completion by one worker: existence, then size,
    then the streamed digest. A size mismatch never reaches the digest step.
    Problems are collected in completion order.
    """

    def __init__(
        self,
        inventory: Mapping[str, FileEntry],
        *,
        workers: int = 0,
        buffer_size: int = BUF_SIZE,
        hasher_factory: Callable[[], Any] = hashlib.md5,
        listener: Optional[ProgressListener] = None,
    ) -> None:
        self._inventory = inventory
        self._workers = int(workers) if workers and workers > 0 else (os.cpu_count() or 1)
        self._buffer_size = max(1, int(buffer_size))
        self._hasher_factory = hasher_factory
        self._listener = listener or ProgressListener()
        self._local = threading.local()
        self._lock = threading.Lock()
        self._problems: List[Problem] = []

    @property
    def workers(self) -> int:
        return self._workers

    def run(self, files: Iterable[ExpectedFile]) -> List[Problem]:
        with self._lock:
            self._problems = []
        with ThreadPoolExecutor(max_workers=self._workers) as executor:
            futures = [executor.submit(self._process, expected) for expected in files]
            for future in futures:
                future.result()
        with self._lock:
            return list(self._problems)

    def check(self, expected: ExpectedFile) -> Optional[Problem]:
        entry = self._inventory.get(expected.filename)
        if entry is None:
            return NotFound(filename=expected.filename)
        try:
            size = entry.size()
            if size != expected.expected_size:
                return WrongSize(
                    filename=expected.filename,
                    expected=expected.expected_size,
                    got=size,
                )
            got = self._digest(expected, entry)
        except OSError as exc:
            return CheckError(filename=expected.filename, cause=str(exc))
        wanted = expected.expected_digest.lower()
        if got != wanted:
            return WrongSignature(filename=expected.filename, expected=wanted, got=got)
        return None

    def _process(self, expected: ExpectedFile) -> None:
        self._listener.file_started(expected)
        problem = self.check(expected)
        if problem is not None:
            with self._lock:
                self._problems.append(problem)
            logger.debug("%s", problem)
        self._listener.file_finished(expected, problem)

    def _digest(self, expected: ExpectedFile, entry: FileEntry) -> str:
        hasher = self._hasher_factory()
        buf = self._buffer()
        view = memoryview(buf)
        with entry.open() as handle:
            while True:
                count = handle.readinto(buf)
                if not count:
                    break
                hasher.update(view[:count])
                self._listener.bytes_read(expected, count)
        return hasher.hexdigest().lower()

    def _buffer(self) -> bytearray:
        # One buffer per worker thread, reused for every file it checks.
        buf = getattr(self._local, "buf", None)
        if buf is None:
            buf = bytearray(self._buffer_size)
            self._local.buf = buf
        return buf
