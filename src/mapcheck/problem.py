from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

DEFAULT_SUMMARY_WIDTH = 80
ELLIPSIS = "..."


@dataclass(frozen=True)
class NotFound:
    filename: str
    kind = "not_found"

    def __str__(self) -> str:
        return f"File {self.filename} was not found"


@dataclass(frozen=True)
class WrongSize:
    filename: str
    expected: int
    got: int
    kind = "wrong_size"

    def __str__(self) -> str:
        return f"File {self.filename} has size: {self.got}, expected: {self.expected}"


@dataclass(frozen=True)
class WrongSignature:
    filename: str
    expected: str
    got: str
    kind = "wrong_signature"

    def __str__(self) -> str:
        return f"File {self.filename} has signature: {self.got!r}, expected: {self.expected!r}"


@dataclass(frozen=True)
class CheckError:
    filename: Optional[str]
    cause: str
    kind = "error"

    def __str__(self) -> str:
        if self.filename:
            return f"Error checking {self.filename}: {self.cause}"
        return f"Error: {self.cause}"


Problem = Union[NotFound, WrongSize, WrongSignature, CheckError]


class ProblemReport:
    """Read-only views over the problems of one verification run."""

    def __init__(
        self,
        problems: Sequence[Problem],
        summary_width: int = DEFAULT_SUMMARY_WIDTH,
    ) -> None:
        self._problems = tuple(problems)
        self._summary_width = max(len(ELLIPSIS) + 1, int(summary_width))

    def __len__(self) -> int:
        return len(self._problems)

    def __iter__(self):
        return iter(self._problems)

    @property
    def ok(self) -> bool:
        return not self._problems

    def missing(self) -> List[str]:
        return [p.filename for p in self._problems if isinstance(p, NotFound)]

    def missing_summary(self) -> Optional[str]:
        missing = self.missing()
        if not missing:
            return None
        line = f"{len(missing)} files not found: {', '.join(missing)}"
        if len(line) > self._summary_width:
            line = line[: self._summary_width - len(ELLIPSIS)] + ELLIPSIS
        return line

    def other_problems(self) -> List[Problem]:
        return [p for p in self._problems if not isinstance(p, NotFound)]

    def corrupt_filenames(self) -> List[str]:
        # Missing files need a re-download and errors may be transient, so
        # only size and digest mismatches are deletion candidates.
        return [
            p.filename
            for p in self._problems
            if isinstance(p, (WrongSize, WrongSignature))
        ]

    def counts(self) -> Dict[str, int]:
        return dict(Counter(p.kind for p in self._problems))

    def summary_json(self) -> str:
        payload = {
            "event": "verify_done",
            "ok": self.ok,
            "problems": len(self._problems),
            "counts": self.counts(),
        }
        return json.dumps(payload, separators=(",", ":"))
