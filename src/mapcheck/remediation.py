from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from .inventory import FileEntry

logger = logging.getLogger(__name__)

STATUS_NOT_NEEDED = "not_needed"
STATUS_DECLINED = "declined"
STATUS_DELETED = "deleted"


@dataclass
class RemediationOutcome:
    status: str
    candidates: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)


def remediate(
    inventory: Mapping[str, FileEntry],
    corrupt: Sequence[str],
    *,
    force: bool = False,
    confirm: Optional[Callable[[List[str]], bool]] = None,
) -> RemediationOutcome:
    candidates = list(dict.fromkeys(corrupt))
    if not candidates:
        return RemediationOutcome(status=STATUS_NOT_NEEDED)

    authorized = force or (confirm is not None and bool(confirm(candidates)))
    if not authorized:
        return RemediationOutcome(status=STATUS_DECLINED, candidates=candidates)

    outcome = RemediationOutcome(status=STATUS_DELETED, candidates=candidates)
    for name in candidates:
        entry = inventory.get(name)
        if entry is None:
            outcome.errors.append((name, "not present in directory listing"))
            continue
        try:
            entry.path.unlink()
        except OSError as exc:
            logger.warning("could not delete %s: %s", entry.path, exc)
            outcome.errors.append((name, str(exc)))
            continue
        outcome.deleted.append(name)

    logger.info(remediation_result_json(outcome))
    return outcome


def remediation_result_json(outcome: RemediationOutcome) -> str:
    payload = {
        "event": "remediation",
        "status": outcome.status,
        "candidates": len(outcome.candidates),
        "deleted": outcome.deleted,
        "errors": [{"file": name, "cause": cause} for name, cause in outcome.errors],
    }
    return json.dumps(payload, separators=(",", ":"))
