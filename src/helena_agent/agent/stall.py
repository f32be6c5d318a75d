"""Detects repeated or unproductive tool usage inside one run."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

FORCE_MESSAGE = (
    "Du wiederholst dich. Gib jetzt deine beste Antwort mit dem, was du bisher "
    "weisst. Fasse zusammen und antworte dem Nutzer."
)

HASH_THRESHOLD_CHARS = 10_240


@dataclass(slots=True, frozen=True)
class _StallRecord:
    tool_name: str
    param_key: str
    result_hash: str


class StallDetector:
    """Pure state machine over `(tool, sorted params, result hash)` triples.

    Two rules, either sufficient:
    - the same tool was called twice with identical parameters;
    - the last three recorded results hash identically.
    """

    def __init__(self) -> None:
        self._records: list[_StallRecord] = []

    def record(self, tool_name: str, params: Any, result_hash: str) -> None:
        self._records.append(
            _StallRecord(
                tool_name=tool_name,
                param_key=stable_params_key(params),
                result_hash=result_hash,
            )
        )

    def is_stalled(self) -> bool:
        if len(self._records) < 2:
            return False

        seen: set[tuple[str, str]] = set()
        for record in self._records:
            key = (record.tool_name, record.param_key)
            if key in seen:
                return True
            seen.add(key)

        if len(self._records) >= 3:
            last_three = {record.result_hash for record in self._records[-3:]}
            if len(last_three) == 1:
                return True
        return False

    def reset(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


def hash_result(result: str) -> str:
    """Identity for small results, MD5 digest above the size threshold."""
    if len(result) < HASH_THRESHOLD_CHARS:
        return result
    return hashlib.md5(result.encode("utf-8")).hexdigest()


def stable_params_key(params: Any) -> str:
    return json.dumps(
        params, sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str
    )
