"""Retrieval result types."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

Quelle = Literal["gesetz", "urteil", "muster"]


@dataclass(slots=True, frozen=True)
class LegalChunk:
    """A ranked chunk from one of the legal source corpora."""

    id: str
    referenz: str
    content: str
    quelle: Quelle
    score: float = 0.0

    def with_score(self, score: float) -> "LegalChunk":
        return replace(self, score=score)
