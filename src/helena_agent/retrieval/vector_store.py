"""Similarity search over embedded legal source chunks."""

from __future__ import annotations

import heapq
from math import sqrt
from typing import Protocol

from helena_agent.retrieval.types import LegalChunk, Quelle


class VectorStore(Protocol):
    def upsert(self, chunks: list[LegalChunk], embeddings: list[list[float]]) -> None:
        """Insert or replace chunks by id."""

    def search(
        self,
        query_embedding: list[float],
        k: int,
        quelle: Quelle | None = None,
    ) -> list[LegalChunk]:
        """Return the `k` most similar chunks, scored, best first."""


class InMemoryVectorStore:
    """Brute-force cosine search, partitioned by corpus. A chunk id lives in
    exactly one corpus; re-upserting it under another `quelle` moves it.
    """

    def __init__(self) -> None:
        self._corpora: dict[Quelle, dict[str, tuple[LegalChunk, list[float]]]] = {}

    def __len__(self) -> int:
        return sum(len(corpus) for corpus in self._corpora.values())

    def upsert(self, chunks: list[LegalChunk], embeddings: list[list[float]]) -> None:
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings must have the same length")
        for chunk, embedding in zip(chunks, embeddings, strict=True):
            for corpus in self._corpora.values():
                corpus.pop(chunk.id, None)
            self._corpora.setdefault(chunk.quelle, {})[chunk.id] = (chunk, embedding)

    def search(
        self,
        query_embedding: list[float],
        k: int,
        quelle: Quelle | None = None,
    ) -> list[LegalChunk]:
        if quelle is None:
            entries = [entry for corpus in self._corpora.values() for entry in corpus.values()]
        else:
            entries = list(self._corpora.get(quelle, {}).values())
        scored = (chunk.with_score(cosine_similarity(query_embedding, vector)) for chunk, vector in entries)
        return heapq.nlargest(k, scored, key=lambda chunk: chunk.score)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = sqrt(sum(x * x for x in a)) * sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0
