"""Statute, case-law and template corpora behind one retrieval facade."""

from __future__ import annotations

import asyncio

from helena_agent.retrieval.embedder import Embedder, HashingEmbedder
from helena_agent.retrieval.types import LegalChunk, Quelle
from helena_agent.retrieval.vector_store import InMemoryVectorStore, VectorStore


class LegalSourceIndex:
    """Indexes the three legal corpora and exposes one search per corpus.

    Each search takes a precomputed query embedding, so a caller that fans
    out to several corpora embeds the query once.
    """

    def __init__(
        self,
        embedder: Embedder | None = None,
        store: VectorStore | None = None,
    ) -> None:
        self.embedder = embedder or HashingEmbedder()
        self.store = store or InMemoryVectorStore()

    def add_gesetz(self, chunk_id: str, gesetz_kuerzel: str, paragraph_nr: str, content: str) -> None:
        self._add(LegalChunk(chunk_id, f"{gesetz_kuerzel} SS {paragraph_nr}", content, "gesetz"))

    def add_urteil(self, chunk_id: str, gericht: str, aktenzeichen: str, content: str) -> None:
        self._add(LegalChunk(chunk_id, f"{gericht}, {aktenzeichen}", content, "urteil"))

    def add_muster(self, chunk_id: str, muster_name: str, content: str) -> None:
        self._add(LegalChunk(chunk_id, f"Muster: {muster_name}", content, "muster"))

    async def embed_query(self, text: str) -> list[float]:
        return await asyncio.to_thread(self.embedder.embed_query, text)

    async def search_gesetze(self, embedding: list[float], limit: int = 8) -> list[LegalChunk]:
        return self.store.search(embedding, limit, quelle="gesetz")

    async def search_urteile(self, embedding: list[float], limit: int = 5) -> list[LegalChunk]:
        return self.store.search(embedding, limit, quelle="urteil")

    async def search_muster(self, embedding: list[float], limit: int = 3) -> list[LegalChunk]:
        return self.store.search(embedding, limit, quelle="muster")

    async def search(self, quelle: Quelle, embedding: list[float], limit: int) -> list[LegalChunk]:
        if quelle == "gesetz":
            return await self.search_gesetze(embedding, limit)
        if quelle == "urteil":
            return await self.search_urteile(embedding, limit)
        if quelle == "muster":
            return await self.search_muster(embedding, limit)
        raise ValueError(f"Unknown source type: {quelle}")

    def _add(self, chunk: LegalChunk) -> None:
        self.store.upsert([chunk], self.embedder.embed_documents([f"{chunk.referenz}\n{chunk.content}"]))
