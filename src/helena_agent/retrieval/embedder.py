"""Query and document embedders for the legal source corpora."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

from langchain_core.embeddings import Embeddings

_FOLDING = str.maketrans({"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss", "§": " ss "})
_STRIP = ".,;:!?()[]{}\"'"


class Embedder(ABC):
    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many documents."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""


class HashingEmbedder(Embedder):
    """Signed feature hashing over folded word tokens.

    Umlauts and the section sign are transliterated first, so that
    "§ 4 KSchG" and "SS 4 kschg," share their buckets with the ASCII
    spelling used throughout the drafting pipeline. No model calls; used in
    tests and offline deployments.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for token in fold_tokens(text):
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimension
            vector[bucket] += -1.0 if digest[4] % 2 else 1.0

        length = sqrt(sum(value * value for value in vector))
        return [value / length for value in vector] if length else vector


class LangChainEmbedder(Embedder):
    """Adapts any LangChain `Embeddings` (OpenAI, Ollama, ...) to the index."""

    def __init__(self, embeddings: Embeddings) -> None:
        self.embeddings = embeddings

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return self.embeddings.embed_documents(texts)

    def embed_query(self, text: str) -> list[float]:
        return self.embeddings.embed_query(text)


def fold_tokens(text: str) -> list[str]:
    folded = text.lower().translate(_FOLDING)
    return [token for token in (raw.strip(_STRIP) for raw in folded.split()) if token]
