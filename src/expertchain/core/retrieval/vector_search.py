from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

_TOKEN_RE = re.compile(r"[a-z0-9]+")


@dataclass
class Document:
    id: str
    content: str
    score: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


class VectorSearch(Protocol):
    async def query(self, collection: str, text: str, n_results: int) -> list[Document]: ...


def _tokens(text: str) -> set[str]:
    return set(_TOKEN_RE.findall(text.casefold()))


class InMemoryVectorSearch:
    """Keyword-overlap stand-in for a vector store, for local runs and tests."""

    def __init__(self) -> None:
        self._collections: dict[str, list[Document]] = {}

    def add(self, collection: str, documents: list[Document]) -> None:
        self._collections.setdefault(collection, []).extend(documents)

    async def query(self, collection: str, text: str, n_results: int) -> list[Document]:
        query_tokens = _tokens(text)
        if not query_tokens:
            return []
        scored: list[Document] = []
        for doc in self._collections.get(collection, []):
            overlap = len(query_tokens & _tokens(doc.content))
            if overlap == 0:
                continue
            score = overlap / len(query_tokens)
            scored.append(Document(id=doc.id, content=doc.content, score=score, metadata=dict(doc.metadata)))
        scored.sort(key=lambda item: (-item.score, item.id))
        return scored[: max(0, n_results)]
