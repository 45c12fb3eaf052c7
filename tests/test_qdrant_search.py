from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from qdrant_client import QdrantClient

from expertchain.core.retrieval.embedding import EmbeddingError, OpenAICompatEmbedder
from expertchain.core.retrieval.qdrant_search import QdrantVectorSearch
from expertchain.core.retrieval.vector_search import Document

URL = "http://embed.local/v1/embeddings"


class KeywordEmbedder:
    """One axis per keyword, enough for cosine ordering in tests."""

    axes = ("mars", "jupiter", "moon")

    def __init__(self) -> None:
        self.texts: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.texts.append(text)
        lowered = text.casefold()
        return [1.0 if axis in lowered else 0.0 for axis in self.axes] + [0.1]


def _search() -> QdrantVectorSearch:
    return QdrantVectorSearch(QdrantClient(location=":memory:"), KeywordEmbedder())


def test_add_then_query_orders_by_similarity_and_keeps_metadata() -> None:
    search = _search()
    documents = [
        Document(id="d1", content="Mars has two small moons", metadata={"source": "nasa"}),
        Document(id="d2", content="Jupiter is the largest planet"),
        Document(id="d3", content="Jupiter has many moons"),
    ]

    async def scenario():
        await search.add("planets", documents)
        return await search.query("planets", "Mars moon", 2)

    results = asyncio.run(scenario())

    assert [doc.id for doc in results] == ["d1", "d3"]
    assert results[0].content == "Mars has two small moons"
    assert results[0].metadata == {"source": "nasa"}
    assert results[0].score > results[1].score
    assert search.client.collection_exists("planets") is True


def test_readding_a_document_overwrites_its_point() -> None:
    search = _search()

    async def scenario():
        await search.add("planets", [Document(id="d1", content="Mars")])
        await search.add("planets", [Document(id="d1", content="Mars revised")])
        return await search.query("planets", "Mars", 5)

    results = asyncio.run(scenario())

    assert [(doc.id, doc.content) for doc in results] == [("d1", "Mars revised")]


def _embed(handler, api_key: str | None = "secret") -> list[float]:
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            embedder = OpenAICompatEmbedder(URL, "embed-model", api_key=api_key, client=client)
            return await embedder.embed("moons of Mars")

    return asyncio.run(run())


def test_embedder_posts_input_and_parses_vector() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0, 0.5, 1]}]})

    vector = _embed(handler)

    assert vector == [0.0, 0.5, 1.0]
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"model": "embed-model", "input": ["moons of Mars"]}


def test_embedder_maps_failures() -> None:
    with pytest.raises(EmbeddingError, match="embedding_http_status:401"):
        _embed(lambda request: httpx.Response(401, json={"error": "denied"}))
    with pytest.raises(EmbeddingError, match="embedding_empty_data"):
        _embed(lambda request: httpx.Response(200, json={"data": []}), api_key=None)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(EmbeddingError, match="embedding_http_error:ReadTimeout"):
        _embed(handler)
