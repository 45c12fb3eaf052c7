from __future__ import annotations

import asyncio
import logging
import uuid

from qdrant_client import QdrantClient
from qdrant_client.models import Distance, PointStruct, VectorParams

from .embedding import Embedder
from .vector_search import Document

logger = logging.getLogger("expertchain.retrieval.qdrant")


class QdrantVectorSearch:
    """``VectorSearch`` over a Qdrant collection.

    The payload carries the document id under ``id_key`` and its text under
    ``content_key``; every other payload field becomes document metadata.
    """

    def __init__(
        self,
        client: QdrantClient,
        embedder: Embedder,
        content_key: str = "content",
        id_key: str = "doc_id",
    ) -> None:
        self.client = client
        self.embedder = embedder
        self.content_key = content_key
        self.id_key = id_key

    async def query(self, collection: str, text: str, n_results: int) -> list[Document]:
        vector = await self.embedder.embed(text)
        response = await asyncio.to_thread(
            self.client.query_points,
            collection_name=collection,
            query=vector,
            limit=max(1, n_results),
            with_payload=True,
        )

        documents: list[Document] = []
        seen: set[str] = set()
        for point in response.points:
            payload = dict(point.payload or {})
            doc_id = str(payload.pop(self.id_key, point.id))
            if doc_id in seen:
                continue
            seen.add(doc_id)
            content = str(payload.pop(self.content_key, "") or "")
            documents.append(Document(id=doc_id, content=content, score=float(point.score), metadata=payload))
        logger.debug("qdrant_query", extra={"extra_fields": {"collection": collection, "hits": len(documents)}})
        return documents

    async def add(self, collection: str, documents: list[Document]) -> None:
        """Embed and upsert documents, creating the collection on first use."""
        if not documents:
            return
        vectors = [await self.embedder.embed(doc.content) for doc in documents]
        exists = await asyncio.to_thread(self.client.collection_exists, collection)
        if not exists:
            await asyncio.to_thread(
                self.client.create_collection,
                collection_name=collection,
                vectors_config=VectorParams(size=len(vectors[0]), distance=Distance.COSINE),
            )
        points = [
            PointStruct(
                id=str(uuid.uuid5(uuid.NAMESPACE_URL, f"{collection}/{doc.id}")),
                vector=vector,
                payload={self.id_key: doc.id, self.content_key: doc.content, **doc.metadata},
            )
            for doc, vector in zip(documents, vectors)
        ]
        await asyncio.to_thread(self.client.upsert, collection_name=collection, points=points)
        logger.info("qdrant_upserted", extra={"extra_fields": {"collection": collection, "count": len(points)}})
