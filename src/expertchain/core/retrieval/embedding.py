from __future__ import annotations

from typing import Protocol

import httpx


class EmbeddingError(RuntimeError):
    pass


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class OpenAICompatEmbedder:
    """Embeddings client for any OpenAI-compatible ``/v1/embeddings`` endpoint."""

    def __init__(
        self,
        url: str,
        model: str,
        api_key: str | None = None,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.model = model
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._client = client

    async def embed(self, text: str) -> list[float]:
        payload = {"model": self.model, "input": [text]}
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload, headers=headers, timeout=self.timeout_s)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    response = await client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise EmbeddingError(f"embedding_http_status:{exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"embedding_http_error:{exc.__class__.__name__}") from exc

        data = response.json().get("data") or []
        if not data or not isinstance(data[0].get("embedding"), list):
            raise EmbeddingError("embedding_empty_data")
        return [float(value) for value in data[0]["embedding"]]
