from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from expertchain.core.models.llm_openai_compat import OpenAICompatProvider
from expertchain.core.models.llm_provider import CompletionRequest, LLMProviderError

URL = "http://llm.local/v1/chat/completions"


def _complete(handler) -> object:
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = OpenAICompatProvider(URL, "test-model", api_key="secret", client=client)
            return await provider.complete(CompletionRequest(system="sys", user="hello", max_tokens=32))

    return asyncio.run(run())


def test_complete_parses_text_and_usage() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "model": "test-model",
                "choices": [{"message": {"role": "assistant", "content": "hi there"}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 3},
            },
        )

    completion = _complete(handler)

    assert completion.text == "hi there"
    assert completion.usage() == {"prompt": 10, "completion": 3, "total": 13, "provider": "openai-compat", "model": "test-model"}
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["max_tokens"] == 32
    assert seen["body"]["messages"][1] == {"role": "user", "content": "hello"}


def test_complete_maps_http_status_errors() -> None:
    with pytest.raises(LLMProviderError, match="llm_http_status:503"):
        _complete(lambda request: httpx.Response(503, json={"error": "busy"}))


def test_complete_rejects_empty_choices() -> None:
    with pytest.raises(LLMProviderError, match="llm_empty_choices"):
        _complete(lambda request: httpx.Response(200, json={"choices": []}))


def test_complete_maps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LLMProviderError, match="llm_http_error:ConnectError"):
        _complete(handler)
