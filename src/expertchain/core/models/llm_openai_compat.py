from __future__ import annotations

import httpx

from .llm_provider import Completion, CompletionRequest, LLMProviderError


class OpenAICompatProvider:
    """Chat-completions client for any OpenAI-compatible endpoint."""

    name = "openai-compat"

    def __init__(
        self,
        url: str,
        model: str,
        api_key: str | None = None,
        timeout_s: float = 45.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.model = model
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._client = client

    async def complete(self, request: CompletionRequest) -> Completion:
        model = request.model or self.model
        payload: dict[str, object] = {
            "model": model,
            "messages": [
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.user},
            ],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None

        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload, headers=headers, timeout=self.timeout_s)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    response = await client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise LLMProviderError(f"llm_http_status:{exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise LLMProviderError(f"llm_http_error:{exc.__class__.__name__}") from exc

        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise LLMProviderError("llm_empty_choices")
        message = choices[0].get("message") or {}
        usage = data.get("usage") or {}
        return Completion(
            text=str(message.get("content") or ""),
            model=str(data.get("model") or model),
            provider=self.name,
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
            raw=data,
        )
