from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


class LLMProviderError(RuntimeError):
    pass


class LLMUnavailable(LLMProviderError):
    pass


@dataclass
class CompletionRequest:
    system: str
    user: str
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 500


@dataclass
class Completion:
    text: str
    model: str
    provider: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def usage(self) -> dict[str, object]:
        return {
            "prompt": self.prompt_tokens,
            "completion": self.completion_tokens,
            "total": self.total_tokens,
            "provider": self.provider,
            "model": self.model,
        }


class LLMProvider(Protocol):
    name: str

    async def complete(self, request: CompletionRequest) -> Completion: ...


class DisabledLLMProvider:
    name = "off"

    async def complete(self, request: CompletionRequest) -> Completion:
        raise LLMUnavailable("LLM provider is off")
