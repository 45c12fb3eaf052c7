from __future__ import annotations

import logging
from typing import Any

from expertchain.core.chain.context import SharedContext
from expertchain.core.chain.schemas import EXPERT_OUTPUT_KEY, ChainInput, ExpertOutput
from expertchain.core.experts.base import BaseExpert, ExpertParameters
from expertchain.core.models.llm_provider import CompletionRequest, LLMProvider
from expertchain.core.observability.trace import TraceHandle

logger = logging.getLogger("expertchain.experts.summarization")

_DEFAULT_SYSTEM_PROMPT = (
    "You summarize retrieved documents for the user. "
    "Answer the question using only the documents provided and keep the summary short."
)


def _documents_from(input: ChainInput) -> list[dict[str, Any]]:
    previous = input.get(EXPERT_OUTPUT_KEY)
    if isinstance(previous, dict) and isinstance(previous.get("documents"), list):
        return previous["documents"]
    documents = input.get("documents")
    return documents if isinstance(documents, list) else []


class LLMSummarizationExpert(BaseExpert):
    name = "llm-summarization"
    type = "summarization"
    description = "Summarizes documents using an LLM"

    def __init__(self, provider: LLMProvider, parameters: ExpertParameters | None = None) -> None:
        self.provider = provider
        super().__init__(parameters)

    def default_parameters(self) -> ExpertParameters:
        return {
            "max_tokens": 500,
            "temperature": 0.7,
            "model": None,
            "system_prompt": _DEFAULT_SYSTEM_PROMPT,
        }

    def validate_parameters(self, parameters: ExpertParameters) -> bool:
        max_tokens = parameters.get("max_tokens")
        if max_tokens is not None and (isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0):
            return False
        temperature = parameters.get("temperature")
        if temperature is not None and (isinstance(temperature, bool) or not isinstance(temperature, (int, float)) or not 0 <= temperature <= 2):
            return False
        for key in ("model", "system_prompt"):
            value = parameters.get(key)
            if value is not None and not isinstance(value, str):
                return False
        return True

    async def process(
        self,
        input: ChainInput,
        context: SharedContext,
        trace: TraceHandle | None = None,
    ) -> ExpertOutput:
        documents = _documents_from(input)
        if not documents:
            return {"summary": "", "source_count": 0, "note": "no documents to summarize"}

        params = self.get_parameters()
        question = str(input.get("query") or context.original_input.get("query") or "")
        body = "\n\n".join(f"[{doc.get('id', i)}] {doc.get('content', '')}" for i, doc in enumerate(documents, start=1))
        completion = await self.provider.complete(
            CompletionRequest(
                system=params["system_prompt"],
                user=f"Question: {question}\n\nDocuments:\n{body}",
                model=params["model"],
                temperature=float(params["temperature"]),
                max_tokens=int(params["max_tokens"]),
            )
        )
        logger.info(
            "summary_generated",
            extra={"extra_fields": {"source_count": len(documents), "total_tokens": completion.total_tokens}},
        )
        return {
            "summary": completion.text,
            "source_count": len(documents),
            "token_usage": completion.usage(),
        }
