from __future__ import annotations

import logging
import time

from expertchain.core.chain.context import SharedContext
from expertchain.core.chain.schemas import ChainInput, ExpertOutput
from expertchain.core.evaluation.base import EvaluationScore
from expertchain.core.experts.base import BaseExpert, ExpertParameters
from expertchain.core.models.llm_provider import CompletionRequest, LLMProvider, LLMProviderError
from expertchain.core.observability.trace import TraceHandle

logger = logging.getLogger("expertchain.experts.query_reformulation")

_DEFAULT_SYSTEM_PROMPT = (
    "You are an expert query reformulator. Rewrite the given user query to be more effective for "
    "information retrieval. Focus on clarity, specificity, and keyword optimization. "
    "Return only the reformulated query, nothing else."
)


class QueryReformulationExpert(BaseExpert):
    """Rewrites the user query for retrieval.

    Provider failures degrade to the original query, reported under ``error``.
    """

    name = "query-reformulation"
    type = "reformulation"
    description = "Rewrites the query to improve retrieval"

    def __init__(self, provider: LLMProvider, parameters: ExpertParameters | None = None) -> None:
        self.provider = provider
        super().__init__(parameters)

    def default_parameters(self) -> ExpertParameters:
        return {
            "model": None,
            "temperature": 0.3,
            "max_tokens": 100,
            "system_prompt": _DEFAULT_SYSTEM_PROMPT,
        }

    def validate_parameters(self, parameters: ExpertParameters) -> bool:
        temperature = parameters.get("temperature")
        if temperature is not None and (isinstance(temperature, bool) or not isinstance(temperature, (int, float)) or not 0 <= temperature <= 1):
            return False
        max_tokens = parameters.get("max_tokens")
        if max_tokens is not None and (isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0):
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
        query = str(input.get("query") or "").strip()
        if not query:
            raise ValueError("query-reformulation requires a non-empty 'query'")

        params = self.get_parameters()
        started = time.perf_counter()
        try:
            completion = await self.provider.complete(
                CompletionRequest(
                    system=params["system_prompt"],
                    user=query,
                    model=params["model"],
                    temperature=float(params["temperature"]),
                    max_tokens=int(params["max_tokens"]),
                )
            )
        except LLMProviderError as exc:
            logger.warning("reformulation_unavailable", extra={"extra_fields": {"error": str(exc)}})
            return {"original_query": query, "reformulated_query": query, "error": str(exc)}

        reformulated = completion.text.strip() or query
        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)
        logger.info("query_reformulated", extra={"extra_fields": {"changed": reformulated != query}})
        return {
            "original_query": query,
            "reformulated_query": reformulated,
            "token_usage": completion.usage(),
            "metrics": {
                "processing_time_ms": elapsed_ms,
                "llm_provider": completion.provider,
                "llm_model": completion.model,
            },
        }

    def score_output(self, output: ExpertOutput) -> list[EvaluationScore]:
        if output.get("error"):
            return []
        changed = output.get("reformulated_query") != output.get("original_query")
        scores = [EvaluationScore("query_changed_by_reformulation", 1.0 if changed else 0.0)]
        elapsed = output.get("metrics", {}).get("processing_time_ms")
        if isinstance(elapsed, (int, float)):
            scores.append(EvaluationScore("reformulation_processing_time_ms", float(elapsed)))
        return scores
