from __future__ import annotations

import json
import logging

from expertchain.core.models.llm_provider import CompletionRequest, LLMProvider, LLMProviderError

from .base import EvaluationInput, EvaluationScore

logger = logging.getLogger("expertchain.evaluation.relevance")

DEFAULT_RELEVANCE_PROMPT = (
    "Given the following user query and the expert's output, rate the relevance of the output "
    "to the query on a scale of 0 to 1, where 1 is perfectly relevant and 0 is not relevant at all. "
    "Provide only the numeric score.\n"
    "User Query: {query}\n"
    "Expert Output: {expert_output}\n"
    "Relevance Score (0-1):"
)

_MAX_OUTPUT_CHARS = 3000


def _output_text(output: dict) -> str:
    summary = output.get("summary")
    if isinstance(summary, str) and summary:
        return summary
    documents = output.get("documents")
    if isinstance(documents, list) and documents:
        return "\n".join(
            str(doc.get("content")) if isinstance(doc, dict) and doc.get("content") else json.dumps(doc, default=str)
            for doc in documents
        )
    return json.dumps(output, default=str, sort_keys=True)


class RelevanceEvaluator:
    """LLM-as-judge score of how relevant an expert's output is to the query."""

    name = "relevance-llm-evaluator"
    score_name = "llm_relevance_score"

    def __init__(
        self,
        provider: LLMProvider,
        model: str | None = None,
        temperature: float = 0.2,
        prompt_template: str = DEFAULT_RELEVANCE_PROMPT,
    ) -> None:
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.prompt_template = prompt_template

    async def evaluate(self, evaluation: EvaluationInput) -> list[EvaluationScore]:
        query = str(evaluation.input.get("query") or evaluation.context.original_input.get("query") or "").strip()
        output_text = _output_text(evaluation.output)
        if not query or not output_text:
            logger.debug("relevance_skipped", extra={"extra_fields": {"expert": evaluation.expert_name}})
            return []

        prompt = self.prompt_template.format(query=query, expert_output=output_text[:_MAX_OUTPUT_CHARS])
        try:
            completion = await self.provider.complete(
                CompletionRequest(
                    system="You grade retrieval and summarization quality.",
                    user=prompt,
                    model=self.model,
                    temperature=self.temperature,
                    max_tokens=10,
                )
            )
        except LLMProviderError as exc:
            logger.warning(
                "relevance_unavailable",
                extra={"extra_fields": {"expert": evaluation.expert_name, "error": str(exc)}},
            )
            return []

        raw = completion.text.strip()
        try:
            value = float(raw)
        except ValueError:
            value = -1.0
        if not 0.0 <= value <= 1.0:
            logger.warning("relevance_unparseable", extra={"extra_fields": {"expert": evaluation.expert_name, "raw": raw}})
            return []

        return [
            EvaluationScore(
                name=self.score_name,
                value=value,
                comment=f"model={completion.model} raw={raw}",
                evaluator=self.name,
            )
        ]
