from __future__ import annotations

import logging
import time
from typing import Any

from expertchain.core.chain.context import SharedContext
from expertchain.core.chain.schemas import EXPERT_OUTPUT_KEY, ChainInput, ExpertOutput
from expertchain.core.evaluation.base import EvaluationScore
from expertchain.core.experts.base import BaseExpert, ExpertParameters
from expertchain.core.observability.trace import TraceHandle

logger = logging.getLogger("expertchain.experts.document_filtering")

SORT_MODES = ("relevance", "recency", "custom")


def _documents_from(input: ChainInput) -> list[dict[str, Any]]:
    previous = input.get(EXPERT_OUTPUT_KEY)
    if isinstance(previous, dict) and isinstance(previous.get("documents"), list):
        return previous["documents"]
    documents = input.get("documents")
    return documents if isinstance(documents, list) else []


def _published(doc: dict[str, Any]) -> str:
    metadata = doc.get("metadata") or {}
    return str(metadata.get("published_at") or metadata.get("timestamp") or "")


class DocumentFilteringExpert(BaseExpert):
    name = "document-filtering"
    type = "filtering"
    description = "Drops low-relevance documents and caps the result count"

    def default_parameters(self) -> ExpertParameters:
        return {"min_relevance_score": 0.5, "max_output_documents": 5, "sort_by": "relevance"}

    def validate_parameters(self, parameters: ExpertParameters) -> bool:
        threshold = parameters.get("min_relevance_score")
        if threshold is not None and (isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0 <= threshold <= 1):
            return False
        limit = parameters.get("max_output_documents")
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0):
            return False
        sort_by = parameters.get("sort_by")
        if sort_by is not None and sort_by not in SORT_MODES:
            return False
        return True

    async def process(
        self,
        input: ChainInput,
        context: SharedContext,
        trace: TraceHandle | None = None,
    ) -> ExpertOutput:
        documents = _documents_from(input)
        params = self.get_parameters()
        started = time.perf_counter()

        # Unscored documents pass the threshold.
        kept = [
            doc
            for doc in documents
            if not isinstance(doc.get("score"), (int, float)) or doc["score"] >= params["min_relevance_score"]
        ]
        if params["sort_by"] == "relevance":
            kept.sort(key=lambda doc: doc.get("score") or 0.0, reverse=True)
        elif params["sort_by"] == "recency":
            kept.sort(key=_published, reverse=True)
        kept = kept[: params["max_output_documents"]]

        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)
        logger.info(
            "documents_filtered",
            extra={"extra_fields": {"input_count": len(documents), "output_count": len(kept)}},
        )
        return {
            "documents": kept,
            "metrics": {
                "processing_time_ms": elapsed_ms,
                "num_input_documents": len(documents),
                "num_output_documents": len(kept),
            },
        }

    def score_output(self, output: ExpertOutput) -> list[EvaluationScore]:
        metrics = output.get("metrics") or {}
        total = metrics.get("num_input_documents") or 0
        kept = metrics.get("num_output_documents") or 0
        reduction = round((total - kept) / total * 100, 2) if total else 0.0
        return [
            EvaluationScore(
                "document_reduction_percentage",
                reduction,
                comment=f"input={total} output={kept}",
            )
        ]
