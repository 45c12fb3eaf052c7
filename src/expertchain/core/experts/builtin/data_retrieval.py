from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from expertchain.core.chain.context import SharedContext
from expertchain.core.chain.schemas import EXPERT_OUTPUT_KEY, ChainInput, ExpertOutput
from expertchain.core.experts.base import BaseExpert, ExpertParameters
from expertchain.core.observability.trace import TraceHandle
from expertchain.core.retrieval.vector_search import VectorSearch

logger = logging.getLogger("expertchain.experts.data_retrieval")


class DataRetrievalExpert(BaseExpert):
    name = "data-retrieval"
    type = "retrieval"
    description = "Retrieves relevant documents based on a query"

    def __init__(self, search: VectorSearch, parameters: ExpertParameters | None = None) -> None:
        self.search = search
        super().__init__(parameters)

    def default_parameters(self) -> ExpertParameters:
        return {
            "collection_name": "documents",
            "num_results": 5,
            "similarity_threshold": 0.0,
            "include_metadata": True,
        }

    def validate_parameters(self, parameters: ExpertParameters) -> bool:
        num_results = parameters.get("num_results")
        if num_results is not None and (isinstance(num_results, bool) or not isinstance(num_results, int) or num_results <= 0):
            return False
        collection = parameters.get("collection_name")
        if collection is not None and (not isinstance(collection, str) or not collection.strip()):
            return False
        threshold = parameters.get("similarity_threshold")
        if threshold is not None and (isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0 <= threshold <= 1):
            return False
        include_metadata = parameters.get("include_metadata")
        if include_metadata is not None and not isinstance(include_metadata, bool):
            return False
        return True

    async def process(
        self,
        input: ChainInput,
        context: SharedContext,
        trace: TraceHandle | None = None,
    ) -> ExpertOutput:
        previous = input.get(EXPERT_OUTPUT_KEY)
        reformulated = previous.get("reformulated_query") if isinstance(previous, dict) else None
        query = str(reformulated or input.get("query") or "").strip()
        if not query:
            raise ValueError("data-retrieval requires a non-empty 'query'")

        params = self.get_parameters()
        started = time.perf_counter()
        documents = await self.search.query(params["collection_name"], query, params["num_results"])
        documents = [doc for doc in documents if doc.score >= params["similarity_threshold"]]
        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

        avg_score = sum(doc.score for doc in documents) / len(documents) if documents else 0.0
        context.set("retrieved_document_ids", [doc.id for doc in documents])
        logger.info(
            "documents_retrieved",
            extra={"extra_fields": {"count": len(documents), "collection": params["collection_name"]}},
        )
        return {
            "documents": [
                {
                    "id": doc.id,
                    "content": doc.content,
                    "score": doc.score,
                    **({"metadata": doc.metadata} if params["include_metadata"] else {}),
                }
                for doc in documents
            ],
            "relevance_score": avg_score,
            "retrieval_time": datetime.now(timezone.utc).isoformat(),
            "metrics": {
                "processing_time_ms": elapsed_ms,
                "num_documents_retrieved": len(documents),
                "avg_similarity_score": avg_score,
            },
        }
