from __future__ import annotations

from expertchain.core.models.llm_provider import LLMProvider
from expertchain.core.retrieval.vector_search import VectorSearch

from .builtin.data_retrieval import DataRetrievalExpert
from .builtin.document_filtering import DocumentFilteringExpert
from .builtin.query_reformulation import QueryReformulationExpert
from .builtin.summarization import LLMSummarizationExpert
from .registry import ExpertRegistry


def build_registry(search: VectorSearch, provider: LLMProvider, collection_name: str = "sample_documents") -> ExpertRegistry:
    """Registry pre-loaded with the protected built-in experts."""
    registry = ExpertRegistry()
    registry.register(QueryReformulationExpert(provider), builtin=True)
    registry.register(DataRetrievalExpert(search, {"collection_name": collection_name, "num_results": 3}), builtin=True)
    registry.register(DocumentFilteringExpert(), builtin=True)
    registry.register(LLMSummarizationExpert(provider, {"max_tokens": 500, "temperature": 0.7}), builtin=True)
    return registry
