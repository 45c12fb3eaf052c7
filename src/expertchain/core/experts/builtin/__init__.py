from .data_retrieval import DataRetrievalExpert
from .document_filtering import DocumentFilteringExpert
from .query_reformulation import QueryReformulationExpert
from .summarization import LLMSummarizationExpert

__all__ = ["DataRetrievalExpert", "DocumentFilteringExpert", "LLMSummarizationExpert", "QueryReformulationExpert"]
