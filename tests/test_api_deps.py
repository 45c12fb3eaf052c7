from __future__ import annotations

import pytest

from expertchain.apps.api import deps
from expertchain.core.evaluation import RelevanceEvaluator
from expertchain.core.retrieval.qdrant_search import QdrantVectorSearch
from expertchain.core.retrieval.vector_search import InMemoryVectorSearch


@pytest.fixture(autouse=True)
def fresh_dependencies():
    deps.reset_dependencies()
    yield
    deps.reset_dependencies()


def test_memory_search_and_no_evaluators_by_default() -> None:
    assert isinstance(deps.get_vector_search(), InMemoryVectorSearch)
    assert deps.get_evaluators() == ()
    assert deps.get_orchestrator().evaluators == []


def test_qdrant_search_is_selected_from_settings(monkeypatch) -> None:
    monkeypatch.setenv("EXPERTCHAIN_VECTOR_PROVIDER", "qdrant")
    monkeypatch.setenv("EXPERTCHAIN_QDRANT_LOCATION", ":memory:")
    monkeypatch.setenv("EXPERTCHAIN_VECTOR_COLLECTION", "papers")

    search = deps.get_vector_search()

    assert isinstance(search, QdrantVectorSearch)
    retrieval = deps.get_registry().resolve("data-retrieval")
    assert retrieval.search is search
    assert retrieval.get_parameters()["collection_name"] == "papers"


def test_relevance_evaluator_needs_an_llm_provider(monkeypatch) -> None:
    monkeypatch.setenv("EXPERTCHAIN_EVALUATION_ENABLED", "on")
    assert deps.get_evaluators() == ()

    deps.reset_dependencies()
    monkeypatch.setenv("EXPERTCHAIN_LLM_PROVIDER", "openai-compat")
    monkeypatch.setenv("EXPERTCHAIN_EVALUATION_MODEL", "judge")

    [evaluator] = deps.get_evaluators()
    assert isinstance(evaluator, RelevanceEvaluator)
    assert evaluator.model == "judge"
    assert deps.get_orchestrator().evaluators == [evaluator]
