from __future__ import annotations

from functools import lru_cache

from qdrant_client import QdrantClient

from expertchain.core.cache.ttl import TTLCache
from expertchain.core.chain.orchestrator import ChainOrchestrator
from expertchain.core.config.loader import ChainSettings, load_settings
from expertchain.core.evaluation import Evaluator, RelevanceEvaluator
from expertchain.core.experts.defaults import build_registry
from expertchain.core.experts.registry import ExpertRegistry
from expertchain.core.infra.breaker_manager import BreakerManager
from expertchain.core.models.llm_openai_compat import OpenAICompatProvider
from expertchain.core.models.llm_provider import DisabledLLMProvider, LLMProvider
from expertchain.core.observability.trace import RecordingTracer
from expertchain.core.retrieval.embedding import OpenAICompatEmbedder
from expertchain.core.retrieval.qdrant_search import QdrantVectorSearch
from expertchain.core.retrieval.vector_search import InMemoryVectorSearch, VectorSearch


@lru_cache(maxsize=1)
def get_settings() -> ChainSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_vector_search() -> VectorSearch:
    retrieval = get_settings().retrieval
    if retrieval.provider.casefold() != "qdrant":
        return InMemoryVectorSearch()
    client = QdrantClient(
        location=retrieval.qdrant_location,
        api_key=retrieval.qdrant_api_key,
        timeout=retrieval.qdrant_timeout_s,
    )
    embedder = OpenAICompatEmbedder(
        url=retrieval.embedding_url,
        model=retrieval.embedding_model,
        api_key=retrieval.embedding_api_key,
    )
    return QdrantVectorSearch(client, embedder)


@lru_cache(maxsize=1)
def get_llm_provider() -> LLMProvider:
    llm = get_settings().llm
    if llm.provider.casefold() == "off":
        return DisabledLLMProvider()
    return OpenAICompatProvider(url=llm.url, model=llm.model, api_key=llm.api_key, timeout_s=llm.timeout_s)


@lru_cache(maxsize=1)
def get_registry() -> ExpertRegistry:
    return build_registry(get_vector_search(), get_llm_provider(), collection_name=get_settings().retrieval.collection)


@lru_cache(maxsize=1)
def get_tracer() -> RecordingTracer:
    return RecordingTracer()


@lru_cache(maxsize=1)
def get_evaluators() -> tuple[Evaluator, ...]:
    settings = get_settings()
    if not settings.evaluation.enabled or settings.llm.provider.casefold() == "off":
        return ()
    return (
        RelevanceEvaluator(
            get_llm_provider(),
            model=settings.evaluation.model,
            temperature=settings.evaluation.temperature,
        ),
    )


@lru_cache(maxsize=1)
def get_orchestrator() -> ChainOrchestrator:
    settings = get_settings()
    cache = TTLCache(settings.cache.ttl_s, max_size=settings.cache.max_size) if settings.cache.enabled else None
    breakers = BreakerManager(
        failure_threshold=settings.breaker.failure_threshold,
        open_seconds=settings.breaker.open_seconds,
        half_open_max_trials=settings.breaker.half_open_max_trials,
        enabled=settings.breaker.enabled,
    )
    return ChainOrchestrator(
        get_registry(),
        tracer=get_tracer(),
        cache=cache,
        breakers=breakers,
        evaluators=get_evaluators(),
    )


def reset_dependencies() -> None:
    for dependency in (
        get_settings,
        get_vector_search,
        get_llm_provider,
        get_registry,
        get_tracer,
        get_evaluators,
        get_orchestrator,
    ):
        dependency.cache_clear()
