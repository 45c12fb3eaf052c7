from __future__ import annotations

import asyncio

import pytest
from helpers import FakeExpert, RecordingSleep

from expertchain.core.cache.ttl import TTLCache, make_cache_key
from expertchain.core.chain.context import SharedContext
from expertchain.core.chain.orchestrator import ChainOrchestrator
from expertchain.core.chain.schemas import ChainOptions, RetryOptions
from expertchain.core.experts.registry import ExpertRegistry
from expertchain.core.infra.breaker_manager import BreakerManager
from expertchain.core.observability.trace import RecordingTracer


def test_cache_hit_skips_expert_but_still_traces() -> None:
    expert = FakeExpert("cached", output={"value": 42})
    registry = ExpertRegistry()
    registry.register(expert)
    tracer = RecordingTracer()
    orchestrator = ChainOrchestrator(registry, tracer=tracer, cache=TTLCache(60), sleep=RecordingSleep())
    options = ChainOptions(use_cache=True)

    first = asyncio.run(orchestrator.process(["cached"], {"type": "query", "query": "q"}, SharedContext({"type": "query"}), options=options))
    second = asyncio.run(orchestrator.process(["cached"], {"type": "query", "query": "q"}, SharedContext({"type": "query"}), options=options))

    assert first.result == second.result == {"value": 42}
    assert len(expert.calls) == 1
    assert second.intermediate_results[0].cached is True
    span = tracer.last().spans[0]
    assert span.ended is True
    assert span.metadata["cached"] is True


def test_cache_is_ignored_when_toggle_is_off() -> None:
    expert = FakeExpert("uncached")
    registry = ExpertRegistry()
    registry.register(expert)
    orchestrator = ChainOrchestrator(registry, cache=TTLCache(60), sleep=RecordingSleep())

    for _ in range(2):
        asyncio.run(orchestrator.process(["uncached"], {"type": "query"}, SharedContext({"type": "query"})))

    assert len(expert.calls) == 2


def test_open_breaker_fails_fast_without_calling_expert() -> None:
    expert = FakeExpert("fragile", failures=100)
    registry = ExpertRegistry()
    registry.register(expert)
    breakers = BreakerManager(failure_threshold=2, open_seconds=60)
    orchestrator = ChainOrchestrator(registry, breakers=breakers, sleep=RecordingSleep())
    options = ChainOptions(default_retry=RetryOptions(max_attempts=5, base_delay_s=0))

    result = asyncio.run(orchestrator.process(["fragile"], {"type": "query"}, SharedContext({"type": "query"}), options=options))

    assert len(expert.calls) == 2
    assert result.success is False
    assert "Circuit for fragile is open" in (result.error or "")
    assert breakers.snapshot()["fragile"]["state"] == "open"


def test_ttl_cache_evicts_oldest_entry_at_max_size() -> None:
    cache = TTLCache(60, max_size=2)
    cache.set("a", {"n": 1})
    cache.set("b", {"n": 2})
    cache.set("c", {"n": 3})

    assert cache.get("a") is None
    assert cache.get("b") == {"n": 2}
    assert len(cache) == 2


def test_cached_output_is_isolated_from_caller_mutation() -> None:
    expert = FakeExpert("cached", output={"v": 1, "nested": {"n": [1]}})
    registry = ExpertRegistry()
    registry.register(expert)
    orchestrator = ChainOrchestrator(registry, cache=TTLCache(60), sleep=RecordingSleep())
    options = ChainOptions(use_cache=True)

    first = asyncio.run(orchestrator.process(["cached"], {"type": "query"}, SharedContext({"type": "query"}), options=options))
    first.result["v"] = "mutated by caller"
    first.result["nested"]["n"].append(2)
    second = asyncio.run(orchestrator.process(["cached"], {"type": "query"}, SharedContext({"type": "query"}), options=options))
    second.result["nested"]["n"].clear()
    third = asyncio.run(orchestrator.process(["cached"], {"type": "query"}, SharedContext({"type": "query"}), options=options))

    assert second.intermediate_results[0].cached is True
    assert second.result == {"v": 1, "nested": {"n": [1]}}
    assert third.result == {"v": 1, "nested": {"n": [1]}}
    assert len(expert.calls) == 1


def test_cancelled_half_open_trial_is_released() -> None:
    slow = FakeExpert("slow", delay_s=5.0)
    registry = ExpertRegistry()
    registry.register(slow)
    breakers = BreakerManager(failure_threshold=1, open_seconds=0)
    breakers.record_failure("slow", RuntimeError("x"))
    tracer = RecordingTracer()
    orchestrator = ChainOrchestrator(registry, tracer=tracer, breakers=breakers, sleep=RecordingSleep())

    async def scenario():
        task = asyncio.create_task(orchestrator.process(["slow"], {"type": "query"}, SharedContext({"type": "query"})))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        after_cancel = breakers.snapshot()["slow"]
        cancelled_trace = tracer.last()
        slow.delay_s = 0.0
        result = await orchestrator.process(["slow"], {"type": "query"}, SharedContext({"type": "query"}))
        return after_cancel, cancelled_trace, result

    after_cancel, cancelled_trace, result = asyncio.run(scenario())

    assert after_cancel["state"] == "half_open"
    assert after_cancel["half_open_trials_used"] == 0
    assert cancelled_trace.ended is True
    assert cancelled_trace.status == "error"
    assert cancelled_trace.spans[0].ended is True
    assert result.success is True
    assert breakers.snapshot()["slow"]["state"] == "closed"


def test_reregistering_an_expert_drops_its_cache_entries_and_breaker() -> None:
    registry = ExpertRegistry()
    registry.register(FakeExpert("echo", output={"v": 1}))
    registry.register(FakeExpert("other", output={"o": 1}))
    cache = TTLCache(60)
    breakers = BreakerManager(failure_threshold=1, open_seconds=60)
    orchestrator = ChainOrchestrator(registry, cache=cache, breakers=breakers, sleep=RecordingSleep())
    options = ChainOptions(use_cache=True)

    for name in ("echo", "other"):
        asyncio.run(orchestrator.process([name], {"type": "query"}, SharedContext({"type": "query"}), options=options))
    breakers.record_failure("echo", RuntimeError("down"))
    assert len(cache) == 2

    registry.register(FakeExpert("echo", output={"v": 2}))
    result = asyncio.run(orchestrator.process(["echo"], {"type": "query"}, SharedContext({"type": "query"}), options=options))

    assert result.success is True
    assert result.result == {"v": 2}
    assert result.intermediate_results[0].cached is False
    assert breakers.snapshot()["echo"]["state"] == "closed"
    assert cache.get(make_cache_key("other", {"type": "query"})) == {"o": 1}


def test_ttl_cache_invalidate_only_touches_one_expert() -> None:
    cache = TTLCache(60)
    cache.set(make_cache_key("a", {"q": 1}), {"n": 1})
    cache.set(make_cache_key("ab", {"q": 1}), {"n": 2})

    assert cache.invalidate("a") == 1
    assert cache.get(make_cache_key("ab", {"q": 1})) == {"n": 2}
    assert make_cache_key("a", {"q": 1}).startswith("a:")
