from __future__ import annotations

import asyncio

from helpers import FakeExpert, build

from expertchain.core.chain.context import SharedContext
from expertchain.core.chain.schemas import ChainOptions, ExpertOptions, RetryOptions


def _options(max_attempts: int, base_delay_s: float = 0.0, multiplier: float = 2.0) -> ChainOptions:
    return ChainOptions(
        default_retry=RetryOptions(max_attempts=max_attempts, base_delay_s=base_delay_s, backoff_multiplier=multiplier)
    )


def test_always_failing_expert_is_called_max_attempts_times_under_one_span() -> None:
    broken = FakeExpert("broken", failures=100, error=RuntimeError("still down"))
    orchestrator, _, tracer, _ = build(broken)

    result = asyncio.run(
        orchestrator.process(["broken"], {"type": "query"}, SharedContext({"type": "query"}), options=_options(4))
    )

    assert len(broken.calls) == 4
    assert result.success is False
    assert result.result is None
    assert result.error == "Error in expert 'broken': still down"
    trace = tracer.last()
    assert trace is not None
    assert len(trace.spans) == 1
    span = trace.spans[0]
    assert span.ended is True
    assert span.status == "error"
    assert span.message == "still down"
    assert span.metadata["attempts"] == 4
    assert trace.status == "error"


def test_expert_that_fails_once_then_succeeds_is_called_twice() -> None:
    flaky = FakeExpert("flaky", output={"ok": True}, failures=1)
    orchestrator, _, tracer, sleep = build(flaky)

    result = asyncio.run(
        orchestrator.process(["flaky"], {"type": "query"}, SharedContext({"type": "query"}), options=_options(3, 0.5))
    )

    assert result.success is True
    assert result.result == {"ok": True}
    assert len(flaky.calls) == 2
    assert sleep.delays == [0.5]
    assert result.intermediate_results[0].attempts == 2
    assert tracer.last().spans[0].metadata["attempts"] == 2


def test_backoff_delays_grow_by_multiplier() -> None:
    broken = FakeExpert("broken", failures=100)
    orchestrator, _, _, sleep = build(broken)

    asyncio.run(
        orchestrator.process(
            ["broken"], {"type": "query"}, SharedContext({"type": "query"}), options=_options(4, 0.1, 3.0)
        )
    )

    assert sleep.delays == [0.1, 0.1 * 3.0, 0.1 * 9.0]


def test_per_expert_retry_options_override_chain_defaults() -> None:
    strict = FakeExpert("strict", failures=100)
    lenient = FakeExpert("lenient", failures=2)
    orchestrator, _, _, _ = build(strict, lenient)
    options = ChainOptions(
        default_retry=RetryOptions(max_attempts=1, base_delay_s=0),
        expert_options={"lenient": ExpertOptions(retry=RetryOptions(max_attempts=3, base_delay_s=0))},
    )

    result = asyncio.run(
        orchestrator.process(["lenient", "strict"], {"type": "query"}, SharedContext({"type": "query"}), options=options)
    )

    assert len(lenient.calls) == 3
    assert len(strict.calls) == 1
    assert result.success is False
    assert "strict" in (result.error or "")
    assert [item.expert_name for item in result.intermediate_results] == ["lenient"]
