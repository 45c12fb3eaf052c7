from __future__ import annotations

import asyncio

from helpers import FakeExpert, build

from expertchain.core.chain.context import SharedContext
from expertchain.core.chain.schemas import ChainOptions, ExpertOptions, RetryOptions


def test_per_expert_timeout_counts_as_retryable_failure() -> None:
    slow = FakeExpert("slow", delay_s=0.5)
    orchestrator, _, tracer, _ = build(slow)
    options = ChainOptions(
        expert_options={"slow": ExpertOptions(timeout_s=0.01, retry=RetryOptions(max_attempts=2, base_delay_s=0))}
    )

    result = asyncio.run(orchestrator.process(["slow"], {"type": "query"}, SharedContext({"type": "query"}), options=options))

    assert result.success is False
    assert "timed out" in (result.error or "")
    assert len(slow.calls) == 2
    assert tracer.last().spans[0].status == "error"


def test_non_mapping_output_is_a_failure() -> None:
    class Broken(FakeExpert):
        async def process(self, input, context, trace=None):
            self.calls.append(dict(input))
            return ["not", "a", "mapping"]

    broken = Broken("broken")
    orchestrator, _, _, _ = build(broken)
    options = ChainOptions(default_retry=RetryOptions(max_attempts=1))

    result = asyncio.run(orchestrator.process(["broken"], {"type": "query"}, SharedContext({"type": "query"}), options=options))

    assert result.success is False
    assert "expected a mapping" in (result.error or "")
