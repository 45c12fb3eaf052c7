from __future__ import annotations

import asyncio
from typing import Any

from expertchain.core.chain.orchestrator import ChainOrchestrator
from expertchain.core.experts.base import BaseExpert
from expertchain.core.experts.registry import ExpertRegistry
from expertchain.core.observability.trace import RecordingTracer


class FakeExpert(BaseExpert):
    """Returns ``output`` after raising ``error`` for the first ``failures`` calls."""

    def __init__(
        self,
        name: str,
        output: dict[str, Any] | None = None,
        failures: int = 0,
        error: Exception | None = None,
        expert_type: str = "fake",
        delay_s: float = 0.0,
        state_key: str | None = None,
    ) -> None:
        self.type = expert_type
        self.output = output if output is not None else {"from": name}
        self.failures = failures
        self.error = error or RuntimeError(f"{name} boom")
        self.delay_s = delay_s
        self.state_key = state_key
        self.calls: list[dict[str, Any]] = []
        super().__init__(name=name)

    def validate_parameters(self, parameters: dict[str, Any]) -> bool:
        return "bad" not in parameters

    async def process(self, input, context, trace=None):
        self.calls.append(dict(input))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if len(self.calls) <= self.failures:
            raise self.error
        if self.state_key:
            context.set(self.state_key, self.name)
        return dict(self.output)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def build(*experts: BaseExpert) -> tuple[ChainOrchestrator, ExpertRegistry, RecordingTracer, RecordingSleep]:
    registry = ExpertRegistry()
    for expert in experts:
        registry.register(expert)
    tracer = RecordingTracer()
    sleep = RecordingSleep()
    return ChainOrchestrator(registry, tracer=tracer, sleep=sleep), registry, tracer, sleep
