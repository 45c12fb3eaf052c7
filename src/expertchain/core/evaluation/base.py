from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from expertchain.core.chain.context import SharedContext


@dataclass
class EvaluationScore:
    name: str
    value: float
    comment: str | None = None
    evaluator: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "value": self.value}
        if self.comment is not None:
            payload["comment"] = self.comment
        if self.evaluator is not None:
            payload["evaluator"] = self.evaluator
        return payload


@dataclass
class EvaluationInput:
    """What one expert saw and produced, handed to every evaluator."""

    expert_name: str
    expert_type: str
    input: dict[str, Any]
    output: dict[str, Any]
    context: SharedContext
    expert_parameters: dict[str, Any] = field(default_factory=dict)


class Evaluator(Protocol):
    name: str

    async def evaluate(self, evaluation: EvaluationInput) -> list[EvaluationScore]: ...
