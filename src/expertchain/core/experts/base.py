from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from expertchain.core.chain.context import SharedContext
from expertchain.core.chain.errors import InvalidExpertParameters
from expertchain.core.chain.schemas import ChainInput, ExpertOutput
from expertchain.core.evaluation.base import EvaluationScore
from expertchain.core.observability.trace import TraceHandle

ExpertParameters = dict[str, Any]


@runtime_checkable
class Expert(Protocol):
    def get_name(self) -> str: ...

    def get_type(self) -> str: ...

    def get_parameters(self) -> ExpertParameters: ...

    def set_parameters(self, parameters: ExpertParameters) -> None: ...

    async def process(
        self,
        input: ChainInput,
        context: SharedContext,
        trace: TraceHandle | None = None,
    ) -> ExpertOutput: ...


@dataclass
class ExpertDescriptor:
    name: str
    type: str
    parameters: ExpertParameters = field(default_factory=dict)
    description: str = ""
    builtin: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "parameters": dict(self.parameters),
            "description": self.description,
            "builtin": self.builtin,
        }


class BaseExpert:
    """Convenience base for experts with a mergeable parameter map.

    Subclasses override ``default_parameters`` and ``validate_parameters``.
    ``set_parameters`` rebinds the parameter dict instead of mutating it, so a
    shallow copy of an expert can be reconfigured without touching the
    registered instance.
    """

    name: str = ""
    type: str = "generic"
    description: str = ""

    def __init__(self, parameters: ExpertParameters | None = None, name: str | None = None) -> None:
        if name:
            self.name = name
        if not self.name:
            raise ValueError(f"{self.__class__.__name__} needs a name")
        self._parameters: ExpertParameters = dict(self.default_parameters())
        if parameters:
            self.set_parameters(parameters)

    def get_name(self) -> str:
        return self.name

    def get_type(self) -> str:
        return self.type

    def default_parameters(self) -> ExpertParameters:
        return {}

    def validate_parameters(self, parameters: ExpertParameters) -> bool:
        return True

    def get_parameters(self) -> ExpertParameters:
        return dict(self._parameters)

    def set_parameters(self, parameters: ExpertParameters) -> None:
        if not self.validate_parameters(parameters):
            raise InvalidExpertParameters(self.name, parameters)
        self._parameters = {**self._parameters, **parameters}

    def score_output(self, output: ExpertOutput) -> list[EvaluationScore]:
        """Expert-specific quality signals recorded on the expert's span."""
        return []

    def describe(self, builtin: bool = False) -> ExpertDescriptor:
        return ExpertDescriptor(
            name=self.get_name(),
            type=self.get_type(),
            parameters=self.get_parameters(),
            description=self.description or f"{self.type} expert",
            builtin=builtin,
        )

    async def process(
        self,
        input: ChainInput,
        context: SharedContext,
        trace: TraceHandle | None = None,
    ) -> ExpertOutput:
        raise NotImplementedError
