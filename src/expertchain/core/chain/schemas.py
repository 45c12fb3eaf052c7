from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict, Field

ChainInput = Mapping[str, Any]
ExpertOutput = dict[str, Any]

# Key under which the previous expert's output is passed to the next one.
EXPERT_OUTPUT_KEY = "expert_output"


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class RetryOptions(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay_s: float = Field(default=0.2, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    jitter: bool = False
    max_delay_s: float | None = Field(default=None, gt=0)


class ExpertOptions(BaseModel):
    retry: RetryOptions | None = None
    timeout_s: float | None = Field(default=None, gt=0)


class TokenUsage(BaseModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0
    provider: str | None = None
    model: str | None = None


class IntermediateResult(BaseModel):
    expert_name: str
    expert_type: str
    expert_index: int
    input: dict[str, Any]
    output: dict[str, Any]
    timestamp: str
    duration_ms: float
    attempts: int = 1
    cached: bool = False


class ChainOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    max_concurrency: int | None = Field(default=None, ge=1)
    default_retry: RetryOptions = Field(default_factory=RetryOptions)
    expert_options: dict[str, ExpertOptions] = Field(default_factory=dict)
    expert_parameters: dict[str, dict[str, Any]] = Field(default_factory=dict)
    use_cache: bool = False
    on_intermediate_result: Callable[[IntermediateResult], None] | None = Field(default=None, exclude=True)

    def retry_for(self, expert_name: str) -> RetryOptions:
        override = self.expert_options.get(expert_name)
        if override is not None and override.retry is not None:
            return override.retry
        return self.default_retry

    def timeout_for(self, expert_name: str) -> float | None:
        override = self.expert_options.get(expert_name)
        return override.timeout_s if override is not None else None


@dataclass
class ChainResult:
    result: Any
    success: bool
    error: str | None = None
    intermediate_results: list[IntermediateResult] = field(default_factory=list)
    token_usage: TokenUsage | None = None
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"result": self.result, "success": self.success}
        if self.error is not None:
            payload["error"] = self.error
        payload["intermediate_results"] = [item.model_dump() for item in self.intermediate_results]
        if self.token_usage is not None:
            payload["token_usage"] = self.token_usage.model_dump(exclude_none=True)
        if self.duration_ms is not None:
            payload["duration_ms"] = self.duration_ms
        return payload
