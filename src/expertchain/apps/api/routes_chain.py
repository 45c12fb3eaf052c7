from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from expertchain.core.chain.context import SharedContext
from expertchain.core.chain.orchestrator import ChainOrchestrator
from expertchain.core.chain.schemas import ChainOptions, ExecutionMode, ExpertOptions, RetryOptions
from expertchain.core.config.loader import ChainSettings

from .deps import get_orchestrator, get_settings

router = APIRouter()


class ChainInputBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    query: Optional[str] = None


class ChainOptionsBody(BaseModel):
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    max_concurrency: Optional[int] = Field(default=None, ge=1)
    retry: Optional[RetryOptions] = None
    expert_options: dict[str, ExpertOptions] = Field(default_factory=dict)
    expert_parameters: dict[str, dict[str, Any]] = Field(default_factory=dict)
    use_cache: bool = False


class ChainRequest(BaseModel):
    experts: list[str]
    input: ChainInputBody
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    options: ChainOptionsBody = Field(default_factory=ChainOptionsBody)


def _chain_options(body: ChainOptionsBody, settings: ChainSettings) -> ChainOptions:
    return ChainOptions(
        execution_mode=body.execution_mode,
        max_concurrency=body.max_concurrency or settings.max_concurrency,
        default_retry=body.retry or settings.default_retry,
        expert_options=body.expert_options,
        expert_parameters=body.expert_parameters,
        use_cache=body.use_cache,
    )


@router.post("/process")
async def process_chain(
    request: ChainRequest,
    orchestrator: ChainOrchestrator = Depends(get_orchestrator),
    settings: ChainSettings = Depends(get_settings),
) -> dict[str, Any]:
    chain_input = request.input.model_dump(exclude_none=True)
    context = SharedContext(chain_input, user_id=request.user_id, session_id=request.session_id)
    result = await orchestrator.process(
        request.experts,
        chain_input,
        context,
        user_id=request.user_id,
        session_id=request.session_id,
        options=_chain_options(request.options, settings),
    )
    payload = result.to_dict()
    payload["trace_id"] = context.trace_id
    return payload
