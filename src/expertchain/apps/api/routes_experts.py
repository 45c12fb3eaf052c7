from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from expertchain.core.chain.errors import ExpertNotFoundError, InvalidExpertParameters, ProtectedExpertError
from expertchain.core.experts.registry import ExpertRegistry

from .deps import get_registry

router = APIRouter()


@router.get("")
def list_experts(registry: ExpertRegistry = Depends(get_registry)) -> dict[str, Any]:
    return {"experts": [descriptor.to_dict() for descriptor in registry.list()]}


@router.get("/{name}")
def get_expert(name: str, registry: ExpertRegistry = Depends(get_registry)) -> dict[str, Any]:
    for descriptor in registry.list():
        if descriptor.name == name:
            return descriptor.to_dict()
    raise HTTPException(status_code=404, detail=f"Expert '{name}' not found in registry.")


@router.put("/{name}/parameters")
def update_parameters(
    name: str,
    parameters: dict[str, Any],
    registry: ExpertRegistry = Depends(get_registry),
) -> dict[str, Any]:
    try:
        expert = registry.resolve(name)
        expert.set_parameters(parameters)
    except ExpertNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidExpertParameters as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"name": name, "parameters": expert.get_parameters()}


@router.delete("/{name}")
def delete_expert(name: str, registry: ExpertRegistry = Depends(get_registry)) -> dict[str, Any]:
    try:
        registry.unregister(name)
    except ProtectedExpertError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ExpertNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"deleted": name}
