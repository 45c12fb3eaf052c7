from __future__ import annotations

import logging
import threading
from typing import Callable

from expertchain.core.chain.errors import ExpertNotFoundError, ProtectedExpertError

from .base import Expert, ExpertDescriptor

logger = logging.getLogger("expertchain.registry")

EXPERT_REGISTERED = "registered"
EXPERT_REPLACED = "replaced"
EXPERT_UNREGISTERED = "unregistered"

# Called as listener(event, expert_name) after the change is applied.
ChangeListener = Callable[[str, str], None]


class ExpertRegistry:
    def __init__(self) -> None:
        self._experts: dict[str, Expert] = {}
        self._builtin: set[str] = set()
        self._listeners: list[ChangeListener] = []
        self._lock = threading.Lock()

    def register(self, expert: Expert, builtin: bool = False) -> None:
        name = expert.get_name()
        with self._lock:
            replaced = name in self._experts
            self._experts[name] = expert
            if builtin:
                self._builtin.add(name)
        if replaced:
            logger.warning("expert_replaced", extra={"extra_fields": {"expert": name}})
        else:
            logger.info("expert_registered", extra={"extra_fields": {"expert": name, "builtin": builtin}})
        self._notify(EXPERT_REPLACED if replaced else EXPERT_REGISTERED, name)

    def unregister(self, name: str) -> None:
        with self._lock:
            if name in self._builtin:
                raise ProtectedExpertError(name)
            if self._experts.pop(name, None) is None:
                raise ExpertNotFoundError(name)
        logger.info("expert_unregistered", extra={"extra_fields": {"expert": name}})
        self._notify(EXPERT_UNREGISTERED, name)

    def resolve(self, name: str) -> Expert:
        expert = self._experts.get(name)
        if expert is None:
            raise ExpertNotFoundError(name)
        return expert

    def is_builtin(self, name: str) -> bool:
        return name in self._builtin

    def names(self) -> list[str]:
        return sorted(self._experts.keys())

    def list(self) -> list[ExpertDescriptor]:
        with self._lock:
            items = sorted(self._experts.items())
        return [self._descriptor(name, expert) for name, expert in items]

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _descriptor(self, name: str, expert: Expert) -> ExpertDescriptor:
        builtin = name in self._builtin
        describe = getattr(expert, "describe", None)
        if callable(describe):
            return describe(builtin=builtin)
        return ExpertDescriptor(
            name=name,
            type=expert.get_type(),
            parameters=expert.get_parameters(),
            builtin=builtin,
        )

    def _notify(self, event: str, name: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, name)
            except Exception:
                logger.exception("registry_listener_failed", extra={"extra_fields": {"expert": name, "event": event}})
