from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def isolate_expertchain_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("EXPERTCHAIN_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("EXPERTCHAIN_RETRY_BASE_DELAY_S", "0")
