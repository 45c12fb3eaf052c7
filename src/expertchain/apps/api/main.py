from __future__ import annotations

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI

from expertchain.core.logging import configure_logging

from .deps import get_registry, get_settings, get_tracer
from .routes_chain import router as chain_router
from .routes_experts import router as experts_router


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    log_settings = get_settings().logging
    configure_logging(
        level=log_settings.level,
        log_dir=Path(log_settings.log_dir or "logs").expanduser() if log_settings.to_file else None,
        max_bytes=log_settings.max_bytes,
        backup_count=log_settings.backup_count,
    )
    yield


app = FastAPI(title="expertchain", lifespan=lifespan)
app.include_router(chain_router, prefix="/v1/chain")
app.include_router(experts_router, prefix="/v1/experts")


@app.get("/healthz")
def healthz() -> dict[str, object]:
    last = get_tracer().last()
    return {
        "ok": True,
        "experts": get_registry().names(),
        "last_trace_id": last.trace_id if last else None,
    }


def main() -> None:
    uvicorn.run(
        "expertchain.apps.api.main:app",
        host=os.getenv("EXPERTCHAIN_HOST", "127.0.0.1"),
        port=int(os.getenv("EXPERTCHAIN_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
