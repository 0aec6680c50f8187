from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from match_chat.infrastructure.db.session import AsyncSessionLocal

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    """Ready when the store and Redis answer and the fan-out listener is alive."""
    errors: list[str] = []

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        errors.append(f"postgres: {exc}")

    try:
        await request.app.state.redis.ping()
    except Exception as exc:  # noqa: BLE001
        errors.append(f"redis: {exc}")

    subscriber = getattr(request.app.state, "pubsub_subscriber", None)
    reconnects = subscriber.reconnects if subscriber is not None else 0
    if subscriber is None or not subscriber.running:
        errors.append("realtime: fan-out subscriber not running")

    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": errors, "reconnects": reconnects},
        )
    return JSONResponse(content={"status": "ready", "reconnects": reconnects})
