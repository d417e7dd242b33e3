"""Universal routes, served on central and tenant hosts alike."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["universal"])


@router.get("/up")
async def up() -> dict[str, str]:
    return {"status": "ok"}
