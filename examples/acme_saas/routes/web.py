"""Central routes, served on every central domain."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["central"])


@router.get("/")
async def home() -> dict[str, str]:
    return {"app": "central"}
