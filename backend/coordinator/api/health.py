"""Unauthenticated liveness probe for the service itself."""

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    store = getattr(request.app.state, "ephemeral_store", None)
    return {"status": "healthy", "ephemeral_store": "configured" if store is not None else "disabled"}
