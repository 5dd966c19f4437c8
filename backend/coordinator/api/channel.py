"""Shared agent channel APIs."""

import math
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.auth import CurrentSender, get_current_sender
from coordinator.channel.ratelimit import SlidingWindowRateLimiter
from coordinator.channel.schemas import ChannelMessageView, ChannelPostRequest
from coordinator.channel.service import DEFAULT_PAGE, MAX_PAGE, list_messages, post_message
from coordinator.config import Settings, get_settings
from coordinator.storage.database import get_db
from coordinator.storage.ephemeral import EphemeralStore, get_ephemeral_store

router = APIRouter(prefix="/api/channel", tags=["channel"], dependencies=[Depends(get_current_sender)])


def get_rate_limiter(
    store: EphemeralStore | None = Depends(get_ephemeral_store),
    settings: Settings = Depends(get_settings),
) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        store,
        limit=settings.rate_limit,
        window_ms=settings.rate_window_ms,
        ttl_seconds=settings.rate_ttl_seconds,
    )


@router.post("/messages")
async def post_message_endpoint(
    request: ChannelPostRequest,
    response: Response,
    sender: CurrentSender,
    db: AsyncSession = Depends(get_db),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
):
    verdict = await limiter.check_and_record(sender)
    if not verdict.allowed:
        reset_seconds = str(math.ceil(verdict.reset_ms / 1000))
        return JSONResponse(
            status_code=429,
            content={
                "detail": f"Rate limit exceeded ({limiter.limit} msg/{limiter.window_ms // 1000}s)",
                "retry_after_ms": verdict.reset_ms,
            },
            headers={
                "RateLimit-Limit": str(limiter.limit),
                "RateLimit-Remaining": "0",
                "RateLimit-Reset": reset_seconds,
                "Retry-After": reset_seconds,
            },
        )

    message, mentions = await post_message(
        db,
        sender=sender,
        content=request.content,
        reply_to=request.reply_to,
        known_senders=settings.known_senders,
    )
    response.headers["RateLimit-Limit"] = str(limiter.limit)
    response.headers["RateLimit-Remaining"] = str(verdict.remaining)
    view = ChannelMessageView.model_validate(message)
    return {"ok": True, "message": {**view.model_dump(mode="json"), "mentions": mentions}}


@router.get("/messages")
async def list_messages_endpoint(
    after_id: int | None = None,
    limit: int = Query(DEFAULT_PAGE, ge=1),
    mentioning: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> dict:
    messages = await list_messages(db, after_id=after_id, limit=min(limit, MAX_PAGE), mentioning=mentioning)
    return {
        "ok": True,
        "messages": [ChannelMessageView.model_validate(m) for m in messages],
        "count": len(messages),
        "server_time": datetime.now(timezone.utc),
    }
