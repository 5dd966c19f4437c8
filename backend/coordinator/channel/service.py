"""Shared agent channel: post and read messages."""

from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coordinator.errors import ValidationError
from coordinator.storage.models import ChannelMessage

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 2000
DEFAULT_PAGE = 100
MAX_PAGE = 200

_TAG_RE = re.compile(r"<[^>]*>")
_MENTION_RE = re.compile(r"@(\w+)")


def clean_content(content: str | None) -> str:
    if not isinstance(content, str) or not content:
        raise ValidationError("Content required (string)", field="content")
    cleaned = _TAG_RE.sub("", content.strip())
    if not cleaned:
        raise ValidationError("Content cannot be empty or only whitespace", field="content")
    if len(cleaned) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"Content too long (max {MAX_CONTENT_LENGTH})", field="content")
    return cleaned


def extract_mentions(content: str, known_senders: list[str]) -> list[str]:
    """Return known identities mentioned as @Name, canonical casing, first-seen order."""
    canonical = {name.lower(): name for name in known_senders}
    mentions: list[str] = []
    for token in _MENTION_RE.findall(content):
        name = canonical.get(token.lower())
        if name and name not in mentions:
            mentions.append(name)
    return mentions


async def post_message(
    db: AsyncSession,
    *,
    sender: str,
    content: str,
    reply_to: int | None = None,
    known_senders: list[str] | None = None,
) -> tuple[ChannelMessage, list[str]]:
    cleaned = clean_content(content)
    if reply_to is not None and (isinstance(reply_to, bool) or not isinstance(reply_to, int) or reply_to < 1):
        raise ValidationError("reply_to must be a positive integer", field="reply_to")

    message = ChannelMessage(sender=sender, content=cleaned, reply_to=reply_to)
    db.add(message)
    await db.flush()
    mentions = extract_mentions(cleaned, known_senders or [])
    logger.info("channel_message_posted", extra={"sender": sender, "message_id": message.id, "mentions": mentions})
    return message, mentions


async def list_messages(
    db: AsyncSession,
    *,
    after_id: int | None = None,
    limit: int = DEFAULT_PAGE,
    mentioning: str | None = None,
) -> list[ChannelMessage]:
    """Messages in ascending id order; without after_id, the latest page."""
    limit = max(1, min(limit, MAX_PAGE))
    query = select(ChannelMessage)
    if mentioning:
        term = mentioning.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        query = query.where(ChannelMessage.content.ilike(f"%@{term}%", escape="\\"))

    if after_id is not None:
        query = query.where(ChannelMessage.id > after_id).order_by(ChannelMessage.id.asc()).limit(limit)
        return list((await db.execute(query)).scalars().all())

    latest = (await db.execute(query.order_by(ChannelMessage.id.desc()).limit(limit))).scalars().all()
    return list(reversed(latest))
