"""Database-backed search helpers for group messages."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.text import LIKE_ESCAPE, contains_pattern
from app.models import Message, MessageType


@dataclass(frozen=True)
class MessageSearchFilters:
    """Optional filters that can be applied to message search queries."""

    sender_id: int | None = None
    message_type: MessageType | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None


@dataclass(frozen=True)
class MessageSearchResult:
    """A page of matching messages, newest first."""

    messages: list[Message]
    total: int
    page: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


class MessageSearchService:
    """Case-insensitive substring search over non-deleted messages of a group."""

    def __init__(self, session: Session):
        self._session = session

    def search(
        self,
        group_id: int,
        query: str,
        *,
        limit: int,
        page: int = 1,
        filters: MessageSearchFilters | None = None,
    ) -> MessageSearchResult:
        if filters is None:
            filters = MessageSearchFilters()
        page = max(page, 1)

        conditions = [
            Message.group_id == group_id,
            Message.is_deleted.is_(False),
            self._build_matcher(query),
        ]
        if filters.sender_id is not None:
            conditions.append(Message.sender_id == filters.sender_id)
        if filters.message_type is not None:
            conditions.append(Message.message_type == filters.message_type)
        if filters.start_at is not None:
            conditions.append(Message.created_at >= filters.start_at)
        if filters.end_at is not None:
            conditions.append(Message.created_at <= filters.end_at)

        total = self._session.execute(
            select(func.count(Message.id)).where(*conditions)
        ).scalar_one()
        stmt = (
            select(Message)
            .where(*conditions)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        messages = list(self._session.execute(stmt).scalars().all())
        return MessageSearchResult(messages=messages, total=int(total), page=page, limit=limit)

    # Internal helpers -----------------------------------------------------

    def _build_matcher(self, query: str):
        return Message.content.ilike(contains_pattern(query), escape=LIKE_ESCAPE)
