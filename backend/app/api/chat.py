"""Group chat API endpoints."""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.core.constants import PAGE_MAX_LIMIT
from app.database import get_db
from app.models import Message, MessageType, User
from app.schemas import (
    MessageAuthor,
    MessageCreate,
    MessageEditRead,
    MessagePage,
    MessageReactionSummary,
    MessageRead,
    MessageReader,
    MessageUpdate,
    ReactionRequest,
    ReadStatusRead,
)
from app.search import MessageSearchFilters
from app.services import chat as chat_service

router = APIRouter(prefix="/chat", tags=["chat"])


def serialize_message(message: Message, current_user_id: int | None = None) -> MessageRead:
    """Convert ORM message into schema with aggregated reactions."""

    grouped: "OrderedDict[str, list[int]]" = OrderedDict()
    for reaction in message.reactions:
        grouped.setdefault(reaction.emoji, []).append(reaction.user_id)
    reactions = [
        MessageReactionSummary(
            emoji=emoji,
            count=len(user_ids),
            reacted=current_user_id is not None and current_user_id in user_ids,
            user_ids=sorted(user_ids),
        )
        for emoji, user_ids in grouped.items()
    ]

    sender = message.sender
    author = (
        MessageAuthor(
            id=sender.id,
            login=sender.login,
            display_name=sender.display_name,
            avatar_url=sender.avatar_url,
        )
        if sender is not None
        else None
    )

    return MessageRead(
        id=message.id,
        group_id=message.group_id,
        sender_id=message.sender_id,
        sender=author,
        content=message.content,
        message_type=message.message_type,
        file_url=message.file_url,
        file_name=message.file_name,
        file_size=message.file_size,
        reply_to_id=message.reply_to_id,
        is_pinned=message.is_pinned,
        is_edited=message.is_edited,
        is_deleted=message.is_deleted,
        deleted_at=message.deleted_at,
        deleted_by_id=message.deleted_by_id,
        reactions=reactions,
        edit_history=[
            MessageEditRead(content=edit.content, edited_at=edit.edited_at) for edit in message.edits
        ],
        created_at=message.created_at,
        updated_at=message.updated_at,
    )


@router.post(
    "/{group_id}/messages", response_model=MessageRead, status_code=status.HTTP_201_CREATED
)
def send_message(
    group_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    message = chat_service.send_message(group_id, current_user.id, payload, db)
    return serialize_message(message, current_user.id)


@router.get("/{group_id}/messages", response_model=MessagePage)
def list_messages(
    group_id: int,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=PAGE_MAX_LIMIT),
    before: int | None = Query(default=None, description="Only messages older than this id"),
    after: int | None = Query(default=None, description="Only messages newer than this id"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessagePage:
    """Return a page of chat history, oldest message first within the page."""

    result = chat_service.list_messages(
        group_id, current_user.id, db, page=page, limit=limit, before=before, after=after
    )
    return MessagePage(
        items=[serialize_message(message, current_user.id) for message in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        has_more=result.has_more,
    )


@router.get("/{group_id}/pinned", response_model=list[MessageRead])
def list_pinned(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[MessageRead]:
    return [
        serialize_message(message, current_user.id)
        for message in chat_service.list_pinned(group_id, current_user.id, db)
    ]


@router.get("/{group_id}/search", response_model=MessagePage)
def search_messages(
    group_id: int,
    q: str = Query(..., max_length=200, description="Text to look for"),
    sender_id: int | None = Query(default=None),
    message_type: MessageType | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=PAGE_MAX_LIMIT),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessagePage:
    """Search non-deleted messages of the group, newest first."""

    filters = MessageSearchFilters(
        sender_id=sender_id,
        message_type=message_type,
        start_at=start,
        end_at=end,
    )
    result = chat_service.search_messages(
        group_id, current_user.id, q, db, page=page, limit=limit, filters=filters
    )
    return MessagePage(
        items=[serialize_message(message, current_user.id) for message in result.messages],
        total=result.total,
        page=result.page,
        limit=result.limit,
        has_more=result.has_more,
    )


@router.get("/messages/{message_id}", response_model=MessageRead)
def get_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    message = chat_service.get_message(message_id, current_user.id, db)
    return serialize_message(message, current_user.id)


@router.patch("/messages/{message_id}", response_model=MessageRead)
def edit_message(
    message_id: int,
    payload: MessageUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    """Edit message content within the edit window."""

    message = chat_service.edit_message(message_id, current_user.id, payload.content, db)
    return serialize_message(message, current_user.id)


@router.delete("/messages/{message_id}", response_model=MessageRead)
def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    message = chat_service.delete_message(message_id, current_user.id, db)
    return serialize_message(message, current_user.id)


@router.post("/messages/{message_id}/reactions", response_model=MessageRead)
def toggle_reaction(
    message_id: int,
    payload: ReactionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    message = chat_service.toggle_reaction(message_id, current_user.id, payload.emoji, db)
    return serialize_message(message, current_user.id)


@router.post("/messages/{message_id}/pin", response_model=MessageRead)
def toggle_pin(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    message = chat_service.toggle_pin(message_id, current_user.id, db)
    return serialize_message(message, current_user.id)


@router.post("/messages/{message_id}/read", status_code=status.HTTP_204_NO_CONTENT)
def mark_read(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> None:
    chat_service.mark_read(message_id, current_user.id, db)


@router.get("/messages/{message_id}/read-status", response_model=ReadStatusRead)
def read_status(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ReadStatusRead:
    status_info = chat_service.read_status(message_id, current_user.id, db)
    return ReadStatusRead(
        message_id=status_info.message_id,
        read_count=status_info.read_count,
        readers=[
            MessageReader(
                user_id=receipt.user_id,
                login=receipt.user.login,
                display_name=receipt.user.display_name,
                read_at=receipt.read_at,
            )
            for receipt in status_info.receipts
        ],
    )
