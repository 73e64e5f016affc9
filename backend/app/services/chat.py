"""Message store: posting, editing, reactions, pins and read receipts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.config import get_settings
from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.core.timeutils import as_utc, utcnow
from app.models import Group, Message, MessageEdit, MessageReaction, MessageReceipt
from app.schemas import MessageCreate
from app.search import MessageSearchFilters, MessageSearchResult, MessageSearchService
from app.services.access import require_leader, require_member
from app.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)
settings = get_settings()

MESSAGE_NOT_FOUND_DETAIL = "Message not found"


@dataclass
class MessageListResult:
    items: list[Message] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 50

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


@dataclass
class ReadStatus:
    message_id: int
    receipts: list[MessageReceipt] = field(default_factory=list)

    @property
    def read_count(self) -> int:
        return len(self.receipts)


def _clamp_limit(limit: int | None, default: int) -> int:
    if limit is None:
        return default
    return min(max(limit, 1), settings.chat_history_max_limit)


def _load_message(message_id: int, db: Session, *, lock: bool = False) -> Message:
    stmt = select(Message).where(Message.id == message_id)
    if lock:
        stmt = stmt.with_for_update()
    stmt = stmt.execution_options(populate_existing=True)
    message = db.execute(stmt).scalar_one_or_none()
    if message is None:
        raise NotFoundError(MESSAGE_NOT_FOUND_DETAIL)
    return message


def _is_group_leader(group_id: int, user_id: int, db: Session) -> bool:
    group = db.get(Group, group_id)
    return group is not None and group.leader_id == user_id


def send_message(group_id: int, sender_id: int, payload: MessageCreate, db: Session) -> Message:
    """Post a message into a group the sender is an active member of."""

    def _send() -> Message:
        access = require_member(group_id, sender_id, db)
        if payload.reply_to_id is not None:
            parent = db.get(Message, payload.reply_to_id)
            if parent is None or parent.group_id != group_id:
                raise BadRequestError("Invalid reply message")

        message = Message(
            group_id=group_id,
            sender_id=sender_id,
            content=payload.content,
            message_type=payload.message_type,
            file_url=payload.file_url,
            file_name=payload.file_name,
            file_size=payload.file_size,
            reply_to_id=payload.reply_to_id,
        )
        db.add(message)
        if access.membership is not None:
            access.membership.last_active = utcnow()
        db.flush()
        return message

    return run_in_transaction(
        db, _send, name="send_message", context={"group_id": group_id, "sender_id": sender_id}
    )


def edit_message(
    message_id: int,
    requester_id: int,
    content: str,
    db: Session,
    *,
    now: datetime | None = None,
) -> Message:
    """Replace the content of a message, keeping the previous text in its history.

    Only the sender may edit, only while the message is not deleted and only
    within the configured edit window measured from ``created_at``.
    """

    window = timedelta(minutes=settings.chat_edit_window_minutes)

    def _edit() -> Message:
        message = _load_message(message_id, db, lock=True)
        if message.sender_id != requester_id:
            raise ForbiddenError("You can only edit your own messages")
        if message.is_deleted:
            raise BadRequestError("Cannot edit deleted message")
        moment = as_utc(now or utcnow())
        if moment - as_utc(message.created_at) >= window:
            raise BadRequestError(
                f"Message can only be edited within {settings.chat_edit_window_minutes} minutes"
            )
        message.edits.append(MessageEdit(content=message.content, edited_at=moment))
        message.content = content
        message.is_edited = True
        return message

    return run_in_transaction(
        db, _edit, name="edit_message", context={"message_id": message_id, "requester_id": requester_id}
    )


def delete_message(message_id: int, requester_id: int, db: Session) -> Message:
    """Soft-delete a message. Allowed for its sender and the group leader."""

    def _delete() -> Message:
        message = _load_message(message_id, db, lock=True)
        if message.sender_id != requester_id and not _is_group_leader(
            message.group_id, requester_id, db
        ):
            raise ForbiddenError("You can only delete your own messages")
        if message.is_deleted:
            raise BadRequestError("Message is already deleted")
        message.is_deleted = True
        message.deleted_at = utcnow()
        message.deleted_by_id = requester_id
        message.is_pinned = False
        return message

    message = run_in_transaction(
        db, _delete, name="delete_message", context={"message_id": message_id, "requester_id": requester_id}
    )
    logger.info("User %s deleted message %s", requester_id, message_id)
    return message


def toggle_reaction(message_id: int, user_id: int, emoji: str, db: Session) -> Message:
    """Add the user's reaction, or remove it when it is already present."""

    def _toggle() -> Message:
        message = _load_message(message_id, db, lock=True)
        require_member(message.group_id, user_id, db)
        if message.is_deleted:
            raise BadRequestError("Cannot react to deleted message")
        if emoji not in settings.chat_allowed_reactions:
            raise BadRequestError("Unsupported reaction")
        existing = next(
            (
                reaction
                for reaction in message.reactions
                if reaction.user_id == user_id and reaction.emoji == emoji
            ),
            None,
        )
        if existing is not None:
            message.reactions.remove(existing)
        else:
            message.reactions.append(MessageReaction(user_id=user_id, emoji=emoji))
        return message

    return run_in_transaction(
        db, _toggle, name="toggle_reaction", context={"message_id": message_id, "user_id": user_id}
    )


def toggle_pin(message_id: int, requester_id: int, db: Session) -> Message:
    """Pin or unpin a message. Leader only, bounded per group."""

    limit = settings.chat_max_pinned_messages

    def _toggle() -> Message:
        message = _load_message(message_id, db, lock=True)
        require_leader(message.group_id, requester_id, db, lock=True)
        if message.is_deleted:
            raise BadRequestError("Cannot pin deleted message")
        if not message.is_pinned:
            pinned = db.execute(
                select(func.count(Message.id)).where(
                    Message.group_id == message.group_id,
                    Message.is_pinned.is_(True),
                    Message.is_deleted.is_(False),
                )
            ).scalar_one()
            if pinned >= limit:
                raise BadRequestError(f"Maximum {limit} messages can be pinned per group")
        message.is_pinned = not message.is_pinned
        return message

    return run_in_transaction(
        db, _toggle, name="toggle_pin", context={"message_id": message_id, "requester_id": requester_id}
    )


def mark_read(message_id: int, user_id: int, db: Session) -> MessageReceipt:
    """Record that the user read the message. Repeated calls are no-ops."""

    def _mark() -> MessageReceipt:
        message = _load_message(message_id, db)
        require_member(message.group_id, user_id, db)
        if message.is_deleted:
            raise BadRequestError("Cannot mark deleted message as read")
        receipt = db.execute(
            select(MessageReceipt).where(
                MessageReceipt.message_id == message_id,
                MessageReceipt.user_id == user_id,
            )
        ).scalar_one_or_none()
        if receipt is None:
            receipt = MessageReceipt(message_id=message_id, user_id=user_id)
            db.add(receipt)
            db.flush()
        return receipt

    return run_in_transaction(
        db, _mark, name="mark_read", context={"message_id": message_id, "user_id": user_id}
    )


def read_status(message_id: int, requester_id: int, db: Session) -> ReadStatus:
    message = _load_message(message_id, db)
    require_member(message.group_id, requester_id, db)
    stmt = (
        select(MessageReceipt)
        .options(selectinload(MessageReceipt.user))
        .where(MessageReceipt.message_id == message_id)
        .order_by(MessageReceipt.read_at.asc(), MessageReceipt.id.asc())
    )
    return ReadStatus(message_id=message_id, receipts=list(db.execute(stmt).scalars().all()))


def get_message(message_id: int, requester_id: int, db: Session) -> Message:
    """Fetch a single message.

    The sender and the group leader can always read it, even after the group
    was deleted; everybody else needs an active membership.
    """

    message = _load_message(message_id, db)
    if message.sender_id == requester_id or _is_group_leader(message.group_id, requester_id, db):
        return message
    require_member(message.group_id, requester_id, db)
    return message


def list_messages(
    group_id: int,
    requester_id: int,
    db: Session,
    *,
    page: int = 1,
    limit: int | None = None,
    before: int | None = None,
    after: int | None = None,
) -> MessageListResult:
    """Page through non-deleted messages.

    Pages are counted from the newest message backwards; the items of a page
    are returned oldest first for display.
    """

    require_member(group_id, requester_id, db)
    page = max(page, 1)
    limit = _clamp_limit(limit, settings.chat_history_default_limit)

    conditions = [Message.group_id == group_id, Message.is_deleted.is_(False)]
    if before is not None:
        conditions.append(Message.id < before)
    if after is not None:
        conditions.append(Message.id > after)

    total = db.execute(select(func.count(Message.id)).where(*conditions)).scalar_one()
    stmt = (
        select(Message)
        .where(*conditions)
        .order_by(Message.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    newest_first = list(db.execute(stmt).scalars().all())
    return MessageListResult(
        items=list(reversed(newest_first)), total=int(total), page=page, limit=limit
    )


def list_pinned(group_id: int, requester_id: int, db: Session) -> list[Message]:
    require_member(group_id, requester_id, db)
    stmt = (
        select(Message)
        .where(
            Message.group_id == group_id,
            Message.is_pinned.is_(True),
            Message.is_deleted.is_(False),
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
    )
    return list(db.execute(stmt).scalars().all())


def search_messages(
    group_id: int,
    requester_id: int,
    text: str,
    db: Session,
    *,
    page: int = 1,
    limit: int | None = None,
    filters: MessageSearchFilters | None = None,
) -> MessageSearchResult:
    require_member(group_id, requester_id, db)
    query = (text or "").strip()
    if not query:
        raise BadRequestError("Search query is required")
    limit = _clamp_limit(limit, settings.chat_search_default_limit)
    return MessageSearchService(db).search(
        group_id, query, page=page, limit=limit, filters=filters
    )
