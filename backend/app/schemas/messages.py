"""Schemas related to chat messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, conint, constr, model_validator

from app.config import get_settings
from app.core.constants import MESSAGE_FILE_NAME_MAX_LENGTH, MESSAGE_FILE_URL_MAX_LENGTH
from app.models.enums import MessageType

settings = get_settings()

MessageContent = constr(
    strip_whitespace=True, min_length=1, max_length=settings.chat_message_max_length
)


class MessageCreate(BaseModel):
    """Payload for posting a message into a group."""

    content: MessageContent
    message_type: MessageType = Field(default=MessageType.TEXT)
    file_url: constr(strip_whitespace=True, min_length=1, max_length=MESSAGE_FILE_URL_MAX_LENGTH) | None = None
    file_name: constr(strip_whitespace=True, min_length=1, max_length=MESSAGE_FILE_NAME_MAX_LENGTH) | None = None
    file_size: conint(gt=0) | None = Field(default=None, description="Size in bytes")
    reply_to_id: int | None = Field(default=None, description="Message in the same group")

    @model_validator(mode="after")
    def file_metadata_needs_url(self) -> "MessageCreate":
        if (self.file_name is not None or self.file_size is not None) and self.file_url is None:
            raise ValueError("file_url is required when file metadata is supplied")
        return self


class MessageUpdate(BaseModel):
    content: MessageContent


class ReactionRequest(BaseModel):
    """Payload for toggling a reaction."""

    emoji: constr(strip_whitespace=True, min_length=1, max_length=32)


class MessageAuthor(BaseModel):
    """Lightweight author information for displaying messages."""

    id: int
    login: str
    display_name: str | None = None
    avatar_url: str | None = None


class MessageReactionSummary(BaseModel):
    """Aggregated reaction information for a message."""

    emoji: str = Field(..., description="Emoji character")
    count: int = Field(..., ge=1, description="Total reactions with the emoji")
    reacted: bool = Field(
        default=False,
        description="Indicates whether the current user added this reaction",
    )
    user_ids: list[int] = Field(
        default_factory=list,
        description="Identifiers of users who added this reaction",
    )


class MessageEditRead(BaseModel):
    content: str
    edited_at: datetime


class MessageRead(BaseModel):
    """Serialized representation of a chat message."""

    id: int
    group_id: int
    sender_id: int
    sender: MessageAuthor | None = None
    content: str
    message_type: MessageType
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    reply_to_id: int | None = None
    is_pinned: bool = False
    is_edited: bool = False
    is_deleted: bool = False
    deleted_at: datetime | None = None
    deleted_by_id: int | None = None
    reactions: list[MessageReactionSummary] = []
    edit_history: list[MessageEditRead] = []
    created_at: datetime
    updated_at: datetime


class MessagePage(BaseModel):
    """Offset page of messages, oldest first within the page."""

    items: list[MessageRead]
    total: int
    page: int
    limit: int
    has_more: bool = False


class MessageReader(BaseModel):
    user_id: int
    login: str
    display_name: str | None = None
    read_at: datetime


class ReadStatusRead(BaseModel):
    message_id: int
    read_count: int = Field(0, ge=0)
    readers: list[MessageReader] = []
