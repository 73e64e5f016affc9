"""Pydantic schemas for API payloads."""

from .auth import LoginRequest, Token, UserCreate, UserRead
from .groups import GroupCreate, GroupPage, GroupRead, GroupUpdate, JoinGroupRequest
from .members import MemberAddRequest, MemberCountRead, MemberRead, MemberRoleUpdate
from .messages import (
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

__all__ = [
    "LoginRequest",
    "Token",
    "UserCreate",
    "UserRead",
    "GroupCreate",
    "GroupUpdate",
    "GroupRead",
    "GroupPage",
    "JoinGroupRequest",
    "MemberRead",
    "MemberCountRead",
    "MemberAddRequest",
    "MemberRoleUpdate",
    "MessageAuthor",
    "MessageCreate",
    "MessageUpdate",
    "MessageRead",
    "MessagePage",
    "MessageEditRead",
    "MessageReactionSummary",
    "MessageReader",
    "ReactionRequest",
    "ReadStatusRead",
]
