"""Database models package."""

from .base import Base
from .chat import Message, MessageEdit, MessageReaction, MessageReceipt
from .enums import GroupCategory, GroupVisibility, MemberRole, MemberStatus, MessageType
from .groups import Group, GroupMember, GroupTag, User

__all__ = [
    "Base",
    "User",
    "Group",
    "GroupTag",
    "GroupMember",
    "Message",
    "MessageEdit",
    "MessageReaction",
    "MessageReceipt",
    "GroupCategory",
    "GroupVisibility",
    "MemberRole",
    "MemberStatus",
    "MessageType",
]
