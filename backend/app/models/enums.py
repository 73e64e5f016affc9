from __future__ import annotations

from enum import Enum


class GroupCategory(str, Enum):
    """Exam or life stage a study group is organised around."""

    JEE = "JEE"
    NEET = "NEET"
    COLLEGE = "College"
    WORKING = "Working"
    OTHER = "Other"


class GroupVisibility(str, Enum):
    """Whether a group can be discovered and joined without a code."""

    PUBLIC = "public"
    PRIVATE = "private"


class MemberRole(str, Enum):
    """Roles that a user can have inside a group."""

    LEADER = "leader"
    ADMIN = "admin"
    MEMBER = "member"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BANNED = "banned"


class MessageType(str, Enum):
    """Kinds of content a chat message can carry."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    VOICE = "voice"
    VIDEO = "video"
    SYSTEM = "system"
