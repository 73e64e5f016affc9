"""Derive per-request authorization decisions for groups."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError, NotFoundError
from app.models import Group, GroupMember, MemberRole, MemberStatus

GROUP_NOT_FOUND_DETAIL = "Group not found"
NOT_A_MEMBER_DETAIL = "You are not a member of this group"
LEADER_ONLY_DETAIL = "Only group leader can perform this action"
MANAGER_ONLY_DETAIL = "Only group leader or admins can perform this action"
BANNED_DETAIL = "You have been banned from this group"


class AccessLevel(str, Enum):
    """Outcome of classifying a user against a group."""

    GROUP_NOT_FOUND = "group_not_found"
    NON_MEMBER = "non_member"
    BANNED = "banned"
    MEMBER = "member"
    ADMIN = "admin"
    LEADER = "leader"


_ROLE_LEVELS: dict[MemberRole, AccessLevel] = {
    MemberRole.LEADER: AccessLevel.LEADER,
    MemberRole.ADMIN: AccessLevel.ADMIN,
    MemberRole.MEMBER: AccessLevel.MEMBER,
}

MEMBER_LEVELS = frozenset({AccessLevel.MEMBER, AccessLevel.ADMIN, AccessLevel.LEADER})
MANAGER_LEVELS = frozenset({AccessLevel.ADMIN, AccessLevel.LEADER})


@dataclass
class GroupAccess:
    level: AccessLevel
    group: Group | None = None
    membership: GroupMember | None = None

    @property
    def is_member(self) -> bool:
        return self.level in MEMBER_LEVELS

    @property
    def is_manager(self) -> bool:
        return self.level in MANAGER_LEVELS

    @property
    def is_leader(self) -> bool:
        return self.level is AccessLevel.LEADER


def load_group(group_id: int, db: Session, *, lock: bool = False) -> Group | None:
    """Fetch a group row, optionally taking a row lock for the transaction."""

    stmt = select(Group).where(Group.id == group_id)
    if lock:
        stmt = stmt.with_for_update()
    stmt = stmt.execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def get_membership(group_id: int, user_id: int, db: Session) -> GroupMember | None:
    """Return the ledger row for the pair regardless of its status."""

    stmt = (
        select(GroupMember)
        .where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalar_one_or_none()


def classify_access(
    group_id: int, user_id: int | None, db: Session, *, lock: bool = False
) -> GroupAccess:
    """Classify ``user_id`` against the group.

    Soft-deleted groups are reported as missing. The leader is recognised
    from ``Group.leader_id`` so a damaged ledger row cannot demote them.
    """

    group = load_group(group_id, db, lock=lock)
    if group is None or not group.is_active:
        return GroupAccess(AccessLevel.GROUP_NOT_FOUND)
    if user_id is None:
        return GroupAccess(AccessLevel.NON_MEMBER, group)

    membership = get_membership(group_id, user_id, db)
    if group.leader_id == user_id:
        return GroupAccess(AccessLevel.LEADER, group, membership)
    if membership is None or membership.status == MemberStatus.INACTIVE:
        return GroupAccess(AccessLevel.NON_MEMBER, group, membership)
    if membership.status == MemberStatus.BANNED:
        return GroupAccess(AccessLevel.BANNED, group, membership)
    return GroupAccess(_ROLE_LEVELS[membership.role], group, membership)


def require_group(
    group_id: int, user_id: int | None, db: Session, *, lock: bool = False
) -> GroupAccess:
    access = classify_access(group_id, user_id, db, lock=lock)
    if access.level is AccessLevel.GROUP_NOT_FOUND:
        raise NotFoundError(GROUP_NOT_FOUND_DETAIL)
    return access


def require_member(
    group_id: int, user_id: int, db: Session, *, lock: bool = False
) -> GroupAccess:
    """Ensure the user is an active member, raising 403 otherwise."""

    access = require_group(group_id, user_id, db, lock=lock)
    if access.level is AccessLevel.BANNED:
        raise ForbiddenError(BANNED_DETAIL)
    if not access.is_member:
        raise ForbiddenError(NOT_A_MEMBER_DETAIL)
    return access


def require_manager(
    group_id: int, user_id: int, db: Session, *, lock: bool = False
) -> GroupAccess:
    access = require_group(group_id, user_id, db, lock=lock)
    if not access.is_manager:
        raise ForbiddenError(MANAGER_ONLY_DETAIL)
    return access


def require_leader(
    group_id: int, user_id: int, db: Session, *, lock: bool = False
) -> GroupAccess:
    access = require_group(group_id, user_id, db, lock=lock)
    if not access.is_leader:
        raise ForbiddenError(LEADER_ONLY_DETAIL)
    return access
