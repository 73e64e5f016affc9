"""Membership ledger: joining, leaving and moderating group members.

Every mutation runs through :func:`run_in_transaction`. The group row is
re-read under a row lock, capacity is checked against a fresh count of
active ledger rows and the denormalized ``Group.current_member_count`` is
recomputed from the ledger before commit. The group's version column turns
a concurrent writer into a ``StaleDataError`` that is retried from scratch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.core.join_code import normalize_join_code
from app.core.timeutils import utcnow
from app.models import Group, GroupMember, GroupVisibility, MemberRole, MemberStatus, User
from app.services.access import (
    BANNED_DETAIL,
    NOT_A_MEMBER_DETAIL,
    get_membership,
    require_group,
    require_leader,
    require_manager,
)
from app.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)

GROUP_FULL_DETAIL = "Group has reached maximum capacity"
ALREADY_MEMBER_DETAIL = "You are already a member of this group"
INVALID_JOIN_CODE_DETAIL = "Invalid join code"
LEADER_CANNOT_LEAVE_DETAIL = (
    "Group leader cannot leave. Please delete the group or transfer leadership first"
)
CANNOT_REMOVE_LEADER_DETAIL = "Cannot remove the group leader"
TARGET_NOT_MEMBER_DETAIL = "User is not a member of this group"
TARGET_ALREADY_MEMBER_DETAIL = "User is already a member of this group"
TARGET_BANNED_DETAIL = "User is banned from this group"


@dataclass(frozen=True)
class MemberCount:
    count: int
    capacity: int

    @property
    def available_slots(self) -> int:
        return max(self.capacity - self.count, 0)


def count_active_members(group_id: int, db: Session) -> int:
    stmt = select(func.count(GroupMember.id)).where(
        GroupMember.group_id == group_id,
        GroupMember.status == MemberStatus.ACTIVE,
    )
    return int(db.execute(stmt).scalar_one())


def _sync_member_count(group: Group, db: Session) -> int:
    """Write the ledger's active count into the group counter."""

    db.flush()
    count = max(count_active_members(group.id, db), 0)
    group.current_member_count = count
    return count


def _admit_member(
    group: Group,
    user_id: int,
    db: Session,
    *,
    join_code: str | None = None,
    on_behalf: bool = False,
) -> GroupMember:
    """Activate ``user_id`` in ``group``.

    ``on_behalf`` marks a manager adding someone else: the join code is not
    checked and errors describe the target user rather than the caller.
    """

    membership = get_membership(group.id, user_id, db)

    if count_active_members(group.id, db) >= group.capacity:
        raise ForbiddenError(GROUP_FULL_DETAIL)
    if membership is not None and membership.status == MemberStatus.ACTIVE:
        raise ConflictError(TARGET_ALREADY_MEMBER_DETAIL if on_behalf else ALREADY_MEMBER_DETAIL)
    if membership is not None and membership.status == MemberStatus.BANNED:
        raise ForbiddenError(TARGET_BANNED_DETAIL if on_behalf else BANNED_DETAIL)
    if (
        not on_behalf
        and group.visibility == GroupVisibility.PRIVATE
        and normalize_join_code(join_code) != group.join_code
    ):
        raise BadRequestError(INVALID_JOIN_CODE_DETAIL)

    now = utcnow()
    if membership is None:
        membership = GroupMember(
            group_id=group.id,
            user_id=user_id,
            role=MemberRole.MEMBER,
            status=MemberStatus.ACTIVE,
            joined_at=now,
            last_active=now,
        )
        db.add(membership)
    else:
        # rows are reused across join cycles; a returning user starts over as a member
        membership.status = MemberStatus.ACTIVE
        membership.role = MemberRole.MEMBER
        membership.joined_at = now
        membership.last_active = now

    _sync_member_count(group, db)
    return membership


def join_group(
    group_id: int, user_id: int, db: Session, join_code: str | None = None
) -> GroupMember:
    """Add the user to the group, checking capacity, bans and the join code."""

    def _join() -> GroupMember:
        access = require_group(group_id, user_id, db, lock=True)
        return _admit_member(access.group, user_id, db, join_code=join_code)

    membership = run_in_transaction(
        db, _join, name="join_group", context={"group_id": group_id, "user_id": user_id}
    )
    logger.info("User %s joined group %s", user_id, group_id)
    return membership


def add_member(
    group_id: int, requester_id: int, target_user_id: int, db: Session
) -> GroupMember:
    """Let a leader or admin add an existing user without a join code."""

    def _add() -> GroupMember:
        access = require_manager(group_id, requester_id, db, lock=True)
        user = db.get(User, target_user_id)
        if user is None or not user.is_active:
            raise NotFoundError("User not found")
        return _admit_member(access.group, target_user_id, db, on_behalf=True)

    membership = run_in_transaction(
        db,
        _add,
        name="add_member",
        context={"group_id": group_id, "requester_id": requester_id, "user_id": target_user_id},
    )
    logger.info("User %s added user %s to group %s", requester_id, target_user_id, group_id)
    return membership


def leave_group(group_id: int, user_id: int, db: Session) -> None:
    def _leave() -> None:
        access = require_group(group_id, user_id, db, lock=True)
        if access.is_leader:
            raise BadRequestError(LEADER_CANNOT_LEAVE_DETAIL)
        membership = access.membership
        if membership is None or membership.status != MemberStatus.ACTIVE:
            raise NotFoundError(NOT_A_MEMBER_DETAIL)
        db.delete(membership)
        _sync_member_count(access.group, db)

    run_in_transaction(
        db, _leave, name="leave_group", context={"group_id": group_id, "user_id": user_id}
    )
    logger.info("User %s left group %s", user_id, group_id)


def remove_member(group_id: int, requester_id: int, target_user_id: int, db: Session) -> None:
    """Remove an active member. Admins may only remove regular members."""

    def _remove() -> None:
        access = require_manager(group_id, requester_id, db, lock=True)
        if target_user_id == access.group.leader_id:
            raise BadRequestError(CANNOT_REMOVE_LEADER_DETAIL)
        target = get_membership(group_id, target_user_id, db)
        if target is None or target.status != MemberStatus.ACTIVE:
            raise NotFoundError(TARGET_NOT_MEMBER_DETAIL)
        if not access.is_leader and target.role == MemberRole.ADMIN:
            raise ForbiddenError("Admins cannot remove other admins")
        db.delete(target)
        _sync_member_count(access.group, db)

    run_in_transaction(
        db,
        _remove,
        name="remove_member",
        context={"group_id": group_id, "requester_id": requester_id, "user_id": target_user_id},
    )
    logger.info("User %s removed user %s from group %s", requester_id, target_user_id, group_id)


def ban_member(group_id: int, requester_id: int, target_user_id: int, db: Session) -> GroupMember:
    """Block a user from the group, removing them first when active."""

    def _ban() -> GroupMember:
        access = require_manager(group_id, requester_id, db, lock=True)
        if target_user_id == access.group.leader_id:
            raise BadRequestError("Cannot ban the group leader")
        target = get_membership(group_id, target_user_id, db)
        if target is not None and target.status == MemberStatus.BANNED:
            raise ConflictError("User is already banned from this group")
        if (
            target is not None
            and target.status == MemberStatus.ACTIVE
            and target.role == MemberRole.ADMIN
            and not access.is_leader
        ):
            raise ForbiddenError("Admins cannot ban other admins")
        if target is None:
            if db.get(User, target_user_id) is None:
                raise NotFoundError("User not found")
            target = GroupMember(group_id=group_id, user_id=target_user_id)
            db.add(target)
        target.status = MemberStatus.BANNED
        target.role = MemberRole.MEMBER
        _sync_member_count(access.group, db)
        return target

    membership = run_in_transaction(
        db,
        _ban,
        name="ban_member",
        context={"group_id": group_id, "requester_id": requester_id, "user_id": target_user_id},
    )
    logger.info("User %s banned user %s from group %s", requester_id, target_user_id, group_id)
    return membership


def unban_member(group_id: int, requester_id: int, target_user_id: int, db: Session) -> None:
    def _unban() -> None:
        require_manager(group_id, requester_id, db, lock=True)
        target = get_membership(group_id, target_user_id, db)
        if target is None or target.status != MemberStatus.BANNED:
            raise NotFoundError("User is not banned from this group")
        db.delete(target)

    run_in_transaction(
        db,
        _unban,
        name="unban_member",
        context={"group_id": group_id, "requester_id": requester_id, "user_id": target_user_id},
    )


def update_member_role(
    group_id: int,
    requester_id: int,
    target_user_id: int,
    role: MemberRole,
    db: Session,
) -> GroupMember:
    """Promote a member to admin or demote an admin. Leader only."""

    if role == MemberRole.LEADER:
        raise BadRequestError("Leadership cannot be assigned through a role update")

    def _update() -> GroupMember:
        access = require_leader(group_id, requester_id, db, lock=True)
        if target_user_id == access.group.leader_id:
            raise BadRequestError("Cannot change the role of the group leader")
        target = get_membership(group_id, target_user_id, db)
        if target is None or target.status != MemberStatus.ACTIVE:
            raise NotFoundError(TARGET_NOT_MEMBER_DETAIL)
        target.role = role
        return target

    return run_in_transaction(
        db,
        _update,
        name="update_member_role",
        context={"group_id": group_id, "requester_id": requester_id, "user_id": target_user_id},
    )


def list_members(group_id: int, requester_id: int | None, db: Session) -> list[GroupMember]:
    """Active members in join order. Private rosters are visible to members only."""

    access = require_group(group_id, requester_id, db)
    if access.group.visibility == GroupVisibility.PRIVATE and not access.is_member:
        raise ForbiddenError(NOT_A_MEMBER_DETAIL)

    stmt = (
        select(GroupMember)
        .options(selectinload(GroupMember.user))
        .where(
            GroupMember.group_id == group_id,
            GroupMember.status == MemberStatus.ACTIVE,
        )
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    )
    return list(db.execute(stmt).scalars().all())


def member_count(group_id: int, db: Session) -> MemberCount:
    access = require_group(group_id, None, db)
    return MemberCount(count=access.group.current_member_count, capacity=access.group.capacity)
