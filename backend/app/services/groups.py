"""Group directory: creation, discovery and leader-managed settings."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.constants import (
    PAGE_MAX_LIMIT,
    TRENDING_DEFAULT_LIMIT,
    TRENDING_MAX_LIMIT,
    TRENDING_WINDOW_DAYS,
)
from app.core.errors import BadRequestError, ConflictError, ForbiddenError
from app.core.join_code import unique_join_code
from app.core.text import LIKE_ESCAPE, contains_pattern
from app.core.timeutils import as_utc, utcnow
from app.models import (
    Group,
    GroupCategory,
    GroupMember,
    GroupTag,
    GroupVisibility,
    MemberRole,
    MemberStatus,
)
from app.schemas import GroupCreate, GroupUpdate
from app.services.access import (
    LEADER_ONLY_DETAIL,
    GroupAccess,
    require_group,
    require_leader,
)
from app.services.membership import count_active_members
from app.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)
settings = get_settings()

PRIVATE_GROUP_DETAIL = "This group is private"


class GroupSort(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    MEMBER_COUNT = "member_count"
    TITLE = "title"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


_SORT_COLUMNS = {
    GroupSort.CREATED_AT: Group.created_at,
    GroupSort.UPDATED_AT: Group.updated_at,
    GroupSort.MEMBER_COUNT: Group.current_member_count,
    GroupSort.TITLE: Group.title,
}


@dataclass
class GroupView:
    """A group together with the viewer's role in it."""

    group: Group
    viewer_role: MemberRole | None = None

    @property
    def is_member(self) -> bool:
        return self.viewer_role is not None

    @property
    def join_code(self) -> str | None:
        return self.group.join_code if self.is_member else None


@dataclass(frozen=True)
class GroupFilters:
    """Optional filters accepted by :func:`list_groups`."""

    category: GroupCategory | None = None
    visibility: GroupVisibility | None = None
    search: str | None = None
    has_space: bool | None = None
    tags: tuple[str, ...] = ()
    min_goal_hours: int | None = None
    max_goal_hours: int | None = None
    active_since: datetime | None = None
    sort_by: GroupSort = GroupSort.CREATED_AT
    order: SortOrder = SortOrder.DESC
    page: int = 1
    limit: int | None = None


@dataclass
class GroupListResult:
    items: list[GroupView] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _join_code_taken(code: str, db: Session) -> bool:
    stmt = select(Group.id).where(Group.join_code == code)
    return db.execute(stmt).first() is not None


def _new_join_code(db: Session) -> str:
    return unique_join_code(lambda code: _join_code_taken(code, db))


def _viewer_role(access: GroupAccess) -> MemberRole | None:
    if access.is_leader:
        return MemberRole.LEADER
    if access.is_member and access.membership is not None:
        return access.membership.role
    return None


def _replace_tags(group: Group, names: list[str], db: Session) -> None:
    group.tags.clear()
    # old rows must be gone before new ones hit the unique constraint
    db.flush()
    group.tags.extend(GroupTag(name=name) for name in names)


def create_group(leader_id: int, payload: GroupCreate, db: Session) -> GroupView:
    """Create a group with its leader as the first active member."""

    def _create() -> Group:
        join_code: str | None = None
        if payload.visibility == GroupVisibility.PRIVATE:
            if payload.join_code is not None:
                if _join_code_taken(payload.join_code, db):
                    raise ConflictError("Join code is already in use")
                join_code = payload.join_code
            else:
                join_code = _new_join_code(db)

        group = Group(
            title=payload.title,
            description=payload.description,
            category=payload.category,
            visibility=payload.visibility,
            capacity=payload.capacity,
            current_member_count=1,
            leader_id=leader_id,
            goal_hours=payload.goal_hours,
            avatar_url=payload.avatar_url,
            cover_image_url=payload.cover_image_url,
            join_code=join_code,
            tags=[GroupTag(name=name) for name in payload.tags],
        )
        db.add(group)
        db.flush()
        db.add(
            GroupMember(
                group_id=group.id,
                user_id=leader_id,
                role=MemberRole.LEADER,
                status=MemberStatus.ACTIVE,
            )
        )
        return group

    group = run_in_transaction(
        db, _create, name="create_group", context={"leader_id": leader_id}
    )
    logger.info("User %s created group %s", leader_id, group.id)
    return GroupView(group, MemberRole.LEADER)


def update_group(
    group_id: int, requester_id: int, patch: GroupUpdate, db: Session
) -> GroupView:
    """Apply a partial update. Only the leader may change group settings."""

    changes = patch.model_dump(exclude_unset=True)

    def _update() -> Group:
        access = require_group(group_id, requester_id, db, lock=True)
        if not access.is_leader:
            raise ForbiddenError(LEADER_ONLY_DETAIL)
        group = access.group

        capacity = changes.get("capacity")
        if capacity is not None:
            active = count_active_members(group.id, db)
            if capacity < active:
                raise BadRequestError(
                    f"Capacity cannot be lower than the current member count ({active})"
                )

        for name, value in changes.items():
            if name != "tags":
                setattr(group, name, value)
        if "tags" in changes:
            _replace_tags(group, changes["tags"], db)

        if group.visibility == GroupVisibility.PRIVATE and group.join_code is None:
            group.join_code = _new_join_code(db)
        elif group.visibility == GroupVisibility.PUBLIC:
            group.join_code = None
        return group

    group = run_in_transaction(
        db,
        _update,
        name="update_group",
        context={"group_id": group_id, "requester_id": requester_id},
    )
    return GroupView(group, MemberRole.LEADER)


def delete_group(group_id: int, requester_id: int, db: Session) -> None:
    """Soft-delete the group and deactivate every membership in it."""

    def _delete() -> None:
        access = require_leader(group_id, requester_id, db, lock=True)
        group = access.group
        group.is_active = False
        group.current_member_count = 0
        db.execute(
            update(GroupMember)
            .where(GroupMember.group_id == group.id)
            .values(status=MemberStatus.INACTIVE)
        )

    run_in_transaction(
        db,
        _delete,
        name="delete_group",
        context={"group_id": group_id, "requester_id": requester_id},
    )
    logger.info("User %s deleted group %s", requester_id, group_id)


def get_group(group_id: int, requester_id: int | None, db: Session) -> GroupView:
    access = require_group(group_id, requester_id, db)
    if access.group.visibility == GroupVisibility.PRIVATE and not access.is_member:
        raise ForbiddenError(PRIVATE_GROUP_DETAIL)
    return GroupView(access.group, _viewer_role(access))


def regenerate_join_code(group_id: int, requester_id: int, db: Session) -> GroupView:
    def _regenerate() -> Group:
        access = require_leader(group_id, requester_id, db, lock=True)
        if access.group.visibility != GroupVisibility.PRIVATE:
            raise BadRequestError("Only private groups have a join code")
        access.group.join_code = _new_join_code(db)
        return access.group

    group = run_in_transaction(
        db,
        _regenerate,
        name="regenerate_join_code",
        context={"group_id": group_id, "requester_id": requester_id},
    )
    return GroupView(group, MemberRole.LEADER)


def _viewer_roles(
    groups: list[Group], requester_id: int | None, db: Session
) -> dict[int, MemberRole]:
    if requester_id is None or not groups:
        return {}
    stmt = select(GroupMember.group_id, GroupMember.role).where(
        GroupMember.user_id == requester_id,
        GroupMember.status == MemberStatus.ACTIVE,
        GroupMember.group_id.in_([group.id for group in groups]),
    )
    roles = {group_id: role for group_id, role in db.execute(stmt).all()}
    for group in groups:
        if group.leader_id == requester_id:
            roles[group.id] = MemberRole.LEADER
    return roles


def list_groups(
    filters: GroupFilters, requester_id: int | None, db: Session
) -> GroupListResult:
    """Page through active groups. Anonymous callers only see public groups."""

    page = max(filters.page, 1)
    limit = filters.limit or settings.group_list_default_limit
    limit = min(max(limit, 1), PAGE_MAX_LIMIT)

    conditions = [Group.is_active.is_(True)]
    visibility = filters.visibility if requester_id is not None else GroupVisibility.PUBLIC
    if visibility is not None:
        conditions.append(Group.visibility == visibility)
    if filters.category is not None:
        conditions.append(Group.category == filters.category)
    if filters.search and filters.search.strip():
        pattern = contains_pattern(filters.search.strip())
        conditions.append(
            or_(
                Group.title.ilike(pattern, escape=LIKE_ESCAPE),
                Group.description.ilike(pattern, escape=LIKE_ESCAPE),
                Group.tags.any(GroupTag.name.ilike(pattern, escape=LIKE_ESCAPE)),
            )
        )
    if filters.tags:
        wanted = [tag.strip().lower() for tag in filters.tags if tag.strip()]
        if wanted:
            conditions.append(Group.tags.any(func.lower(GroupTag.name).in_(wanted)))
    if filters.has_space is True:
        conditions.append(Group.current_member_count < Group.capacity)
    elif filters.has_space is False:
        conditions.append(Group.current_member_count >= Group.capacity)
    if filters.min_goal_hours is not None:
        conditions.append(Group.goal_hours >= filters.min_goal_hours)
    if filters.max_goal_hours is not None:
        conditions.append(Group.goal_hours <= filters.max_goal_hours)
    if filters.active_since is not None:
        conditions.append(Group.updated_at >= as_utc(filters.active_since))

    count_stmt = select(func.count()).select_from(select(Group.id).where(*conditions).subquery())
    total = int(db.execute(count_stmt).scalar_one())

    column = _SORT_COLUMNS[filters.sort_by]
    if filters.order == SortOrder.ASC:
        ordering = (column.asc(), Group.id.asc())
    else:
        ordering = (column.desc(), Group.id.desc())
    stmt = (
        select(Group)
        .where(*conditions)
        .order_by(*ordering)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    groups = list(db.execute(stmt).scalars().all())
    roles = _viewer_roles(groups, requester_id, db)

    return GroupListResult(
        items=[GroupView(group, roles.get(group.id)) for group in groups],
        total=total,
        page=page,
        limit=limit,
    )


def list_trending_groups(
    requester_id: int | None,
    db: Session,
    limit: int | None = None,
    *,
    now: datetime | None = None,
) -> list[GroupView]:
    """Public groups with recent activity, busiest first among equally recent ones."""

    limit = min(max(limit or TRENDING_DEFAULT_LIMIT, 1), TRENDING_MAX_LIMIT)
    since = as_utc(now or utcnow()) - timedelta(days=TRENDING_WINDOW_DAYS)
    stmt = (
        select(Group)
        .where(
            Group.is_active.is_(True),
            Group.visibility == GroupVisibility.PUBLIC,
            Group.updated_at >= since,
        )
        .order_by(Group.updated_at.desc(), Group.current_member_count.desc(), Group.id.desc())
        .limit(limit)
    )
    groups = list(db.execute(stmt).scalars().all())
    roles = _viewer_roles(groups, requester_id, db)
    return [GroupView(group, roles.get(group.id)) for group in groups]


def list_user_groups(user_id: int, db: Session) -> list[GroupView]:
    """Active groups the user currently belongs to, most recently joined first."""

    stmt = (
        select(Group, GroupMember.role)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(
            GroupMember.user_id == user_id,
            GroupMember.status == MemberStatus.ACTIVE,
            Group.is_active.is_(True),
        )
        .order_by(GroupMember.joined_at.desc(), Group.id.desc())
    )
    views: list[GroupView] = []
    for group, role in db.execute(stmt).all():
        if group.leader_id == user_id:
            role = MemberRole.LEADER
        views.append(GroupView(group, role))
    return views
