"""Group directory API endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_optional_user
from app.core.constants import (
    GROUP_MAX_GOAL_HOURS,
    GROUP_MIN_GOAL_HOURS,
    PAGE_MAX_LIMIT,
    TRENDING_MAX_LIMIT,
)
from app.database import get_db
from app.models import GroupCategory, GroupVisibility, User
from app.schemas import GroupCreate, GroupPage, GroupRead, GroupUpdate
from app.services import groups as group_service
from app.services.groups import GroupFilters, GroupSort, GroupView, SortOrder

router = APIRouter(prefix="/groups", tags=["groups"])


def serialize_group(view: GroupView) -> GroupRead:
    group = view.group
    return GroupRead(
        id=group.id,
        title=group.title,
        description=group.description,
        category=group.category,
        visibility=group.visibility,
        capacity=group.capacity,
        current_member_count=group.current_member_count,
        available_slots=max(group.capacity - group.current_member_count, 0),
        leader_id=group.leader_id,
        goal_hours=group.goal_hours,
        tags=group.tag_names,
        avatar_url=group.avatar_url,
        cover_image_url=group.cover_image_url,
        join_code=view.join_code,
        is_active=group.is_active,
        is_member=view.is_member,
        member_role=view.viewer_role,
        created_at=group.created_at,
        updated_at=group.updated_at,
    )


def _split_tags(values: list[str] | None) -> tuple[str, ...]:
    tags: list[str] = []
    for value in values or []:
        tags.extend(part.strip() for part in value.split(",") if part.strip())
    return tuple(tags)


@router.post("", response_model=GroupRead, status_code=status.HTTP_201_CREATED)
def create_group(
    payload: GroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> GroupRead:
    """Create a group led by the current user."""

    return serialize_group(group_service.create_group(current_user.id, payload, db))


@router.get("", response_model=GroupPage)
def list_groups(
    category: GroupCategory | None = Query(default=None),
    visibility: GroupVisibility | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    has_space: bool | None = Query(default=None),
    tags: list[str] | None = Query(default=None, description="Match any of the tags"),
    min_goal_hours: int | None = Query(default=None, ge=GROUP_MIN_GOAL_HOURS, le=GROUP_MAX_GOAL_HOURS),
    max_goal_hours: int | None = Query(default=None, ge=GROUP_MIN_GOAL_HOURS, le=GROUP_MAX_GOAL_HOURS),
    active_since: datetime | None = Query(default=None, description="Only groups updated since then"),
    sort_by: GroupSort = Query(default=GroupSort.CREATED_AT),
    order: SortOrder = Query(default=SortOrder.DESC),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=PAGE_MAX_LIMIT),
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> GroupPage:
    """Browse active groups. Anonymous callers only see public groups."""

    filters = GroupFilters(
        category=category,
        visibility=visibility,
        search=search,
        has_space=has_space,
        tags=_split_tags(tags),
        min_goal_hours=min_goal_hours,
        max_goal_hours=max_goal_hours,
        active_since=active_since,
        sort_by=sort_by,
        order=order,
        page=page,
        limit=limit,
    )
    result = group_service.list_groups(
        filters, current_user.id if current_user is not None else None, db
    )
    return GroupPage(
        items=[serialize_group(view) for view in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=result.pages,
    )


@router.get("/mine", response_model=list[GroupRead])
def list_my_groups(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[GroupRead]:
    return [serialize_group(view) for view in group_service.list_user_groups(current_user.id, db)]


@router.get("/trending", response_model=list[GroupRead])
def list_trending_groups(
    limit: int | None = Query(default=None, ge=1, le=TRENDING_MAX_LIMIT),
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> list[GroupRead]:
    """Public groups active during the last week."""

    views = group_service.list_trending_groups(
        current_user.id if current_user is not None else None, db, limit
    )
    return [serialize_group(view) for view in views]


@router.get("/{group_id}", response_model=GroupRead)
def get_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> GroupRead:
    requester_id = current_user.id if current_user is not None else None
    return serialize_group(group_service.get_group(group_id, requester_id, db))


@router.patch("/{group_id}", response_model=GroupRead)
def update_group(
    group_id: int,
    payload: GroupUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> GroupRead:
    return serialize_group(group_service.update_group(group_id, current_user.id, payload, db))


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    group_service.delete_group(group_id, current_user.id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{group_id}/join-code", response_model=GroupRead)
def regenerate_join_code(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> GroupRead:
    """Issue a fresh join code for a private group."""

    return serialize_group(group_service.regenerate_join_code(group_id, current_user.id, db))
