"""Group membership API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_optional_user
from app.database import get_db
from app.models import GroupMember, User
from app.schemas import (
    JoinGroupRequest,
    MemberAddRequest,
    MemberCountRead,
    MemberRead,
    MemberRoleUpdate,
)
from app.services import membership as membership_service

router = APIRouter(prefix="/groups", tags=["members"])


def serialize_member(membership: GroupMember) -> MemberRead:
    user = membership.user
    return MemberRead(
        user_id=membership.user_id,
        login=user.login,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        role=membership.role,
        status=membership.status,
        joined_at=membership.joined_at,
        last_active=membership.last_active,
    )


@router.post("/{group_id}/join", response_model=MemberRead)
def join_group(
    group_id: int,
    payload: JoinGroupRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MemberRead:
    """Join a group. Private groups require their join code."""

    join_code = payload.join_code if payload is not None else None
    membership = membership_service.join_group(group_id, current_user.id, db, join_code=join_code)
    return serialize_member(membership)


@router.post("/{group_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
def leave_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    membership_service.leave_group(group_id, current_user.id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{group_id}/members", response_model=list[MemberRead])
def list_members(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> list[MemberRead]:
    requester_id = current_user.id if current_user is not None else None
    return [
        serialize_member(membership)
        for membership in membership_service.list_members(group_id, requester_id, db)
    ]


@router.post(
    "/{group_id}/members", response_model=MemberRead, status_code=status.HTTP_201_CREATED
)
def add_member(
    group_id: int,
    payload: MemberAddRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MemberRead:
    """Add a user to the group on behalf of its leader or an admin."""

    membership = membership_service.add_member(group_id, current_user.id, payload.user_id, db)
    return serialize_member(membership)


@router.patch("/{group_id}/members/{user_id}", response_model=MemberRead)
def update_member_role(
    group_id: int,
    user_id: int,
    payload: MemberRoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MemberRead:
    membership = membership_service.update_member_role(
        group_id, current_user.id, user_id, payload.role, db
    )
    return serialize_member(membership)


@router.delete("/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    membership_service.remove_member(group_id, current_user.id, user_id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{group_id}/bans/{user_id}", response_model=MemberRead)
def ban_member(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MemberRead:
    membership = membership_service.ban_member(group_id, current_user.id, user_id, db)
    return serialize_member(membership)


@router.delete("/{group_id}/bans/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def unban_member(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    membership_service.unban_member(group_id, current_user.id, user_id, db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{group_id}/member-count", response_model=MemberCountRead)
def member_count(group_id: int, db: Session = Depends(get_db)) -> MemberCountRead:
    counts = membership_service.member_count(group_id, db)
    return MemberCountRead(
        count=counts.count,
        capacity=counts.capacity,
        available_slots=counts.available_slots,
    )
