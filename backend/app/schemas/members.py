"""Schemas for the group membership endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.models.enums import MemberRole, MemberStatus


class MemberRead(BaseModel):
    """Active member of a group."""

    user_id: int
    login: str
    display_name: str | None = None
    avatar_url: str | None = None
    role: MemberRole
    status: MemberStatus
    joined_at: datetime
    last_active: datetime


class MemberCountRead(BaseModel):
    count: int = Field(..., ge=0)
    capacity: int
    available_slots: int = Field(..., ge=0)


class MemberAddRequest(BaseModel):
    user_id: int = Field(..., description="Identifier of the user to add")


class MemberRoleUpdate(BaseModel):
    """Payload for promoting or demoting a member."""

    role: MemberRole

    @field_validator("role")
    @classmethod
    def not_leader(cls, value: MemberRole) -> MemberRole:
        if value == MemberRole.LEADER:
            raise ValueError("Leadership cannot be assigned through a role update")
        return value
