"""Schemas describing study groups."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, conint, constr, field_validator, model_validator

from app.core.constants import (
    GROUP_DEFAULT_CAPACITY,
    GROUP_DESCRIPTION_MAX_LENGTH,
    GROUP_MAX_CAPACITY,
    GROUP_MAX_GOAL_HOURS,
    GROUP_MAX_TAGS,
    GROUP_MIN_CAPACITY,
    GROUP_MIN_GOAL_HOURS,
    GROUP_TAG_MAX_LENGTH,
    GROUP_TITLE_MAX_LENGTH,
    GROUP_TITLE_MIN_LENGTH,
)
from app.core.join_code import is_valid_join_code, normalize_join_code
from app.models.enums import GroupCategory, GroupVisibility, MemberRole

GroupTitle = constr(
    strip_whitespace=True, min_length=GROUP_TITLE_MIN_LENGTH, max_length=GROUP_TITLE_MAX_LENGTH
)
GroupDescription = constr(strip_whitespace=True, max_length=GROUP_DESCRIPTION_MAX_LENGTH)
GroupCapacity = conint(ge=GROUP_MIN_CAPACITY, le=GROUP_MAX_CAPACITY)
GoalHours = conint(ge=GROUP_MIN_GOAL_HOURS, le=GROUP_MAX_GOAL_HOURS)
TagName = constr(strip_whitespace=True, min_length=1, max_length=GROUP_TAG_MAX_LENGTH)
ImageUrl = constr(strip_whitespace=True, min_length=1, max_length=1024)


def _dedupe_tags(tags: list[str] | None) -> list[str] | None:
    if tags is None:
        return None
    seen: set[str] = set()
    unique: list[str] = []
    for tag in tags:
        key = tag.casefold()
        if key in seen:
            continue
        seen.add(key)
        unique.append(tag)
    if len(unique) > GROUP_MAX_TAGS:
        raise ValueError(f"A group can have at most {GROUP_MAX_TAGS} tags")
    return unique


def _check_join_code(value: str | None) -> str | None:
    code = normalize_join_code(value)
    if code is not None and not is_valid_join_code(code):
        raise ValueError("Join code must be 8 uppercase letters or digits")
    return code


class GroupCreate(BaseModel):
    """Payload for creating a study group."""

    title: GroupTitle = Field(..., description="Group title, 3-100 characters")
    description: GroupDescription | None = Field(default=None, description="Optional description")
    category: GroupCategory = Field(..., description="Exam or life stage of the group")
    visibility: GroupVisibility = Field(default=GroupVisibility.PUBLIC)
    capacity: GroupCapacity = Field(
        default=GROUP_DEFAULT_CAPACITY, description="Maximum number of active members"
    )
    goal_hours: GoalHours | None = Field(default=None, description="Daily study goal in hours")
    tags: list[TagName] = Field(default_factory=list)
    avatar_url: ImageUrl | None = None
    cover_image_url: ImageUrl | None = None
    join_code: str | None = Field(
        default=None,
        description="Optional code for private groups; generated when omitted",
    )

    @field_validator("tags")
    @classmethod
    def unique_tags(cls, value: list[str]) -> list[str]:
        return _dedupe_tags(value) or []

    @field_validator("join_code")
    @classmethod
    def valid_join_code(cls, value: str | None) -> str | None:
        return _check_join_code(value)

    @model_validator(mode="after")
    def drop_code_for_public_groups(self) -> "GroupCreate":
        if self.visibility == GroupVisibility.PUBLIC:
            self.join_code = None
        return self


class GroupUpdate(BaseModel):
    """Partial update of group settings; omitted fields stay unchanged."""

    title: GroupTitle | None = None
    description: GroupDescription | None = None
    category: GroupCategory | None = None
    visibility: GroupVisibility | None = None
    capacity: GroupCapacity | None = None
    goal_hours: GoalHours | None = None
    tags: list[TagName] | None = None
    avatar_url: ImageUrl | None = None
    cover_image_url: ImageUrl | None = None

    @field_validator("tags")
    @classmethod
    def unique_tags(cls, value: list[str] | None) -> list[str] | None:
        return _dedupe_tags(value)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "GroupUpdate":
        for name in ("title", "category", "visibility", "capacity", "tags"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class JoinGroupRequest(BaseModel):
    join_code: str | None = Field(default=None, description="Required for private groups")


class GroupRead(BaseModel):
    """Group as seen by a particular viewer."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None = None
    category: GroupCategory
    visibility: GroupVisibility
    capacity: int
    current_member_count: int
    available_slots: int
    leader_id: int
    goal_hours: int | None = None
    tags: list[str] = Field(default_factory=list)
    avatar_url: str | None = None
    cover_image_url: str | None = None
    join_code: str | None = Field(
        default=None, description="Only disclosed to the leader and active members"
    )
    is_active: bool
    is_member: bool = False
    member_role: MemberRole | None = None
    created_at: datetime
    updated_at: datetime


class GroupPage(BaseModel):
    """Offset-based page of groups."""

    items: list[GroupRead]
    total: int
    page: int
    limit: int
    pages: int
