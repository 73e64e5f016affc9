from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.timeutils import utcnow
from app.models.base import Base
from app.models.enums import GroupCategory, GroupVisibility, MemberRole, MemberStatus


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class User(Base):
    """Application user."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    login: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(128))
    avatar_url: Mapped[str | None] = mapped_column(String(1024))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    memberships: Mapped[list["GroupMember"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    led_groups: Mapped[list["Group"]] = relationship(back_populates="leader")


class Group(Base):
    """Study group with a bounded number of active members."""

    __tablename__ = "groups"
    __table_args__ = (
        Index("ix_groups_category", "category"),
        Index("ix_groups_visibility", "visibility"),
        Index("ix_groups_is_active_created_at", "is_active", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500))
    category: Mapped[GroupCategory] = mapped_column(
        SAEnum(GroupCategory, name="group_category", values_callable=_enum_values),
        nullable=False,
    )
    visibility: Mapped[GroupVisibility] = mapped_column(
        SAEnum(GroupVisibility, name="group_visibility", values_callable=_enum_values),
        default=GroupVisibility.PUBLIC,
        nullable=False,
    )
    capacity: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    current_member_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    leader_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    goal_hours: Mapped[int | None] = mapped_column(Integer)
    avatar_url: Mapped[str | None] = mapped_column(String(1024))
    cover_image_url: Mapped[str | None] = mapped_column(String(1024))
    join_code: Mapped[str | None] = mapped_column(String(8), unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # every UPDATE of the row is guarded by "WHERE version = <loaded version>"
    __mapper_args__ = {"version_id_col": version}

    leader: Mapped[User] = relationship(back_populates="led_groups")
    tags: Mapped[list["GroupTag"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupTag.id",
        lazy="selectin",
    )
    members: Mapped[list["GroupMember"]] = relationship(
        back_populates="group", cascade="all, delete-orphan"
    )

    @property
    def tag_names(self) -> list[str]:
        return [tag.name for tag in self.tags]

    @property
    def has_space(self) -> bool:
        return self.current_member_count < self.capacity


class GroupTag(Base):
    """Free-form label used to discover groups."""

    __tablename__ = "group_tags"
    __table_args__ = (UniqueConstraint("group_id", "name", name="uq_group_tag"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    group: Mapped[Group] = relationship(back_populates="tags")


class GroupMember(Base):
    """Membership ledger entry, one per (group, user) pair."""

    __tablename__ = "group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
        Index("ix_group_members_group_status", "group_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[MemberRole] = mapped_column(
        SAEnum(MemberRole, name="member_role", values_callable=_enum_values),
        default=MemberRole.MEMBER,
        nullable=False,
    )
    status: Mapped[MemberStatus] = mapped_column(
        SAEnum(MemberStatus, name="member_status", values_callable=_enum_values),
        default=MemberStatus.ACTIVE,
        nullable=False,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    last_active: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    group: Mapped[Group] = relationship(back_populates="members")
    user: Mapped[User] = relationship(back_populates="memberships")
