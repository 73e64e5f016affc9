"""Unit tests for the membership ledger."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from app.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.models import Group, GroupMember, GroupVisibility, MemberRole, MemberStatus
from app.services import membership as membership_service


@pytest.fixture()
def leader(make_user):
    return make_user("leader")


def _active_rows(db_session, group_id: int) -> int:
    return db_session.execute(
        select(func.count(GroupMember.id)).where(
            GroupMember.group_id == group_id,
            GroupMember.status == MemberStatus.ACTIVE,
        )
    ).scalar_one()


def _counter(db_session, group_id: int) -> int:
    db_session.expire_all()
    return db_session.get(Group, group_id).current_member_count


def test_capacity_two_scenario(db_session, make_user, leader, make_group):
    """A capacity-2 group admits one joiner and reopens after they leave."""

    group = make_group(leader, capacity=2)
    first = make_user("first")
    second = make_user("second")

    membership_service.join_group(group.id, first.id, db_session)
    assert _counter(db_session, group.id) == 2

    with pytest.raises(ForbiddenError) as exc:
        membership_service.join_group(group.id, second.id, db_session)
    assert exc.value.detail == "Group has reached maximum capacity"

    membership_service.leave_group(group.id, first.id, db_session)
    assert _counter(db_session, group.id) == 1

    membership_service.join_group(group.id, second.id, db_session)
    assert _counter(db_session, group.id) == 2
    assert _active_rows(db_session, group.id) == 2


def test_private_group_requires_matching_code(db_session, make_user, leader, make_group):
    group = make_group(leader, visibility=GroupVisibility.PRIVATE, join_code="ABCD1234")
    user = make_user("joiner")

    with pytest.raises(BadRequestError) as exc:
        membership_service.join_group(group.id, user.id, db_session, join_code="WRONG123")
    assert exc.value.detail == "Invalid join code"

    with pytest.raises(BadRequestError):
        membership_service.join_group(group.id, user.id, db_session)

    membership = membership_service.join_group(group.id, user.id, db_session, join_code="abcd1234")
    assert membership.status == MemberStatus.ACTIVE


def test_join_twice_conflicts(db_session, make_user, leader, make_group):
    group = make_group(leader)
    user = make_user("joiner")
    membership_service.join_group(group.id, user.id, db_session)

    with pytest.raises(ConflictError) as exc:
        membership_service.join_group(group.id, user.id, db_session)

    assert exc.value.detail == "You are already a member of this group"
    assert _counter(db_session, group.id) == 2


def test_join_unknown_group_is_not_found(db_session, make_user):
    with pytest.raises(NotFoundError):
        membership_service.join_group(4242, make_user("joiner").id, db_session)


def test_rejoin_reuses_row_and_resets_role(db_session, make_user, leader, make_group):
    group = make_group(leader)
    user = make_user("returning")
    membership_service.join_group(group.id, user.id, db_session)
    membership_service.update_member_role(group.id, leader.id, user.id, MemberRole.ADMIN, db_session)
    membership_service.leave_group(group.id, user.id, db_session)

    membership = membership_service.join_group(group.id, user.id, db_session)

    assert membership.role == MemberRole.MEMBER
    rows = db_session.execute(
        select(func.count(GroupMember.id)).where(
            GroupMember.group_id == group.id, GroupMember.user_id == user.id
        )
    ).scalar_one()
    assert rows == 1


def test_leader_cannot_leave(db_session, leader, make_group):
    group = make_group(leader)

    with pytest.raises(BadRequestError) as exc:
        membership_service.leave_group(group.id, leader.id, db_session)

    assert "leader cannot leave" in exc.value.detail


def test_leave_without_membership_is_not_found(db_session, make_user, leader, make_group):
    group = make_group(leader)

    with pytest.raises(NotFoundError):
        membership_service.leave_group(group.id, make_user("stranger").id, db_session)


def test_add_member_by_admin_skips_join_code(db_session, make_user, leader, make_group):
    group = make_group(leader, visibility=GroupVisibility.PRIVATE)
    admin = make_user("admin")
    target = make_user("target")
    membership_service.add_member(group.id, leader.id, admin.id, db_session)
    membership_service.update_member_role(group.id, leader.id, admin.id, MemberRole.ADMIN, db_session)

    membership = membership_service.add_member(group.id, admin.id, target.id, db_session)

    assert membership.user_id == target.id
    assert _counter(db_session, group.id) == 3


def test_add_member_requires_manager_and_active_target(db_session, make_user, leader, make_group):
    group = make_group(leader)
    member = make_user("member")
    membership_service.join_group(group.id, member.id, db_session)

    with pytest.raises(ForbiddenError):
        membership_service.add_member(group.id, member.id, make_user("friend").id, db_session)
    with pytest.raises(NotFoundError):
        membership_service.add_member(group.id, leader.id, 9999, db_session)
    with pytest.raises(NotFoundError):
        membership_service.add_member(
            group.id, leader.id, make_user("dormant", is_active=False).id, db_session
        )


def test_add_member_errors_describe_the_target(db_session, make_user, leader, make_group):
    group = make_group(leader)
    member = make_user("member")
    troll = make_user("troll")
    membership_service.join_group(group.id, member.id, db_session)
    membership_service.ban_member(group.id, leader.id, troll.id, db_session)

    with pytest.raises(ConflictError) as exc:
        membership_service.add_member(group.id, leader.id, member.id, db_session)
    assert exc.value.detail == "User is already a member of this group"

    with pytest.raises(ForbiddenError) as exc:
        membership_service.add_member(group.id, leader.id, troll.id, db_session)
    assert exc.value.detail == "User is banned from this group"
    assert _counter(db_session, group.id) == 2


def test_remove_member_rules(db_session, make_user, leader, make_group):
    """Leaders cannot be removed and admins cannot remove other admins."""

    group = make_group(leader)
    admin = make_user("admin")
    other_admin = make_user("other")
    member = make_user("member")
    for user in (admin, other_admin, member):
        membership_service.join_group(group.id, user.id, db_session)
    for user in (admin, other_admin):
        membership_service.update_member_role(group.id, leader.id, user.id, MemberRole.ADMIN, db_session)

    with pytest.raises(BadRequestError) as exc:
        membership_service.remove_member(group.id, admin.id, leader.id, db_session)
    assert exc.value.detail == "Cannot remove the group leader"

    with pytest.raises(ForbiddenError):
        membership_service.remove_member(group.id, admin.id, other_admin.id, db_session)

    membership_service.remove_member(group.id, admin.id, member.id, db_session)
    assert _counter(db_session, group.id) == 3

    with pytest.raises(NotFoundError):
        membership_service.remove_member(group.id, admin.id, member.id, db_session)

    membership_service.remove_member(group.id, leader.id, other_admin.id, db_session)
    assert _counter(db_session, group.id) == _active_rows(db_session, group.id) == 2


def test_ban_blocks_rejoin_until_unbanned(db_session, make_user, leader, make_group):
    group = make_group(leader)
    user = make_user("troll")
    membership_service.join_group(group.id, user.id, db_session)

    membership_service.ban_member(group.id, leader.id, user.id, db_session)
    assert _counter(db_session, group.id) == 1

    with pytest.raises(ForbiddenError) as exc:
        membership_service.join_group(group.id, user.id, db_session)
    assert exc.value.detail == "You have been banned from this group"

    with pytest.raises(ConflictError):
        membership_service.ban_member(group.id, leader.id, user.id, db_session)

    membership_service.unban_member(group.id, leader.id, user.id, db_session)
    membership_service.join_group(group.id, user.id, db_session)
    assert _counter(db_session, group.id) == 2


def test_ban_user_who_never_joined(db_session, make_user, leader, make_group):
    group = make_group(leader)
    user = make_user("preemptive")

    membership = membership_service.ban_member(group.id, leader.id, user.id, db_session)

    assert membership.status == MemberStatus.BANNED
    assert _counter(db_session, group.id) == 1
    with pytest.raises(BadRequestError):
        membership_service.ban_member(group.id, leader.id, leader.id, db_session)


def test_update_member_role_is_leader_only(db_session, make_user, leader, make_group):
    group = make_group(leader)
    admin = make_user("admin")
    member = make_user("member")
    membership_service.join_group(group.id, admin.id, db_session)
    membership_service.join_group(group.id, member.id, db_session)
    membership_service.update_member_role(group.id, leader.id, admin.id, MemberRole.ADMIN, db_session)

    with pytest.raises(ForbiddenError):
        membership_service.update_member_role(
            group.id, admin.id, member.id, MemberRole.ADMIN, db_session
        )
    with pytest.raises(BadRequestError):
        membership_service.update_member_role(
            group.id, leader.id, leader.id, MemberRole.MEMBER, db_session
        )
    with pytest.raises(BadRequestError):
        membership_service.update_member_role(
            group.id, leader.id, member.id, MemberRole.LEADER, db_session
        )


def test_list_members_in_join_order(db_session, make_user, leader, make_group):
    group = make_group(leader)
    users = [make_user(login) for login in ("ana", "ben", "cid")]
    for user in users:
        membership_service.join_group(group.id, user.id, db_session)
    membership_service.leave_group(group.id, users[1].id, db_session)

    members = membership_service.list_members(group.id, None, db_session)

    assert [member.user_id for member in members] == [leader.id, users[0].id, users[2].id]


def test_list_members_of_private_group_requires_membership(db_session, make_user, leader, make_group):
    group = make_group(leader, visibility=GroupVisibility.PRIVATE)

    with pytest.raises(ForbiddenError):
        membership_service.list_members(group.id, make_user("outsider").id, db_session)
    assert len(membership_service.list_members(group.id, leader.id, db_session)) == 1


def test_member_count(db_session, make_user, leader, make_group):
    group = make_group(leader, capacity=3)
    membership_service.join_group(group.id, make_user("joiner").id, db_session)

    counts = membership_service.member_count(group.id, db_session)

    assert (counts.count, counts.capacity, counts.available_slots) == (2, 3, 1)


def test_counter_matches_ledger_after_mixed_operations(db_session, make_user, leader, make_group):
    group = make_group(leader, capacity=10)
    users = [make_user(f"user{index}") for index in range(6)]

    for user in users[:4]:
        membership_service.join_group(group.id, user.id, db_session)
    membership_service.add_member(group.id, leader.id, users[4].id, db_session)
    membership_service.leave_group(group.id, users[0].id, db_session)
    membership_service.remove_member(group.id, leader.id, users[1].id, db_session)
    membership_service.ban_member(group.id, leader.id, users[2].id, db_session)
    membership_service.join_group(group.id, users[5].id, db_session)
    membership_service.join_group(group.id, users[0].id, db_session)

    assert _counter(db_session, group.id) == _active_rows(db_session, group.id) == 5
