import pytest

from app.application.use_cases.notifications import TargetingCriteria, TargetingResolver
from app.domain.exceptions import MissingTargetingCriteria
from app.infrastructure.repositories import UserRepository


def test_empty_criteria_is_rejected(db):
    with pytest.raises(MissingTargetingCriteria):
        TargetingResolver(db).resolve(TargetingCriteria())


def test_union_of_dimensions_is_deduplicated(db, make_user):
    admin = make_user("admin", notification_preferences={"low_stock": True})
    staff = make_user("staff", notification_preferences={"low_stock": True})
    make_user("staff")

    users = TargetingResolver(db).resolve(
        TargetingCriteria(user_ids=[admin.id], roles=["admin"], preferences=["low_stock"])
    )

    assert [user.id for user in users] == [admin.id, staff.id]


def test_vendor_role_only_reaches_active_vendors(db, make_vendor):
    active_user, _ = make_vendor("active")
    make_vendor("pending")
    make_vendor("suspended")

    users = TargetingResolver(db).resolve(TargetingCriteria(roles=["vendor"]))

    assert [user.id for user in users] == [active_user.id]


def test_inactive_users_are_never_targeted(db, make_user):
    inactive = make_user("admin", is_active=False)
    active = make_user("admin")

    resolver = TargetingResolver(db)

    assert [user.id for user in resolver.resolve(TargetingCriteria(roles=["admin"]))] == [active.id]
    assert resolver.by_ids([inactive.id]) == []


def test_valid_criteria_without_matches_returns_empty_list(db):
    assert TargetingResolver(db).resolve(TargetingCriteria(roles=["super_admin"])) == []


def test_everyone_combines_staff_and_active_vendors(db, make_user, make_vendor):
    staff = make_user("staff")
    admin = make_user("admin")
    vendor_user, _ = make_vendor("active")
    make_vendor("pending")

    users = TargetingResolver(db).resolve(TargetingCriteria(everyone=True))

    assert {user.id for user in users} == {staff.id, admin.id, vendor_user.id}


def test_location_dimension_covers_users_and_vendors(db, make_user, make_vendor):
    local = make_user("staff", location="lima")
    make_user("staff", location="cusco")
    vendor_user, _ = make_vendor("active", location="lima")

    users = TargetingResolver(db).resolve(TargetingCriteria(locations=["lima"]))

    assert {user.id for user in users} == {local.id, vendor_user.id}


def test_preference_query_matches_only_explicit_true(db, make_user):
    subscribed = make_user("staff", notification_preferences={"new_order": True})
    make_user("staff", notification_preferences={"new_order": False})
    make_user("staff", notification_preferences={"new_order": "yes"})
    make_user("staff", notification_preferences={"low_stock": True})
    make_user("staff", is_active=False, notification_preferences={"new_order": True})

    users = UserRepository(db).list_active_with_preference("new_order")

    assert [user.id for user in users] == [subscribed.id]
