from app.domain.entities import User, Vendor, merge_preferences
from app.infrastructure.notifications.rooms import (
    ADMIN_ROOM,
    assign_rooms,
    preference_room,
    room_type,
)


def _vendor_user(**overrides) -> User:
    values = {"id": 10, "name": "Ana", "email": "ana@example.com", "role": "vendor"}
    values.update(overrides)
    return User(**values)


def test_active_vendor_with_low_stock_preference_joins_expected_rooms():
    user = _vendor_user(notification_preferences={"low_stock": True, "new_order": False})
    vendor = Vendor(id=4, user_id=10, business_name="Tienda", status="active")

    assert assign_rooms(user, vendor) == {
        "user-10",
        "role-vendor",
        "vendor-4",
        "vendor-status-active",
        "pref-low-stock",
    }


def test_preference_rooms_require_explicit_true():
    user = _vendor_user(notification_preferences={"low_stock": "yes", "system_alerts": None})

    rooms = assign_rooms(user)

    assert rooms == {"user-10", "role-vendor"}


def test_admin_joins_shared_room_and_location():
    admin = User(id=1, name="Root", email="root@example.com", role="super_admin", location="lima")

    rooms = assign_rooms(admin)

    assert {"user-1", "role-super_admin", ADMIN_ROOM, "location-lima"} <= rooms
    assert not any(room.startswith("vendor-") for room in rooms)


def test_vendor_rooms_need_vendor_role():
    staff = User(id=2, name="Staff", email="staff@example.com", role="staff")
    vendor = Vendor(id=9, user_id=2, business_name="Ajena", status="active")

    assert assign_rooms(staff, vendor) == {"user-2", "role-staff"}


def test_room_type_classification():
    assert room_type("vendor-status-active") == "vendor_status"
    assert room_type("vendor-3") == "vendor"
    assert room_type("pref-new-orders") == "preference"
    assert room_type("type-low_stock") == "type"
    assert room_type(ADMIN_ROOM) == "admin"
    assert room_type("misc") == "other"
    assert preference_room("commission_updates") is None


def test_merge_preferences_defaults_to_enabled():
    snapshot = merge_preferences(None)

    assert snapshot.email and snapshot.push and snapshot.low_stock
    assert snapshot.allows("commission_updates")


def test_vendor_settings_only_narrow_channels():
    snapshot = merge_preferences(
        {"email": True, "push": False, "low_stock": False},
        {"email": False, "push": True, "low_stock": True},
    )

    assert snapshot.email is False
    assert snapshot.push is False
    assert snapshot.low_stock is False
    assert snapshot.new_order is True


def test_vendor_joins_business_location_room():
    user = _vendor_user()
    vendor = Vendor(id=4, user_id=10, business_name="Tienda", status="active", location="cusco")

    assert "location-cusco" in assign_rooms(user, vendor)
    assert "location-cusco" not in assign_rooms(user)
