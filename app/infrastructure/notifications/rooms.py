"""Room naming and membership rules for real-time connections."""

from __future__ import annotations

from typing import Final

from app.domain.entities import User, Vendor

ADMIN_ROOM: Final[str] = "admin-all"
PREFERENCE_ROOMS: Final[dict[str, str]] = {
    "low_stock": "pref-low-stock",
    "new_order": "pref-new-orders",
    "system_alerts": "pref-system-updates",
}


def user_room(user_id: int) -> str:
    return f"user-{user_id}"


def role_room(role: str) -> str:
    return f"role-{role}"


def vendor_room(vendor_id: int) -> str:
    return f"vendor-{vendor_id}"


def vendor_status_room(status: str) -> str:
    return f"vendor-status-{status}"


def location_room(location: str) -> str:
    return f"location-{location}"


def type_room(notification_type: str) -> str:
    return f"type-{notification_type}"


def preference_room(preference: str) -> str | None:
    return PREFERENCE_ROOMS.get(preference)


def assign_rooms(user: User, vendor: Vendor | None = None) -> set[str]:
    """Return the rooms a connection for ``user`` belongs to.

    The result always holds one user room and one role room. Vendors add
    their vendor, vendor status and business location rooms, administrators
    the shared admin room. Preference rooms are only joined for flags set to ``True``.
    """

    rooms = {user_room(user.id), role_room(user.role)}
    if user.is_vendor() and vendor is not None:
        rooms.add(vendor_room(vendor.id))
        rooms.add(vendor_status_room(vendor.status))
        if vendor.location:
            rooms.add(location_room(vendor.location))
    if user.is_admin():
        rooms.add(ADMIN_ROOM)
    if user.location:
        rooms.add(location_room(user.location))
    preferences = user.notification_preferences or {}
    for preference, room in PREFERENCE_ROOMS.items():
        if preferences.get(preference) is True:
            rooms.add(room)
    return rooms


def room_type(room: str) -> str:
    """Classify ``room`` by its prefix for statistics."""

    if room == ADMIN_ROOM:
        return "admin"
    for prefix, kind in (
        ("user-", "user"),
        ("role-", "role"),
        ("vendor-status-", "vendor_status"),
        ("vendor-", "vendor"),
        ("location-", "location"),
        ("pref-", "preference"),
        ("type-", "type"),
    ):
        if room.startswith(prefix):
            return kind
    return "other"


__all__ = [
    "ADMIN_ROOM",
    "PREFERENCE_ROOMS",
    "assign_rooms",
    "location_room",
    "preference_room",
    "role_room",
    "room_type",
    "type_room",
    "user_room",
    "vendor_room",
    "vendor_status_room",
]
