"""Effective notification preferences for a recipient."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping

PREFERENCE_FLAGS = (
    "email",
    "push",
    "low_stock",
    "new_order",
    "system_alerts",
    "commission_updates",
)


@dataclass(frozen=True)
class PreferenceSnapshot:
    """Merged account and vendor level notification switches."""

    email: bool = True
    push: bool = True
    low_stock: bool = True
    new_order: bool = True
    system_alerts: bool = True
    commission_updates: bool = True

    def allows(self, preference_key: str) -> bool:
        """Return whether the category toggle ``preference_key`` is enabled."""

        return bool(getattr(self, preference_key, True))

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


def _flag(source: Mapping[str, Any] | None, key: str) -> bool:
    if not source:
        return True
    value = source.get(key)
    return True if value is None else bool(value)


def merge_preferences(
    user_preferences: Mapping[str, Any] | None,
    vendor_settings: Mapping[str, Any] | None = None,
) -> PreferenceSnapshot:
    """Combine account preferences with vendor settings.

    Missing flags are treated as enabled. Vendor ``email`` and ``push``
    settings can only narrow what the account allows.
    """

    values = {key: _flag(user_preferences, key) for key in PREFERENCE_FLAGS}
    if vendor_settings is not None:
        values["email"] = values["email"] and _flag(vendor_settings, "email")
        values["push"] = values["push"] and _flag(vendor_settings, "push")
    return PreferenceSnapshot(**values)


__all__ = ["PREFERENCE_FLAGS", "PreferenceSnapshot", "merge_preferences"]
