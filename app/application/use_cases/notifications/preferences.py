"""Resolve the effective notification preferences of a recipient."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.domain.entities import PreferenceSnapshot, User, Vendor, merge_preferences
from app.infrastructure.repositories import UserRepository, VendorRepository


@dataclass(frozen=True)
class ResolvedRecipient:
    user: User | None
    vendor: Vendor | None
    preferences: PreferenceSnapshot


def resolve_recipient(session: Session, recipient_id: int) -> ResolvedRecipient:
    """Load ``recipient_id`` with its vendor account and merged preferences.

    Unknown recipients resolve to the all-enabled snapshot.
    """

    user = UserRepository(session).get(recipient_id)
    if user is None:
        return ResolvedRecipient(user=None, vendor=None, preferences=PreferenceSnapshot())
    vendor = VendorRepository(session).get_by_user_id(user.id) if user.is_vendor() else None
    snapshot = merge_preferences(
        user.notification_preferences,
        vendor.notification_settings if vendor is not None else None,
    )
    return ResolvedRecipient(user=user, vendor=vendor, preferences=snapshot)


__all__ = ["ResolvedRecipient", "resolve_recipient"]
