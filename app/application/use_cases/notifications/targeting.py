"""Recipient resolution for broadcast notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.orm import Session

from app.domain.entities import User
from app.domain.entities.user import ROLE_VENDOR
from app.domain.entities.vendor import VENDOR_STATUS_ACTIVE
from app.domain.exceptions import MissingTargetingCriteria
from app.infrastructure.repositories import UserRepository, VendorRepository


@dataclass
class TargetingCriteria:
    """Targeting dimensions of a broadcast; any non-empty dimension applies."""

    user_ids: list[int] = field(default_factory=list)
    roles: list[str] = field(default_factory=list)
    vendor_statuses: list[str] = field(default_factory=list)
    preferences: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)
    everyone: bool = False

    def is_empty(self) -> bool:
        return not (
            self.everyone
            or self.user_ids
            or self.roles
            or self.vendor_statuses
            or self.preferences
            or self.locations
        )


class TargetingResolver:
    """Resolve :class:`TargetingCriteria` into a deduplicated list of users."""

    def __init__(self, session: Session) -> None:
        self._users = UserRepository(session)
        self._vendors = VendorRepository(session)

    def resolve(self, criteria: TargetingCriteria) -> list[User]:
        """Return every user matched by ``criteria`` exactly once.

        Raises :class:`MissingTargetingCriteria` when no dimension is set. A
        valid criteria set that matches nobody returns an empty list.
        """

        if criteria.is_empty():
            raise MissingTargetingCriteria("At least one targeting dimension is required")

        matches: list[User] = []
        if criteria.user_ids:
            matches.extend(self.by_ids(criteria.user_ids))
        for role in criteria.roles:
            matches.extend(self.by_role(role))
        if criteria.vendor_statuses:
            matches.extend(self._vendors.list_users_by_status(criteria.vendor_statuses))
        for preference in criteria.preferences:
            matches.extend(self._users.list_active_with_preference(preference))
        if criteria.locations:
            matches.extend(self.by_locations(criteria.locations))
        if criteria.everyone:
            matches.extend(self.everyone())
        return deduplicate(matches)

    def by_ids(self, user_ids: Iterable[int]) -> list[User]:
        ids = list(user_ids)
        found = self._users.get_map_by_ids(ids)
        return [found[user_id] for user_id in ids if user_id in found and found[user_id].is_active]

    def by_role(self, role: str) -> list[User]:
        # Vendors are reached only while their business account is active.
        if role.lower() == ROLE_VENDOR:
            return self._vendors.list_users_by_status([VENDOR_STATUS_ACTIVE])
        return self._users.list_active_by_roles([role])

    def by_locations(self, locations: Iterable[str]) -> list[User]:
        values = list(locations)
        return self._users.list_active_by_locations(values) + self._vendors.list_users_by_location(values)

    def everyone(self) -> list[User]:
        return self._users.list_active(exclude_roles=[ROLE_VENDOR]) + self._vendors.list_users_by_status(
            [VENDOR_STATUS_ACTIVE]
        )


def deduplicate(users: Iterable[User]) -> list[User]:
    """Drop repeated ids keeping first-seen order; later records win."""

    unique: dict[int, User] = {}
    for user in users:
        unique[user.id] = user
    return list(unique.values())


__all__ = ["TargetingCriteria", "TargetingResolver", "deduplicate"]
