"""Persistence layer for user data."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.domain.entities import User
from app.infrastructure.models import UserModel


class UserRepository:
    """Provide CRUD operations for user entities."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, skip: int = 0, limit: int = 100) -> Sequence[User]:
        query = self.session.query(UserModel).order_by(UserModel.id).offset(skip).limit(limit)
        return [self._to_entity(model) for model in query.all()]

    def get(self, user_id: int) -> User | None:
        model = self.session.get(UserModel, user_id)
        return self._to_entity(model) if model else None

    def get_by_email(self, email: str) -> User | None:
        model = (
            self.session.query(UserModel)
            .filter(func.lower(UserModel.email) == email.lower())
            .first()
        )
        return self._to_entity(model) if model else None

    def create(self, user: User) -> User:
        model = UserModel()
        self._apply_entity_to_model(model, user)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def update(self, user: User) -> User:
        model = self.session.get(UserModel, user.id) if user.id is not None else None
        if not model:
            msg = f"User with id {user.id} not found"
            raise ValueError(msg)
        self._apply_entity_to_model(model, user)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def list_active_by_roles(self, roles: Sequence[str]) -> list[User]:
        if not roles:
            return []
        query = (
            self.session.query(UserModel)
            .filter(UserModel.is_active.is_(True))
            .filter(UserModel.role.in_([role.lower() for role in roles]))
            .order_by(UserModel.id)
        )
        return [self._to_entity(model) for model in query.all()]

    def list_active_by_locations(self, locations: Sequence[str]) -> list[User]:
        if not locations:
            return []
        query = (
            self.session.query(UserModel)
            .filter(UserModel.is_active.is_(True))
            .filter(UserModel.location.in_(list(locations)))
            .order_by(UserModel.id)
        )
        return [self._to_entity(model) for model in query.all()]

    def list_active_with_preference(self, preference: str) -> list[User]:
        """Return active users whose ``preference`` flag is explicitly enabled."""

        query = (
            self.session.query(UserModel)
            .filter(UserModel.is_active.is_(True))
            .filter(UserModel.notification_preferences[preference].as_boolean().is_(True))
            .order_by(UserModel.id)
        )
        return [self._to_entity(model) for model in query.all()]

    def list_active(self, *, exclude_roles: Sequence[str] = ()) -> list[User]:
        query = self.session.query(UserModel).filter(UserModel.is_active.is_(True))
        if exclude_roles:
            query = query.filter(UserModel.role.notin_(list(exclude_roles)))
        return [self._to_entity(model) for model in query.order_by(UserModel.id).all()]

    def get_map_by_ids(self, user_ids: Sequence[int]) -> dict[int, User]:
        if not user_ids:
            return {}

        unique_ids = {int(user_id) for user_id in user_ids}
        query = self.session.query(UserModel).filter(UserModel.id.in_(unique_ids))
        return {model.id: self._to_entity(model) for model in query.all()}

    @staticmethod
    def _to_entity(model: UserModel) -> User:
        return User(
            id=model.id,
            name=model.name,
            email=model.email,
            role=model.role,
            status=model.status,
            location=model.location,
            notification_preferences=dict(model.notification_preferences or {}),
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _apply_entity_to_model(model: UserModel, user: User) -> None:
        model.name = user.name
        model.email = user.email
        model.role = (user.role or "").lower()
        model.status = user.status
        model.location = user.location
        model.notification_preferences = dict(user.notification_preferences or {})
        model.is_active = user.is_active


__all__ = ["UserRepository"]
