"""Persistence layer for vendor data."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.orm import Session

from app.domain.entities import User, Vendor
from app.infrastructure.models import VendorModel
from app.infrastructure.repositories.user_repository import UserRepository


class VendorRepository:
    """Provide lookups over vendor business accounts."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, vendor_id: int) -> Vendor | None:
        model = self.session.get(VendorModel, vendor_id)
        return self._to_entity(model) if model else None

    def get_by_user_id(self, user_id: int) -> Vendor | None:
        model = (
            self.session.query(VendorModel)
            .filter(VendorModel.user_id == user_id)
            .first()
        )
        return self._to_entity(model) if model else None

    def create(self, vendor: Vendor) -> Vendor:
        model = VendorModel()
        self._apply_entity_to_model(model, vendor)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def update(self, vendor: Vendor) -> Vendor:
        model = self.session.get(VendorModel, vendor.id) if vendor.id is not None else None
        if not model:
            msg = f"Vendor with id {vendor.id} not found"
            raise ValueError(msg)
        self._apply_entity_to_model(model, vendor)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def list_users_by_status(self, statuses: Sequence[str]) -> list[User]:
        """Return the active owning users of vendors in any of ``statuses``."""

        if not statuses:
            return []
        query = (
            self.session.query(VendorModel)
            .filter(VendorModel.status.in_(list(statuses)))
            .order_by(VendorModel.id)
        )
        return [
            UserRepository._to_entity(model.user)
            for model in query.all()
            if model.user is not None and model.user.is_active
        ]

    def list_users_by_location(self, locations: Sequence[str]) -> list[User]:
        if not locations:
            return []
        query = (
            self.session.query(VendorModel)
            .filter(VendorModel.location.in_(list(locations)))
            .order_by(VendorModel.id)
        )
        return [
            UserRepository._to_entity(model.user)
            for model in query.all()
            if model.user is not None and model.user.is_active
        ]

    @staticmethod
    def _to_entity(model: VendorModel) -> Vendor:
        return Vendor(
            id=model.id,
            user_id=model.user_id,
            business_name=model.business_name,
            email=model.email,
            status=model.status,
            location=model.location,
            notification_settings=dict(model.notification_settings or {}),
            created_at=model.created_at,
        )

    @staticmethod
    def _apply_entity_to_model(model: VendorModel, vendor: Vendor) -> None:
        model.user_id = vendor.user_id
        model.business_name = vendor.business_name
        model.email = vendor.email
        model.status = vendor.status
        model.location = vendor.location
        model.notification_settings = dict(vendor.notification_settings or {})


__all__ = ["VendorRepository"]
