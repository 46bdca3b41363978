"""Utility helpers to generate and dispatch marketplace domain notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from app.config import get_settings
from app.domain.entities import Notification, User, Vendor
from app.domain.entities.notification import (
    NOTIFICATION_TYPE_COMMISSION_PAYMENT,
    NOTIFICATION_TYPE_CUBIC_VOLUME_ALERT,
    NOTIFICATION_TYPE_LOW_STOCK,
    NOTIFICATION_TYPE_NEW_ORDER,
    NOTIFICATION_TYPE_ORDER_STATUS_UPDATE,
    NOTIFICATION_TYPE_PRODUCT_ARCHIVED,
    NOTIFICATION_TYPE_VENDOR_STATUS_CHANGE,
    PRIORITY_HIGH,
    PRIORITY_MEDIUM,
    PRIORITY_URGENT,
)
from app.domain.entities.user import ROLE_ADMIN, ROLE_SUPER_ADMIN
from app.domain.entities.vendor import (
    VENDOR_STATUS_ACTIVE,
    VENDOR_STATUS_INACTIVE,
    VENDOR_STATUS_PENDING,
    VENDOR_STATUS_SUSPENDED,
)
from app.infrastructure.repositories import UserRepository, VendorRepository

from .orchestrator import BroadcastResult, NotificationOrchestrator, NotificationRequest
from .targeting import TargetingCriteria

if TYPE_CHECKING:
    from .gateway import RealtimeGateway

logger = logging.getLogger(__name__)

CUBIC_WEIGHT_DIVISOR = 2500


@dataclass
class ProductSummary:
    """Fields of a catalogue product that notifications refer to."""

    id: int
    name: str
    vendor_id: int
    sku: str | None = None
    length_cm: float | None = None
    width_cm: float | None = None
    height_cm: float | None = None


@dataclass
class OrderSummary:
    id: int
    order_number: str
    vendor_id: int
    total_amount: float
    customer_id: int | None = None
    item_count: int | None = None


@dataclass
class EventNotifications:
    """Direct notifications and broadcasts produced by one domain event."""

    notifications: list[Notification]
    broadcast: BroadcastResult | None = None


def round_currency(amount: float | Decimal) -> float:
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def cubic_weight(product: ProductSummary) -> float | None:
    """Return the volumetric weight in kilograms, ``None`` without dimensions."""

    dimensions = (product.length_cm, product.width_cm, product.height_cm)
    if any(value is None or value <= 0 for value in dimensions):
        return None
    length, width, height = dimensions
    return round(length * width * height / CUBIC_WEIGHT_DIVISOR, 2)


def should_trigger_low_stock(
    current_stock: int, threshold: int, previous_stock: int | None = None
) -> bool:
    """Alert when stock crosses the threshold, or sits at it with no history."""

    if current_stock > threshold:
        return False
    if previous_stock is None:
        return True
    return previous_stock > threshold


def should_trigger_cubic_volume_alert(
    product: ProductSummary, threshold_kg: float | None = None
) -> bool:
    weight = cubic_weight(product)
    if weight is None:
        return False
    limit = threshold_kg if threshold_kg is not None else get_settings().cubic_volume_threshold_kg
    return weight > limit


def _vendor_with_user(session: Session, vendor_id: int) -> tuple[Vendor | None, User | None]:
    vendor = VendorRepository(session).get(vendor_id)
    if vendor is None:
        logger.warning("Vendor %s not found while building notification", vendor_id)
        return None, None
    return vendor, UserRepository(session).get(vendor.user_id)


async def notify_low_stock(
    session: Session,
    orchestrator: NotificationOrchestrator,
    *,
    product: ProductSummary,
    current_stock: int,
    threshold: int,
) -> EventNotifications:
    """Alert the vendor directly, then admins and low-stock subscribers once each."""

    vendor, vendor_user = _vendor_with_user(session, product.vendor_id)
    request = NotificationRequest(
        type=NOTIFICATION_TYPE_LOW_STOCK,
        title="Stock bajo",
        message=(
            f"El producto '{product.name}' tiene {current_stock} unidades disponibles "
            f"(umbral: {threshold})."
        ),
        metadata={
            "product_id": product.id,
            "product_name": product.name,
            "sku": product.sku,
            "vendor_id": product.vendor_id,
            "current_quantity": current_stock,
            "threshold": threshold,
        },
        priority=PRIORITY_URGENT if current_stock <= 0 else PRIORITY_HIGH,
        action_url=f"/products/{product.id}",
    )

    notifications: list[Notification] = []
    excluded: set[int] = set()
    if vendor_user is not None:
        notifications.append(await orchestrator.create_notification(vendor_user.id, request))
        excluded.add(vendor_user.id)

    broadcast = await orchestrator.broadcast_targeted(
        TargetingCriteria(roles=[ROLE_ADMIN], preferences=["low_stock"]),
        replace(request, email=False),
        exclude_user_ids=excluded,
    )
    return EventNotifications(notifications=notifications, broadcast=broadcast)


async def notify_new_order(
    session: Session,
    orchestrator: NotificationOrchestrator,
    *,
    order: OrderSummary,
) -> EventNotifications:
    vendor, vendor_user = _vendor_with_user(session, order.vendor_id)
    total = round_currency(order.total_amount)
    metadata: dict[str, Any] = {
        "order_id": order.id,
        "order_number": order.order_number,
        "vendor_id": order.vendor_id,
        "total_amount": total,
    }
    if order.item_count is not None:
        metadata["item_count"] = order.item_count
    request = NotificationRequest(
        type=NOTIFICATION_TYPE_NEW_ORDER,
        title="Nuevo pedido",
        message=f"Se recibió el pedido {order.order_number} por un total de ${total:.2f}.",
        metadata=metadata,
        priority=PRIORITY_HIGH,
        action_url=f"/orders/{order.id}",
    )

    notifications: list[Notification] = []
    excluded: set[int] = set()
    if vendor_user is not None:
        notifications.append(await orchestrator.create_notification(vendor_user.id, request))
        excluded.add(vendor_user.id)

    broadcast = await orchestrator.broadcast_targeted(
        TargetingCriteria(roles=[ROLE_ADMIN], preferences=["new_order"]),
        replace(request, email=False),
        exclude_user_ids=excluded,
    )
    return EventNotifications(notifications=notifications, broadcast=broadcast)


async def notify_order_status_update(
    session: Session,
    orchestrator: NotificationOrchestrator,
    *,
    order: OrderSummary,
    old_status: str,
    new_status: str,
) -> EventNotifications:
    """Inform the customer and the vendor that ``order`` changed status."""

    if old_status == new_status:
        return EventNotifications(notifications=[])

    _, vendor_user = _vendor_with_user(session, order.vendor_id)
    recipients = [order.customer_id, vendor_user.id if vendor_user else None]
    request = NotificationRequest(
        type=NOTIFICATION_TYPE_ORDER_STATUS_UPDATE,
        title="Estado del pedido actualizado",
        message=f"El pedido {order.order_number} pasó de '{old_status}' a '{new_status}'.",
        metadata={
            "order_id": order.id,
            "order_number": order.order_number,
            "old_status": old_status,
            "new_status": new_status,
        },
        action_url=f"/orders/{order.id}",
    )
    unique = list(dict.fromkeys(recipient for recipient in recipients if recipient))
    notifications = await orchestrator.create_bulk_notifications(unique, request)
    return EventNotifications(notifications=notifications)


async def notify_cubic_volume_alert(
    session: Session,
    orchestrator: NotificationOrchestrator,
    *,
    product: ProductSummary,
    threshold_kg: float | None = None,
) -> EventNotifications:
    """Warn super admins about products heavier than the volumetric limit."""

    limit = threshold_kg if threshold_kg is not None else get_settings().cubic_volume_threshold_kg
    weight = cubic_weight(product)
    if weight is None or weight <= limit:
        return EventNotifications(notifications=[])

    vendor = VendorRepository(session).get(product.vendor_id)
    vendor_name = vendor.business_name if vendor else f"#{product.vendor_id}"
    request = NotificationRequest(
        type=NOTIFICATION_TYPE_CUBIC_VOLUME_ALERT,
        title="Alerta de peso volumétrico",
        message=(
            f"El producto '{product.name}' de {vendor_name} tiene un peso volumétrico de "
            f"{weight:.2f} kg, superior al límite de {limit:g} kg."
        ),
        metadata={
            "product_id": product.id,
            "product_name": product.name,
            "vendor_id": product.vendor_id,
            "cubic_weight": weight,
            "threshold": limit,
            "dimensions": {
                "length": product.length_cm,
                "width": product.width_cm,
                "height": product.height_cm,
            },
        },
        priority=PRIORITY_HIGH,
        action_url=f"/products/{product.id}",
        email=False,
    )
    broadcast = await orchestrator.broadcast_to_role(ROLE_SUPER_ADMIN, request)
    return EventNotifications(notifications=[], broadcast=broadcast)


async def notify_product_archived(
    session: Session,
    orchestrator: NotificationOrchestrator,
    *,
    product: ProductSummary,
    reason: str | None = None,
) -> EventNotifications:
    _, vendor_user = _vendor_with_user(session, product.vendor_id)
    if vendor_user is None:
        return EventNotifications(notifications=[])

    message = f"El producto '{product.name}' fue archivado."
    if reason:
        message = f"{message} Motivo: {reason}"
    request = NotificationRequest(
        type=NOTIFICATION_TYPE_PRODUCT_ARCHIVED,
        title="Producto archivado",
        message=message,
        metadata={
            "product_id": product.id,
            "product_name": product.name,
            "sku": product.sku,
            "reason": reason,
        },
        action_url=f"/products/{product.id}",
    )
    notification = await orchestrator.create_notification(vendor_user.id, request)
    return EventNotifications(notifications=[notification])


_VENDOR_STATUS_MESSAGES = {
    VENDOR_STATUS_ACTIVE: ("Cuenta activada", "Tu cuenta de proveedor está activa. Ya puedes vender en la plataforma."),
    VENDOR_STATUS_SUSPENDED: ("Cuenta suspendida", "Tu cuenta de proveedor fue suspendida. Contacta al equipo de soporte."),
    VENDOR_STATUS_INACTIVE: ("Cuenta desactivada", "Tu cuenta de proveedor fue desactivada."),
    VENDOR_STATUS_PENDING: ("Cuenta en revisión", "Tu cuenta de proveedor está pendiente de aprobación."),
}


async def notify_vendor_status_change(
    session: Session,
    orchestrator: NotificationOrchestrator,
    *,
    vendor: Vendor,
    old_status: str,
    new_status: str,
    gateway: RealtimeGateway | None = None,
) -> EventNotifications:
    """Notify the vendor and move its open connections to the new status room."""

    if old_status == new_status:
        return EventNotifications(notifications=[])

    user = UserRepository(session).get(vendor.user_id)
    if user is None:
        logger.warning("Vendor %s has no owning user %s", vendor.id, vendor.user_id)
        return EventNotifications(notifications=[])

    if gateway is not None:
        await gateway.update_user_rooms(user, vendor)
    else:
        orchestrator.registry.refresh_rooms(user, vendor)

    title, message = _VENDOR_STATUS_MESSAGES.get(
        new_status,
        ("Estado de cuenta actualizado", f"El estado de tu cuenta cambió a '{new_status}'."),
    )
    request = NotificationRequest(
        type=NOTIFICATION_TYPE_VENDOR_STATUS_CHANGE,
        title=title,
        message=message,
        metadata={
            "vendor_id": vendor.id,
            "business_name": vendor.business_name,
            "old_status": old_status,
            "new_status": new_status,
        },
        priority=PRIORITY_HIGH if new_status == VENDOR_STATUS_SUSPENDED else PRIORITY_MEDIUM,
        force_email=new_status in (VENDOR_STATUS_ACTIVE, VENDOR_STATUS_SUSPENDED),
    )
    notification = await orchestrator.create_notification(user.id, request)
    return EventNotifications(notifications=[notification])


async def notify_commission_payment(
    session: Session,
    orchestrator: NotificationOrchestrator,
    *,
    vendor_id: int,
    amount: float,
    period: str,
    payment_reference: str | None = None,
) -> EventNotifications:
    _, vendor_user = _vendor_with_user(session, vendor_id)
    if vendor_user is None:
        return EventNotifications(notifications=[])

    rounded = round_currency(amount)
    request = NotificationRequest(
        type=NOTIFICATION_TYPE_COMMISSION_PAYMENT,
        title="Pago de comisiones",
        message=f"Se registró el pago de comisiones de {period} por ${rounded:.2f}.",
        metadata={
            "vendor_id": vendor_id,
            "amount": rounded,
            "period": period,
            "payment_reference": payment_reference,
        },
        force_email=True,
    )
    notification = await orchestrator.create_notification(vendor_user.id, request)
    return EventNotifications(notifications=[notification])


__all__ = [
    "EventNotifications",
    "OrderSummary",
    "ProductSummary",
    "cubic_weight",
    "notify_commission_payment",
    "notify_cubic_volume_alert",
    "notify_low_stock",
    "notify_new_order",
    "notify_order_status_update",
    "notify_product_archived",
    "notify_vendor_status_change",
    "round_currency",
    "should_trigger_cubic_volume_alert",
    "should_trigger_low_stock",
]
