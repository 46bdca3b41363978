"""Notification orchestration, realtime gateway and inbox use cases."""

from .events import (
    EventNotifications,
    OrderSummary,
    ProductSummary,
    cubic_weight,
    notify_commission_payment,
    notify_cubic_volume_alert,
    notify_low_stock,
    notify_new_order,
    notify_order_status_update,
    notify_product_archived,
    notify_vendor_status_change,
    round_currency,
    should_trigger_cubic_volume_alert,
    should_trigger_low_stock,
)
from .gateway import RealtimeGateway
from .orchestrator import (
    BroadcastResult,
    NotificationOrchestrator,
    NotificationRequest,
    OrchestrationReport,
)
from .retry import RetryScheduler
from .targeting import TargetingCriteria, TargetingResolver

__all__ = [
    "BroadcastResult",
    "EventNotifications",
    "NotificationOrchestrator",
    "NotificationRequest",
    "OrchestrationReport",
    "OrderSummary",
    "ProductSummary",
    "RealtimeGateway",
    "RetryScheduler",
    "TargetingCriteria",
    "TargetingResolver",
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
