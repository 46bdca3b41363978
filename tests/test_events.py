"""Tests for the marketplace event triggers."""

from __future__ import annotations

import pytest

from app.application.use_cases.notifications import (
    OrderSummary,
    ProductSummary,
    cubic_weight,
    notify_commission_payment,
    notify_cubic_volume_alert,
    notify_new_order,
    notify_order_status_update,
    notify_product_archived,
    notify_vendor_status_change,
    round_currency,
    should_trigger_cubic_volume_alert,
    should_trigger_low_stock,
)

from support import connect


@pytest.mark.parametrize(
    ("current", "threshold", "previous", "expected"),
    [
        (5, 10, None, True),
        (10, 10, None, True),
        (11, 10, None, False),
        (5, 10, 12, True),
        (5, 10, 8, False),
        (0, 0, 1, True),
    ],
)
def test_should_trigger_low_stock(current, threshold, previous, expected):
    assert should_trigger_low_stock(current, threshold, previous) is expected


def test_cubic_weight_uses_volumetric_divisor():
    heavy = ProductSummary(id=1, name="Sofá", vendor_id=1, length_cm=50, width_cm=50, height_cm=40)
    light = ProductSummary(id=2, name="Caja", vendor_id=1, length_cm=30, width_cm=30, height_cm=30)
    unknown = ProductSummary(id=3, name="Sin medidas", vendor_id=1, length_cm=30, width_cm=None, height_cm=30)

    assert cubic_weight(heavy) == 40.0
    assert cubic_weight(light) == 10.8
    assert cubic_weight(unknown) is None
    assert should_trigger_cubic_volume_alert(heavy, 32) is True
    assert should_trigger_cubic_volume_alert(light, 32) is False
    assert should_trigger_cubic_volume_alert(unknown, 32) is False


def test_round_currency_rounds_half_up():
    assert round_currency(10.005) == 10.01
    assert round_currency(1234.565) == 1234.57
    assert round_currency(3) == 3.0


@pytest.mark.anyio
async def test_new_order_notifies_vendor_and_subscribed_admins(db, orchestrator, make_vendor, make_user):
    vendor_user, vendor = make_vendor("active")
    admin = make_user("admin")

    result = await notify_new_order(
        db,
        orchestrator,
        order=OrderSummary(id=77, order_number="ORD-77", vendor_id=vendor.id, total_amount=99.999, item_count=3),
    )

    notification = result.notifications[0]
    assert notification.recipient_id == vendor_user.id
    assert notification.category == "order"
    assert notification.metadata["total_amount"] == 100.0
    assert notification.metadata["order_number"] == "ORD-77"
    assert notification.action_url == "/orders/77"
    assert result.broadcast.recipient_ids == [admin.id]


@pytest.mark.anyio
async def test_order_status_update_deduplicates_recipients(db, orchestrator, make_vendor):
    vendor_user, vendor = make_vendor("active")
    order = OrderSummary(id=5, order_number="ORD-5", vendor_id=vendor.id, total_amount=10, customer_id=vendor_user.id)

    unchanged = await notify_order_status_update(
        db, orchestrator, order=order, old_status="paid", new_status="paid"
    )
    changed = await notify_order_status_update(
        db, orchestrator, order=order, old_status="paid", new_status="shipped"
    )

    assert unchanged.notifications == []
    assert [n.recipient_id for n in changed.notifications] == [vendor_user.id]
    assert changed.notifications[0].metadata["new_status"] == "shipped"


@pytest.mark.anyio
async def test_cubic_volume_alert_goes_to_super_admins(db, orchestrator, make_vendor, make_user):
    _, vendor = make_vendor("active", business_name="Muebles SA")
    super_admin = make_user("super_admin")
    make_user("admin")
    heavy = ProductSummary(id=9, name="Ropero", vendor_id=vendor.id, length_cm=100, width_cm=60, height_cm=50)
    light = ProductSummary(id=10, name="Silla", vendor_id=vendor.id, length_cm=10, width_cm=10, height_cm=10)

    skipped = await notify_cubic_volume_alert(db, orchestrator, product=light, threshold_kg=32)
    result = await notify_cubic_volume_alert(db, orchestrator, product=heavy, threshold_kg=32)

    assert skipped.broadcast is None
    assert result.broadcast.recipient_ids == [super_admin.id]
    assert result.broadcast.notifications_created == 1


@pytest.mark.anyio
async def test_product_archived_includes_reason(db, orchestrator, make_vendor):
    vendor_user, vendor = make_vendor("active")

    result = await notify_product_archived(
        db,
        orchestrator,
        product=ProductSummary(id=3, name="Lámpara", vendor_id=vendor.id),
        reason="sin stock desde hace 90 días",
    )

    assert result.notifications[0].recipient_id == vendor_user.id
    assert result.notifications[0].message.endswith("Motivo: sin stock desde hace 90 días")


@pytest.mark.anyio
async def test_vendor_activation_moves_rooms_and_forces_email(
    db, orchestrator, registry, make_vendor, email_channel
):
    vendor_user, vendor = make_vendor("pending")
    connection_id, _ = await connect(registry, vendor_user, vendor)
    vendor.status = "active"

    result = await notify_vendor_status_change(
        db, orchestrator, vendor=vendor, old_status="pending", new_status="active"
    )

    rooms = registry.transport.rooms_of(connection_id)
    assert "vendor-status-active" in rooms
    assert "vendor-status-pending" not in rooms
    assert result.notifications[0].title == "Cuenta activada"
    assert email_channel.calls == [(vendor_user.id, result.notifications[0].id)]


@pytest.mark.anyio
async def test_commission_payment_always_emails(db, orchestrator, make_vendor, email_channel):
    vendor_user, vendor = make_vendor("active")

    result = await notify_commission_payment(
        db, orchestrator, vendor_id=vendor.id, amount=1234.565, period="2024-05"
    )

    notification = result.notifications[0]
    assert notification.metadata["amount"] == 1234.57
    assert notification.category == "commission"
    assert notification.delivery.realtime.success is True
    assert notification.delivery.email.success is True
    assert email_channel.calls == [(vendor_user.id, notification.id)]
