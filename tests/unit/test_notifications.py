from types import SimpleNamespace
from fastapi import BackgroundTasks
from models.enums import OrderStatus
from services.email_service import notify_status_change, send_email


def make_order(status, **fields):
    defaults = dict(id=1, order_number="LC-20261019-123456", status=status,
                    customer_email="carla@example.com", tracking_number=None, tracking_url=None)
    defaults.update(fields)
    return SimpleNamespace(**defaults)


def test_rejection_email_carries_reason():
    bg = BackgroundTasks()

    notify_status_change(bg, make_order(OrderStatus.PENDING), reason="blurry proof")

    assert len(bg.tasks) == 1
    task = bg.tasks[0]
    assert task.func is send_email
    assert task.kwargs["to_email"] == "carla@example.com"
    assert "blurry proof" in task.kwargs["body"]


def test_shipping_email_carries_tracking():
    bg = BackgroundTasks()

    notify_status_change(bg, make_order(OrderStatus.SHIPPED, tracking_number="1Z999"))

    assert "1Z999" in bg.tasks[0].kwargs["body"]
    assert "shipped" in bg.tasks[0].kwargs["subject"]


def test_production_statuses_send_nothing():
    bg = BackgroundTasks()

    for status in (OrderStatus.IN_PRODUCTION, OrderStatus.CUTTING, OrderStatus.DELIVERED):
        notify_status_change(bg, make_order(status))

    assert bg.tasks == []


def test_missing_customer_email_is_skipped():
    bg = BackgroundTasks()

    notify_status_change(bg, make_order(OrderStatus.CANCELLED, customer_email=None), reason="duplicate")

    assert bg.tasks == []


def test_send_email_is_skipped_in_testing():
    # would raise on connect if it tried to reach an SMTP server
    send_email("carla@example.com", "subject", "<p>body</p>")
