from decimal import Decimal
import pytest
from sqlalchemy.exc import InvalidRequestError, OperationalError
from core.exceptions import IllegalTransition, Unauthorized, NotFound, UpstreamFailure, ValidationError
from models.enums import OrderStatus, UserRole
from models.order_status_history import OrderStatusHistory
from models.orders import Order
from models.stored_files import StoredFile
from schemas.order_schemas import CreateOrderRequest, OrderFilters, OrderSortField, SortDirection
from services.order_service import OrderService
from tests.conftest import actor_for, make_user, order_payload


def history_of(session, order_id):
    return (
        session.query(OrderStatusHistory)
        .filter(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.id)
        .all()
    )


def break_queries_for(session, monkeypatch, model):
    """Make session.query(model) fail the way a dropped connection does."""
    real_query = session.query

    def query(*entities, **kwargs):
        if entities and entities[0] is model:
            raise OperationalError("SELECT", {}, Exception("connection reset"))
        return real_query(*entities, **kwargs)

    monkeypatch.setattr(session, "query", query)


# ---- order creation ----

def test_create_order_computes_totals(session, customer, material, design_file):
    request = CreateOrderRequest(**order_payload(material, design_file, quantity=3, unit_price="10.25"))

    order = OrderService.create_order(session, actor_for(customer), request)

    assert order.status == OrderStatus.PENDING
    assert order.order_number.startswith("LC-")
    assert order.subtotal == Decimal("30.75")
    assert order.tax == Decimal("0.00")
    assert order.shipping_cost == Decimal("5.00")
    assert order.total_amount == Decimal("35.75")
    assert order.items[0].total_price == Decimal("30.75")
    assert order.items[0].material_name == "Birch Plywood"
    assert order.shipping_address["city"] == "Cairo"
    assert history_of(session, order.id) == []


def test_create_order_rejects_mismatched_total(session, customer, material, design_file):
    payload = order_payload(material, design_file)
    payload["total_amount"] = "1.00"

    with pytest.raises(ValidationError) as exc_info:
        OrderService.create_order(session, actor_for(customer), CreateOrderRequest(**payload))

    assert "total_amount" in exc_info.value.detail
    assert session.query(Order).count() == 0


def test_create_order_rejects_mismatched_item_total(session, customer, material, design_file):
    payload = order_payload(material, design_file, quantity=2, unit_price="12.50")
    payload["items"][0]["total_price"] = "20.00"

    with pytest.raises(ValidationError):
        OrderService.create_order(session, actor_for(customer), CreateOrderRequest(**payload))


def test_create_order_rejects_unavailable_thickness(session, customer, material, design_file):
    payload = order_payload(material, design_file)
    payload["items"][0]["thickness"] = "4.5"

    with pytest.raises(ValidationError) as exc_info:
        OrderService.create_order(session, actor_for(customer), CreateOrderRequest(**payload))

    assert "4.5" in exc_info.value.detail


def test_create_order_rejects_someone_elses_design_file(session, other_customer, material, design_file):
    request = CreateOrderRequest(**order_payload(material, design_file))

    with pytest.raises(NotFound):
        OrderService.create_order(session, actor_for(other_customer), request)


def test_only_customers_place_orders(session, admin, material, design_file):
    request = CreateOrderRequest(**order_payload(material, design_file))

    with pytest.raises(Unauthorized):
        OrderService.create_order(session, actor_for(admin), request)


# ---- payment ----

def test_payment_approval(session, admin, submitted_order):
    """confirmation_pending -> in_production by an admin."""
    assert submitted_order.status == OrderStatus.CONFIRMATION_PENDING

    order = OrderService.approve_payment(session, submitted_order.id, actor_for(admin))

    assert order.status == OrderStatus.IN_PRODUCTION
    assert order.payment_confirmed_by == admin.id
    assert order.payment_confirmed_at is not None
    assert order.status_updated_by == admin.id

    history = history_of(session, order.id)
    assert [(h.old_status, h.new_status) for h in history] == [
        (OrderStatus.PENDING, OrderStatus.CONFIRMATION_PENDING),
        (OrderStatus.CONFIRMATION_PENDING, OrderStatus.IN_PRODUCTION),
    ]
    assert history[-1].changed_by == admin.id


def test_payment_rejection(session, admin, submitted_order):
    order = OrderService.reject_payment(session, submitted_order.id, actor_for(admin), "blurry proof")

    assert order.status == OrderStatus.PENDING
    assert order.payment_proof_file_id is None
    assert order.payment_proof_uploaded_at is None
    assert "Payment rejected: blurry proof" in order.operator_notes

    last = history_of(session, order.id)[-1]
    assert last.new_status == OrderStatus.PENDING
    assert last.notes == "blurry proof"


def test_payment_rejection_requires_reason(session, admin, submitted_order):
    with pytest.raises(ValidationError):
        OrderService.reject_payment(session, submitted_order.id, actor_for(admin), "   ")

    session.expire_all()
    order = OrderService.get_order(session, submitted_order.id)
    assert order.status == OrderStatus.CONFIRMATION_PENDING
    assert order.payment_proof_file_id is not None
    assert len(history_of(session, order.id)) == 1


def test_rejected_order_can_be_resubmitted(session, customer, admin, submitted_order, proof_file):
    OrderService.reject_payment(session, submitted_order.id, actor_for(admin), "wrong amount")

    order = OrderService.submit_payment_proof(session, submitted_order.id, actor_for(customer), proof_file.id)

    assert order.status == OrderStatus.CONFIRMATION_PENDING
    assert len(history_of(session, order.id)) == 3


def test_double_approval_is_illegal(session, admin, production_order):
    with pytest.raises(IllegalTransition):
        OrderService.approve_payment(session, production_order.id, actor_for(admin))

    assert len(history_of(session, production_order.id)) == 2


# ---- production ----

def test_full_production_run(session, admin, operator, assigned_order):
    op = actor_for(operator)

    OrderService.start_production(session, assigned_order.id, op, notes="sheet 1 of 2")
    OrderService.update_job_status(session, assigned_order.id, OrderStatus.POST_PROCESSING, op)
    OrderService.update_job_status(session, assigned_order.id, OrderStatus.QUALITY_CHECK, op)
    packed = OrderService.mark_ready_for_shipping(session, assigned_order.id, op)
    started_at = packed.production_started_at
    shipped = OrderService.ship_order(session, assigned_order.id, op, tracking_number="1Z999")
    delivered = OrderService.mark_delivered(session, assigned_order.id, actor_for(admin))

    assert delivered.status == OrderStatus.DELIVERED
    assert shipped.tracking_number == "1Z999"
    assert delivered.shipped_at is not None
    assert delivered.production_completed_at is not None
    # stamped once, on entering cutting
    assert delivered.production_started_at == started_at

    history = history_of(session, assigned_order.id)
    assert [h.new_status for h in history] == [
        OrderStatus.CONFIRMATION_PENDING,
        OrderStatus.IN_PRODUCTION,
        OrderStatus.CUTTING,
        OrderStatus.POST_PROCESSING,
        OrderStatus.QUALITY_CHECK,
        OrderStatus.PACKAGING,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
    ]
    for previous, current in zip(history, history[1:]):
        assert current.old_status == previous.new_status
    assert history[2].notes == "sheet 1 of 2"
    assert all(h.changed_by == operator.id for h in history[2:7])


def test_illegal_skip_writes_nothing(session, operator, assigned_order):
    op = actor_for(operator)
    OrderService.start_production(session, assigned_order.id, op)
    before = len(history_of(session, assigned_order.id))

    with pytest.raises(IllegalTransition):
        OrderService.update_job_status(session, assigned_order.id, OrderStatus.PACKAGING, op)

    session.expire_all()
    assert OrderService.get_order(session, assigned_order.id).status == OrderStatus.CUTTING
    assert len(history_of(session, assigned_order.id)) == before


def test_unassigned_operator_is_rejected(session, other_operator, assigned_order):
    before = len(history_of(session, assigned_order.id))

    with pytest.raises(Unauthorized):
        OrderService.start_production(session, assigned_order.id, actor_for(other_operator))

    session.expire_all()
    order = OrderService.get_order(session, assigned_order.id)
    assert order.status == OrderStatus.IN_PRODUCTION
    assert order.production_started_at is None
    assert len(history_of(session, assigned_order.id)) == before


def test_operator_cannot_approve_payment(session, operator, submitted_order):
    with pytest.raises(Unauthorized):
        OrderService.approve_payment(session, submitted_order.id, actor_for(operator))


# ---- cancellation ----

def test_cancellation_is_terminal(session, admin, pending_order):
    order = OrderService.cancel_order(session, pending_order.id, actor_for(admin), "customer request")

    assert order.status == OrderStatus.CANCELLED
    assert "Cancelled by admin: customer request" in order.operator_notes
    assert history_of(session, order.id)[-1].notes == "customer request"

    for target in OrderStatus:
        with pytest.raises(IllegalTransition):
            OrderService.transition(session, order.id, target, actor_for(admin), notes="again")


def test_cancel_while_awaiting_confirmation(session, admin, submitted_order):
    order = OrderService.cancel_order(session, submitted_order.id, actor_for(admin), "duplicate order")

    assert order.status == OrderStatus.CANCELLED


def test_cannot_cancel_once_in_production(session, admin, production_order):
    with pytest.raises(IllegalTransition):
        OrderService.cancel_order(session, production_order.id, actor_for(admin), "too late")


def test_transition_on_missing_order(session, admin):
    with pytest.raises(NotFound):
        OrderService.approve_payment(session, 9999, actor_for(admin))


def test_failed_commit_rolls_back_transition(session, monkeypatch, admin, submitted_order):
    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "commit", failing_commit)

    with pytest.raises(UpstreamFailure) as exc_info:
        OrderService.approve_payment(session, submitted_order.id, actor_for(admin))

    assert exc_info.value.status_code == 502
    assert exc_info.value.detail.startswith("Failed to update order status")
    assert "disk I/O error" in exc_info.value.detail

    order = session.get(Order, submitted_order.id)
    assert order.status == OrderStatus.CONFIRMATION_PENDING
    assert order.payment_confirmed_by is None
    assert [h.new_status for h in history_of(session, submitted_order.id)] == [OrderStatus.CONFIRMATION_PENDING]


# ---- assignment ----

def test_assign_operator(session, admin, operator, production_order):
    order = OrderService.assign_operator(session, production_order.id, operator.id, actor_for(admin))

    assert order.assigned_operator_id == operator.id
    assert order.assigned_at is not None
    assert order.operator_name == "Otto Operator"
    assert order.status == OrderStatus.IN_PRODUCTION
    # assignment is not a status change
    assert len(history_of(session, order.id)) == 2


def test_assign_requires_in_production(session, admin, operator, submitted_order):
    with pytest.raises(ValidationError):
        OrderService.assign_operator(session, submitted_order.id, operator.id, actor_for(admin))


def test_reassignment_needs_flag(session, admin, other_operator, assigned_order):
    with pytest.raises(ValidationError):
        OrderService.assign_operator(session, assigned_order.id, other_operator.id, actor_for(admin))

    order = OrderService.assign_operator(session, assigned_order.id, other_operator.id,
                                         actor_for(admin), reassign=True)
    assert order.assigned_operator_id == other_operator.id


def test_assign_rejects_non_operator(session, admin, customer, production_order):
    with pytest.raises(NotFound):
        OrderService.assign_operator(session, production_order.id, customer.id, actor_for(admin))


def test_only_admins_assign(session, operator, production_order):
    with pytest.raises(Unauthorized):
        OrderService.assign_operator(session, production_order.id, operator.id, actor_for(operator))


# ---- reads ----

def test_get_order_details(session, admin, submitted_order):
    details = OrderService.get_order_details(session, submitted_order.id)

    assert details["order"].id == submitted_order.id
    assert len(details["status_history"]) == 1
    assert details["payment_proof_url"].startswith("http://localhost:8000/files/download?token=")
    item = submitted_order.items[0]
    assert details["design_file_urls"][item.id] is not None


def test_get_order_details_degrades_when_file_missing(session, storage_dir, submitted_order):
    for path in storage_dir.rglob("*_panel.svg"):
        path.unlink()

    details = OrderService.get_order_details(session, submitted_order.id)

    assert list(details["design_file_urls"].values()) == [None]
    assert details["payment_proof_url"] is not None


def test_get_order_details_degrades_when_proof_lookup_fails(session, monkeypatch, caplog, submitted_order):
    break_queries_for(session, monkeypatch, StoredFile)

    details = OrderService.get_order_details(session, submitted_order.id)

    assert details["order"].id == submitted_order.id
    assert details["payment_proof_url"] is None
    assert len(details["status_history"]) == 1
    assert "Payment proof not available" in caplog.text


def test_history_degrades_to_empty_when_unavailable(session, monkeypatch, caplog, production_order):
    break_queries_for(session, monkeypatch, OrderStatusHistory)

    assert OrderService.get_status_history(session, production_order.id) == []
    assert "Status history not available" in caplog.text

    details = OrderService.get_order_details(session, production_order.id)
    assert details["status_history"] == []
    assert details["order"].status == OrderStatus.IN_PRODUCTION


def test_history_is_newest_first(session, admin, production_order):
    history = OrderService.get_status_history(session, production_order.id)

    assert [h.new_status for h in history] == [OrderStatus.IN_PRODUCTION, OrderStatus.CONFIRMATION_PENDING]
    assert history[0].changed_by_name == "Ada Admin"


def test_history_rows_are_append_only(session, admin, production_order):
    entry = history_of(session, production_order.id)[0]

    entry.notes = "rewritten"
    with pytest.raises(InvalidRequestError):
        session.commit()
    session.rollback()

    session.delete(entry)
    with pytest.raises(InvalidRequestError):
        session.commit()
    session.rollback()


def test_list_orders_filters_and_sorts(session, customer, material, design_file, pending_order):
    other_order = OrderService.create_order(
        session, actor_for(customer), CreateOrderRequest(**order_payload(material, design_file, quantity=10))
    )

    by_total = OrderService.list_orders(session, sort_field=OrderSortField.TOTAL_AMOUNT,
                                        sort_direction=SortDirection.ASC)
    assert [o.id for o in by_total] == [pending_order.id, other_order.id]

    found = OrderService.list_orders(session, OrderFilters(search="CARLA"))
    assert len(found) == 2

    found = OrderService.list_orders(session, OrderFilters(search=pending_order.order_number.lower()))
    assert [o.id for o in found] == [pending_order.id]

    assert OrderService.list_orders(session, OrderFilters(status=OrderStatus.SHIPPED)) == []
    assert len(OrderService.list_orders(session, limit=1)) == 1


def test_customer_cannot_see_other_customers_order(session, other_customer, pending_order):
    with pytest.raises(NotFound):
        OrderService.get_customer_order(session, other_customer.id, pending_order.id)

    assert OrderService.list_customer_orders(session, other_customer.id) == []


def test_get_operators_lists_active_operators(session, operator, other_operator):
    make_user(session, "retired.op@example.com", UserRole.OPERATOR, is_active=False)

    operators = OrderService.get_operators(session)

    assert {o.id for o in operators} == {operator.id, other_operator.id}
