from datetime import datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from core.config import settings
from core.exceptions import NotFound, Unauthorized, UpstreamFailure, ValidationError
from models.enums import OrderStatus, UserRole
from models.materials import Material
from models.order_items import OrderItem
from models.order_status_history import OrderStatusHistory
from models.orders import Order
from models.stored_files import StoredFile
from models.users import User
from schemas.order_schemas import CreateOrderRequest, OrderFilters, OrderSortField, SortDirection
from services.order_workflow import Actor, OrderWorkflow
from services.storage_service import StorageService
from utils.logger import get_logger
from utils.order_numbers import generate_order_number

logger = get_logger(__name__)

CENT = Decimal("0.01")

SORT_COLUMNS = {
    OrderSortField.CREATED_AT: Order.created_at,
    OrderSortField.ORDER_NUMBER: Order.order_number,
    OrderSortField.STATUS: Order.status,
    OrderSortField.TOTAL_AMOUNT: Order.total_amount,
    OrderSortField.CUSTOMER_NAME: User.full_name,
}


def to_cents(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class OrderService:

    # ---- reads ----

    @staticmethod
    def _order_query(db: Session):
        return db.query(Order).options(
            joinedload(Order.user),
            joinedload(Order.assigned_operator),
            selectinload(Order.items).joinedload(OrderItem.material),
        )

    @staticmethod
    def list_orders(db: Session, filters: Optional[OrderFilters] = None,
                    sort_field: OrderSortField = OrderSortField.CREATED_AT,
                    sort_direction: SortDirection = SortDirection.DESC,
                    limit: int = 50, offset: int = 0) -> list[Order]:
        """
        Filtered, sorted page of orders for the back-office list.

        search matches order number, customer name or customer email,
        case-insensitively. date_from/date_to are inclusive calendar days.
        """
        filters = filters or OrderFilters()
        query = OrderService._order_query(db).join(Order.user)

        if filters.status:
            query = query.filter(Order.status == filters.status)

        if filters.search and filters.search.strip():
            term = filters.search.strip().lower()
            query = query.filter(or_(
                func.lower(Order.order_number).contains(term, autoescape=True),
                func.lower(User.full_name).contains(term, autoescape=True),
                func.lower(User.email).contains(term, autoescape=True),
            ))

        if filters.date_from:
            query = query.filter(Order.created_at >= datetime.combine(filters.date_from, time.min))

        if filters.date_to:
            query = query.filter(Order.created_at < datetime.combine(filters.date_to + timedelta(days=1), time.min))

        column = SORT_COLUMNS[OrderSortField(sort_field)]
        ordering = column.asc() if SortDirection(sort_direction) == SortDirection.ASC else column.desc()
        query = query.order_by(ordering, Order.id.desc())

        try:
            return query.offset(offset).limit(limit).all()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch orders", extra={"error": str(e)}, exc_info=True)
            raise UpstreamFailure(f"Failed to fetch orders: {e}") from e

    @staticmethod
    def get_order(db: Session, order_id: int) -> Order:
        try:
            order = OrderService._order_query(db).filter(Order.id == order_id).one_or_none()
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Failed to fetch order: {e}") from e

        if not order:
            raise NotFound(f"Order {order_id} not found")
        return order

    @staticmethod
    def get_status_history(db: Session, order_id: int) -> list[OrderStatusHistory]:
        """Newest first. Degrades to [] so the order itself can still be shown."""
        try:
            return (
                db.query(OrderStatusHistory)
                .options(joinedload(OrderStatusHistory.changed_by_user))
                .filter(OrderStatusHistory.order_id == order_id)
                .order_by(OrderStatusHistory.created_at.desc(), OrderStatusHistory.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.warning(
                "Status history not available, continuing without it",
                extra={"order_id": order_id, "error": str(e)}
            )
            return []

    @staticmethod
    def signed_url_or_none(storage_path: Optional[str]) -> Optional[str]:
        if not storage_path:
            return None
        try:
            return StorageService.create_signed_url(storage_path)
        except HTTPException as e:
            logger.warning(
                "Could not create signed URL",
                extra={"storage_path": storage_path, "error": e.detail}
            )
            return None

    @staticmethod
    def get_order_details(db: Session, order_id: int) -> dict:
        """
        Order plus the ancillary data a detail view needs.

        Returns a dict with keys: order, status_history, design_file_urls
        (item id -> signed URL or None), payment_proof_url. Only a missing or
        unreadable order raises; everything else degrades.
        """
        order = OrderService.get_order(db, order_id)

        payment_proof_url = None
        if order.payment_proof_file_id:
            try:
                proof = db.query(StoredFile).filter(StoredFile.id == order.payment_proof_file_id).one_or_none()
            except SQLAlchemyError as e:
                logger.warning(
                    "Payment proof not available, continuing without it",
                    extra={"order_id": order_id, "error": str(e)}
                )
                proof = None
            payment_proof_url = OrderService.signed_url_or_none(proof.storage_path if proof else None)

        return {
            "order": order,
            "status_history": OrderService.get_status_history(db, order_id),
            "design_file_urls": {
                item.id: OrderService.signed_url_or_none(item.design_file_path) for item in order.items
            },
            "payment_proof_url": payment_proof_url,
        }

    @staticmethod
    def get_operators(db: Session) -> list[User]:
        try:
            return (
                db.query(User)
                .filter(User.role == UserRole.OPERATOR, User.is_active == True)
                .order_by(User.full_name, User.email)
                .all()
            )
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Failed to fetch operators: {e}") from e

    @staticmethod
    def list_customer_orders(db: Session, customer_id: int) -> list[Order]:
        return (
            OrderService._order_query(db)
            .filter(Order.user_id == customer_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    @staticmethod
    def get_customer_order(db: Session, customer_id: int, order_id: int) -> Order:
        order = OrderService.get_order(db, order_id)
        if order.user_id != customer_id:
            # same answer as a missing order, so ids of other customers don't leak
            raise NotFound(f"Order {order_id} not found")
        return order

    # ---- writes ----

    @staticmethod
    def _commit(db: Session, failure_message: str):
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(failure_message, extra={"error": str(e)}, exc_info=True)
            raise UpstreamFailure(f"{failure_message}: {e}") from e

    @staticmethod
    def _lock_order(db: Session, order_id: int) -> Order:
        """Load the order row FOR UPDATE; writes to one order are serialized here."""
        try:
            order = db.query(Order).filter(Order.id == order_id).with_for_update().one_or_none()
        except SQLAlchemyError as e:
            db.rollback()
            raise UpstreamFailure(f"Failed to load order: {e}") from e

        if not order:
            db.rollback()
            raise NotFound(f"Order {order_id} not found")
        return order

    @staticmethod
    def create_order(db: Session, customer: Actor, request: CreateOrderRequest) -> Order:
        """
        Place a storefront order in status pending.

        Item totals, subtotal, tax and total are computed here. A client-sent
        total_price or total_amount that disagrees is rejected rather than
        stored.
        """
        if customer.role != UserRole.CUSTOMER:
            raise Unauthorized("Only customers can place orders")

        items = []
        subtotal = Decimal("0")
        for index, line in enumerate(request.items):
            material = db.query(Material).filter(Material.id == line.material_id).one_or_none()
            if not material:
                raise NotFound(f"Material {line.material_id} not found")

            offered = {Decimal(str(t)) for t in (material.available_thicknesses or [])}
            if Decimal(str(line.thickness)) not in offered:
                raise ValidationError(
                    f"Thickness {line.thickness}mm is not available for {material.name}"
                )

            design_file = db.query(StoredFile).filter(
                StoredFile.storage_path == line.design_file_path,
                StoredFile.owner_id == customer.id
            ).one_or_none()
            if not design_file:
                raise NotFound(f"Design file {line.design_file_path} not found")

            unit_price = to_cents(line.unit_price)
            total_price = to_cents(unit_price * line.quantity)
            if line.total_price is not None and to_cents(line.total_price) != total_price:
                raise ValidationError(
                    f"Item {index + 1}: total_price must equal unit_price * quantity ({total_price})"
                )

            subtotal += total_price
            items.append(OrderItem(
                material_id=material.id,
                thickness=line.thickness,
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=total_price,
                design_file_name=line.design_file_name,
                design_file_path=line.design_file_path
            ))

        subtotal = to_cents(subtotal)
        tax = to_cents(subtotal * settings.TAX_RATE)
        shipping_cost = to_cents(request.shipping_cost)
        total_amount = subtotal + tax + shipping_cost

        if request.total_amount is not None and to_cents(request.total_amount) != total_amount:
            raise ValidationError(
                f"total_amount must equal subtotal + tax + shipping_cost ({total_amount})"
            )

        order_number = generate_order_number()
        while db.query(Order.id).filter(Order.order_number == order_number).first():
            order_number = generate_order_number()

        order = Order(
            order_number=order_number,
            user_id=customer.id,
            status=OrderStatus.PENDING,
            subtotal=subtotal,
            tax=tax,
            shipping_cost=shipping_cost,
            total_amount=total_amount,
            shipping_address=request.shipping_address.model_dump(),
            items=items
        )
        db.add(order)
        OrderService._commit(db, "Failed to create order")

        logger.info(
            "Order created",
            extra={"order_id": order.id, "order_number": order.order_number,
                   "user_id": customer.id, "total_amount": str(total_amount)}
        )
        return OrderService.get_order(db, order.id)

    @staticmethod
    def transition(db: Session, order_id: int, target: OrderStatus, actor: Actor,
                   notes: Optional[str] = None,
                   tracking_number: Optional[str] = None,
                   tracking_url: Optional[str] = None,
                   payment_proof_file_id: Optional[int] = None) -> Order:
        """
        Move an order to target status.

        The order row is locked, the move is checked against the transition
        table, then the status, its side-effect fields, the audit fields and
        one history row are committed together.

        Raises:
            NotFound, IllegalTransition, Unauthorized, ValidationError: nothing written
            UpstreamFailure: the commit failed and was rolled back
        """
        target = OrderStatus(target)
        order = OrderService._lock_order(db, order_id)
        old_status = OrderStatus(order.status)

        try:
            rule = OrderWorkflow.authorize(order, target, actor)
            entry = OrderWorkflow.apply(
                order, rule, actor,
                notes=notes,
                tracking_number=tracking_number,
                tracking_url=tracking_url,
                payment_proof_file_id=payment_proof_file_id
            )
        except HTTPException as e:
            db.rollback()
            logger.warning(
                "Order transition rejected",
                extra={"order_id": order_id, "actor_id": actor.id, "actor_role": actor.role.value,
                       "old_status": old_status.value, "new_status": target.value,
                       "error": e.detail}
            )
            raise

        db.add(entry)
        OrderService._commit(db, "Failed to update order status")

        logger.info(
            "Order status changed",
            extra={"order_id": order_id, "actor_id": actor.id, "transition": rule.name,
                   "old_status": old_status.value, "new_status": target.value}
        )
        return OrderService.get_order(db, order_id)

    @staticmethod
    def submit_payment_proof(db: Session, order_id: int, customer: Actor, file_id: int) -> Order:
        return OrderService.transition(db, order_id, OrderStatus.CONFIRMATION_PENDING, customer,
                                       payment_proof_file_id=file_id)

    @staticmethod
    def approve_payment(db: Session, order_id: int, admin: Actor) -> Order:
        return OrderService.transition(db, order_id, OrderStatus.IN_PRODUCTION, admin)

    @staticmethod
    def reject_payment(db: Session, order_id: int, admin: Actor, reason: str) -> Order:
        return OrderService.transition(db, order_id, OrderStatus.PENDING, admin, notes=reason)

    @staticmethod
    def cancel_order(db: Session, order_id: int, admin: Actor, reason: str) -> Order:
        return OrderService.transition(db, order_id, OrderStatus.CANCELLED, admin, notes=reason)

    @staticmethod
    def mark_delivered(db: Session, order_id: int, admin: Actor) -> Order:
        return OrderService.transition(db, order_id, OrderStatus.DELIVERED, admin)

    @staticmethod
    def start_production(db: Session, order_id: int, operator: Actor, notes: Optional[str] = None) -> Order:
        return OrderService.transition(db, order_id, OrderStatus.CUTTING, operator, notes=notes)

    @staticmethod
    def update_job_status(db: Session, order_id: int, target: OrderStatus, operator: Actor,
                          notes: Optional[str] = None) -> Order:
        return OrderService.transition(db, order_id, target, operator, notes=notes)

    @staticmethod
    def mark_ready_for_shipping(db: Session, order_id: int, operator: Actor,
                                notes: Optional[str] = None) -> Order:
        return OrderService.transition(db, order_id, OrderStatus.PACKAGING, operator, notes=notes)

    @staticmethod
    def ship_order(db: Session, order_id: int, operator: Actor,
                   tracking_number: Optional[str] = None, tracking_url: Optional[str] = None) -> Order:
        return OrderService.transition(db, order_id, OrderStatus.SHIPPED, operator,
                                       tracking_number=tracking_number, tracking_url=tracking_url)

    @staticmethod
    def assign_operator(db: Session, order_id: int, operator_id: int, admin: Actor,
                        reassign: bool = False) -> Order:
        """
        Hand an in-production order to an operator.

        Not a status transition: no history row is written. An order is
        assigned once; changing the operator needs reassign=True.
        """
        if admin.role != UserRole.ADMIN:
            raise Unauthorized("Only admins can assign operators")

        order = OrderService._lock_order(db, order_id)

        try:
            if OrderStatus(order.status) != OrderStatus.IN_PRODUCTION:
                raise ValidationError("Orders can only be assigned while in production")

            if order.assigned_operator_id is not None and not reassign:
                raise ValidationError("Order is already assigned; set reassign to change the operator")

            operator = db.query(User).filter(
                User.id == operator_id,
                User.role == UserRole.OPERATOR,
                User.is_active == True
            ).one_or_none()
            if not operator:
                raise NotFound(f"Operator {operator_id} not found")
        except HTTPException:
            db.rollback()
            raise

        now = datetime.now(timezone.utc)
        previous = order.assigned_operator_id
        order.assigned_operator_id = operator.id
        order.assigned_at = now
        order.status_updated_by = admin.id
        order.status_updated_at = now

        OrderService._commit(db, "Failed to assign operator")

        logger.info(
            "Order assigned to operator",
            extra={"order_id": order_id, "operator_id": operator_id,
                   "previous_operator_id": previous, "actor_id": admin.id}
        )
        return OrderService.get_order(db, order_id)
