"""
Order status state machine.

TRANSITIONS is the single definition of which status changes are legal, who
may trigger each one and what each one records. The admin and operator
routers both go through OrderWorkflow; neither compares status strings on its
own.

    pending -> confirmation_pending -> in_production -> cutting
      -> post_processing -> quality_check -> packaging -> shipped -> delivered

cancelled is reachable from pending and confirmation_pending only. cancelled
and delivered are terminal. Nothing moves backwards except the admin's payment
rejection (confirmation_pending -> pending).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import NamedTuple, Optional

from core.exceptions import IllegalTransition, Unauthorized, ValidationError
from models.enums import OrderStatus, UserRole
from models.order_status_history import OrderStatusHistory


class Actor(NamedTuple):
    id: int
    role: UserRole

    @classmethod
    def from_claims(cls, user: dict) -> "Actor":
        """Build an actor from the claims dict returned by utils.deps.get_current_user."""
        return cls(id=user["user_id"], role=UserRole(user["user_role"]))


@dataclass(frozen=True)
class Transition:
    source: OrderStatus
    target: OrderStatus
    actor: UserRole
    name: str
    requires_assignment: bool = False
    requires_ownership: bool = False
    stamps: tuple = ()
    note_prefix: Optional[str] = None  # set => a non-blank reason is mandatory
    confirms_payment: bool = False
    clears_payment_proof: bool = False
    accepts_tracking: bool = False
    accepts_payment_proof: bool = False


_RULES = (
    Transition(OrderStatus.PENDING, OrderStatus.CONFIRMATION_PENDING, UserRole.CUSTOMER,
               "submit_payment_proof", requires_ownership=True,
               stamps=("payment_proof_uploaded_at",), accepts_payment_proof=True),
    Transition(OrderStatus.CONFIRMATION_PENDING, OrderStatus.IN_PRODUCTION, UserRole.ADMIN,
               "approve_payment", stamps=("payment_confirmed_at",), confirms_payment=True),
    Transition(OrderStatus.CONFIRMATION_PENDING, OrderStatus.PENDING, UserRole.ADMIN,
               "reject_payment", note_prefix="Payment rejected: ", clears_payment_proof=True),
    Transition(OrderStatus.PENDING, OrderStatus.CANCELLED, UserRole.ADMIN,
               "cancel", note_prefix="Cancelled by admin: "),
    Transition(OrderStatus.CONFIRMATION_PENDING, OrderStatus.CANCELLED, UserRole.ADMIN,
               "cancel", note_prefix="Cancelled by admin: "),
    Transition(OrderStatus.IN_PRODUCTION, OrderStatus.CUTTING, UserRole.OPERATOR,
               "start_production", requires_assignment=True, stamps=("production_started_at",)),
    Transition(OrderStatus.CUTTING, OrderStatus.POST_PROCESSING, UserRole.OPERATOR,
               "finish_cutting", requires_assignment=True),
    Transition(OrderStatus.POST_PROCESSING, OrderStatus.QUALITY_CHECK, UserRole.OPERATOR,
               "start_quality_check", requires_assignment=True),
    Transition(OrderStatus.QUALITY_CHECK, OrderStatus.PACKAGING, UserRole.OPERATOR,
               "mark_ready_for_shipping", requires_assignment=True, stamps=("production_completed_at",)),
    Transition(OrderStatus.PACKAGING, OrderStatus.SHIPPED, UserRole.OPERATOR,
               "ship", requires_assignment=True, stamps=("shipped_at",), accepts_tracking=True),
    Transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED, UserRole.ADMIN,
               "mark_delivered"),
)

TRANSITIONS = {(rule.source, rule.target): rule for rule in _RULES}

# Prefixes of the reason lines that transitions append to operator_notes.
REASON_PREFIXES = tuple(sorted({rule.note_prefix for rule in _RULES if rule.note_prefix}))

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Statuses in which an assigned operator works on the order.
PRODUCTION_STATUSES = (
    OrderStatus.IN_PRODUCTION,
    OrderStatus.CUTTING,
    OrderStatus.POST_PROCESSING,
    OrderStatus.QUALITY_CHECK,
    OrderStatus.PACKAGING,
)


def status_label(status: OrderStatus) -> str:
    """Customer-facing label for a status. Raises ValueError for an unknown value."""
    return {
        OrderStatus.PENDING: "Pending Payment",
        OrderStatus.CONFIRMATION_PENDING: "Awaiting Confirmation",
        OrderStatus.IN_PRODUCTION: "In Production",
        OrderStatus.CUTTING: "Cutting",
        OrderStatus.POST_PROCESSING: "Post Processing",
        OrderStatus.QUALITY_CHECK: "Quality Check",
        OrderStatus.PACKAGING: "Packaging",
        OrderStatus.SHIPPED: "Shipped",
        OrderStatus.DELIVERED: "Delivered",
        OrderStatus.CANCELLED: "Cancelled",
    }[OrderStatus(status)]


class OrderWorkflow:

    @staticmethod
    def get_rule(current: OrderStatus, target: OrderStatus) -> Transition:
        rule = TRANSITIONS.get((OrderStatus(current), OrderStatus(target)))
        if rule is None:
            raise IllegalTransition(OrderStatus(current).value, OrderStatus(target).value)
        return rule

    @staticmethod
    def denial_reason(order, rule: Transition, actor: Actor) -> Optional[str]:
        """Why actor may not take rule on order, or None when it may."""
        if actor.role != rule.actor:
            return f"Role '{actor.role.value}' cannot move an order to '{rule.target.value}'"
        if rule.requires_assignment and order.assigned_operator_id != actor.id:
            return "Order is not assigned to this operator"
        if rule.requires_ownership and order.user_id != actor.id:
            return "Order belongs to another customer"
        return None

    @staticmethod
    def is_permitted(order, rule: Transition, actor: Actor) -> bool:
        return OrderWorkflow.denial_reason(order, rule, actor) is None

    @staticmethod
    def authorize(order, target: OrderStatus, actor: Actor) -> Transition:
        """
        Return the rule for moving order to target, or raise.

        Raises:
            IllegalTransition: the edge is not in TRANSITIONS
            Unauthorized: the edge exists but this actor may not take it
        """
        rule = OrderWorkflow.get_rule(order.status, target)

        denial = OrderWorkflow.denial_reason(order, rule, actor)
        if denial:
            raise Unauthorized(denial)

        return rule

    @staticmethod
    def allowed_transitions(order, actor: Actor) -> list[OrderStatus]:
        """Targets this actor can move the order to right now."""
        return [
            rule.target
            for rule in _RULES
            if rule.source == order.status and OrderWorkflow.is_permitted(order, rule, actor)
        ]

    @staticmethod
    def apply(order, rule: Transition, actor: Actor,
              notes: Optional[str] = None,
              tracking_number: Optional[str] = None,
              tracking_url: Optional[str] = None,
              payment_proof_file_id: Optional[int] = None,
              now: Optional[datetime] = None) -> OrderStatusHistory:
        """
        Mutate order according to rule and return the history row to persist.

        All input checks run before the first attribute is touched, so a
        ValidationError leaves the order exactly as it was. The caller owns
        the transaction: it must add the returned row and commit both together.
        """
        reason = notes.strip() if notes else None

        if rule.note_prefix and not reason:
            raise ValidationError(f"A reason is required to {rule.name.replace('_', ' ')}")
        if rule.accepts_payment_proof and payment_proof_file_id is None:
            raise ValidationError("A payment proof file is required")
        if OrderStatus(order.status) != rule.source:
            raise IllegalTransition(OrderStatus(order.status).value, rule.target.value)

        now = now or datetime.now(timezone.utc)
        old_status = OrderStatus(order.status)

        order.status = rule.target
        order.status_updated_by = actor.id
        order.status_updated_at = now

        for field in rule.stamps:
            setattr(order, field, now)

        if rule.confirms_payment:
            order.payment_confirmed_by = actor.id

        if rule.clears_payment_proof:
            order.payment_proof_file_id = None
            order.payment_proof_uploaded_at = None

        if rule.accepts_payment_proof:
            order.payment_proof_file_id = payment_proof_file_id

        if rule.note_prefix:
            line = f"{rule.note_prefix}{reason}"
            order.operator_notes = f"{order.operator_notes}\n{line}" if order.operator_notes else line

        if rule.accepts_tracking:
            if tracking_number:
                order.tracking_number = tracking_number
            if tracking_url:
                order.tracking_url = tracking_url

        return OrderStatusHistory(
            order_id=order.id,
            old_status=old_status,
            new_status=rule.target,
            changed_by=actor.id,
            notes=reason,
            created_at=now
        )
