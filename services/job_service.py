from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import Unauthorized, UpstreamFailure, ValidationError
from models.enums import OrderStatus
from models.orders import Order
from services.order_service import OrderService
from services.order_workflow import Actor, PRODUCTION_STATUSES, REASON_PREFIXES
from utils.logger import get_logger

logger = get_logger(__name__)


class JobService:
    """Operator-side view of orders: the jobs assigned to one operator."""

    @staticmethod
    def get_assigned_jobs(db: Session, operator_id: int) -> list[Order]:
        """Orders assigned to the operator that are still on the floor, oldest assignment first."""
        try:
            jobs = (
                OrderService._order_query(db)
                .filter(
                    Order.assigned_operator_id == operator_id,
                    Order.status.in_(PRODUCTION_STATUSES)
                )
                .order_by(Order.assigned_at.asc(), Order.id.asc())
                .all()
            )
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Failed to fetch jobs: {e}") from e

        logger.debug("Fetched operator jobs", extra={"operator_id": operator_id, "count": len(jobs)})
        return jobs

    @staticmethod
    def get_job(db: Session, operator_id: int, job_id: int) -> Order:
        order = OrderService.get_order(db, job_id)
        if order.assigned_operator_id != operator_id:
            raise Unauthorized("Job is not assigned to this operator")
        return order

    @staticmethod
    def add_production_notes(db: Session, job_id: int, operator: Actor, notes: str) -> Order:
        """
        Replace the job's production notes. Not a status transition.

        Reason lines written by payment rejection or cancellation are kept
        ahead of the new text.
        """
        order = OrderService._lock_order(db, job_id)

        if order.assigned_operator_id != operator.id:
            db.rollback()
            raise Unauthorized("Job is not assigned to this operator")

        if OrderStatus(order.status) not in PRODUCTION_STATUSES:
            db.rollback()
            raise ValidationError("Notes can only be edited while the job is in production")

        kept = [
            line for line in (order.operator_notes or "").splitlines()
            if line.startswith(REASON_PREFIXES)
        ]
        if notes.strip():
            kept.append(notes.strip())
        order.operator_notes = "\n".join(kept) or None
        OrderService._commit(db, "Failed to save production notes")

        logger.info("Production notes saved", extra={"order_id": job_id, "actor_id": operator.id})
        return OrderService.get_order(db, job_id)
