from core.database import Base
from sqlalchemy import (Column, Integer, String, ForeignKey, Enum, event)
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import relationship
from .enums import OrderStatus, enum_values
from .mixins import CreatedAtMixin

class OrderStatusHistory(Base, CreatedAtMixin):
    """
    Audit trail of order status transitions.

    One row per successful transition, written in the same transaction as the
    order update. Rows are append-only: the mapper events below refuse to
    flush an UPDATE or DELETE of an existing row.
    """
    __tablename__ = "order_status_history"

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #fk
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    #relationships
    order = relationship("Order", back_populates="status_history")
    changed_by_user = relationship("User", foreign_keys=[changed_by])

    old_status = Column(Enum(OrderStatus, name="order_status", values_callable=enum_values))
    new_status = Column(Enum(OrderStatus, name="order_status", values_callable=enum_values), nullable=False)
    notes = Column(String)

    @property
    def changed_by_name(self):
        if not self.changed_by_user:
            return None
        return self.changed_by_user.full_name or self.changed_by_user.email


@event.listens_for(OrderStatusHistory, "before_update")
def _refuse_update(mapper, connection, target):
    raise InvalidRequestError("order_status_history rows are append-only")


@event.listens_for(OrderStatusHistory, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise InvalidRequestError("order_status_history rows are append-only")
