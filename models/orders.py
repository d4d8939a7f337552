from core.database import Base
from sqlalchemy.orm import relationship
from sqlalchemy import (Column, Integer, String, ForeignKey, Numeric, Enum, DateTime, JSON,
                        CheckConstraint)
from .enums import OrderStatus, enum_values
from .mixins import CreatedAtMixin, UpdatedAtMixin

class Order(Base, CreatedAtMixin, UpdatedAtMixin):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint("tax >= 0", name="ck_orders_tax_non_negative"),
        CheckConstraint("shipping_cost >= 0", name="ck_orders_shipping_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #fk
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_operator_id = Column(Integer, ForeignKey("users.id"), index=True)
    payment_confirmed_by = Column(Integer, ForeignKey("users.id"))
    status_updated_by = Column(Integer, ForeignKey("users.id"))
    payment_proof_file_id = Column(Integer, ForeignKey("stored_files.id"))

    #relationships
    user = relationship("User", back_populates="orders", foreign_keys=[user_id])
    assigned_operator = relationship("User", back_populates="assigned_orders",
                                     foreign_keys=[assigned_operator_id])
    payment_confirmer = relationship("User", foreign_keys=[payment_confirmed_by])
    payment_proof = relationship("StoredFile", foreign_keys=[payment_proof_file_id])
    items = relationship("OrderItem", back_populates="order",
                         cascade="all, delete-orphan", order_by="OrderItem.id")
    status_history = relationship("OrderStatusHistory", back_populates="order",
                                  cascade="all, delete-orphan", order_by="OrderStatusHistory.id")

    order_number = Column(String(32), unique=True, nullable=False, index=True)
    status = Column(
        Enum(OrderStatus, name="order_status", values_callable=enum_values),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # money
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)

    shipping_address = Column(JSON, nullable=False)

    # payment
    payment_proof_uploaded_at = Column(DateTime(timezone=True))
    payment_confirmed_at = Column(DateTime(timezone=True))

    # production
    assigned_at = Column(DateTime(timezone=True))
    production_started_at = Column(DateTime(timezone=True))
    production_completed_at = Column(DateTime(timezone=True))
    estimated_completion = Column(DateTime(timezone=True))
    operator_notes = Column(String)

    # shipping
    tracking_number = Column(String)
    tracking_url = Column(String)
    shipped_at = Column(DateTime(timezone=True))

    # audit
    status_updated_at = Column(DateTime(timezone=True))

    @property
    def customer_name(self):
        return self.user.full_name if self.user else None

    @property
    def customer_email(self):
        return self.user.email if self.user else None

    @property
    def operator_name(self):
        if not self.assigned_operator:
            return None
        return self.assigned_operator.full_name or self.assigned_operator.email
