from core.database import Base
from sqlalchemy import (Column, Integer, String, ForeignKey, Numeric, CheckConstraint)
from sqlalchemy.orm import relationship

class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price_non_negative"),
    )

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #fk
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(Integer, ForeignKey("materials.id"), nullable=False)

    #relationships
    order = relationship("Order", back_populates="items")
    material = relationship("Material", back_populates="order_items")

    thickness = Column(Numeric(6, 2), nullable=False)  # mm
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    design_file_name = Column(String, nullable=False)
    design_file_path = Column(String, nullable=False)

    @property
    def material_name(self):
        return self.material.name if self.material else None
