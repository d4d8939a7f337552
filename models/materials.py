from core.database import Base
from sqlalchemy import (Column, Integer, String, Numeric, JSON)
from sqlalchemy.orm import relationship
from .mixins import CreatedAtMixin, UpdatedAtMixin

class Material(Base, CreatedAtMixin, UpdatedAtMixin):
    __tablename__ = "materials"

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #relationships
    order_items = relationship("OrderItem", back_populates="material")

    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # wood, acrylic, metal, leather, ...
    cost_per_sqm = Column(Numeric(10, 2), nullable=False)
    available_thicknesses = Column(JSON, nullable=False, default=list)  # mm
    colors = Column(JSON, nullable=False, default=list)
    description = Column(String)
