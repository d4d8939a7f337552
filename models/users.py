from core.database import Base
from sqlalchemy import (Column, Integer, String, Boolean, Enum)
from sqlalchemy.orm import relationship
from .enums import UserRole, enum_values
from .mixins import CreatedAtMixin

class User(Base, CreatedAtMixin):
    __tablename__ = "users"

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #relationships
    orders = relationship("Order", back_populates="user", foreign_keys="Order.user_id")
    assigned_orders = relationship("Order", back_populates="assigned_operator",
                                   foreign_keys="Order.assigned_operator_id")
    refresh_tokens = relationship("RefreshToken", back_populates="user")
    files = relationship("StoredFile", back_populates="owner")

    email = Column(String, unique=True, nullable=False)
    full_name = Column(String)
    phone_number = Column(String)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    role = Column(
        Enum(UserRole, name="user_role", values_callable=enum_values),
        default=UserRole.CUSTOMER,
        nullable=False
    )
