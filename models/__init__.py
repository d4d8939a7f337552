from models.enums import OrderStatus, UserRole
from models.users import User
from models.refresh_tokens import RefreshToken
from models.materials import Material
from models.stored_files import StoredFile
from models.orders import Order
from models.order_items import OrderItem
from models.order_status_history import OrderStatusHistory

__all__ = ["OrderStatus", "UserRole", "User", "RefreshToken", "Material", "StoredFile",
           "Order", "OrderItem", "OrderStatusHistory"]
