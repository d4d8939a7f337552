import enum


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMATION_PENDING = "confirmation_pending"
    IN_PRODUCTION = "in_production"
    CUTTING = "cutting"
    POST_PROCESSING = "post_processing"
    QUALITY_CHECK = "quality_check"
    PACKAGING = "packaging"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    OPERATOR = "operator"


def enum_values(enum_cls):
    """Persist enum values ("in_production"), not member names ("IN_PRODUCTION")."""
    return [member.value for member in enum_cls]
