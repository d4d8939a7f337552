import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from models.enums import OrderStatus
from services.order_workflow import Actor, OrderWorkflow, status_label


class OrderSortField(str, enum.Enum):
    CREATED_AT = "created_at"
    ORDER_NUMBER = "order_number"
    STATUS = "status"
    TOTAL_AMOUNT = "total_amount"
    CUSTOMER_NAME = "customer_name"


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


class OrderFilters(BaseModel):
    status: Optional[OrderStatus] = None
    search: Optional[str] = None  # order number, customer name or email
    date_from: Optional[date] = None
    date_to: Optional[date] = None


def _require_text(value: str) -> str:
    if not value or not value.strip():
        raise ValueError('must not be empty')
    return value.strip()


# ---- requests ----

class ShippingAddress(BaseModel):
    full_name: str
    line1: str
    line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str
    phone: Optional[str] = None


class CreateOrderItemRequest(BaseModel):
    material_id: int
    thickness: Decimal = Field(gt=0)
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    total_price: Optional[Decimal] = None
    design_file_name: str
    design_file_path: str


class CreateOrderRequest(BaseModel):
    items: list[CreateOrderItemRequest] = Field(min_length=1)
    shipping_address: ShippingAddress
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    total_amount: Optional[Decimal] = None


class ReasonRequest(BaseModel):
    reason: str

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value):
        return _require_text(value)


class AssignOperatorRequest(BaseModel):
    operator_id: int
    reassign: bool = False


class StatusChangeRequest(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None


class JobStatusRequest(BaseModel):
    notes: Optional[str] = None


class ShipOrderRequest(BaseModel):
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None


class ProductionNotesRequest(BaseModel):
    notes: str


# ---- responses ----

class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    material_id: int
    material_name: Optional[str] = None
    thickness: Decimal
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    design_file_name: str
    design_file_path: str
    design_file_url: Optional[str] = None


class StatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    old_status: Optional[OrderStatus] = None
    new_status: OrderStatus
    changed_by: int
    changed_by_name: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    user_id: int
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    status: OrderStatus
    status_label: str = ""
    allowed_transitions: list[OrderStatus] = []
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    shipping_address: dict
    payment_proof_file_id: Optional[int] = None
    payment_proof_uploaded_at: Optional[datetime] = None
    payment_confirmed_by: Optional[int] = None
    payment_confirmed_at: Optional[datetime] = None
    assigned_operator_id: Optional[int] = None
    operator_name: Optional[str] = None
    assigned_at: Optional[datetime] = None
    production_started_at: Optional[datetime] = None
    production_completed_at: Optional[datetime] = None
    estimated_completion: Optional[datetime] = None
    operator_notes: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    shipped_at: Optional[datetime] = None
    status_updated_by: Optional[int] = None
    status_updated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: list[OrderItemResponse] = []

    @classmethod
    def for_actor(cls, order, actor: Actor) -> "OrderResponse":
        data = OrderResponse.model_validate(order)
        data.status_label = status_label(order.status)
        data.allowed_transitions = OrderWorkflow.allowed_transitions(order, actor)
        return data


class OrderDetailsResponse(OrderResponse):
    status_history: list[StatusHistoryResponse] = []
    payment_proof_url: Optional[str] = None

    @classmethod
    def from_details(cls, details: dict, actor: Actor) -> "OrderDetailsResponse":
        """Build from OrderService.get_order_details output."""
        base = OrderResponse.for_actor(details["order"], actor).model_dump()
        for item in base["items"]:
            item["design_file_url"] = details["design_file_urls"].get(item["id"])

        return cls(
            **base,
            status_history=[StatusHistoryResponse.model_validate(h) for h in details["status_history"]],
            payment_proof_url=details["payment_proof_url"]
        )


class OperatorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: Optional[str] = None
