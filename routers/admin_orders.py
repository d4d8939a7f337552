from datetime import date
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Query, Request
from starlette import status
from models.enums import OrderStatus
from utils.deps import db_dependency, admin_dependency
from schemas.order_schemas import (OrderFilters, OrderSortField, SortDirection, OrderResponse,
    OrderDetailsResponse, StatusHistoryResponse, OperatorResponse, ReasonRequest,
    AssignOperatorRequest, StatusChangeRequest)
from services.order_service import OrderService
from services.email_service import notify_status_change
from middleware.rate_limiter import limiter
from utils.logger import get_logger

logger = get_logger(__name__)


router = APIRouter(
    prefix="/admin",
    tags=["admin"]
)


@router.get("/orders", response_model=list[OrderResponse])
@limiter.limit("120/minute")
async def list_orders(request: Request, db: db_dependency, admin: admin_dependency,
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    sort_field: OrderSortField = OrderSortField.CREATED_AT,
    sort_direction: SortDirection = SortDirection.DESC,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0)):
    filters = OrderFilters(status=order_status, search=search, date_from=date_from, date_to=date_to)
    orders = OrderService.list_orders(db, filters, sort_field, sort_direction, limit, offset)
    return [OrderResponse.for_actor(order, admin) for order in orders]


@router.get("/orders/{order_id}", response_model=OrderDetailsResponse)
async def get_order(request: Request, order_id: int, db: db_dependency, admin: admin_dependency):
    """
    Order with items, status history and signed file links. History and
    links are best-effort.
    """
    details = OrderService.get_order_details(db, order_id)
    return OrderDetailsResponse.from_details(details, admin)


@router.get("/orders/{order_id}/history", response_model=list[StatusHistoryResponse])
async def get_order_history(request: Request, order_id: int, db: db_dependency, admin: admin_dependency):
    OrderService.get_order(db, order_id)
    return OrderService.get_status_history(db, order_id)


@router.get("/operators", response_model=list[OperatorResponse])
async def list_operators(request: Request, db: db_dependency, admin: admin_dependency):
    return OrderService.get_operators(db)


@router.post("/orders/{order_id}/approve-payment", response_model=OrderResponse)
@limiter.limit("30/minute")
async def approve_payment(request: Request, order_id: int, db: db_dependency, admin: admin_dependency):
    order = OrderService.approve_payment(db, order_id, admin)
    return OrderResponse.for_actor(order, admin)


@router.post("/orders/{order_id}/reject-payment", response_model=OrderResponse)
@limiter.limit("30/minute")
async def reject_payment(request: Request, order_id: int, body: ReasonRequest,
    db: db_dependency, admin: admin_dependency, bg: BackgroundTasks):
    order = OrderService.reject_payment(db, order_id, admin, body.reason)
    notify_status_change(bg, order, reason=body.reason)
    return OrderResponse.for_actor(order, admin)


@router.post("/orders/{order_id}/assign", response_model=OrderResponse)
@limiter.limit("30/minute")
async def assign_operator(request: Request, order_id: int, body: AssignOperatorRequest,
    db: db_dependency, admin: admin_dependency):
    order = OrderService.assign_operator(db, order_id, body.operator_id, admin, reassign=body.reassign)
    return OrderResponse.for_actor(order, admin)


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
@limiter.limit("30/minute")
async def cancel_order(request: Request, order_id: int, body: ReasonRequest,
    db: db_dependency, admin: admin_dependency, bg: BackgroundTasks):
    order = OrderService.cancel_order(db, order_id, admin, body.reason)
    notify_status_change(bg, order, reason=body.reason)
    return OrderResponse.for_actor(order, admin)


@router.post("/orders/{order_id}/deliver", response_model=OrderResponse)
@limiter.limit("30/minute")
async def mark_delivered(request: Request, order_id: int, db: db_dependency, admin: admin_dependency):
    order = OrderService.mark_delivered(db, order_id, admin)
    return OrderResponse.for_actor(order, admin)


@router.post("/orders/{order_id}/status", response_model=OrderResponse, status_code=status.HTTP_200_OK)
@limiter.limit("30/minute")
async def change_status(request: Request, order_id: int, body: StatusChangeRequest,
    db: db_dependency, admin: admin_dependency, bg: BackgroundTasks):
    """
    Request any status change; the transition table decides whether an admin
    may make it.
    """
    order = OrderService.transition(db, order_id, body.status, admin, notes=body.notes,
                                    tracking_number=body.tracking_number, tracking_url=body.tracking_url)
    notify_status_change(bg, order, reason=body.notes)
    return OrderResponse.for_actor(order, admin)
