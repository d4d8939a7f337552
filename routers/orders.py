from fastapi import APIRouter, File, Request, UploadFile
from starlette import status
from models.enums import OrderStatus
from utils.deps import db_dependency, customer_dependency
from schemas.order_schemas import CreateOrderRequest, OrderResponse, OrderDetailsResponse
from services.order_service import OrderService
from services.order_workflow import OrderWorkflow
from services.storage_service import StorageService
from middleware.rate_limiter import limiter
from utils.logger import get_logger

logger = get_logger(__name__)


router = APIRouter(
    prefix="/orders",
    tags=["orders"]
)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=OrderResponse)
@limiter.limit("10/minute")
async def create_order(request: Request, body: CreateOrderRequest,
    db: db_dependency, customer: customer_dependency):
    order = OrderService.create_order(db, customer, body)
    return OrderResponse.for_actor(order, customer)


@router.get("", response_model=list[OrderResponse])
@limiter.limit("60/minute")
async def list_my_orders(request: Request, db: db_dependency, customer: customer_dependency):
    orders = OrderService.list_customer_orders(db, customer.id)
    return [OrderResponse.for_actor(order, customer) for order in orders]


@router.get("/{order_id}", response_model=OrderDetailsResponse)
async def get_my_order(request: Request, order_id: int, db: db_dependency, customer: customer_dependency):
    OrderService.get_customer_order(db, customer.id, order_id)
    details = OrderService.get_order_details(db, order_id)
    return OrderDetailsResponse.from_details(details, customer)


@router.post("/{order_id}/payment-proof", response_model=OrderResponse)
@limiter.limit("10/minute")
async def upload_payment_proof(request: Request, order_id: int, db: db_dependency,
    customer: customer_dependency, file: UploadFile = File(...)):
    """
    Upload a payment proof and move the order to confirmation_pending.
    """
    # refuse before storing anything if the order cannot take a proof now
    order = OrderService.get_customer_order(db, customer.id, order_id)
    OrderWorkflow.authorize(order, OrderStatus.CONFIRMATION_PENDING, customer)

    data = await file.read()
    stored = StorageService.save(db, customer.id, file.filename, file.content_type, data)

    order = OrderService.submit_payment_proof(db, order_id, customer, stored.id)
    logger.info("Payment proof submitted", extra={"order_id": order_id, "file_id": stored.id})
    return OrderResponse.for_actor(order, customer)
