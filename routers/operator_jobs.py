from fastapi import APIRouter, BackgroundTasks, Request
from utils.deps import db_dependency, operator_dependency
from schemas.order_schemas import (OrderResponse, OrderDetailsResponse, StatusChangeRequest,
    JobStatusRequest, ShipOrderRequest, ProductionNotesRequest)
from services.job_service import JobService
from services.order_service import OrderService
from services.email_service import notify_status_change
from middleware.rate_limiter import limiter
from utils.logger import get_logger

logger = get_logger(__name__)


router = APIRouter(
    prefix="/operator/jobs",
    tags=["operator"]
)


@router.get("", response_model=list[OrderResponse])
@limiter.limit("120/minute")
async def list_jobs(request: Request, db: db_dependency, operator: operator_dependency):
    """
    Jobs assigned to the signed-in operator that are still in production,
    oldest assignment first.
    """
    jobs = JobService.get_assigned_jobs(db, operator.id)
    return [OrderResponse.for_actor(job, operator) for job in jobs]


@router.get("/{job_id}", response_model=OrderDetailsResponse)
async def get_job(request: Request, job_id: int, db: db_dependency, operator: operator_dependency):
    JobService.get_job(db, operator.id, job_id)
    details = OrderService.get_order_details(db, job_id)
    return OrderDetailsResponse.from_details(details, operator)


@router.post("/{job_id}/start", response_model=OrderResponse)
@limiter.limit("30/minute")
async def start_production(request: Request, job_id: int, db: db_dependency,
    operator: operator_dependency, body: JobStatusRequest | None = None):
    order = OrderService.start_production(db, job_id, operator, notes=body.notes if body else None)
    return OrderResponse.for_actor(order, operator)


@router.post("/{job_id}/status", response_model=OrderResponse)
@limiter.limit("30/minute")
async def update_job_status(request: Request, job_id: int, body: StatusChangeRequest,
    db: db_dependency, operator: operator_dependency, bg: BackgroundTasks):
    """
    Move the job to the next production status. Skips and backward moves are
    refused by the transition table.
    """
    order = OrderService.transition(db, job_id, body.status, operator, notes=body.notes,
                                    tracking_number=body.tracking_number, tracking_url=body.tracking_url)
    notify_status_change(bg, order)
    return OrderResponse.for_actor(order, operator)


@router.put("/{job_id}/notes", response_model=OrderResponse)
@limiter.limit("30/minute")
async def save_notes(request: Request, job_id: int, body: ProductionNotesRequest,
    db: db_dependency, operator: operator_dependency):
    order = JobService.add_production_notes(db, job_id, operator, body.notes)
    return OrderResponse.for_actor(order, operator)


@router.post("/{job_id}/ship", response_model=OrderResponse)
@limiter.limit("30/minute")
async def ship_order(request: Request, job_id: int, body: ShipOrderRequest,
    db: db_dependency, operator: operator_dependency, bg: BackgroundTasks):
    order = OrderService.ship_order(db, job_id, operator,
                                    tracking_number=body.tracking_number, tracking_url=body.tracking_url)
    notify_status_change(bg, order)
    return OrderResponse.for_actor(order, operator)
