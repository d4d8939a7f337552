from fastapi import APIRouter, Request
from starlette import status
from utils.deps import db_dependency, admin_dependency
from schemas.catalog_schemas import CreateMaterialRequest, MaterialResponse
from services.material_service import MaterialService
from middleware.rate_limiter import limiter


router = APIRouter(
    prefix="/materials",
    tags=["materials"]
)


@router.get("", response_model=list[MaterialResponse])
@limiter.limit("120/minute")
async def list_materials(request: Request, db: db_dependency):
    return MaterialService.list_materials(db)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=MaterialResponse)
@limiter.limit("20/minute")
async def create_material(request: Request, body: CreateMaterialRequest,
    db: db_dependency, admin: admin_dependency):
    return MaterialService.create_material(db, body)
