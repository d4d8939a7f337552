from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import FileResponse
from starlette import status
from core.config import settings
from core.exceptions import NotFound
from models.enums import UserRole
from utils.deps import db_dependency, actor_dependency
from schemas.catalog_schemas import StoredFileResponse, SignedUrlResponse
from services.storage_service import StorageService
from middleware.rate_limiter import limiter
from utils.logger import get_logger

logger = get_logger(__name__)


router = APIRouter(
    prefix="/files",
    tags=["files"]
)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=StoredFileResponse)
@limiter.limit("20/minute")
async def upload_file(request: Request, db: db_dependency, actor: actor_dependency,
    file: UploadFile = File(...)):
    """
    Upload a design file. The returned storage_path is what an order item
    references as design_file_path.
    """
    data = await file.read()
    return StorageService.save(db, actor.id, file.filename, file.content_type, data)


# registered before /{file_id}/url so "download" is never parsed as an id
@router.get("/download")
async def download_file(token: str):
    path = StorageService.resolve_signed_token(token)
    return FileResponse(path, filename=path.name.split("_", 1)[-1])


@router.get("/{file_id}/url", response_model=SignedUrlResponse)
@limiter.limit("60/minute")
async def get_file_url(request: Request, file_id: int, db: db_dependency, actor: actor_dependency):
    stored = StorageService.get_file(db, file_id)

    # customers only see their own uploads
    if actor.role == UserRole.CUSTOMER and stored.owner_id != actor.id:
        raise NotFound("File not found")

    url = StorageService.create_signed_url(stored.storage_path)
    return SignedUrlResponse(url=url, expires_in=settings.SIGNED_URL_EXPIRE_SECONDS)
