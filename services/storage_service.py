import uuid
from datetime import datetime, timezone, timedelta
from pathlib import Path, PurePosixPath
from urllib.parse import urlencode

from jose import jwt, JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import NotFound, Unauthorized, UpstreamFailure, ValidationError
from models.stored_files import StoredFile
from utils.logger import get_logger

logger = get_logger(__name__)


class StorageService:
    """
    Local-disk blob store for design files and payment proofs.

    Files are addressed by a relative storage path ("<owner_id>/<uuid>_<name>").
    Downloads go through signed links: a short-lived JWT naming the path,
    checked by the /files/download endpoint.
    """

    @staticmethod
    def _root() -> Path:
        return Path(settings.STORAGE_DIR)

    @staticmethod
    def _resolve(storage_path: str) -> Path:
        root = StorageService._root().resolve()
        candidate = (root / PurePosixPath(storage_path)).resolve()
        # reject "../" escapes out of the storage root
        if root not in candidate.parents:
            raise NotFound("File not found")
        return candidate

    @staticmethod
    def save(db: Session, owner_id: int, filename: str, content_type: str | None, data: bytes) -> StoredFile:
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > settings.MAX_UPLOAD_BYTES:
            raise ValidationError("Uploaded file is too large")

        safe_name = Path(filename or "upload").name
        storage_path = f"{owner_id}/{uuid.uuid4().hex}_{safe_name}"
        target = StorageService._resolve(storage_path)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error(
                "Failed to write file to storage",
                extra={"storage_path": storage_path, "error": str(e)},
                exc_info=True
            )
            raise UpstreamFailure(f"Failed to store file: {e}") from e

        model = StoredFile(
            owner_id=owner_id,
            original_filename=safe_name,
            storage_path=storage_path,
            content_type=content_type,
            file_size=len(data)
        )
        db.add(model)
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            target.unlink(missing_ok=True)
            raise UpstreamFailure(f"Failed to register file: {e}") from e

        db.refresh(model)
        logger.info(
            "File stored",
            extra={"file_id": model.id, "owner_id": owner_id, "file_size": model.file_size}
        )
        return model

    @staticmethod
    def get_file(db: Session, file_id: int) -> StoredFile:
        model = db.query(StoredFile).filter(StoredFile.id == file_id).one_or_none()
        if not model:
            raise NotFound("File not found")
        return model

    @staticmethod
    def create_signed_url(storage_path: str, expires_in: int | None = None) -> str:
        """
        Issue a time-limited download link for a stored file.

        Raises:
            NotFound: nothing is stored at storage_path
        """
        if not storage_path or not StorageService._resolve(storage_path).is_file():
            raise NotFound(f"File not found: {storage_path}")

        if expires_in is None:
            expires_in = settings.SIGNED_URL_EXPIRE_SECONDS

        payload = {
            "path": storage_path,
            "type": "file",
            "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        }
        token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

        return f"{settings.PUBLIC_BASE_URL}/files/download?{urlencode({'token': token})}"

    @staticmethod
    def resolve_signed_token(token: str) -> Path:
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            raise Unauthorized("Invalid or expired download link")

        if payload.get("type") != "file" or not payload.get("path"):
            raise Unauthorized("Invalid or expired download link")

        target = StorageService._resolve(payload["path"])
        if not target.is_file():
            raise NotFound("File not found")

        return target
