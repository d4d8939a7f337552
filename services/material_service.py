from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from models.materials import Material
from schemas.catalog_schemas import CreateMaterialRequest
from utils.logger import get_logger

logger = get_logger(__name__)


class MaterialService:

    @staticmethod
    def list_materials(db: Session) -> list[Material]:
        return db.query(Material).order_by(Material.name.asc()).all()

    @staticmethod
    def create_material(db: Session, request: CreateMaterialRequest) -> Material:
        model = Material(**request.model_dump())
        db.add(model)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ValidationError(f"Could not create material: {e.orig}") from e

        db.refresh(model)
        logger.info("Material created", extra={"material_id": model.id, "material_name": model.name})
        return model
