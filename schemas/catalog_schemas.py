from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreateMaterialRequest(BaseModel):
    name: str
    type: str
    cost_per_sqm: Decimal = Field(ge=0)
    available_thicknesses: list[float] = Field(min_length=1)
    colors: list[str] = []
    description: Optional[str] = None

    @field_validator('available_thicknesses')
    @classmethod
    def validate_thicknesses(cls, value):
        if any(t <= 0 for t in value):
            raise ValueError('Thicknesses must be positive')
        return sorted(set(value))


class MaterialResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: str
    cost_per_sqm: Decimal
    available_thicknesses: list[float]
    colors: list[str]
    description: Optional[str] = None


class StoredFileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    original_filename: str
    storage_path: str
    content_type: Optional[str] = None
    file_size: int
    created_at: datetime


class SignedUrlResponse(BaseModel):
    url: str
    expires_in: int
