from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CategoryCreate(BaseModel):
    name: str
    description: str | None = None


class CategoryUpdate(BaseModel):
    name: str
    description: str | None = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    created_at: datetime


class LabTestCreate(BaseModel):
    name: str
    category_id: str
    code: str | None = None
    description: str | None = None


class LabTestUpdate(BaseModel):
    """Partial update; only fields present in the payload are applied."""
    name: str | None = None
    category_id: str | None = None
    code: str | None = None
    description: str | None = None


class LabTestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    category_id: str
    code: str | None
    description: str | None
