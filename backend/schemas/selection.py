from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SnapshotItem(BaseModel):
    """Point-in-time copy of a lab test as it was when the selection was saved."""
    id: str
    name: str
    code: str | None = None
    category: str
    description: str | None = None


class WorkingSetAdd(BaseModel):
    test_id: str


class WorkingSetOut(BaseModel):
    patient_id: str
    tests: list[SnapshotItem]


class ExportItem(BaseModel):
    name: str
    code: str | None = None
    category: str
    description: str | None = None


class SelectionUpdate(BaseModel):
    status: str | None = Field(default=None, description="pending, completed or cancelled")
    notes: str | None = None


class SelectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    tests: list[SnapshotItem]
    snapshot_version: int
    status: str
    notes: str | None
    created_at: datetime
    updated_at: datetime


class SaveRequest(BaseModel):
    notes: str | None = None
