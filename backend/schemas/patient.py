from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PatientCreate(BaseModel):
    patient_id: str = Field(description="External business key, e.g. national ID or MRN")
    name: str = Field(description="Patient full name")
    date_of_birth: str | None = Field(default=None, description="Date of birth, YYYY-MM-DD")
    gender: str | None = None
    phone: str | None = None
    address: str | None = None
    external_record: dict[str, Any] | None = None


class PatientUpdate(BaseModel):
    patient_id: str | None = None
    name: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    phone: str | None = None
    address: str | None = None


class PatientLookup(BaseModel):
    patient_id: str


class PatientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    name: str
    date_of_birth: date | None
    gender: str | None
    phone: str | None
    address: str | None
    external_record: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class IdentityRecord(BaseModel):
    """Demographics returned by the external identity source."""
    patient_id: str
    name: str
    date_of_birth: str | None = None
    gender: str | None = None
    phone: str | None = None
    address: str | None = None
    external_record: dict[str, Any] | None = None
