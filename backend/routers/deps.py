from typing import Any

from fastapi import Depends
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.models.patient import Patient
from backend.services.patients import get_patient
from backend.services.selection import WorkingSet, WorkingSetRegistry, get_working_sets


def envelope(data: Any, message: str = "Success") -> dict[str, Any]:
    return {"statusCode": 200, "message": message, "data": data}


def get_selected_patient(patient_id: str, db: Session = Depends(get_db)) -> Patient:
    return get_patient(db, patient_id)


def peek_working_set(
    patient: Patient = Depends(get_selected_patient),
    registry: WorkingSetRegistry = Depends(get_working_sets),
) -> WorkingSet:
    return registry.peek(patient.id)
