from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.models.patient import Patient
from backend.routers.deps import envelope, get_selected_patient, peek_working_set
from backend.schemas.selection import SaveRequest, WorkingSetAdd, WorkingSetOut
from backend.services.events import ChangeFeed, get_change_feed
from backend.services.history import to_out
from backend.services.selection import (
    WorkingSet,
    WorkingSetRegistry,
    export_filename,
    export_working_set,
    get_working_sets,
    save_selection,
    snapshot_test,
)

router = APIRouter(prefix="/api/worksets", tags=["worksets"])


def _working_set_out(patient: Patient, working_set: WorkingSet) -> WorkingSetOut:
    return WorkingSetOut(patient_id=patient.id, tests=working_set.tests)


@router.get("/{patient_id}")
def get_workset(
    patient: Patient = Depends(get_selected_patient),
    working_set: WorkingSet = Depends(peek_working_set),
):
    return envelope(_working_set_out(patient, working_set))


@router.post("/{patient_id}/tests")
def add_test(
    payload: WorkingSetAdd,
    patient: Patient = Depends(get_selected_patient),
    registry: WorkingSetRegistry = Depends(get_working_sets),
    db: Session = Depends(get_db),
):
    snapshot = snapshot_test(db, payload.test_id)
    working_set = registry.get(patient.id)
    added = working_set.add_test(snapshot)
    message = "Test added to selection" if added else "Test already selected"
    return envelope(_working_set_out(patient, working_set), message)


@router.delete("/{patient_id}/tests/{test_id}")
def remove_test(
    test_id: str,
    patient: Patient = Depends(get_selected_patient),
    working_set: WorkingSet = Depends(peek_working_set),
    registry: WorkingSetRegistry = Depends(get_working_sets),
):
    working_set.remove_test(test_id)
    registry.prune(patient.id)
    return envelope(_working_set_out(patient, working_set), "Test removed from selection")


@router.delete("/{patient_id}")
def clear_workset(
    patient: Patient = Depends(get_selected_patient),
    registry: WorkingSetRegistry = Depends(get_working_sets),
):
    registry.discard(patient.id)
    return envelope(_working_set_out(patient, WorkingSet()), "Selection cleared")


@router.post("/{patient_id}/save")
def save_workset(
    payload: SaveRequest | None = None,
    patient: Patient = Depends(get_selected_patient),
    working_set: WorkingSet = Depends(peek_working_set),
    registry: WorkingSetRegistry = Depends(get_working_sets),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    notes = payload.notes if payload else None
    record = save_selection(db, patient.id, working_set, notes=notes, feed=feed)
    registry.prune(patient.id)
    return envelope(to_out(record), "Tests saved for patient")


@router.get("/{patient_id}/export")
def export_workset(working_set: WorkingSet = Depends(peek_working_set)):
    return Response(
        content=export_working_set(working_set),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )
