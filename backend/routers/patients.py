from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routers.deps import envelope
from backend.schemas.patient import PatientCreate, PatientLookup, PatientOut, PatientUpdate
from backend.services import patients
from backend.services.events import ChangeFeed, get_change_feed
from backend.services.identity import IdentitySource, get_identity_source
from backend.services.selection import WorkingSetRegistry, get_working_sets

router = APIRouter(prefix="/api/patients", tags=["patients"])


@router.get("")
def list_patients(
    limit: int = Query(default=20, ge=1, le=100),
    q: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if q and q.strip():
        rows = patients.search_patients(db, q, limit=limit)
    else:
        rows = patients.list_recent(db, limit=limit)
    return envelope([PatientOut.model_validate(row) for row in rows])


@router.get("/by-key/{patient_id}")
def find_by_business_key(patient_id: str, db: Session = Depends(get_db)):
    patient = patients.find_by_business_key(db, patient_id)
    return envelope(PatientOut.model_validate(patient))


@router.post("/lookup")
def lookup_or_create(
    payload: PatientLookup,
    db: Session = Depends(get_db),
    source: IdentitySource = Depends(get_identity_source),
    feed: ChangeFeed = Depends(get_change_feed),
):
    patient, created = patients.lookup_or_create(db, payload.patient_id, source, feed=feed)
    message = "Patient data fetched from identity source and saved" if created else "Patient found"
    return envelope({"patient": PatientOut.model_validate(patient), "created": created}, message)


@router.post("")
def create_patient(
    payload: PatientCreate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    patient = patients.create_patient(db, feed=feed, **payload.model_dump())
    return envelope(PatientOut.model_validate(patient), "Patient added successfully")


@router.get("/{patient_pk}")
def get_patient(patient_pk: str, db: Session = Depends(get_db)):
    return envelope(PatientOut.model_validate(patients.get_patient(db, patient_pk)))


@router.patch("/{patient_pk}")
def update_patient(
    patient_pk: str,
    payload: PatientUpdate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    patient = patients.update_patient(db, patient_pk, payload.model_dump(exclude_unset=True), feed=feed)
    return envelope(PatientOut.model_validate(patient), "Patient updated successfully")


@router.delete("/{patient_pk}")
def delete_patient(
    patient_pk: str,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    registry: WorkingSetRegistry = Depends(get_working_sets),
):
    patients.delete_patient(db, patient_pk, feed=feed)
    registry.discard(patient_pk)
    return envelope(None, "Patient deleted successfully")
