import logging
from typing import Any

from rapidfuzz import fuzz
from sqlalchemy.orm import Session

from backend.config import settings
from backend.database import commit_or_raise
from backend.errors import ConflictError, NotFoundError, ValidationError
from backend.models.patient import Patient
from backend.services.events import ChangeFeed
from backend.services.fields import clean_text, parse_date, require_text, safe_date
from backend.services.identity import IdentitySource

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("patient_id", "name", "date_of_birth", "gender", "phone", "address")


def _notify(feed: ChangeFeed | None) -> None:
    if feed is not None:
        feed.publish("patients")


def get_patient(db: Session, patient_pk: str) -> Patient:
    patient = db.query(Patient).filter(Patient.id == patient_pk).first()
    if not patient:
        raise NotFoundError("Patient not found", details={"id": patient_pk})
    return patient


def find_by_business_key(db: Session, patient_id: str | None) -> Patient:
    key = require_text(patient_id, "patient_id", "Patient ID")
    patient = db.query(Patient).filter(Patient.patient_id == key).first()
    if not patient:
        raise NotFoundError("Patient not found", details={"patient_id": key})
    return patient


def _ensure_key_free(db: Session, patient_id: str, exclude_pk: str | None = None) -> None:
    query = db.query(Patient.id).filter(Patient.patient_id == patient_id)
    if exclude_pk is not None:
        query = query.filter(Patient.id != exclude_pk)
    if query.first():
        raise ConflictError(f"Patient ID '{patient_id}' is already registered", details={"patient_id": patient_id})


def create_patient(
    db: Session,
    patient_id: str | None,
    name: str | None,
    date_of_birth: str | None = None,
    gender: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    external_record: dict[str, Any] | None = None,
    feed: ChangeFeed | None = None,
) -> Patient:
    key = require_text(patient_id, "patient_id", "Patient ID")
    cleaned_name = require_text(name, "name", "Patient name")
    dob = parse_date(date_of_birth)
    _ensure_key_free(db, key)

    patient = Patient(
        patient_id=key,
        name=cleaned_name,
        date_of_birth=dob,
        gender=clean_text(gender),
        phone=clean_text(phone),
        address=clean_text(address),
        external_record=external_record,
    )
    db.add(patient)
    commit_or_raise(db, f"Patient ID '{key}' is already registered")
    db.refresh(patient)
    logger.info("Registered patient %s", patient.patient_id)
    _notify(feed)
    return patient


def update_patient(db: Session, patient_pk: str, fields: dict[str, Any], feed: ChangeFeed | None = None) -> Patient:
    unknown = set(fields) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown patient fields: {', '.join(sorted(unknown))}")

    changes: dict[str, Any] = {}
    if "patient_id" in fields:
        changes["patient_id"] = require_text(fields["patient_id"], "patient_id", "Patient ID")
    if "name" in fields:
        changes["name"] = require_text(fields["name"], "name", "Patient name")
    if "date_of_birth" in fields:
        changes["date_of_birth"] = parse_date(fields["date_of_birth"])
    for key in ("gender", "phone", "address"):
        if key in fields:
            changes[key] = clean_text(fields[key])

    patient = get_patient(db, patient_pk)
    if "patient_id" in changes:
        _ensure_key_free(db, changes["patient_id"], exclude_pk=patient.id)
    for key, value in changes.items():
        setattr(patient, key, value)
    commit_or_raise(db, "Patient ID is already registered")
    db.refresh(patient)
    _notify(feed)
    return patient


def delete_patient(db: Session, patient_pk: str, feed: ChangeFeed | None = None) -> None:
    """Hard delete. Saved selections for the patient are kept as history."""
    patient = get_patient(db, patient_pk)
    db.delete(patient)
    commit_or_raise(db)
    logger.info("Deleted patient %s", patient_pk)
    _notify(feed)


def lookup_or_create(
    db: Session,
    patient_id: str | None,
    source: IdentitySource,
    feed: ChangeFeed | None = None,
) -> tuple[Patient, bool]:
    """Return the stored patient for a business key, registering it from the
    identity source on first sight. The flag is True when a row was created.
    """
    key = require_text(patient_id, "patient_id", "Patient ID")
    existing = db.query(Patient).filter(Patient.patient_id == key).first()
    if existing:
        return existing, False

    record = source.lookup(key)
    if record is None:
        raise NotFoundError("No patient found in the identity source", details={"patient_id": key})

    logger.info("Patient %s fetched from identity source", key)
    # Remote dates come in whatever format the source uses; keep what parses.
    dob = safe_date(record.date_of_birth)
    patient = create_patient(
        db,
        patient_id=key,
        name=record.name,
        date_of_birth=dob.isoformat() if dob else None,
        gender=record.gender,
        phone=record.phone,
        address=record.address,
        external_record=record.external_record,
        feed=feed,
    )
    return patient, True


def list_recent(db: Session, limit: int = 20) -> list[Patient]:
    if limit < 1:
        raise ValidationError("limit must be at least 1", details={"field": "limit"})
    return (
        db.query(Patient)
        .order_by(Patient.updated_at.desc(), Patient.created_at.desc())
        .limit(limit)
        .all()
    )


def search_patients(db: Session, query: str | None, limit: int = 20, threshold: int | None = None) -> list[Patient]:
    """Business-key prefix matches first, then fuzzy name matches by score."""
    term = require_text(query, "query", "Search term")
    score_threshold = threshold if threshold is not None else settings.patient_search_fuzzy_threshold

    key_matches = (
        db.query(Patient)
        .filter(Patient.patient_id.startswith(term, autoescape=True))
        .order_by(Patient.patient_id.asc())
        .limit(limit)
        .all()
    )
    seen = {p.id for p in key_matches}

    scored: list[tuple[float, Patient]] = []
    needle = term.lower()
    for patient in db.query(Patient).all():
        if patient.id in seen:
            continue
        score = fuzz.partial_ratio(needle, patient.name.lower())
        if score >= score_threshold:
            scored.append((score, patient))
    scored.sort(key=lambda item: (-item[0], item[1].name))

    return (key_matches + [patient for _, patient in scored])[:limit]
