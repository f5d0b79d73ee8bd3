import logging
from collections import Counter

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from backend.database import commit_or_raise
from backend.errors import NotFoundError, PersistenceError, ValidationError
from backend.models.selection import SELECTION_STATUSES, SNAPSHOT_VERSION, SelectionRecord
from backend.schemas.selection import SelectionOut, SnapshotItem
from backend.services.events import ChangeFeed

logger = logging.getLogger(__name__)

_snapshot_adapter = TypeAdapter(list[SnapshotItem])


def load_snapshot(record: SelectionRecord) -> list[SnapshotItem]:
    """Decode the stored test snapshot, refusing rows in an unknown shape."""
    if record.snapshot_version != SNAPSHOT_VERSION:
        raise PersistenceError(
            "Selection snapshot has an unsupported version",
            details={"id": record.id, "version": record.snapshot_version},
        )
    try:
        return _snapshot_adapter.validate_python(record.tests)
    except SchemaError as exc:
        logger.error("Malformed test snapshot on selection %s", record.id)
        raise PersistenceError("Selection snapshot is malformed", details={"id": record.id}) from exc


def to_out(record: SelectionRecord) -> SelectionOut:
    return SelectionOut(
        id=record.id,
        patient_id=record.patient_id,
        tests=load_snapshot(record),
        snapshot_version=record.snapshot_version,
        status=record.status,
        notes=record.notes,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def list_history(db: Session, patient_pk: str) -> list[SelectionRecord]:
    return (
        db.query(SelectionRecord)
        .filter(SelectionRecord.patient_id == patient_pk)
        .order_by(SelectionRecord.created_at.desc())
        .all()
    )


def get_selection(db: Session, selection_id: str) -> SelectionRecord:
    record = db.query(SelectionRecord).filter(SelectionRecord.id == selection_id).first()
    if not record:
        raise NotFoundError("Selection not found", details={"id": selection_id})
    return record


def update_selection(
    db: Session,
    selection_id: str,
    status: str | None = None,
    notes: str | None = None,
    feed: ChangeFeed | None = None,
) -> SelectionRecord:
    """Change status and/or notes. The test snapshot is never modified."""
    if status is not None and status not in SELECTION_STATUSES:
        raise ValidationError(
            f"Status must be one of: {', '.join(SELECTION_STATUSES)}",
            details={"field": "status"},
        )

    record = get_selection(db, selection_id)
    if status is not None:
        record.status = status
    if notes is not None:
        record.notes = notes.strip() or None
    commit_or_raise(db)
    db.refresh(record)
    if feed is not None:
        feed.publish("selections")
    return record


def delete_selection(db: Session, selection_id: str, feed: ChangeFeed | None = None) -> None:
    record = get_selection(db, selection_id)
    db.delete(record)
    commit_or_raise(db)
    logger.info("Deleted selection %s", selection_id)
    if feed is not None:
        feed.publish("selections")


def status_counts(db: Session, patient_pk: str) -> dict[str, int]:
    counts = Counter(status for (status,) in db.query(SelectionRecord.status).filter(SelectionRecord.patient_id == patient_pk))
    return {status: counts.get(status, 0) for status in SELECTION_STATUSES}
