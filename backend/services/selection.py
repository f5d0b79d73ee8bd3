"""
Selection workflow.

A working set is the unsaved, per-patient list of tests being assembled at
the front desk. Saving it writes one immutable selection record holding a
by-value copy of every test.
"""
import json
import logging
from datetime import date

from sqlalchemy.orm import Session

from backend.database import commit_or_raise
from backend.errors import NotFoundError, ValidationError
from backend.models.selection import SNAPSHOT_VERSION, SelectionRecord
from backend.schemas.selection import ExportItem, SnapshotItem
from backend.services.events import ChangeFeed
from backend.services.patients import get_patient
from backend.services.taxonomy import get_category, get_test

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


class WorkingSet:
    def __init__(self) -> None:
        self._tests: dict[str, SnapshotItem] = {}

    def add_test(self, test: SnapshotItem) -> bool:
        """Append a test unless one with the same id is already present."""
        if test.id in self._tests:
            return False
        self._tests[test.id] = test.model_copy(deep=True)
        return True

    def remove_test(self, test_id: str) -> bool:
        return self._tests.pop(test_id, None) is not None

    def clear(self) -> None:
        self._tests.clear()

    @property
    def tests(self) -> list[SnapshotItem]:
        return [test.model_copy(deep=True) for test in self._tests.values()]

    def __contains__(self, test_id: object) -> bool:
        return test_id in self._tests

    def __len__(self) -> int:
        return len(self._tests)


class WorkingSetRegistry:
    """Working sets for patients currently being served, keyed by patient row id."""

    def __init__(self) -> None:
        self._sets: dict[str, WorkingSet] = {}

    def get(self, patient_pk: str) -> WorkingSet:
        if patient_pk not in self._sets:
            self._sets[patient_pk] = WorkingSet()
        return self._sets[patient_pk]

    def peek(self, patient_pk: str) -> WorkingSet:
        """Return the patient's working set without registering a new one."""
        working_set = self._sets.get(patient_pk)
        return working_set if working_set is not None else WorkingSet()

    def discard(self, patient_pk: str) -> None:
        self._sets.pop(patient_pk, None)

    def prune(self, patient_pk: str) -> None:
        """Forget the patient's working set once it holds no tests."""
        working_set = self._sets.get(patient_pk)
        if working_set is not None and len(working_set) == 0:
            del self._sets[patient_pk]

    def __len__(self) -> int:
        return len(self._sets)

    def __contains__(self, patient_pk: object) -> bool:
        return patient_pk in self._sets


working_sets = WorkingSetRegistry()


def get_working_sets() -> WorkingSetRegistry:
    return working_sets


def snapshot_test(db: Session, test_id: str) -> SnapshotItem:
    """Copy the current state of a test, including its category name."""
    test = get_test(db, test_id)
    try:
        category_name = get_category(db, test.category_id).name
    except NotFoundError:
        category_name = UNCATEGORIZED
    return SnapshotItem(
        id=test.id,
        name=test.name,
        code=test.code,
        category=category_name,
        description=test.description,
    )


def save_selection(
    db: Session,
    patient_pk: str | None,
    working_set: WorkingSet,
    notes: str | None = None,
    feed: ChangeFeed | None = None,
) -> SelectionRecord:
    if not patient_pk or not patient_pk.strip():
        raise ValidationError("Please select a patient", details={"field": "patient_id"})
    if len(working_set) == 0:
        raise ValidationError("Please select at least one test", details={"field": "tests"})

    patient = get_patient(db, patient_pk)
    record = SelectionRecord(
        patient_id=patient.id,
        tests=[item.model_dump() for item in working_set.tests],
        snapshot_version=SNAPSHOT_VERSION,
        status="pending",
        notes=notes.strip() if notes and notes.strip() else None,
    )
    db.add(record)
    commit_or_raise(db)
    db.refresh(record)
    logger.info("Saved selection %s with %d test(s) for patient %s", record.id, len(working_set), patient.patient_id)

    working_set.clear()
    if feed is not None:
        feed.publish("selections")
    return record


def export_filename(today: date | None = None) -> str:
    return f"lab-tests-{(today or date.today()).isoformat()}.json"


def export_working_set(working_set: WorkingSet) -> bytes:
    items = [
        ExportItem(name=test.name, code=test.code, category=test.category, description=test.description).model_dump()
        for test in working_set.tests
    ]
    return json.dumps(items, indent=2, ensure_ascii=False).encode("utf-8")
