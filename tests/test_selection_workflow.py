import json
from datetime import date

import pytest

from backend.errors import NotFoundError, ValidationError
from backend.models.selection import SelectionRecord
from backend.schemas.selection import SnapshotItem
from backend.services import history, patients, taxonomy
from backend.services.selection import (
    UNCATEGORIZED,
    WorkingSet,
    export_filename,
    export_working_set,
    save_selection,
    snapshot_test,
)


def _item(test_id: str, name: str, category: str = "Chemistry", code: str | None = None) -> SnapshotItem:
    return SnapshotItem(id=test_id, name=name, code=code, category=category)


@pytest.fixture()
def catalog(db_session):
    chemistry = taxonomy.create_category(db_session, "Chemistry")
    hematology = taxonomy.create_category(db_session, "Hematology")
    glucose = taxonomy.create_test(db_session, "Glucose", chemistry.id, code="GLU", description="Fasting")
    cbc = taxonomy.create_test(db_session, "Complete Blood Count", hematology.id, code="CBC")
    return {"chemistry": chemistry, "glucose": glucose, "cbc": cbc}


@pytest.fixture()
def patient(db_session):
    return patients.create_patient(db_session, "A100", "Jane Doe")


def test_add_test_is_idempotent():
    working_set = WorkingSet()
    assert working_set.add_test(_item("t1", "Glucose")) is True
    assert working_set.add_test(_item("t1", "Glucose")) is False
    assert [t.id for t in working_set.tests] == ["t1"]


def test_remove_and_clear_keep_insertion_order():
    working_set = WorkingSet()
    for test_id in ["t1", "t2", "t3"]:
        working_set.add_test(_item(test_id, test_id.upper()))

    assert working_set.remove_test("t2") is True
    assert working_set.remove_test("t2") is False
    assert [t.id for t in working_set.tests] == ["t1", "t3"]

    working_set.clear()
    assert len(working_set) == 0


def test_snapshot_copies_category_name(db_session, catalog):
    snap = snapshot_test(db_session, catalog["glucose"].id)
    assert snap.model_dump() == {
        "id": catalog["glucose"].id,
        "name": "Glucose",
        "code": "GLU",
        "category": "Chemistry",
        "description": "Fasting",
    }

    taxonomy.delete_category(db_session, catalog["chemistry"].id)
    assert snapshot_test(db_session, catalog["glucose"].id).category == UNCATEGORIZED


def test_save_requires_patient_and_tests(db_session, patient, catalog):
    working_set = WorkingSet()
    with pytest.raises(ValidationError):
        save_selection(db_session, patient.id, working_set)

    working_set.add_test(snapshot_test(db_session, catalog["glucose"].id))
    with pytest.raises(ValidationError):
        save_selection(db_session, "", working_set)
    with pytest.raises(NotFoundError):
        save_selection(db_session, "missing-patient", working_set)

    assert db_session.query(SelectionRecord).count() == 0
    assert len(working_set) == 1


def test_save_persists_pending_snapshot_and_clears(db_session, patient, catalog, feed):
    working_set = WorkingSet()
    working_set.add_test(snapshot_test(db_session, catalog["glucose"].id))
    working_set.add_test(snapshot_test(db_session, catalog["cbc"].id))

    record = save_selection(db_session, patient.id, working_set, feed=feed)

    assert record.status == "pending"
    assert record.patient_id == patient.id
    assert [t["name"] for t in record.tests] == ["Glucose", "Complete Blood Count"]
    assert len(working_set) == 0
    assert feed.version("selections") == 1


def test_saved_snapshot_survives_test_edits_and_deletes(db_session, patient, catalog):
    working_set = WorkingSet()
    working_set.add_test(snapshot_test(db_session, catalog["glucose"].id))
    record = save_selection(db_session, patient.id, working_set)
    before = [item.model_dump() for item in history.load_snapshot(record)]

    taxonomy.update_test(db_session, catalog["glucose"].id, {"name": "Glucose (random)", "code": "GLU-R"})
    taxonomy.update_category(db_session, catalog["chemistry"].id, "Biochemistry")
    taxonomy.delete_test(db_session, catalog["glucose"].id)

    db_session.expire_all()
    stored = history.get_selection(db_session, record.id)
    assert [item.model_dump() for item in history.load_snapshot(stored)] == before
    assert before[0]["name"] == "Glucose"
    assert before[0]["category"] == "Chemistry"


def test_export_round_trip_preserves_order():
    working_set = WorkingSet()
    working_set.add_test(_item("t2", "Sodium", code="NA"))
    working_set.add_test(_item("t1", "Complete Blood Count", category="Hematology"))

    exported = json.loads(export_working_set(working_set))

    assert [(e["name"], e["code"], e["category"], e["description"]) for e in exported] == [
        (t.name, t.code, t.category, t.description) for t in working_set.tests
    ]
    assert len(working_set) == 2


def test_export_filename_uses_date():
    assert export_filename(date(2024, 3, 9)) == "lab-tests-2024-03-09.json"


def test_workset_api_flow(client, db_session, catalog, registry):
    patient_pk = client.post("/api/patients/lookup", json={"patient_id": "A100"}).json()["data"]["patient"]["id"]
    glucose_id = catalog["glucose"].id

    res = client.post(f"/api/worksets/{patient_pk}/tests", json={"test_id": glucose_id})
    assert res.json()["message"] == "Test added to selection"
    res = client.post(f"/api/worksets/{patient_pk}/tests", json={"test_id": glucose_id})
    assert res.json()["message"] == "Test already selected"
    assert len(res.json()["data"]["tests"]) == 1

    client.post(f"/api/worksets/{patient_pk}/tests", json={"test_id": catalog["cbc"].id})
    res = client.delete(f"/api/worksets/{patient_pk}/tests/{catalog['cbc'].id}")
    assert [t["name"] for t in res.json()["data"]["tests"]] == ["Glucose"]

    res = client.get(f"/api/worksets/{patient_pk}/export")
    assert res.status_code == 200
    assert "lab-tests-" in res.headers["content-disposition"]
    assert res.json() == [{"name": "Glucose", "code": "GLU", "category": "Chemistry", "description": "Fasting"}]

    res = client.post(f"/api/worksets/{patient_pk}/save", json={"notes": "fasting sample"})
    assert res.status_code == 200
    saved = res.json()["data"]
    assert saved["status"] == "pending"
    assert saved["notes"] == "fasting sample"
    assert client.get(f"/api/worksets/{patient_pk}").json()["data"]["tests"] == []
    assert patient_pk not in registry

    res = client.post(f"/api/worksets/{patient_pk}/save")
    assert res.status_code == 422
    assert res.json()["error"] == "ValidationError"


def test_workset_for_unknown_patient(client):
    res = client.get("/api/worksets/missing")
    assert res.status_code == 404


def test_registry_only_holds_sets_with_tests(client, catalog, registry):
    patient_pk = client.post("/api/patients", json={"patient_id": "Z1", "name": "Zara"}).json()["data"]["id"]

    assert client.get(f"/api/worksets/{patient_pk}").status_code == 200
    assert client.get(f"/api/worksets/{patient_pk}/export").json() == []
    assert patient_pk not in registry

    client.post(f"/api/worksets/{patient_pk}/tests", json={"test_id": catalog["glucose"].id})
    assert patient_pk in registry
    client.delete(f"/api/worksets/{patient_pk}/tests/{catalog['glucose'].id}")
    assert patient_pk not in registry

    client.post(f"/api/worksets/{patient_pk}/tests", json={"test_id": catalog["glucose"].id})
    assert client.delete(f"/api/worksets/{patient_pk}").json()["data"]["tests"] == []
    assert len(registry) == 0


def test_deleting_patient_drops_working_set(client, catalog, registry):
    patient_pk = client.post("/api/patients", json={"patient_id": "Z1", "name": "Zara"}).json()["data"]["id"]
    client.post(f"/api/worksets/{patient_pk}/tests", json={"test_id": catalog["cbc"].id})
    assert patient_pk in registry

    assert client.delete(f"/api/patients/{patient_pk}").status_code == 200
    assert patient_pk not in registry
