from datetime import date, datetime, timedelta

import pytest

from backend.errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from backend.models.patient import Patient
from backend.services import patients
from backend.services.identity import HttpIdentitySource, MockIdentitySource


def test_lookup_or_create_registers_once(db_session, identity_source):
    first, created = patients.lookup_or_create(db_session, "A100", identity_source)
    assert created is True
    assert first.name == "Jane Doe"
    assert first.date_of_birth == date(1985, 4, 12)
    assert first.external_record["policy_number"] == "ASSA100"

    second, created_again = patients.lookup_or_create(db_session, " A100 ", identity_source)
    assert created_again is False
    assert second.id == first.id
    assert db_session.query(Patient).filter(Patient.patient_id == "A100").count() == 1
    assert identity_source.calls == ["A100"]


def test_lookup_or_create_without_identity_record(db_session, identity_source):
    with pytest.raises(NotFoundError):
        patients.lookup_or_create(db_session, "Z999", identity_source)
    assert db_session.query(Patient).count() == 0


def test_mock_identity_source_is_deterministic(db_session):
    patient, _ = patients.lookup_or_create(db_session, "B200", MockIdentitySource())
    assert patient.name == "Patient B200"
    assert patient.external_record["policy_number"] == "ASSB200"


def test_create_requires_key_and_name(db_session):
    with pytest.raises(ValidationError):
        patients.create_patient(db_session, " ", "Jane Doe")
    with pytest.raises(ValidationError):
        patients.create_patient(db_session, "A1", "")
    with pytest.raises(ValidationError):
        patients.create_patient(db_session, "A1", "Jane Doe", date_of_birth="not a date")
    assert db_session.query(Patient).count() == 0


def test_business_key_is_unique(db_session):
    patients.create_patient(db_session, "A1", "Jane Doe")
    with pytest.raises(ConflictError):
        patients.create_patient(db_session, "A1", "John Doe")


def test_update_and_delete(db_session):
    patient = patients.create_patient(db_session, "A1", "Jane Doe", date_of_birth="1990-02-03")
    updated = patients.update_patient(db_session, patient.id, {"phone": " 555-0100 ", "name": "Jane Smith"})
    assert updated.phone == "555-0100"
    assert updated.name == "Jane Smith"
    assert updated.date_of_birth == date(1990, 2, 3)

    with pytest.raises(ValidationError):
        patients.update_patient(db_session, patient.id, {"name": "  "})

    patients.delete_patient(db_session, patient.id)
    with pytest.raises(NotFoundError):
        patients.find_by_business_key(db_session, "A1")


def test_list_recent_orders_by_last_update(db_session):
    now = datetime.utcnow()
    for offset, key in enumerate(["A1", "A2", "A3"]):
        db_session.add(Patient(patient_id=key, name=key, created_at=now, updated_at=now + timedelta(minutes=offset)))
    db_session.commit()

    assert [p.patient_id for p in patients.list_recent(db_session, limit=2)] == ["A3", "A2"]


def test_search_matches_key_prefix_and_fuzzy_name(db_session):
    patients.create_patient(db_session, "A100", "Jane Doe")
    patients.create_patient(db_session, "B200", "Aminath Shareef")
    patients.create_patient(db_session, "C300", "Mohamed Ali")

    assert [p.patient_id for p in patients.search_patients(db_session, "A1")] == ["A100"]
    assert [p.patient_id for p in patients.search_patients(db_session, "aminath")] == ["B200"]


def test_search_treats_like_wildcards_literally(db_session):
    patients.create_patient(db_session, "AB1", "Jane Doe")

    assert patients.search_patients(db_session, "A_1", threshold=101) == []
    assert patients.search_patients(db_session, "%", threshold=101) == []
    assert [p.patient_id for p in patients.search_patients(db_session, "AB", threshold=101)] == ["AB1"]


class _FakeResponse:
    def __init__(self, status_code: int, payload=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self._payload = payload

    def json(self):
        return self._payload


class _FakeSession:
    def __init__(self, response: _FakeResponse):
        self.response = response
        self.urls: list[str] = []

    def get(self, url, timeout):
        self.urls.append(url)
        return self.response


def test_http_identity_source_maps_responses():
    found = HttpIdentitySource(
        "http://identity.local/",
        session=_FakeSession(_FakeResponse(200, {"name": "Jane Doe", "gender": "Female"})),
    )
    record = found.lookup("A100")
    assert record.patient_id == "A100"
    assert record.name == "Jane Doe"
    assert found.session.urls == ["http://identity.local/patients/A100"]

    missing = HttpIdentitySource("http://identity.local", session=_FakeSession(_FakeResponse(404)))
    assert missing.lookup("A100") is None

    failing = HttpIdentitySource("http://identity.local", session=_FakeSession(_FakeResponse(500)))
    with pytest.raises(ExternalServiceError):
        failing.lookup("A100")


def test_patient_api_lookup_and_crud(client, feed):
    res = client.post("/api/patients/lookup", json={"patient_id": "A100"})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["created"] is True
    assert data["patient"]["patient_id"] == "A100"
    patient_pk = data["patient"]["id"]

    res = client.post("/api/patients/lookup", json={"patient_id": "A100"})
    assert res.json()["data"]["created"] is False
    assert res.json()["data"]["patient"]["id"] == patient_pk

    res = client.post("/api/patients/lookup", json={"patient_id": "UNKNOWN"})
    assert res.status_code == 404
    assert res.json()["error"] == "NotFound"

    res = client.get("/api/patients/by-key/A100")
    assert res.json()["data"]["name"] == "Jane Doe"

    res = client.patch(f"/api/patients/{patient_pk}", json={"address": "Malé"})
    assert res.json()["data"]["address"] == "Malé"

    res = client.post("/api/patients", json={"patient_id": "A100", "name": "Someone Else"})
    assert res.status_code == 409

    res = client.get("/api/patients", params={"limit": 5})
    assert [p["patient_id"] for p in res.json()["data"]] == ["A100"]

    assert client.delete(f"/api/patients/{patient_pk}").status_code == 200
    assert client.get(f"/api/patients/{patient_pk}").status_code == 404
    assert feed.version("patients") == 3
