import pytest

from backend.errors import ConflictError, NotFoundError, ValidationError
from backend.models.taxonomy import Category, LabTest
from backend.services import taxonomy


@pytest.mark.parametrize("name", ["", "   ", "\t\n", None])
def test_create_category_rejects_blank_name(db_session, name):
    with pytest.raises(ValidationError):
        taxonomy.create_category(db_session, name)
    assert db_session.query(Category).count() == 0


def test_create_category_trims_fields(db_session):
    category = taxonomy.create_category(db_session, "  Chemistry ", "   ")
    assert category.name == "Chemistry"
    assert category.description is None


def test_category_names_are_unique(db_session):
    taxonomy.create_category(db_session, "Chemistry")
    with pytest.raises(ConflictError):
        taxonomy.create_category(db_session, "Chemistry")
    assert db_session.query(Category).count() == 1


def test_rename_category_onto_existing_name_conflicts(db_session):
    taxonomy.create_category(db_session, "Chemistry")
    hematology = taxonomy.create_category(db_session, "Hematology")
    with pytest.raises(ConflictError):
        taxonomy.update_category(db_session, hematology.id, "Chemistry")

    renamed = taxonomy.update_category(db_session, hematology.id, "Haematology", "Blood counts")
    assert renamed.name == "Haematology"
    assert renamed.description == "Blood counts"


def test_lists_are_ordered_by_name(db_session):
    for name in ["Urinalysis", "Chemistry", "Lipid Panel"]:
        taxonomy.create_category(db_session, name)
    assert [c.name for c in taxonomy.list_categories(db_session)] == ["Chemistry", "Lipid Panel", "Urinalysis"]

    chemistry = taxonomy.get_category_by_name(db_session, "Chemistry")
    for name in ["Sodium", "Albumin", "Glucose"]:
        taxonomy.create_test(db_session, name, chemistry.id)
    assert [t.name for t in taxonomy.list_tests_by_category(db_session, chemistry.id)] == ["Albumin", "Glucose", "Sodium"]


def test_create_test_requires_existing_category(db_session):
    with pytest.raises(ValidationError):
        taxonomy.create_test(db_session, "Glucose", "missing-category")
    with pytest.raises(ValidationError):
        taxonomy.create_test(db_session, "Glucose", None)
    assert db_session.query(LabTest).count() == 0


def test_update_test_is_partial(db_session):
    chemistry = taxonomy.create_category(db_session, "Chemistry")
    test = taxonomy.create_test(db_session, "Glucose", chemistry.id, code="GLU", description="Fasting")

    updated = taxonomy.update_test(db_session, test.id, {"code": "GLU-F"})
    assert updated.name == "Glucose"
    assert updated.code == "GLU-F"
    assert updated.description == "Fasting"

    with pytest.raises(ValidationError):
        taxonomy.update_test(db_session, test.id, {"name": "  "})
    with pytest.raises(ValidationError):
        taxonomy.update_test(db_session, test.id, {"category_id": "nope"})


def test_deleting_category_orphans_its_tests(db_session):
    chemistry = taxonomy.create_category(db_session, "Chemistry")
    test = taxonomy.create_test(db_session, "Glucose", chemistry.id)

    taxonomy.delete_category(db_session, chemistry.id, policy="orphan")

    assert db_session.query(Category).count() == 0
    orphan = db_session.query(LabTest).filter(LabTest.id == test.id).first()
    assert orphan is not None
    assert orphan.category_id == chemistry.id


def test_restrict_policy_refuses_delete_with_tests(db_session):
    chemistry = taxonomy.create_category(db_session, "Chemistry")
    taxonomy.create_test(db_session, "Glucose", chemistry.id)

    with pytest.raises(ConflictError):
        taxonomy.delete_category(db_session, chemistry.id, policy="restrict")
    assert db_session.query(Category).count() == 1


def test_delete_unknown_ids(db_session):
    with pytest.raises(NotFoundError):
        taxonomy.delete_category(db_session, "missing")
    with pytest.raises(NotFoundError):
        taxonomy.delete_test(db_session, "missing")


def test_writes_publish_changes(db_session, feed):
    chemistry = taxonomy.create_category(db_session, "Chemistry", feed=feed)
    taxonomy.create_test(db_session, "Glucose", chemistry.id, feed=feed)
    assert feed.version("categories") == 1
    assert feed.version("tests") == 1

    with pytest.raises(ValidationError):
        taxonomy.create_category(db_session, " ", feed=feed)
    assert feed.version("categories") == 1


def test_category_and_test_api(client, feed):
    res = client.post("/api/categories", json={"name": "Chemistry", "description": "Clinical chemistry"})
    assert res.status_code == 200
    category = res.json()["data"]
    assert category["name"] == "Chemistry"

    res = client.post("/api/tests", json={"name": "Glucose", "category_id": category["id"], "code": "GLU"})
    assert res.status_code == 200
    test_id = res.json()["data"]["id"]

    res = client.get("/api/tests")
    rows = res.json()["data"]
    assert rows[0]["category_name"] == "Chemistry"

    res = client.patch(f"/api/tests/{test_id}", json={"description": "Fasting glucose"})
    assert res.json()["data"]["description"] == "Fasting glucose"
    assert res.json()["data"]["code"] == "GLU"

    res = client.get(f"/api/categories/{category['id']}/tests")
    assert [t["name"] for t in res.json()["data"]] == ["Glucose"]

    res = client.delete(f"/api/categories/{category['id']}")
    assert res.status_code == 200
    assert client.get("/api/tests").json()["data"][0]["category_name"] is None

    assert client.get("/api/changes").json()["data"]["categories"] == 2


def test_blank_category_name_returns_validation_envelope(client):
    res = client.post("/api/categories", json={"name": "   "})
    assert res.status_code == 422
    payload = res.json()
    assert payload["error"] == "ValidationError"
    assert payload["message"] == "Category name is required"


def test_duplicate_category_returns_conflict(client):
    client.post("/api/categories", json={"name": "Chemistry"})
    res = client.post("/api/categories", json={"name": "Chemistry"})
    assert res.status_code == 409
    assert res.json()["error"] == "Conflict"
