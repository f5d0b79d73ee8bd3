import os

import requests
import streamlit as st

BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
TIMEOUT = 30


class ApiClient:
    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    # -- change feed ---------------------------------------------------------
    def changes(self) -> dict[str, int]:
        try:
            res = requests.get(self._url("/api/changes"), timeout=TIMEOUT)
        except requests.RequestException:
            return {}
        return res.json().get("data", {}) if res.ok else {}

    # -- taxonomy ------------------------------------------------------------
    def create_category(self, name: str, description: str | None = None):
        return requests.post(self._url("/api/categories"), json={"name": name, "description": description}, timeout=TIMEOUT)

    def update_category(self, category_id: str, name: str, description: str | None = None):
        return requests.put(
            self._url(f"/api/categories/{category_id}"),
            json={"name": name, "description": description},
            timeout=TIMEOUT,
        )

    def delete_category(self, category_id: str):
        return requests.delete(self._url(f"/api/categories/{category_id}"), timeout=TIMEOUT)

    def create_test(self, name: str, category_id: str, code: str | None = None, description: str | None = None):
        payload = {"name": name, "category_id": category_id, "code": code, "description": description}
        return requests.post(self._url("/api/tests"), json=payload, timeout=TIMEOUT)

    def update_test(self, test_id: str, **fields):
        return requests.patch(self._url(f"/api/tests/{test_id}"), json=fields, timeout=TIMEOUT)

    def delete_test(self, test_id: str):
        return requests.delete(self._url(f"/api/tests/{test_id}"), timeout=TIMEOUT)

    def import_tests(self, file_name: str, content: bytes):
        return requests.post(self._url("/api/imports/tests"), files={"file": (file_name, content)}, timeout=120)

    def template(self, file_format: str = "xlsx"):
        return requests.get(self._url("/api/imports/template"), params={"format": file_format}, timeout=TIMEOUT)

    # -- patients ------------------------------------------------------------
    def lookup_patient(self, patient_id: str):
        return requests.post(self._url("/api/patients/lookup"), json={"patient_id": patient_id}, timeout=TIMEOUT)

    def create_patient(self, **fields):
        return requests.post(self._url("/api/patients"), json=fields, timeout=TIMEOUT)

    def update_patient(self, patient_pk: str, **fields):
        return requests.patch(self._url(f"/api/patients/{patient_pk}"), json=fields, timeout=TIMEOUT)

    def delete_patient(self, patient_pk: str):
        return requests.delete(self._url(f"/api/patients/{patient_pk}"), timeout=TIMEOUT)

    # -- working set ---------------------------------------------------------
    def workset(self, patient_pk: str):
        return requests.get(self._url(f"/api/worksets/{patient_pk}"), timeout=TIMEOUT)

    def add_to_workset(self, patient_pk: str, test_id: str):
        return requests.post(self._url(f"/api/worksets/{patient_pk}/tests"), json={"test_id": test_id}, timeout=TIMEOUT)

    def remove_from_workset(self, patient_pk: str, test_id: str):
        return requests.delete(self._url(f"/api/worksets/{patient_pk}/tests/{test_id}"), timeout=TIMEOUT)

    def clear_workset(self, patient_pk: str):
        return requests.delete(self._url(f"/api/worksets/{patient_pk}"), timeout=TIMEOUT)

    def save_workset(self, patient_pk: str, notes: str | None = None):
        return requests.post(self._url(f"/api/worksets/{patient_pk}/save"), json={"notes": notes}, timeout=TIMEOUT)

    def export_workset(self, patient_pk: str):
        return requests.get(self._url(f"/api/worksets/{patient_pk}/export"), timeout=TIMEOUT)

    # -- history -------------------------------------------------------------
    def update_selection(self, selection_id: str, status: str | None = None, notes: str | None = None):
        return requests.patch(
            self._url(f"/api/selections/{selection_id}"),
            json={"status": status, "notes": notes},
            timeout=TIMEOUT,
        )

    def delete_selection(self, selection_id: str):
        return requests.delete(self._url(f"/api/selections/{selection_id}"), timeout=TIMEOUT)


# ---------------------------------------------------------------------------
# Cached data fetchers. The ``version`` argument comes from /api/changes, so
# a write on the backend produces a new cache key for every dependent read.
# ---------------------------------------------------------------------------

def _get(path: str, **params) -> tuple[bool, list | dict]:
    try:
        res = requests.get(f"{BASE_URL}{path}", params=params or None, timeout=TIMEOUT)
    except requests.RequestException:
        return False, []
    return res.ok, res.json().get("data", []) if res.ok else []


@st.cache_data(ttl=300, show_spinner=False)
def cached_categories(version: int) -> tuple[bool, list]:
    return _get("/api/categories")


@st.cache_data(ttl=300, show_spinner=False)
def cached_tests(version: int, category_id: str | None = None) -> tuple[bool, list]:
    if category_id:
        return _get("/api/tests", category_id=category_id)
    return _get("/api/tests")


@st.cache_data(ttl=300, show_spinner=False)
def cached_patients(version: int, query: str | None = None, limit: int = 20) -> tuple[bool, list]:
    if query:
        return _get("/api/patients", q=query, limit=limit)
    return _get("/api/patients", limit=limit)


@st.cache_data(ttl=300, show_spinner=False)
def cached_history(version: int, patient_pk: str) -> tuple[bool, dict]:
    return _get("/api/selections", patient_id=patient_pk)
