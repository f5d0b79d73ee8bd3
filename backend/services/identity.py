"""
External identity source.

Resolves a patient business key to demographic data. The mock source mirrors
the synthetic record the front desk used before a real integration existed;
the HTTP source calls a remote lookup service.
"""
import logging
from typing import Protocol

import requests
from pydantic import ValidationError as SchemaError

from backend.config import settings
from backend.errors import ExternalServiceError
from backend.schemas.patient import IdentityRecord

logger = logging.getLogger(__name__)


class IdentitySource(Protocol):
    def lookup(self, patient_id: str) -> IdentityRecord | None:
        ...


class MockIdentitySource:
    """Deterministic synthetic record for every business key."""

    def lookup(self, patient_id: str) -> IdentityRecord | None:
        return IdentityRecord(
            patient_id=patient_id,
            name=f"Patient {patient_id}",
            date_of_birth="1990-01-01",
            gender="Male",
            phone="+960 123-4567",
            address="Malé, Maldives",
            external_record={
                "insurance_status": "active",
                "policy_number": f"ASS{patient_id}",
                "coverage_type": "full",
            },
        )


class HttpIdentitySource:
    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def lookup(self, patient_id: str) -> IdentityRecord | None:
        url = f"{self.base_url}/patients/{patient_id}"
        try:
            res = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Identity source unreachable for %s: %s", patient_id, exc)
            raise ExternalServiceError("Identity source is unavailable") from exc

        if res.status_code == 404:
            return None
        if not res.ok:
            logger.warning("Identity source returned %s for %s", res.status_code, patient_id)
            raise ExternalServiceError(
                "Identity source lookup failed",
                details={"status": res.status_code},
            )

        try:
            payload = res.json()
        except ValueError as exc:
            raise ExternalServiceError("Identity source returned an invalid response") from exc
        if not payload:
            return None
        payload.setdefault("patient_id", patient_id)
        try:
            return IdentityRecord.model_validate(payload)
        except SchemaError as exc:
            raise ExternalServiceError("Identity source returned an incomplete record") from exc


def build_identity_source() -> IdentitySource:
    if settings.identity_source_url:
        return HttpIdentitySource(settings.identity_source_url, timeout=settings.identity_source_timeout_seconds)
    return MockIdentitySource()


_identity_source: IdentitySource | None = None


def get_identity_source() -> IdentitySource:
    global _identity_source
    if _identity_source is None:
        _identity_source = build_identity_source()
    return _identity_source
