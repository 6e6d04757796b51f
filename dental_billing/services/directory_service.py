"""
Patient and staff lookups against the clinic's front-office API.

Patients are read from ``GET {base}/patients/{id}`` and staff from
``GET {base}/users/{id}``. A 404 means the record does not exist; any other
failure is an ExternalServiceError, since the ledger cannot decide who may
author a treatment without an answer.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from dental_billing.core.config import settings
from dental_billing.core.exceptions import handle_external_service_error
from dental_billing.infrastructure.directory import (
    DentistRecord, InMemoryDirectory, PatientDirectory, PatientRecord, StaffRole
)


class HttpDirectory:
    """PatientDirectory backed by an HTTP service"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        base_url = base_url or settings.DIRECTORY_SERVICE_URL
        if not base_url:
            raise ValueError("HttpDirectory needs a base URL (DIRECTORY_SERVICE_URL)")
        token = token or settings.DIRECTORY_SERVICE_TOKEN

        self.client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"} if token else {},
            timeout=timeout or settings.DIRECTORY_TIMEOUT_SECONDS,
            transport=transport
        )

    def close(self) -> None:
        self.client.close()

    def _fetch(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.get(path)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise handle_external_service_error(e, "directory", f"GET {path}")

    def get_patient(self, patient_id: str) -> Optional[PatientRecord]:
        data = self._fetch(f"/patients/{quote(patient_id, safe='')}")
        if data is None:
            return None
        return PatientRecord(
            id=str(data.get("id", patient_id)),
            is_active=bool(data.get("isActive", True)),
            email=data.get("email")
        )

    def get_dentist(self, dentist_id: str) -> Optional[DentistRecord]:
        path = f"/users/{quote(dentist_id, safe='')}"
        data = self._fetch(path)
        if data is None:
            return None
        try:
            role = StaffRole(data.get("role"))
        except ValueError as e:
            raise handle_external_service_error(e, "directory", f"GET {path}")
        return DentistRecord(
            id=str(data.get("id", dentist_id)),
            role=role,
            is_active=bool(data.get("isActive", True))
        )


def build_directory() -> PatientDirectory:
    """The directory the app runs with, chosen from settings"""
    if settings.DIRECTORY_SERVICE_URL:
        logger.info(f"Using directory service at {settings.DIRECTORY_SERVICE_URL}")
        return HttpDirectory()

    logger.warning(
        "DIRECTORY_SERVICE_URL is not set; using the in-memory directory from "
        f"DIRECTORY_PATIENTS ({len(settings.DIRECTORY_PATIENTS)}) and "
        f"DIRECTORY_STAFF ({len(settings.DIRECTORY_STAFF)})"
    )
    return InMemoryDirectory.from_mapping(settings.DIRECTORY_PATIENTS, settings.DIRECTORY_STAFF)
