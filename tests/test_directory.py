import pytest

import httpx

from dental_billing.core.exceptions import ExternalServiceError
from dental_billing.infrastructure.directory import InMemoryDirectory, StaffRole
from dental_billing.services import directory_service
from dental_billing.services.directory_service import HttpDirectory, build_directory

pytestmark = pytest.mark.unit

PATIENTS = {
    "p-1": {"id": "p-1", "email": "jane@example.com", "isActive": True},
    "p-2": {"id": "p-2", "email": None, "isActive": False},
}
USERS = {
    "u-1": {"id": "u-1", "role": "DENTIST", "isActive": True},
    "u-2": {"id": "u-2", "role": "ASSISTANT", "isActive": True},
    "u-3": {"id": "u-3", "role": "JANITOR", "isActive": True},
}


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def http_directory(requests_seen):
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        kind, _, record_id = request.url.path.rpartition("/")
        records = PATIENTS if kind.endswith("/patients") else USERS
        if record_id == "boom":
            return httpx.Response(500)
        if record_id not in records:
            return httpx.Response(404)
        return httpx.Response(200, json=records[record_id])

    return HttpDirectory(
        base_url="https://front-office.example/api/",
        token="secret",
        transport=httpx.MockTransport(handler)
    )


def test_http_patient_lookup(http_directory, requests_seen):
    patient = http_directory.get_patient("p-1")

    assert patient.id == "p-1"
    assert patient.email == "jane@example.com"
    assert patient.is_active is True
    assert str(requests_seen[0].url) == "https://front-office.example/api/patients/p-1"
    assert requests_seen[0].headers["Authorization"] == "Bearer secret"


def test_http_inactive_patient(http_directory):
    assert http_directory.get_patient("p-2").is_active is False


def test_http_staff_lookup(http_directory):
    assert http_directory.get_dentist("u-1").role == StaffRole.DENTIST
    assert http_directory.get_dentist("u-2").role == StaffRole.ASSISTANT


def test_http_missing_records_are_none(http_directory):
    assert http_directory.get_patient("nobody") is None
    assert http_directory.get_dentist("nobody") is None


@pytest.mark.parametrize("lookup, record_id", [
    ("get_patient", "boom"),
    ("get_dentist", "boom"),
    ("get_dentist", "u-3"),
])
def test_http_failures_raise_external_service_error(http_directory, lookup, record_id):
    with pytest.raises(ExternalServiceError) as exc_info:
        getattr(http_directory, lookup)(record_id)

    assert exc_info.value.details["service_name"] == "directory"


def test_http_connection_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    directory = HttpDirectory(base_url="https://front-office.example", transport=httpx.MockTransport(handler))

    with pytest.raises(ExternalServiceError):
        directory.get_patient("p-1")


def test_in_memory_directory_from_mapping():
    directory = InMemoryDirectory.from_mapping(
        patients=[{"id": "p-1", "email": "jane@example.com"}],
        staff=[{"id": "u-1"}, {"id": "u-2", "role": "ADMIN", "is_active": False}]
    )

    assert directory.get_patient("p-1").email == "jane@example.com"
    assert directory.get_dentist("u-1").role == StaffRole.DENTIST
    assert directory.get_dentist("u-2").role == StaffRole.ADMIN
    assert directory.get_dentist("u-2").is_active is False


def test_build_directory_uses_service_url(monkeypatch):
    monkeypatch.setattr(directory_service.settings, "DIRECTORY_SERVICE_URL", "https://front-office.example")

    directory = build_directory()

    assert isinstance(directory, HttpDirectory)
    directory.close()


def test_build_directory_falls_back_to_settings_seed(monkeypatch):
    monkeypatch.setattr(directory_service.settings, "DIRECTORY_SERVICE_URL", None)
    monkeypatch.setattr(directory_service.settings, "DIRECTORY_PATIENTS", [{"id": "p-9"}])
    monkeypatch.setattr(directory_service.settings, "DIRECTORY_STAFF", [{"id": "u-9", "role": "DENTIST"}])

    directory = build_directory()

    assert isinstance(directory, InMemoryDirectory)
    assert directory.get_patient("p-9") is not None
    assert directory.get_dentist("u-9").role == StaffRole.DENTIST
