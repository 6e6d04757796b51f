"""
Patient and dentist lookups.

The ledger only needs to know whether a patient or dentist exists, whether the
account is active and, for dentists, the role. Anything that implements
``PatientDirectory`` can be injected; ``InMemoryDirectory`` backs tests and
deployments that seed accounts from settings; ``dental_billing.services.directory_service``
holds the HTTP-backed lookup.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Protocol
import enum


class StaffRole(str, enum.Enum):
    ADMIN = "ADMIN"
    DENTIST = "DENTIST"
    ASSISTANT = "ASSISTANT"


# roles allowed to author treatments
CLINICAL_ROLES = frozenset({StaffRole.DENTIST, StaffRole.ADMIN})


@dataclass(frozen=True)
class PatientRecord:
    id: str
    is_active: bool = True
    email: Optional[str] = None


@dataclass(frozen=True)
class DentistRecord:
    id: str
    role: StaffRole = StaffRole.DENTIST
    is_active: bool = True


class PatientDirectory(Protocol):
    def get_patient(self, patient_id: str) -> Optional[PatientRecord]:
        ...

    def get_dentist(self, dentist_id: str) -> Optional[DentistRecord]:
        ...


class InMemoryDirectory:
    """Dictionary-backed directory"""

    def __init__(
        self,
        patients: Iterable[PatientRecord] = (),
        dentists: Iterable[DentistRecord] = ()
    ):
        self._patients: Dict[str, PatientRecord] = {p.id: p for p in patients}
        self._dentists: Dict[str, DentistRecord] = {d.id: d for d in dentists}

    @classmethod
    def from_mapping(
        cls,
        patients: Iterable[Dict[str, Any]] = (),
        staff: Iterable[Dict[str, Any]] = ()
    ) -> "InMemoryDirectory":
        """Build from plain dicts such as the DIRECTORY_PATIENTS / DIRECTORY_STAFF settings"""
        return cls(
            patients=[
                PatientRecord(
                    id=str(p["id"]),
                    is_active=bool(p.get("is_active", True)),
                    email=p.get("email")
                )
                for p in patients
            ],
            dentists=[
                DentistRecord(
                    id=str(s["id"]),
                    role=StaffRole(s.get("role", StaffRole.DENTIST.value)),
                    is_active=bool(s.get("is_active", True))
                )
                for s in staff
            ]
        )

    def add_patient(self, patient: PatientRecord) -> None:
        self._patients[patient.id] = patient

    def add_dentist(self, dentist: DentistRecord) -> None:
        self._dentists[dentist.id] = dentist

    def get_patient(self, patient_id: str) -> Optional[PatientRecord]:
        return self._patients.get(patient_id)

    def get_dentist(self, dentist_id: str) -> Optional[DentistRecord]:
        return self._dentists.get(dentist_id)
