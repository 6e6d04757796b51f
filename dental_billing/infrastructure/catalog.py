"""
Procedure catalog lookups.

Prices are read once when a procedure is added to a treatment and copied onto
the item, so later catalog edits never reprice existing items.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional, Protocol
import enum


class ProcedureCategory(str, enum.Enum):
    DIAGNOSTIC = "DIAGNOSTIC"
    PREVENTIVE = "PREVENTIVE"
    RESTORATIVE = "RESTORATIVE"
    ENDODONTICS = "ENDODONTICS"
    ORAL_SURGERY = "ORAL_SURGERY"
    PERIODONTICS = "PERIODONTICS"
    ORTHODONTICS = "ORTHODONTICS"
    PROSTHODONTICS = "PROSTHODONTICS"
    COSMETIC = "COSMETIC"
    EMERGENCY = "EMERGENCY"
    OTHER = "OTHER"


@dataclass(frozen=True)
class ProcedureRecord:
    id: str
    code: str
    name: str
    default_cost: Decimal
    category: ProcedureCategory = ProcedureCategory.OTHER
    insurance_cost: Optional[Decimal] = None
    is_active: bool = True
    # Informational only: item cost is multiplied by tooth count regardless
    per_tooth: bool = False


class ProcedureCatalog(Protocol):
    def get_procedure(self, procedure_id: str) -> Optional[ProcedureRecord]:
        ...


class InMemoryProcedureCatalog:
    """Dictionary-backed catalog"""

    def __init__(self, procedures: Iterable[ProcedureRecord] = ()):
        self._procedures: Dict[str, ProcedureRecord] = {p.id: p for p in procedures}

    def add(self, procedure: ProcedureRecord) -> None:
        self._procedures[procedure.id] = procedure

    def get_procedure(self, procedure_id: str) -> Optional[ProcedureRecord]:
        return self._procedures.get(procedure_id)


def _proc(id, code, name, category, cost, insurance, per_tooth=False):
    return ProcedureRecord(
        id=id,
        code=code,
        name=name,
        category=category,
        default_cost=Decimal(cost),
        insurance_cost=Decimal(insurance),
        per_tooth=per_tooth,
    )


DEFAULT_PROCEDURES = [
    _proc("proc-001", "D0120", "Periodic Oral Evaluation", ProcedureCategory.DIAGNOSTIC, "100", "50"),
    _proc("proc-002", "D0140", "Emergency Oral Evaluation", ProcedureCategory.DIAGNOSTIC, "150", "75"),
    _proc("proc-003", "D0210", "Complete X-ray Series", ProcedureCategory.DIAGNOSTIC, "200", "150"),
    _proc("proc-004", "D0220", "Periapical X-ray", ProcedureCategory.DIAGNOSTIC, "50", "30", True),
    _proc("proc-005", "D1110", "Prophylaxis - Adult", ProcedureCategory.PREVENTIVE, "250", "150"),
    _proc("proc-006", "D1206", "Fluoride Varnish", ProcedureCategory.PREVENTIVE, "100", "50"),
    _proc("proc-007", "D1351", "Sealant", ProcedureCategory.PREVENTIVE, "80", "40", True),
    _proc("proc-008", "D2330", "Composite - One Surface", ProcedureCategory.RESTORATIVE, "200", "100", True),
    _proc("proc-009", "D2331", "Composite - Two Surfaces", ProcedureCategory.RESTORATIVE, "250", "125", True),
    _proc("proc-010", "D2332", "Composite - Three Surfaces", ProcedureCategory.RESTORATIVE, "300", "150", True),
    _proc("proc-011", "D2335", "Composite - Four+ Surfaces", ProcedureCategory.RESTORATIVE, "350", "175", True),
    _proc("proc-012", "D3310", "Root Canal - Anterior", ProcedureCategory.ENDODONTICS, "800", "400", True),
    _proc("proc-013", "D3320", "Root Canal - Premolar", ProcedureCategory.ENDODONTICS, "1000", "500", True),
    _proc("proc-014", "D3330", "Root Canal - Molar", ProcedureCategory.ENDODONTICS, "1200", "600", True),
    _proc("proc-015", "D7140", "Simple Extraction", ProcedureCategory.ORAL_SURGERY, "200", "100", True),
    _proc("proc-016", "D7210", "Surgical Extraction", ProcedureCategory.ORAL_SURGERY, "400", "200", True),
    _proc("proc-017", "D7240", "Wisdom Tooth Extraction", ProcedureCategory.ORAL_SURGERY, "500", "250", True),
]


def default_catalog() -> InMemoryProcedureCatalog:
    return InMemoryProcedureCatalog(DEFAULT_PROCEDURES)
