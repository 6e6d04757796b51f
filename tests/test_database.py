import pytest
from sqlalchemy import text

from dental_billing.core.exceptions import DatabaseError
from dental_billing.domain.treatments.models import Treatment
from dental_billing.infrastructure.database import unit_of_work

pytestmark = pytest.mark.integration


def test_store_errors_surface_as_database_error(db):
    with pytest.raises(DatabaseError) as exc_info:
        with unit_of_work(db):
            db.execute(text("SELECT * FROM no_such_table"))

    assert exc_info.value.error_code == "DATABASE_OPERATION_ERROR"
    assert exc_info.value.details["operation"] == "unit of work"


def test_failed_unit_of_work_rolls_back(db, treatment):
    with pytest.raises(RuntimeError):
        with unit_of_work(db):
            db.get(Treatment, treatment.id).notes = "changed"
            db.flush()
            raise RuntimeError("boom")

    assert db.get(Treatment, treatment.id).notes is None


def test_write_units_begin_immediate_on_sqlite(db):
    with unit_of_work(db):
        assert db.connection().get_execution_options()["sqlite_begin"] == "IMMEDIATE"
