"""
Best-effort audit trail.

Audit records are written after the primary transaction commits, in their own
session. A failing write is logged and dropped; it never undoes the change it
describes.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Protocol
import enum
import logging

from sqlalchemy.orm import sessionmaker

from dental_billing.domain.audit.models import AuditLog, AuditAction, AuditResource

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def record(
        self,
        action: AuditAction,
        entity_type: AuditResource,
        entity_id: Optional[str],
        old_data: Optional[dict] = None,
        new_data: Optional[dict] = None,
        user_id: Optional[str] = None
    ) -> None:
        ...


def to_jsonable(value: Any) -> Any:
    """Make Decimals, dates and enums safe for a JSON column"""
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


class DatabaseAuditSink:
    """Writes audit rows to the audit_logs table"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record(
        self,
        action: AuditAction,
        entity_type: AuditResource,
        entity_id: Optional[str],
        old_data: Optional[dict] = None,
        new_data: Optional[dict] = None,
        user_id: Optional[str] = None
    ) -> None:
        try:
            with self.session_factory() as session:
                session.add(AuditLog(
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    user_id=user_id,
                    old_data=to_jsonable(old_data),
                    new_data=to_jsonable(new_data),
                ))
                session.commit()
        except Exception as e:
            logger.error(f"Failed to create audit log for {action.value} on {entity_type.value} {entity_id}: {e}")


class NullAuditSink:
    """Discards audit records"""

    def record(self, action, entity_type, entity_id, old_data=None, new_data=None, user_id=None) -> None:
        logger.debug(f"Audit {action.value} on {entity_type.value} {entity_id} discarded")
