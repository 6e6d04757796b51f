from dental_billing.domain.audit.models import AuditLog, AuditAction, AuditResource
from dental_billing.domain.audit.service import AuditSink, DatabaseAuditSink, NullAuditSink

__all__ = [
    "AuditLog",
    "AuditAction",
    "AuditResource",
    "AuditSink",
    "DatabaseAuditSink",
    "NullAuditSink",
]
