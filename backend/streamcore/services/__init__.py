"""Cross-cutting services."""

from streamcore.services.audit import Actor, ActorRole, AuditRecord, record_audit

__all__ = [
    "Actor",
    "ActorRole",
    "AuditRecord",
    "record_audit",
]
