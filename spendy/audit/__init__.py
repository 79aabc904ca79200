"""Audit logging package."""

from spendy.audit.logger import AuditLogger, create_correlation_id
from spendy.audit.storage import AuditStorageInterface, InMemoryAuditStorage

__all__ = [
    "AuditLogger",
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "create_correlation_id",
]
