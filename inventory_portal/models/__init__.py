"""SQLAlchemy ORM Models for the inventory portal."""

from .base import Base, UUIDMixin, as_utc, utcnow
from .models import (
    # Enums
    ActorType,
    AuditAction,
    AuditScope,
    InventoryFileStatus,
    InventoryItemStatus,
    ReminderStatus,
    PENDING_FILE_STATUSES,
    QUEUED_OR_SENT_STATUSES,
    REMINDER_TRANSITIONS,
    # Portal entities
    Organization,
    InventoryFile,
    InventoryItem,
    AuditLog,
    AppSettings,
    # Reminders
    ReminderApproval,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "as_utc",
    "utcnow",
    # Enums
    "ActorType",
    "AuditAction",
    "AuditScope",
    "InventoryFileStatus",
    "InventoryItemStatus",
    "ReminderStatus",
    "PENDING_FILE_STATUSES",
    "QUEUED_OR_SENT_STATUSES",
    "REMINDER_TRANSITIONS",
    # Portal entities
    "Organization",
    "InventoryFile",
    "InventoryItem",
    "AuditLog",
    "AppSettings",
    # Reminders
    "ReminderApproval",
]
