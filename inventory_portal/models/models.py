"""SQLAlchemy ORM Models for the inventory portal.

Organizations, inventory files and the audit log are owned by the portal's
CRUD layer; the reminder engine only reads them. Reminder approvals are
created by the scheduler and resolved by the approval workflow.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, utcnow


# =============================================================================
# ENUMS
# =============================================================================


class InventoryFileStatus(str, PyEnum):
    NOT_SUBMITTED = "NOT_SUBMITTED"
    PUBLISHED = "PUBLISHED"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"


# Files still waiting on the organization
PENDING_FILE_STATUSES = (InventoryFileStatus.NOT_SUBMITTED, InventoryFileStatus.PUBLISHED)


class InventoryItemStatus(str, PyEnum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    NEEDS_CLARIFICATION = "NEEDS_CLARIFICATION"


class AuditScope(str, PyEnum):
    ORG_ACCESS = "ORG_ACCESS"
    INVENTORY_FILE = "INVENTORY_FILE"
    APP_SETTINGS = "APP_SETTINGS"


class ActorType(str, PyEnum):
    SYSTEM = "SYSTEM"
    ADMIN = "ADMIN"
    ORG = "ORG"


class AuditAction(str, PyEnum):
    """Audit action tags read or written by the reminder engine."""
    ORG_LOGIN = "ORG_LOGIN"
    ORG_REMINDER_QUEUED = "ORG_REMINDER_QUEUED"
    ORG_REMINDER_SENT = "ORG_REMINDER_SENT"
    ORG_REMINDER_REJECTED = "ORG_REMINDER_REJECTED"
    ORG_REMINDER_SEND_FAILED = "ORG_REMINDER_SEND_FAILED"
    ORG_REMINDER_CYCLE_TRIGGERED = "ORG_REMINDER_CYCLE_TRIGGERED"
    ORG_REMINDER_TEST_SENT = "ORG_REMINDER_TEST_SENT"


class ReminderStatus(str, PyEnum):
    """Lifecycle of a reminder approval.

    APPROVED is never written by the engine; rows in that state are treated
    as still pending delivery.
    """
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    SENT = "SENT"
    REJECTED = "REJECTED"

    @property
    def is_active(self) -> bool:
        return self in (ReminderStatus.PENDING_APPROVAL, ReminderStatus.APPROVED)

    @property
    def is_terminal(self) -> bool:
        return not REMINDER_TRANSITIONS[self]

    def can_transition_to(self, target: "ReminderStatus") -> bool:
        return target in REMINDER_TRANSITIONS[self]


REMINDER_TRANSITIONS: dict[ReminderStatus, frozenset[ReminderStatus]] = {
    ReminderStatus.PENDING_APPROVAL: frozenset({ReminderStatus.SENT, ReminderStatus.REJECTED}),
    ReminderStatus.APPROVED: frozenset(),
    ReminderStatus.SENT: frozenset(),
    ReminderStatus.REJECTED: frozenset(),
}

# Statuses that count as "a reminder already exists" for eligibility
QUEUED_OR_SENT_STATUSES = (
    ReminderStatus.PENDING_APPROVAL,
    ReminderStatus.APPROVED,
    ReminderStatus.SENT,
)


def _enum_column(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# ORGANIZATION & INVENTORY MODELS
# =============================================================================


class Organization(Base, UUIDMixin):
    """Organization whose inventory is being validated."""

    __tablename__ = "organizations"

    org_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True)
    reminder_notifications_enabled: Mapped[bool] = mapped_column(default=True)
    support_contact_email: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    # Relationships
    inventory_files: Mapped[list["InventoryFile"]] = relationship(
        back_populates="organization"
    )


class InventoryFile(Base, UUIDMixin):
    """An imported inventory list awaiting validation by its organization."""

    __tablename__ = "inventory_files"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    source_filename: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[InventoryFileStatus] = mapped_column(
        _enum_column(InventoryFileStatus, "inventory_file_status"),
        default=InventoryFileStatus.NOT_SUBMITTED,
    )
    imported_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    # Relationships
    organization: Mapped["Organization"] = relationship(back_populates="inventory_files")
    items: Mapped[list["InventoryItem"]] = relationship(back_populates="inventory_file")

    __table_args__ = (
        Index("idx_inventory_files_org_status", "organization_id", "status", "imported_at"),
    )


class InventoryItem(Base, UUIDMixin):
    """A single row of an inventory file."""

    __tablename__ = "inventory_items"

    inventory_file_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_files.id"), nullable=False
    )
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[InventoryItemStatus] = mapped_column(
        _enum_column(InventoryItemStatus, "inventory_item_status"),
        default=InventoryItemStatus.PENDING,
    )

    # Relationships
    inventory_file: Mapped["InventoryFile"] = relationship(back_populates="items")

    __table_args__ = (
        Index("idx_inventory_items_file_status", "inventory_file_id", "status"),
    )


# =============================================================================
# AUDIT MODEL
# =============================================================================


class AuditLog(Base, UUIDMixin):
    """Append-only audit trail.

    ``action`` is free-form text because the CRUD layer writes tags this
    module does not know about.
    """

    __tablename__ = "audit_log"

    scope: Mapped[AuditScope] = mapped_column(
        _enum_column(AuditScope, "audit_scope"), nullable=False
    )
    scope_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_type: Mapped[ActorType] = mapped_column(
        _enum_column(ActorType, "actor_type"), nullable=False
    )
    actor_name: Mapped[str | None] = mapped_column(String(255))
    actor_email: Mapped[str | None] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_audit_log_scope_action", "scope", "scope_id", "action", "created_at"),
    )


# =============================================================================
# REMINDER MODELS
# =============================================================================


class ReminderApproval(Base, UUIDMixin):
    """A reminder email waiting for (or resolved by) an administrator."""

    __tablename__ = "reminder_approvals"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    inventory_file_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_files.id"), nullable=False
    )
    login_audit_log_id: Mapped[UUID | None] = mapped_column(ForeignKey("audit_log.id"))
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    remaining_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_count: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReminderStatus] = mapped_column(
        _enum_column(ReminderStatus, "reminder_status"),
        default=ReminderStatus.PENDING_APPROVAL,
        nullable=False,
    )
    requested_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    approved_at: Mapped[datetime | None] = mapped_column()
    approved_by_name: Mapped[str | None] = mapped_column(String(255))
    approved_by_email: Mapped[str | None] = mapped_column(String(255))

    rejected_at: Mapped[datetime | None] = mapped_column()
    rejected_by_name: Mapped[str | None] = mapped_column(String(255))
    rejected_by_email: Mapped[str | None] = mapped_column(String(255))
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    sent_at: Mapped[datetime | None] = mapped_column()

    # Relationships
    organization: Mapped["Organization"] = relationship()
    inventory_file: Mapped["InventoryFile"] = relationship()
    login_audit_log: Mapped["AuditLog | None"] = relationship()

    __table_args__ = (
        Index("idx_reminder_approvals_status", "status", "requested_at"),
        Index(
            "idx_reminder_approvals_file_recipient",
            "inventory_file_id",
            "recipient_email",
            "requested_at",
        ),
    )


class AppSettings(Base):
    """Singleton row (id='global') of admin-editable settings."""

    __tablename__ = "app_settings"

    GLOBAL_ID = "global"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=GLOBAL_ID)

    reminder_email_enabled: Mapped[bool] = mapped_column(default=False)
    reminder_business_days: Mapped[int] = mapped_column(Integer, default=5)
    reminder_follow_up_business_days: Mapped[int] = mapped_column(Integer, default=5)
    reminder_email_subject_template: Mapped[str | None] = mapped_column(Text)
    reminder_email_text_template: Mapped[str | None] = mapped_column(Text)
    reminder_email_html_template: Mapped[str | None] = mapped_column(Text)

    webex_enabled: Mapped[bool] = mapped_column(default=False)
    webex_bot_token: Mapped[str | None] = mapped_column(Text)
    webex_room_id: Mapped[str | None] = mapped_column(String(255))
    webex_notify_on_reminder: Mapped[bool] = mapped_column(default=True)

    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)
