"""
Approval Store: persistence-facing operations of the reminder engine.

The scheduler and the approval workflow never build queries themselves;
they go through this store, which wraps one AsyncSession. The store flushes
but never commits: transaction boundaries belong to the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import (
    PENDING_FILE_STATUSES,
    QUEUED_OR_SENT_STATUSES,
    ActorType,
    AppSettings,
    AuditAction,
    AuditLog,
    AuditScope,
    InventoryFile,
    InventoryItem,
    InventoryItemStatus,
    Organization,
    ReminderApproval,
    ReminderStatus,
    as_utc,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# EXCEPTIONS
# =============================================================================


class InvalidTransitionError(ValueError):
    """Status change not allowed by the reminder state machine."""
    pass


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass(frozen=True)
class Actor:
    """Who performed an action, as recorded in the audit log."""
    type: ActorType
    name: str
    email: str | None = None

    @classmethod
    def admin(cls, name: str, email: str) -> "Actor":
        return cls(type=ActorType.ADMIN, name=name, email=email)

    @classmethod
    def system(cls, name: str, email: str | None = None) -> "Actor":
        return cls(type=ActorType.SYSTEM, name=name, email=email)


# =============================================================================
# HELPERS
# =============================================================================


def first_present(*values: T | None) -> T | None:
    """Return the first value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def reference_instant(prior: ReminderApproval | None, login: AuditLog) -> datetime:
    """
    Instant from which elapsed business days are measured.

    The latest reminder's sent/approved/requested time (first one set) when a
    reminder exists, otherwise the login time.
    """
    if prior is not None:
        instant = first_present(prior.sent_at, prior.approved_at, prior.requested_at)
        if instant is not None:
            return as_utc(instant)
    return as_utc(login.created_at)


# =============================================================================
# STORE
# =============================================================================


class ApprovalStore:
    """Reads and writes for reminder approvals and their audit trail."""

    def __init__(self, session: AsyncSession):
        self._session = session

    # =========================================================================
    # SETTINGS & ORGANIZATIONS
    # =========================================================================

    async def get_app_settings(self) -> AppSettings | None:
        return await self._session.get(AppSettings, AppSettings.GLOBAL_ID)

    async def list_notifiable_organizations(self) -> Sequence[Organization]:
        """Active organizations with reminder notifications enabled, by code."""
        result = await self._session.execute(
            select(Organization)
            .where(
                Organization.is_active.is_(True),
                Organization.reminder_notifications_enabled.is_(True),
            )
            .order_by(Organization.org_code.asc())
        )
        return result.scalars().all()

    async def latest_login(self, organization_id: UUID) -> AuditLog | None:
        """Most recent ORG_LOGIN entry for the organization."""
        result = await self._session.execute(
            select(AuditLog)
            .where(
                AuditLog.scope == AuditScope.ORG_ACCESS,
                AuditLog.scope_id == str(organization_id),
                AuditLog.action == AuditAction.ORG_LOGIN.value,
            )
            .order_by(AuditLog.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def latest_pending_inventory_file(self, organization_id: UUID) -> InventoryFile | None:
        """Most recently imported file still waiting on the organization."""
        result = await self._session.execute(
            select(InventoryFile)
            .where(
                InventoryFile.organization_id == organization_id,
                InventoryFile.status.in_(PENDING_FILE_STATUSES),
            )
            .order_by(InventoryFile.imported_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_items(self, inventory_file_id: UUID) -> tuple[int, int]:
        """Return ``(total, confirmed)`` item counts for a file."""
        result = await self._session.execute(
            select(
                func.count(InventoryItem.id),
                func.coalesce(
                    func.sum(
                        case((InventoryItem.status == InventoryItemStatus.CONFIRMED, 1), else_=0)
                    ),
                    0,
                ),
            ).where(InventoryItem.inventory_file_id == inventory_file_id)
        )
        total, confirmed = result.one()
        return int(total), int(confirmed)

    # =========================================================================
    # REMINDER APPROVALS
    # =========================================================================

    async def latest_reminder(
        self,
        inventory_file_id: UUID,
        recipient_email: str,
    ) -> ReminderApproval | None:
        """Most recent queued, approved or sent reminder for a file and recipient."""
        result = await self._session.execute(
            select(ReminderApproval)
            .where(
                ReminderApproval.inventory_file_id == inventory_file_id,
                ReminderApproval.recipient_email == recipient_email,
                ReminderApproval.status.in_(QUEUED_OR_SENT_STATUSES),
            )
            .order_by(ReminderApproval.requested_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_reminder(
        self,
        *,
        organization_id: UUID,
        inventory_file_id: UUID,
        login_audit_log_id: UUID | None,
        recipient_email: str,
        remaining_count: int,
        total_count: int,
        requested_at: datetime,
    ) -> ReminderApproval:
        reminder = ReminderApproval(
            organization_id=organization_id,
            inventory_file_id=inventory_file_id,
            login_audit_log_id=login_audit_log_id,
            recipient_email=recipient_email,
            remaining_count=remaining_count,
            total_count=total_count,
            status=ReminderStatus.PENDING_APPROVAL,
            requested_at=requested_at,
        )
        self._session.add(reminder)
        await self._session.flush()
        return reminder

    async def get_reminder(self, reminder_id: UUID) -> ReminderApproval | None:
        """Fetch a reminder with its organization and inventory file loaded."""
        result = await self._session.execute(
            select(ReminderApproval)
            .options(
                selectinload(ReminderApproval.organization),
                selectinload(ReminderApproval.inventory_file),
            )
            .where(ReminderApproval.id == reminder_id)
        )
        return result.scalar_one_or_none()

    async def list_pending(self) -> Sequence[ReminderApproval]:
        """PENDING_APPROVAL reminders, oldest request first."""
        result = await self._session.execute(
            select(ReminderApproval)
            .options(
                selectinload(ReminderApproval.organization),
                selectinload(ReminderApproval.inventory_file),
            )
            .where(ReminderApproval.status == ReminderStatus.PENDING_APPROVAL)
            .order_by(ReminderApproval.requested_at.asc())
        )
        return result.scalars().all()

    async def mark_sent(
        self,
        reminder: ReminderApproval,
        actor: Actor,
        sent_at: datetime,
    ) -> ReminderApproval:
        self._transition(reminder, ReminderStatus.SENT)
        reminder.approved_at = sent_at
        reminder.approved_by_name = actor.name
        reminder.approved_by_email = actor.email
        reminder.sent_at = sent_at
        await self._session.flush()
        return reminder

    async def mark_rejected(
        self,
        reminder: ReminderApproval,
        actor: Actor,
        rejected_at: datetime,
        reason: str | None = None,
    ) -> ReminderApproval:
        self._transition(reminder, ReminderStatus.REJECTED)
        reminder.rejected_at = rejected_at
        reminder.rejected_by_name = actor.name
        reminder.rejected_by_email = actor.email
        reminder.rejection_reason = reason
        await self._session.flush()
        return reminder

    @staticmethod
    def _transition(reminder: ReminderApproval, target: ReminderStatus) -> None:
        current = ReminderStatus(reminder.status)
        if not current.can_transition_to(target):
            raise InvalidTransitionError(
                f"Reminder {reminder.id} cannot move from {current.value} to {target.value}"
            )
        reminder.status = target

    # =========================================================================
    # AUDIT
    # =========================================================================

    async def append_audit(
        self,
        *,
        scope: AuditScope,
        scope_id: UUID | str,
        actor: Actor,
        action: AuditAction,
        details: dict[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            scope=scope,
            scope_id=str(scope_id),
            actor_type=actor.type,
            actor_name=actor.name,
            actor_email=actor.email,
            action=action.value,
            details=details or {},
        )
        if created_at is not None:
            entry.created_at = created_at
        self._session.add(entry)
        await self._session.flush()
        return entry
