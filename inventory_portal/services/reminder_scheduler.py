"""
Reminder Scheduler: decides which organizations are due for a reminder.

One cycle walks every active organization that accepts reminders and, when
enough business days have passed since the last human contact (or since the
last reminder), queues a ReminderApproval for an administrator to review.
Nothing is emailed here; sending happens in the approval workflow.

Each organization is handled in its own session so a failure for one of
them is logged and the cycle moves on.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings
from ..models import AppSettings, AuditAction, AuditScope, Organization
from .approval_store import Actor, ApprovalStore, reference_instant
from .business_days import business_days_between


logger = logging.getLogger(__name__)


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class CycleResult:
    """Outcome of one scheduler cycle."""
    queued_count: int = 0
    skipped: bool = False  # Another cycle was already running
    disabled: bool = False  # Reminder emails are disabled globally
    errors: list[str] = field(default_factory=list)


@dataclass
class CycleTriggerResult:
    """Outcome of an administrator-triggered cycle."""
    ok: bool
    message: str
    queued_count: int


def _threshold(value: int | None) -> int:
    return max(1, value or 1)


# =============================================================================
# SCHEDULER
# =============================================================================


class ReminderScheduler:
    """
    Runs reminder cycles.

    The in-progress guard is a single-slot lock owned by this instance: a
    cycle requested while another one runs returns immediately with
    ``skipped=True`` instead of waiting. The guard is process-local; running
    several scheduler processes against one database is not supported.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cycle_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def system_actor(self) -> Actor:
        return Actor.system(
            self._settings.system_actor_name,
            self._settings.system_actor_email,
        )

    async def run_cycle(self) -> CycleResult:
        """Run one cycle unless one is already in progress."""
        if self._cycle_lock.locked():
            logger.info("Reminder cycle already in progress, skipping")
            return CycleResult(skipped=True)

        async with self._cycle_lock:
            return await self._run_cycle()

    async def trigger_manually(self, actor: Actor) -> CycleTriggerResult:
        """Run a cycle on behalf of an administrator and audit the request."""
        result = await self.run_cycle()

        if result.skipped:
            message = "Un cycle de relance est déjà en cours. Réessayez plus tard."
        elif result.disabled:
            message = "Le module de relance courriel est désactivé globalement."
        else:
            message = (
                f"Cycle de relance exécuté: {result.queued_count} relance(s) "
                "en attente d'approbation."
            )
            if result.errors:
                message += f" {len(result.errors)} organisation(s) en erreur."

        async with self._session_factory() as session:
            async with session.begin():
                await ApprovalStore(session).append_audit(
                    scope=AuditScope.APP_SETTINGS,
                    scope_id=AppSettings.GLOBAL_ID,
                    actor=actor,
                    action=AuditAction.ORG_REMINDER_CYCLE_TRIGGERED,
                    details={
                        "queuedCount": result.queued_count,
                        "skipped": result.skipped,
                        "disabled": result.disabled,
                        "errorCount": len(result.errors),
                    },
                    created_at=self._clock(),
                )

        return CycleTriggerResult(
            ok=not (result.skipped or result.disabled),
            message=message,
            queued_count=result.queued_count,
        )

    # =========================================================================
    # CYCLE
    # =========================================================================

    async def _run_cycle(self) -> CycleResult:
        result = CycleResult()
        now = self._clock()

        async with self._session_factory() as session:
            store = ApprovalStore(session)
            app_settings = await store.get_app_settings()
            if app_settings is None or not app_settings.reminder_email_enabled:
                logger.info("Reminder emails disabled globally, cycle aborted")
                result.disabled = True
                return result
            organizations = await store.list_notifiable_organizations()

        logger.info(f"Starting reminder cycle for {len(organizations)} organizations")

        for organization in organizations:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        queued = await self._process_organization(
                            ApprovalStore(session), organization, app_settings, now
                        )
                if queued:
                    result.queued_count += 1
            except Exception as e:
                logger.exception(
                    f"Reminder cycle failed for organization {organization.org_code}"
                )
                result.errors.append(f"{organization.org_code}: {e}")

        logger.info(
            f"Reminder cycle completed: {result.queued_count} queued, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _process_organization(
        self,
        store: ApprovalStore,
        organization: Organization,
        app_settings: AppSettings,
        now: datetime,
    ) -> bool:
        """Queue a reminder for ``organization`` if one is due. Returns True if queued."""
        org_code = organization.org_code

        login = await store.latest_login(organization.id)
        if login is None:
            logger.debug(f"[{org_code}] no login recorded, skipping")
            return False

        recipient = login.actor_email
        if not recipient:
            logger.debug(f"[{org_code}] latest login has no email, skipping")
            return False

        inventory_file = await store.latest_pending_inventory_file(organization.id)
        if inventory_file is None:
            logger.debug(f"[{org_code}] no inventory file pending, skipping")
            return False

        prior = await store.latest_reminder(inventory_file.id, recipient)
        if prior is not None and prior.status.is_active:
            logger.debug(f"[{org_code}] reminder {prior.id} awaiting decision, skipping")
            return False

        reference_at = reference_instant(prior, login)
        if prior is not None:
            required_days = _threshold(app_settings.reminder_follow_up_business_days)
        else:
            required_days = _threshold(app_settings.reminder_business_days)

        tz = self._settings.reminder_tzinfo
        elapsed_days = business_days_between(reference_at.astimezone(tz), now.astimezone(tz))
        if elapsed_days < required_days:
            logger.debug(
                f"[{org_code}] {elapsed_days}/{required_days} business days elapsed, skipping"
            )
            return False

        total_count, confirmed_count = await store.count_items(inventory_file.id)
        remaining_count = max(total_count - confirmed_count, 0)

        reminder = await store.create_reminder(
            organization_id=organization.id,
            inventory_file_id=inventory_file.id,
            login_audit_log_id=login.id,
            recipient_email=recipient,
            remaining_count=remaining_count,
            total_count=total_count,
            requested_at=now,
        )

        await store.append_audit(
            scope=AuditScope.INVENTORY_FILE,
            scope_id=inventory_file.id,
            actor=self.system_actor,
            action=AuditAction.ORG_REMINDER_QUEUED,
            details={
                "reminderApprovalId": str(reminder.id),
                "to": recipient,
                "organizationId": str(organization.id),
                "isFollowUp": prior is not None,
                "referenceAt": reference_at.isoformat(),
                "elapsedBusinessDays": elapsed_days,
                "requiredBusinessDays": required_days,
                "remainingCount": remaining_count,
                "totalCount": total_count,
            },
            created_at=now,
        )

        logger.info(
            f"[{org_code}] reminder queued for {recipient} "
            f"({remaining_count}/{total_count} remaining, {elapsed_days} business days)"
        )
        return True
