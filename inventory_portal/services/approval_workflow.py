"""
Approval Workflow: administrator decisions on queued reminders.

Every operation returns an ActionResult (or a read-only projection) instead
of raising for business failures, so the admin UI can show the message as-is.

Approving sends the email first and only then marks the reminder SENT. When
the relay refuses the message the reminder stays PENDING_APPROVAL and can be
approved again later; the failure is recorded in the audit log.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings
from ..models import (
    AppSettings,
    AuditAction,
    AuditScope,
    ReminderApproval,
    ReminderStatus,
)
from .approval_store import Actor, ApprovalStore
from .results import ActionResult
from .smtp_client import OutgoingMessage, SmtpClient, SmtpError
from .templates import ReminderContext, RenderedEmail, build_reminder_email
from .webex_service import WebexService


logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Relance introuvable ou déjà traitée."
ORG_DISABLED_MESSAGE = "Les relances sont désactivées pour cette organisation."
GLOBALLY_DISABLED_MESSAGE = "Le module de relance courriel est désactivé globalement."


@dataclass
class ReminderPreview:
    """What an approval would send, without sending it."""
    reminder_id: UUID
    to: str
    subject: str
    text_body: str
    html_body: str


class ApprovalWorkflow:
    """List, preview, approve and reject queued reminders."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        mailer: SmtpClient,
        notifier: WebexService,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = ApprovalStore(session)
        self._settings = settings
        self._mailer = mailer
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def list_pending(self) -> Sequence[ReminderApproval]:
        """Pending reminders in FIFO review order."""
        return await self._store.list_pending()

    async def preview_pending_reminder(self, reminder_id: UUID) -> ReminderPreview | None:
        reminder = await self._store.get_reminder(reminder_id)
        if reminder is None or reminder.status != ReminderStatus.PENDING_APPROVAL:
            return None

        app_settings = await self._store.get_app_settings()
        email = self._render(app_settings, reminder)
        return ReminderPreview(
            reminder_id=reminder.id,
            to=reminder.recipient_email,
            subject=email.subject,
            text_body=email.text_body,
            html_body=email.html_body,
        )

    # =========================================================================
    # DECISIONS
    # =========================================================================

    async def approve(self, reminder_id: UUID, actor: Actor) -> ActionResult:
        reminder = await self._store.get_reminder(reminder_id)
        if reminder is None or reminder.status != ReminderStatus.PENDING_APPROVAL:
            return ActionResult(False, NOT_FOUND_MESSAGE)

        organization = reminder.organization
        if not organization.reminder_notifications_enabled:
            return ActionResult(False, ORG_DISABLED_MESSAGE)

        app_settings = await self._store.get_app_settings()
        if app_settings is None or not app_settings.reminder_email_enabled:
            return ActionResult(False, GLOBALLY_DISABLED_MESSAGE)

        email = self._render(app_settings, reminder)
        try:
            await self._mailer.send(self._message(reminder.recipient_email, email))
        except SmtpError as e:
            logger.error(f"Reminder {reminder.id} to {reminder.recipient_email} not sent: {e}")
            await self._store.append_audit(
                scope=AuditScope.INVENTORY_FILE,
                scope_id=reminder.inventory_file_id,
                actor=actor,
                action=AuditAction.ORG_REMINDER_SEND_FAILED,
                details={
                    "reminderApprovalId": str(reminder.id),
                    "to": reminder.recipient_email,
                    "error": str(e),
                    "smtpReply": e.reply,
                },
                created_at=self._clock(),
            )
            return ActionResult(False, f"Échec de l'envoi de la relance: {e}")

        now = self._clock()
        await self._store.mark_sent(reminder, actor, now)
        await self._store.append_audit(
            scope=AuditScope.INVENTORY_FILE,
            scope_id=reminder.inventory_file_id,
            actor=actor,
            action=AuditAction.ORG_REMINDER_SENT,
            details={
                "reminderApprovalId": str(reminder.id),
                "to": reminder.recipient_email,
                "remainingCount": reminder.remaining_count,
                "totalCount": reminder.total_count,
            },
            created_at=now,
        )
        logger.info(f"Reminder {reminder.id} approved by {actor.email} and sent")

        try:
            await self._notifier.notify_reminder_sent(
                app_settings,
                org_name=organization.display_name,
                org_code=organization.org_code,
                recipient=reminder.recipient_email,
                remaining_count=reminder.remaining_count,
                total_count=reminder.total_count,
                reminded_at=now,
            )
        except Exception:
            logger.exception(f"Webex notification failed for reminder {reminder.id}")

        return ActionResult(True, "Relance approuvée et envoyée.")

    async def reject(
        self,
        reminder_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> ActionResult:
        reminder = await self._store.get_reminder(reminder_id)
        if reminder is None or reminder.status != ReminderStatus.PENDING_APPROVAL:
            return ActionResult(False, NOT_FOUND_MESSAGE)

        reason = reason.strip() if reason else None
        now = self._clock()
        await self._store.mark_rejected(reminder, actor, now, reason or None)
        await self._store.append_audit(
            scope=AuditScope.INVENTORY_FILE,
            scope_id=reminder.inventory_file_id,
            actor=actor,
            action=AuditAction.ORG_REMINDER_REJECTED,
            details={
                "reminderApprovalId": str(reminder.id),
                "rejectionReason": reason or None,
            },
            created_at=now,
        )
        logger.info(f"Reminder {reminder.id} rejected by {actor.email}")
        return ActionResult(True, "Relance rejetée.")

    async def send_test_email(self, recipient: str, actor: Actor) -> ActionResult:
        """Send a sample reminder to ``recipient`` to check templates and relay."""
        app_settings = await self._store.get_app_settings()
        context = ReminderContext(
            organization_name="Organisation test",
            remaining_count=self._settings.test_email_remaining_count,
            total_count=self._settings.test_email_total_count,
            support_contact_email=actor.email,
        )
        email = build_reminder_email(app_settings, context)

        try:
            await self._mailer.send(self._message(recipient, email))
        except SmtpError as e:
            logger.error(f"Test reminder to {recipient} not sent: {e}")
            return ActionResult(False, f"Échec de l'envoi du courriel test: {e}")

        await self._store.append_audit(
            scope=AuditScope.APP_SETTINGS,
            scope_id=AppSettings.GLOBAL_ID,
            actor=actor,
            action=AuditAction.ORG_REMINDER_TEST_SENT,
            details={"to": recipient, "subject": email.subject},
            created_at=self._clock(),
        )
        return ActionResult(True, f"Courriel test envoyé à {recipient}.")

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _render(app_settings: AppSettings | None, reminder: ReminderApproval) -> RenderedEmail:
        organization = reminder.organization
        return build_reminder_email(
            app_settings,
            ReminderContext(
                organization_name=organization.display_name,
                remaining_count=reminder.remaining_count,
                total_count=reminder.total_count,
                support_contact_email=organization.support_contact_email,
            ),
        )

    def _message(self, recipient: str, email: RenderedEmail) -> OutgoingMessage:
        return OutgoingMessage(
            sender=self._settings.smtp_from_email,
            sender_name=self._settings.smtp_from_name,
            recipient=recipient,
            subject=email.subject,
            text_body=email.text_body,
            html_body=email.html_body,
        )
