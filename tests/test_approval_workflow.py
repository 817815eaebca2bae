"""
Tests for the Approval Workflow.

These tests verify:
1. APPROVE: sends the email, then marks the reminder SENT
2. Only PENDING_APPROVAL reminders can be approved or rejected (once)
3. A relay failure leaves the reminder pending and is audited
4. Disabled organizations and a disabled module block sending
5. Preview and test emails render without side effects on reminders
6. A queued reminder is delivered once through a real relay exchange
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from conftest import LAST_WEEK_FRIDAY, NOW

from inventory_portal.models import AuditAction, AuditLog, AuditScope, ReminderStatus, as_utc
from inventory_portal.services.approval_store import Actor, ApprovalStore
from inventory_portal.services.approval_workflow import (
    GLOBALLY_DISABLED_MESSAGE,
    NOT_FOUND_MESSAGE,
    ORG_DISABLED_MESSAGE,
    ApprovalWorkflow,
)
from inventory_portal.services.reminder_scheduler import ReminderScheduler
from inventory_portal.services.smtp_client import SmtpClient, SmtpReplyError


ADMIN = Actor.admin("Ada Admin", "ada@portal.test")


@pytest.fixture
def workflow(session, settings, mailer, notifier, clock) -> ApprovalWorkflow:
    return ApprovalWorkflow(session, settings, mailer, notifier, clock=clock)


@pytest.fixture
async def pending(seed):
    """An enabled module and one organization with a reminder awaiting approval."""
    await seed.app_settings()
    org = await seed.organization(display_name="Acme")
    inventory_file = await seed.inventory_file(org)
    return await seed.reminder(org, inventory_file)


async def audit_actions(session) -> list[str]:
    result = await session.execute(select(AuditLog.action).order_by(AuditLog.created_at))
    return list(result.scalars().all())


# =============================================================================
# TEST: APPROVE
# =============================================================================


class TestApprove:

    async def test_approve_sends_and_marks_sent(self, workflow, pending, session, mailer, notifier):
        result = await workflow.approve(pending.id, ADMIN)

        assert result.ok is True
        assert result.message == "Relance approuvée et envoyée."

        [message] = mailer.sent
        assert message.recipient == "contact@org.test"
        assert message.sender == "inventaire@portal.test"
        assert message.subject == "Relance - Inventaire Acme en cours de validation"
        assert "Il reste 7 éléments sur 10" in message.text_body

        reminder = await workflow._store.get_reminder(pending.id)
        assert reminder.status == ReminderStatus.SENT
        assert as_utc(reminder.sent_at) == NOW
        assert as_utc(reminder.approved_at) == NOW
        assert reminder.approved_by_email == "ada@portal.test"

        assert await audit_actions(session) == [AuditAction.ORG_REMINDER_SENT.value]
        [call] = notifier.calls
        assert call["org_code"] == "ORG-001"
        assert call["remaining_count"] == 7

    async def test_second_approve_is_a_soft_failure(self, workflow, pending, mailer):
        first = await workflow.approve(pending.id, ADMIN)
        second = await workflow.approve(pending.id, ADMIN)

        assert first.ok is True
        assert second.ok is False
        assert second.message == NOT_FOUND_MESSAGE
        assert len(mailer.sent) == 1

    async def test_unknown_reminder(self, workflow, mailer):
        result = await workflow.approve(uuid4(), ADMIN)

        assert result.ok is False
        assert result.message == NOT_FOUND_MESSAGE
        assert mailer.sent == []

    async def test_smtp_failure_keeps_reminder_pending(self, workflow, pending, session, mailer, notifier):
        mailer.error = SmtpReplyError(
            "SMTP error response: 550 5.1.1 unknown user",
            reply="550 5.1.1 unknown user",
            code=550,
        )

        result = await workflow.approve(pending.id, ADMIN)

        assert result.ok is False
        assert "550 5.1.1 unknown user" in result.message

        reminder = await workflow._store.get_reminder(pending.id)
        assert reminder.status == ReminderStatus.PENDING_APPROVAL
        assert reminder.sent_at is None
        assert notifier.calls == []

        entry = (await session.execute(select(AuditLog))).scalar_one()
        assert entry.action == AuditAction.ORG_REMINDER_SEND_FAILED.value
        assert entry.scope == AuditScope.INVENTORY_FILE
        assert entry.details["smtpReply"] == "550 5.1.1 unknown user"

    async def test_retry_after_smtp_failure_succeeds(self, workflow, pending, mailer):
        mailer.error = SmtpReplyError("SMTP error response: 451 try later", code=451)
        assert (await workflow.approve(pending.id, ADMIN)).ok is False

        mailer.error = None
        assert (await workflow.approve(pending.id, ADMIN)).ok is True

    async def test_organization_disabled(self, workflow, seed, mailer):
        await seed.app_settings()
        org = await seed.organization(reminder_notifications_enabled=False)
        reminder = await seed.reminder(org, await seed.inventory_file(org))

        result = await workflow.approve(reminder.id, ADMIN)

        assert result.ok is False
        assert result.message == ORG_DISABLED_MESSAGE
        assert mailer.sent == []

    async def test_module_disabled(self, workflow, seed, mailer):
        await seed.app_settings(reminder_email_enabled=False)
        org = await seed.organization()
        reminder = await seed.reminder(org, await seed.inventory_file(org))

        result = await workflow.approve(reminder.id, ADMIN)

        assert result.ok is False
        assert result.message == GLOBALLY_DISABLED_MESSAGE
        assert mailer.sent == []

    async def test_notifier_failure_does_not_fail_approval(self, workflow, pending, notifier):
        notifier.error = RuntimeError("webex down")

        result = await workflow.approve(pending.id, ADMIN)

        assert result.ok is True
        reminder = await workflow._store.get_reminder(pending.id)
        assert reminder.status == ReminderStatus.SENT


# =============================================================================
# TEST: REJECT
# =============================================================================


class TestReject:

    async def test_reject_records_reason(self, workflow, pending, session):
        result = await workflow.reject(pending.id, ADMIN, "  Organisation en vacances  ")

        assert result.ok is True
        assert result.message == "Relance rejetée."

        reminder = await workflow._store.get_reminder(pending.id)
        assert reminder.status == ReminderStatus.REJECTED
        assert as_utc(reminder.rejected_at) == NOW
        assert reminder.rejected_by_name == "Ada Admin"
        assert reminder.rejection_reason == "Organisation en vacances"

        entry = (await session.execute(select(AuditLog))).scalar_one()
        assert entry.action == AuditAction.ORG_REMINDER_REJECTED.value
        assert entry.details["rejectionReason"] == "Organisation en vacances"

    async def test_blank_reason_is_stored_as_none(self, workflow, pending):
        await workflow.reject(pending.id, ADMIN, "   ")

        reminder = await workflow._store.get_reminder(pending.id)
        assert reminder.rejection_reason is None

    async def test_rejected_reminder_cannot_be_approved(self, workflow, pending, mailer):
        await workflow.reject(pending.id, ADMIN)

        result = await workflow.approve(pending.id, ADMIN)

        assert result.ok is False
        assert result.message == NOT_FOUND_MESSAGE
        assert mailer.sent == []

    async def test_sent_reminder_cannot_be_rejected(self, workflow, pending):
        await workflow.approve(pending.id, ADMIN)

        result = await workflow.reject(pending.id, ADMIN)

        assert result.ok is False
        reminder = await workflow._store.get_reminder(pending.id)
        assert reminder.status == ReminderStatus.SENT


# =============================================================================
# TEST: PREVIEW & TEST EMAIL
# =============================================================================


class TestPreview:

    async def test_preview_renders_pending_reminder(self, workflow, pending, mailer):
        preview = await workflow.preview_pending_reminder(pending.id)

        assert preview.reminder_id == pending.id
        assert preview.to == "contact@org.test"
        assert preview.subject == "Relance - Inventaire Acme en cours de validation"
        assert "<strong>Acme</strong>" in preview.html_body
        assert mailer.sent == []

    async def test_preview_uses_admin_template(self, workflow, seed):
        await seed.app_settings(reminder_email_subject_template="{{organization_name}}: {{remaining_count}} restants")
        org = await seed.organization(display_name="Acme")
        reminder = await seed.reminder(org, await seed.inventory_file(org))

        preview = await workflow.preview_pending_reminder(reminder.id)

        assert preview.subject == "Acme: 7 restants"

    async def test_preview_of_resolved_reminder_is_none(self, workflow, pending):
        await workflow.reject(pending.id, ADMIN)

        assert await workflow.preview_pending_reminder(pending.id) is None
        assert await workflow.preview_pending_reminder(uuid4()) is None


class TestSendTestEmail:

    async def test_sends_sample_and_audits(self, workflow, session, mailer):
        result = await workflow.send_test_email("qa@portal.test", ADMIN)

        assert result.ok is True
        assert result.message == "Courriel test envoyé à qa@portal.test."

        [message] = mailer.sent
        assert message.recipient == "qa@portal.test"
        assert message.subject == "Relance - Inventaire Organisation test en cours de validation"
        assert "Il reste 12 éléments sur 40" in message.text_body
        assert "ada@portal.test" in message.text_body

        entry = (await session.execute(select(AuditLog))).scalar_one()
        assert entry.action == AuditAction.ORG_REMINDER_TEST_SENT.value
        assert entry.scope == AuditScope.APP_SETTINGS
        assert entry.scope_id == "global"

    async def test_relay_failure_is_reported(self, workflow, session, mailer):
        mailer.error = SmtpReplyError("SMTP error response: 554 denied", code=554)

        result = await workflow.send_test_email("qa@portal.test", ADMIN)

        assert result.ok is False
        assert "554 denied" in result.message
        assert await audit_actions(session) == []


# =============================================================================
# TEST: DELIVERY THROUGH THE RELAY
# =============================================================================


def relay_client(smtp_server) -> SmtpClient:
    return SmtpClient("127.0.0.1", smtp_server.port, helo_domain="portal.test", timeout=2)


class TestDeliveryThroughRelay:

    async def test_quit_failure_still_counts_as_sent(self, session, settings, notifier, clock, pending, smtp_server):
        smtp_server.replies["QUIT"] = "421 4.3.2 closing"
        workflow = ApprovalWorkflow(session, settings, relay_client(smtp_server), notifier, clock=clock)

        first = await workflow.approve(pending.id, ADMIN)
        second = await workflow.approve(pending.id, ADMIN)

        assert first.ok is True
        assert second.message == NOT_FOUND_MESSAGE
        assert smtp_server.accepted_messages == 1

        reminder = await workflow._store.get_reminder(pending.id)
        assert reminder.status == ReminderStatus.SENT
        assert await audit_actions(session) == [AuditAction.ORG_REMINDER_SENT.value]

    async def test_queued_reminder_is_approved_and_delivered(
        self, session_factory, session, settings, notifier, clock, seed, smtp_server
    ):
        await seed.app_settings()
        org = await seed.organization(display_name="Acme")
        await seed.login(org, at=LAST_WEEK_FRIDAY)
        await seed.inventory_file(org, total=10, confirmed=3)

        cycle = await ReminderScheduler(session_factory, settings, clock=clock).run_cycle()
        assert cycle.queued_count == 1

        workflow = ApprovalWorkflow(session, settings, relay_client(smtp_server), notifier, clock=clock)
        [queued] = await ApprovalStore(session).list_pending()
        result = await workflow.approve(queued.id, ADMIN)

        assert result.ok is True
        assert smtp_server.accepted_messages == 1
        assert "RCPT TO:<contact@org.test>" in smtp_server.commands
        assert "Subject: Relance - Inventaire Acme en cours de validation" in smtp_server.data_lines

        reminder = await workflow._store.get_reminder(queued.id)
        assert reminder.status == ReminderStatus.SENT
        assert reminder.remaining_count == 7
        assert as_utc(reminder.sent_at) == NOW
        assert await ApprovalStore(session).list_pending() == []
