"""Business logic services for the reminder engine."""

from .approval_store import (
    Actor,
    ApprovalStore,
    InvalidTransitionError,
    first_present,
    reference_instant,
)
from .approval_workflow import ApprovalWorkflow, ReminderPreview
from .business_days import business_days_between
from .reminder_scheduler import CycleResult, CycleTriggerResult, ReminderScheduler
from .results import ActionResult
from .smtp_client import (
    OutgoingMessage,
    SmtpClient,
    SmtpConnectionError,
    SmtpError,
    SmtpReplyError,
    SmtpTimeoutError,
)
from .templates import ReminderContext, RenderedEmail, build_reminder_email, render_template
from .webex_service import WebexService

__all__ = [
    # Storage
    "Actor",
    "ApprovalStore",
    "InvalidTransitionError",
    "first_present",
    "reference_instant",
    # Scheduling
    "business_days_between",
    "ReminderScheduler",
    "CycleResult",
    "CycleTriggerResult",
    # Workflow
    "ApprovalWorkflow",
    "ReminderPreview",
    "ActionResult",
    # Email
    "OutgoingMessage",
    "SmtpClient",
    "SmtpError",
    "SmtpReplyError",
    "SmtpConnectionError",
    "SmtpTimeoutError",
    "ReminderContext",
    "RenderedEmail",
    "build_reminder_email",
    "render_template",
    # Chat
    "WebexService",
]
