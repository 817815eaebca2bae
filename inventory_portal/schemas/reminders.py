"""Schemas for the reminder administration endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import EmailStr, Field

from ..models import ReminderStatus
from .base import InventoryFileRef, OrganizationRef, PortalBaseModel


class ActionResponse(PortalBaseModel):
    """Outcome of an admin action."""

    ok: bool
    message: str


class CycleTriggerResponse(ActionResponse):
    """Outcome of a manually triggered reminder cycle."""

    queued_count: int


class ReminderApprovalSummary(PortalBaseModel):
    """A reminder in the review queue."""

    id: UUID
    status: ReminderStatus
    recipient_email: str
    remaining_count: int
    total_count: int
    requested_at: datetime
    organization: OrganizationRef
    inventory_file: InventoryFileRef


class ReminderPreviewResponse(PortalBaseModel):
    """Rendered content of a pending reminder."""

    reminder_id: UUID
    to: str
    subject: str
    text_body: str
    html_body: str


class RejectReminderRequest(PortalBaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class SendTestEmailRequest(PortalBaseModel):
    recipient: EmailStr
