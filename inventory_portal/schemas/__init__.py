"""Portal API Schemas.

- base: common configuration, errors, references
- reminders: reminder review queue and admin actions
"""

from .base import (
    ErrorResponse,
    InventoryFileRef,
    OrganizationRef,
    PortalBaseModel,
)
from .reminders import (
    ActionResponse,
    CycleTriggerResponse,
    RejectReminderRequest,
    ReminderApprovalSummary,
    ReminderPreviewResponse,
    SendTestEmailRequest,
)

__all__ = [
    # Base
    "PortalBaseModel",
    "ErrorResponse",
    "OrganizationRef",
    "InventoryFileRef",
    # Reminders
    "ActionResponse",
    "CycleTriggerResponse",
    "ReminderApprovalSummary",
    "ReminderPreviewResponse",
    "RejectReminderRequest",
    "SendTestEmailRequest",
]
