"""API routes for reminder administration."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..core import AdminDep, SessionDep, get_settings
from ..schemas import (
    ActionResponse,
    CycleTriggerResponse,
    InventoryFileRef,
    OrganizationRef,
    RejectReminderRequest,
    ReminderApprovalSummary,
    ReminderPreviewResponse,
    SendTestEmailRequest,
)
from ..services import (
    ApprovalStore,
    ApprovalWorkflow,
    ReminderScheduler,
    SmtpClient,
    WebexService,
)

router = APIRouter(prefix="/admin/reminders", tags=["reminders"])


def get_reminder_scheduler(request: Request) -> ReminderScheduler:
    return request.app.state.reminder_scheduler


def get_smtp_client() -> SmtpClient:
    return SmtpClient.from_settings(get_settings())


def get_webex_service() -> WebexService:
    return WebexService(get_settings())


def get_approval_workflow(
    session: SessionDep,
    mailer: Annotated[SmtpClient, Depends(get_smtp_client)],
    notifier: Annotated[WebexService, Depends(get_webex_service)],
) -> ApprovalWorkflow:
    return ApprovalWorkflow(session, get_settings(), mailer, notifier)


SchedulerDep = Annotated[ReminderScheduler, Depends(get_reminder_scheduler)]
WorkflowDep = Annotated[ApprovalWorkflow, Depends(get_approval_workflow)]
WebexDep = Annotated[WebexService, Depends(get_webex_service)]


# =============================================================================
# CYCLE
# =============================================================================


@router.post("/run", response_model=CycleTriggerResponse)
async def trigger_cycle(admin: AdminDep, scheduler: SchedulerDep):
    """Run a reminder cycle now."""
    result = await scheduler.trigger_manually(admin)
    return CycleTriggerResponse(
        ok=result.ok,
        message=result.message,
        queued_count=result.queued_count,
    )


# =============================================================================
# REVIEW QUEUE
# =============================================================================


@router.get("/pending", response_model=list[ReminderApprovalSummary])
async def list_pending_reminders(admin: AdminDep, workflow: WorkflowDep):
    """Reminders awaiting approval, oldest first."""
    reminders = await workflow.list_pending()
    return [
        ReminderApprovalSummary(
            id=r.id,
            status=r.status,
            recipient_email=r.recipient_email,
            remaining_count=r.remaining_count,
            total_count=r.total_count,
            requested_at=r.requested_at,
            organization=OrganizationRef.model_validate(r.organization),
            inventory_file=InventoryFileRef.model_validate(r.inventory_file),
        )
        for r in reminders
    ]


@router.get("/{reminder_id}/preview", response_model=ReminderPreviewResponse)
async def preview_reminder(reminder_id: UUID, admin: AdminDep, workflow: WorkflowDep):
    """Render a pending reminder without sending it."""
    preview = await workflow.preview_pending_reminder(reminder_id)
    if preview is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pending reminder not found",
        )
    return ReminderPreviewResponse.model_validate(preview)


@router.post("/{reminder_id}/approve", response_model=ActionResponse)
async def approve_reminder(reminder_id: UUID, admin: AdminDep, workflow: WorkflowDep):
    """Send a pending reminder."""
    result = await workflow.approve(reminder_id, admin)
    return ActionResponse(ok=result.ok, message=result.message)


@router.post("/{reminder_id}/reject", response_model=ActionResponse)
async def reject_reminder(
    reminder_id: UUID,
    admin: AdminDep,
    workflow: WorkflowDep,
    data: RejectReminderRequest | None = None,
):
    """Discard a pending reminder."""
    result = await workflow.reject(reminder_id, admin, data.reason if data else None)
    return ActionResponse(ok=result.ok, message=result.message)


# =============================================================================
# CONFIGURATION CHECKS
# =============================================================================


@router.post("/test-email", response_model=ActionResponse)
async def send_test_email(data: SendTestEmailRequest, admin: AdminDep, workflow: WorkflowDep):
    """Send a sample reminder to check templates and the SMTP relay."""
    result = await workflow.send_test_email(data.recipient, admin)
    return ActionResponse(ok=result.ok, message=result.message)


@router.post("/webex/validate", response_model=ActionResponse)
async def validate_webex(admin: AdminDep, session: SessionDep, webex: WebexDep):
    """Check the Webex bot token and room configured in the portal settings."""
    app_settings = await ApprovalStore(session).get_app_settings()
    result = await webex.validate_connection(app_settings)
    return ActionResponse(ok=result.ok, message=result.message)
