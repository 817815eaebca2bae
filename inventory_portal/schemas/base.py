"""Base schemas and common types for the portal API."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..models import InventoryFileStatus


# =============================================================================
# BASE SCHEMAS
# =============================================================================


class PortalBaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode
        populate_by_name=True,
        use_enum_values=True,
    )


# =============================================================================
# ERROR RESPONSES
# =============================================================================


class ErrorResponse(PortalBaseModel):
    """Standard error response format."""

    error: str
    message: str
    request_id: str | None = None


# =============================================================================
# COMMON REFERENCE SCHEMAS
# =============================================================================


class OrganizationRef(PortalBaseModel):
    """Minimal organization reference for embedding in responses."""

    id: UUID
    display_name: str
    org_code: str


class InventoryFileRef(PortalBaseModel):
    """Minimal inventory file reference."""

    id: UUID
    status: InventoryFileStatus
