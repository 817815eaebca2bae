"""FastAPI dependencies for admin identity and database sessions.

Authentication happens upstream (the portal's JWT layer). Requests that reach
the reminder endpoints carry the authenticated administrator's identity in
the ``X-Admin-Name`` and ``X-Admin-Email`` headers.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..services.approval_store import Actor
from .database import get_session


def get_current_admin(
    x_admin_name: Annotated[str | None, Header()] = None,
    x_admin_email: Annotated[str | None, Header()] = None,
) -> Actor:
    """Dependency returning the administrator performing the request."""
    if not x_admin_email or not x_admin_email.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Administrator identity required",
        )
    email = x_admin_email.strip()
    name = (x_admin_name or "").strip() or email
    return Actor.admin(name=name, email=email)


# Type aliases for cleaner dependency injection
AdminDep = Annotated[Actor, Depends(get_current_admin)]
SessionDep = Annotated[AsyncSession, Depends(get_session)]
