"""Result objects returned to the admin layer."""

from dataclasses import dataclass


@dataclass
class ActionResult:
    """Soft outcome of an admin action: never raised, always reported."""
    ok: bool
    message: str
