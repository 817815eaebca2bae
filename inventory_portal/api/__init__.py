"""API routes for the inventory portal reminder engine."""

from fastapi import APIRouter

from .reminders import router as reminders_router

# Main API router
api_router = APIRouter()

api_router.include_router(reminders_router)

__all__ = ["api_router"]
