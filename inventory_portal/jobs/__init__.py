"""
Background Jobs for the inventory portal.

- reminder_cron: hourly reminder cycle (in-process scheduler and CLI)
"""

from .reminder_cron import run_reminder_job, start_reminder_scheduler, stop_reminder_scheduler

__all__ = ["run_reminder_job", "start_reminder_scheduler", "stop_reminder_scheduler"]
