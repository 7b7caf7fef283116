"""
Scheduling Module

Timer scheduler, timer catalog and periodic maintenance tasks.
"""

from .maintenance import MaintenanceTasks
from .scheduler import Scheduler, TimerDefinition
from .schedules import ManualSyncTrigger, erp_timers, maintenance_timers, pos_timers

__all__ = [
    "Scheduler",
    "TimerDefinition",
    "MaintenanceTasks",
    "ManualSyncTrigger",
    "erp_timers",
    "pos_timers",
    "maintenance_timers",
]
