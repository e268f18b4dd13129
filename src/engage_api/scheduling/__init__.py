"""Recurring job scheduling."""

from .config import JobDefinition, ScheduleConfig, load_schedule
from .runner import RewardJobScheduler

__all__ = ["JobDefinition", "RewardJobScheduler", "ScheduleConfig", "load_schedule"]
