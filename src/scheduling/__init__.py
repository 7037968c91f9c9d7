from .scheduler import DueCard, PositionScheduler, SchedulerConfig

__all__ = ["DueCard", "PositionScheduler", "SchedulerConfig"]
