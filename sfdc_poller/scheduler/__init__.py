"""Poll scheduling for extraction cycles.

Runs cycles once or on a fixed interval with cooperative cancellation
through a shared ``threading.Event``.
"""

from .scheduler import PollScheduler, SchedulerStats

__all__ = [
    "PollScheduler",
    "SchedulerStats",
]
