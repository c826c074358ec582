"""
Expose helpers at package-level for convenience:

    from survey_bot.utils import iso_now
"""

from .helpers import (  # noqa: F401
    iso_now,
    parse_watermark,
    watermark_advances,
)
from .scheduler import LoopScheduler, ManualScheduler, ScheduledTask, Scheduler  # noqa: F401

__all__ = [
    "iso_now",
    "parse_watermark",
    "watermark_advances",
    "LoopScheduler",
    "ManualScheduler",
    "ScheduledTask",
    "Scheduler",
]
