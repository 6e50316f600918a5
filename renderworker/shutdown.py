"""
Decides when the worker loop has to stop:
- the scheduled stop window (stop time of day, optionally limited to weekdays)
- the graceful-stop lock file
- too many empty polls when exit_on_empty_queue is set
"""
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional, Union

from .config import WorkerSettings
from .utils import parse_stop_days, parse_stop_time


def weekday(dt: datetime) -> int:
    """Weekday with 0 = Sunday ... 6 = Saturday."""
    return (dt.weekday() + 1) % 7


def compute_stop_datetime(
    stop_at_time: str,
    stop_days: Union[str, Iterable[int], None] = None,
    now: Optional[datetime] = None,
) -> datetime:
    now = now or datetime.now()
    hour, minute = parse_stop_time(stop_at_time)

    stop = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if stop <= now:
        stop += timedelta(days=1)

    days = parse_stop_days(stop_days)
    if days:
        while weekday(stop) not in days:
            stop += timedelta(days=1)
    return stop


def check_lock_file(path: Union[str, Path], logger: Optional[logging.Logger] = None) -> bool:
    """True when the lock file exists. The file is removed so it stops the worker once."""
    logger = logger or logging.getLogger(__name__)
    path = Path(path)
    try:
        if path.exists():
            logger.info("[worker] Lock file detected, initiating graceful shutdown...")
            path.unlink()
            return True
    except OSError as e:
        logger.error(f"[worker] Error handling lock file: {e}")
    return False


class ShutdownPolicy:
    def __init__(self, settings: WorkerSettings, schedule: Optional[datetime] = None):
        self.settings = settings
        self.schedule = schedule

    @classmethod
    def from_settings(cls, settings: WorkerSettings, now: Optional[datetime] = None) -> "ShutdownPolicy":
        schedule = None
        if settings.stop_at_time:
            schedule = compute_stop_datetime(settings.stop_at_time, settings.stop_days, now=now)
            settings.logger.info(f"[worker] scheduled to stop at {schedule.isoformat(timespec='minutes')}")
        return cls(settings, schedule)

    def empty_queue_exceeded(self, empty_count: int) -> bool:
        return bool(self.settings.exit_on_empty_queue) and empty_count > self.settings.tolerate_empty_queues

    def should_stop(self, now: Optional[datetime] = None, empty_count: int = 0) -> bool:
        now = now or datetime.now()
        if self.schedule is not None and now >= self.schedule:
            self.settings.logger.info("[worker] stop time reached, deactivating worker")
            return True

        if check_lock_file(self.settings.lock_file, self.settings.logger):
            return True

        return self.empty_queue_exceeded(empty_count)
