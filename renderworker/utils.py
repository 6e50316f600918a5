import re
import threading
from concurrent.futures import Future, wait
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Callable, Optional

# e.g., "20s", "5m", "1h30m", "2d3h", "90m", "  2h  ", plain "30" or "0.5" means seconds
DELAY_RE = re.compile(r"(?i)^\s*(?:(\d+)\s*d)?\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*(?:(\d+)\s*s)?\s*$")
NUMBER_RE = re.compile(r"^\s*\d+(?:\.\d+)?\s*$")
TAG_RE = re.compile(r"[^a-z0-9, ]", re.IGNORECASE)
STOP_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_delay_to_seconds(s: str) -> float:
    """
    Parse delay strings like '20s', '5m', '1h30m', '2d3h', '90m'.
    A bare number is taken as seconds. Returns total seconds.
    Raises ValueError on bad input.
    """
    if s is None or not str(s).strip():
        raise ValueError("delay string is empty")
    s = str(s)
    if NUMBER_RE.match(s):
        return float(s)
    m = DELAY_RE.match(s)
    if not m or not any(m.groups()):
        raise ValueError(f"Invalid delay format: {s!r}")
    d, h, m_, s_ = m.groups()
    total = 0
    if d:  total += int(d) * 86400
    if h:  total += int(h) * 3600
    if m_: total += int(m_) * 60
    if s_: total += int(s_)
    return float(total)


def parse_stop_time(value: str):
    """'HH:MM' -> (hour, minute)."""
    m = STOP_TIME_RE.match(value or "")
    if not m:
        raise ValueError(f"Invalid stop time {value!r}, expected HH:MM")
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid stop time {value!r}, expected HH:MM")
    return hour, minute


def parse_stop_days(value) -> Optional[set]:
    """'1,2,5' or [1, 2, 5] -> {1, 2, 5}. Weekdays count from 0 = Sunday."""
    if value is None or value == "":
        return None
    items = value.split(",") if isinstance(value, str) else value
    days = set()
    for item in items:
        item = str(item).strip()
        if not item:
            continue
        day = int(item)
        if not 0 <= day <= 6:
            raise ValueError(f"Invalid weekday {day}, expected 0 (Sunday) to 6 (Saturday)")
        days.add(day)
    return days or None


def sanitize_tag_selector(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return TAG_RE.sub("", value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """UTC timestamp like '2025-11-06T09:12:34.123456Z'."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def from_iso(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def run_in_thread(fn: Callable, *args, name: Optional[str] = None, **kwargs) -> Future:
    """
    Run fn on a daemon thread and return a Future for its outcome.
    A caller that stops waiting simply drops the Future; the thread
    never blocks interpreter exit.
    """
    future: Future = Future()

    def _target():
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn(*args, **kwargs)
        except BaseException as e:
            future.set_exception(e)
        else:
            future.set_result(result)

    threading.Thread(target=_target, name=name, daemon=True).start()
    return future


def call_with_timeout(fn: Callable, timeout: Optional[float], *args, **kwargs):
    """
    Race fn against a timer. Raises concurrent.futures.TimeoutError when the
    timer wins; the late result of fn is discarded.
    """
    future = run_in_thread(fn, *args, name="renderworker-call", **kwargs)
    done, _ = wait([future], timeout=timeout)
    if not done:
        raise FutureTimeout(f"call did not finish within {timeout}s")
    return future.result()
