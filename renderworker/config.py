import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from .utils import parse_delay_to_seconds, sanitize_tag_selector

API_POLLING = parse_delay_to_seconds(os.environ.get("RENDERWORKER_API_POLLING", "30"))
PICKUP_TIMEOUT = parse_delay_to_seconds(os.environ.get("RENDERWORKER_PICKUP_TIMEOUT", "60"))
TOLERATE_EMPTY_QUEUES = int(os.environ.get("RENDERWORKER_TOLERATE_EMPTY_QUEUES", "0"))
LOCK_FILE_NAME = os.environ.get("RENDERWORKER_LOCK_FILE_NAME", ".renderworker.lock")


@dataclass
class WorkerSettings:
    name: Optional[str] = None
    polling: float = API_POLLING
    pickup_timeout: float = PICKUP_TIMEOUT
    tag_selector: Optional[str] = None
    tolerate_empty_queues: Optional[int] = None
    exit_on_empty_queue: bool = False
    stop_on_error: bool = False
    stop_at_time: Optional[str] = None
    stop_days: Optional[str] = None
    handle_interruption: bool = False
    wait_between_jobs: Optional[float] = None
    lock_file: Optional[Path] = None
    workpath: Optional[Path] = None
    render_timeout: Optional[float] = None

    # user hooks
    on_render_progress: Optional[Callable] = field(default=None, repr=False)
    on_render_error: Optional[Callable] = field(default=None, repr=False)
    on_finished: Optional[Callable] = field(default=None, repr=False)
    on_error: Optional[Callable] = field(default=None, repr=False)
    # on_event(name, data) receives worker lifecycle events
    on_event: Optional[Callable] = field(default=None, repr=False)

    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("renderworker"), repr=False)

    @classmethod
    def resolve(cls, settings: Union["WorkerSettings", Dict[str, Any], None] = None, **overrides) -> "WorkerSettings":
        """Merge defaults, given settings and overrides into a normalized copy."""
        if isinstance(settings, WorkerSettings):
            data = {f.name: getattr(settings, f.name) for f in fields(cls)}
        else:
            data = dict(settings or {})
        data.update(overrides)

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown worker setting(s): {', '.join(sorted(unknown))}")

        resolved = cls(**data)
        resolved.tag_selector = sanitize_tag_selector(resolved.tag_selector)
        if resolved.tolerate_empty_queues is None:
            resolved.tolerate_empty_queues = TOLERATE_EMPTY_QUEUES
        resolved.tolerate_empty_queues = int(resolved.tolerate_empty_queues)
        if resolved.polling is None:
            resolved.polling = API_POLLING
        if resolved.pickup_timeout is None:
            resolved.pickup_timeout = PICKUP_TIMEOUT
        if resolved.lock_file is None:
            resolved.lock_file = Path.cwd() / LOCK_FILE_NAME
        resolved.lock_file = Path(resolved.lock_file)
        if resolved.workpath is not None:
            resolved.workpath = Path(resolved.workpath)
        return resolved

    def describe(self) -> Dict[str, Any]:
        """Plain options, without hooks or logger."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.repr}
