from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .utils import from_iso, to_iso

# Job States
QUEUED = "queued"
STARTED = "started"
RENDERING = "rendering"
FINISHED = "finished"
ERROR = "error"

# wire key -> attribute
_FIELDS = {
    "uid": "uid",
    "state": "state",
    "type": "type",
    "tags": "tags",
    "template": "template",
    "assets": "assets",
    "actions": "actions",
    "renderProgress": "render_progress",
    "error": "error",
    "createdAt": "created_at",
    "startedAt": "started_at",
    "finishedAt": "finished_at",
    "errorAt": "error_at",
}
_DATES = {"created_at", "started_at", "finished_at", "error_at"}


@dataclass
class Job:
    uid: str
    state: str = QUEUED
    type: str = "default"
    tags: Optional[str] = None
    template: Dict[str, Any] = field(default_factory=dict)
    assets: List[Dict[str, Any]] = field(default_factory=list)
    actions: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    render_progress: float = 0
    error: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    # installed by the executor for the duration of a render, never serialized
    on_render_progress: Optional[Callable] = field(default=None, repr=False, compare=False)
    on_render_error: Optional[Callable] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            attr = _FIELDS.get(key)
            if attr is None:
                extra[key] = value
            elif attr in _DATES:
                kwargs[attr] = from_iso(value)
            elif attr == "error":
                kwargs[attr] = _error_list(value)
            else:
                kwargs[attr] = value
        if not kwargs.get("uid"):
            raise ValueError("Job payload has no uid.")
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.extra)
        for key, attr in _FIELDS.items():
            value = getattr(self, attr)
            out[key] = to_iso(value) if attr in _DATES else value
        out["error"] = list(self.error)
        return out

    def clear_callbacks(self):
        self.on_render_progress = None
        self.on_render_error = None


def _error_list(value) -> List[str]:
    if value is None or value is False:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def rendering_status(job: Job) -> Dict[str, Any]:
    """Partial job state pushed to the queue on every transition."""
    return {
        "uid": job.uid,
        "state": job.state,
        "type": job.type,
        "tags": job.tags,
        "renderProgress": job.render_progress,
        "error": list(job.error),
        "createdAt": to_iso(job.created_at),
        "startedAt": to_iso(job.started_at),
        "finishedAt": to_iso(job.finished_at),
        "errorAt": to_iso(job.error_at),
    }
