import threading

import pytest

from renderworker.config import WorkerSettings
from renderworker.models import RENDERING


class FakeQueueClient:
    """In-memory queue. pickups holds what each pickup_job call returns (or raises)."""

    def __init__(self, pickups=None, fail_states=()):
        self.pickups = list(pickups or [])
        self.fail_states = set(fail_states)
        self.pickup_calls = []
        self.updates = []

    def pickup_job(self, tag_selector=None):
        self.pickup_calls.append(tag_selector)
        if not self.pickups:
            return None
        item = self.pickups.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item()
        return item

    def update_job(self, uid, data):
        self.updates.append((uid, dict(data)))
        if data.get("state") in self.fail_states:
            raise ConnectionError("queue unreachable")
        return {"uid": uid}

    def states(self, uid):
        return [d["state"] for u, d in self.updates if u == uid]

    def last(self, uid):
        return [d for u, d in self.updates if u == uid][-1]


class FakeRenderer:
    def __init__(self, fail=None, progress=(), render_errors=(), during=None):
        self.fail = fail or {}
        self.progress = progress
        self.render_errors = render_errors
        self.during = during
        self.calls = []
        self.captured = None

    def render(self, job, settings):
        self.calls.append(job.uid)
        self.captured = job.on_render_progress
        job.state = RENDERING
        for p in self.progress:
            job.render_progress = p
            job.on_render_progress(job)
        for e in self.render_errors:
            job.on_render_error(job, e)
        if self.during:
            self.during(job)
        if job.uid in self.fail:
            raise self.fail[job.uid]
        return job


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides):
        overrides.setdefault("lock_file", tmp_path / ".renderworker.lock")
        overrides.setdefault("polling", 0.01)
        overrides.setdefault("pickup_timeout", 2)
        return WorkerSettings.resolve(**overrides)
    return _make


@pytest.fixture
def release():
    event = threading.Event()
    yield event
    event.set()
