import threading
from concurrent.futures import wait
from typing import Optional

from .config import WorkerSettings
from .errors import StateUpdateError, WorkerInterrupted
from .models import ERROR, FINISHED, STARTED, Job, rendering_status
from .utils import run_in_thread, utcnow

# how often a running render checks for a termination signal
RENDER_CHECK_INTERVAL = 0.5


def push_state(client, job: Job, data: dict):
    try:
        return client.update_job(job.uid, data)
    except Exception as e:
        raise StateUpdateError(f"error while updating job state to {job.state}: {e}") from e


def track(settings: WorkerSettings, event: str, **data):
    """Hand a lifecycle event to the on_event hook; a failing hook never stops the worker."""
    if not settings.on_event:
        return
    try:
        settings.on_event(event, data)
    except Exception as e:
        settings.logger.error(f"[worker] on_event hook failed for {event!r}: {e}")


class JobReporter:
    """
    Progress and error callbacks installed on a job while it renders.
    Once closed, late calls from the renderer are ignored.
    """

    def __init__(self, client, settings: WorkerSettings):
        self.client = client
        self.settings = settings
        self.closed = False

    def attach(self, job: Job):
        job.on_render_progress = self.progress
        job.on_render_error = self.error

    def close(self, job: Job):
        self.closed = True
        job.clear_callbacks()

    def progress(self, job: Job):
        if self.closed:
            return
        s = self.settings
        try:
            push_state(self.client, job, rendering_status(job))
            if s.on_render_progress:
                s.on_render_progress(job)
        except Exception as e:
            if s.stop_on_error:
                raise
            s.logger.error(f"[{job.uid}] error updating job state occurred: {e}")

    def error(self, job: Job, err):
        if self.closed:
            return
        s = self.settings
        job.error.append(str(err))
        if s.on_render_error:
            s.on_render_error(job, err)
        try:
            push_state(self.client, job, rendering_status(job))
        except StateUpdateError as e:
            s.logger.error(f"[{job.uid}] {e}")


class JobExecutor:
    """Drives one job from started to finished or error, reporting every step."""

    def __init__(self, client, renderer, settings: WorkerSettings,
                 cancel: Optional[threading.Event] = None,
                 stopping: Optional[threading.Event] = None):
        self.client = client
        self.renderer = renderer
        self.settings = settings
        # cancel aborts a render, stopping only cuts waits short
        self.cancel = cancel or threading.Event()
        self.stopping = stopping or self.cancel

    def render(self, job: Job) -> Job:
        reporter = JobReporter(self.client, self.settings)
        reporter.attach(job)
        future = run_in_thread(self.renderer.render, job, self.settings, name=f"render-{job.uid}")
        try:
            while True:
                done, _ = wait([future], timeout=RENDER_CHECK_INTERVAL)
                if done:
                    break
                if self.cancel.is_set():
                    self.cancel_render(job)
                    raise WorkerInterrupted(job.uid)
        finally:
            reporter.close(job)

        result = future.result()
        return result if isinstance(result, Job) else job

    def cancel_render(self, job: Job):
        cancel = getattr(self.renderer, "cancel", None)
        if cancel is None:
            return
        try:
            cancel(job)
        except Exception as e:
            self.settings.logger.error(f"[{job.uid}] could not cancel render: {e}")

    def fail(self, job: Job, err: Exception):
        s = self.settings
        job.error.append(str(err))
        job.error_at = utcnow()
        job.state = ERROR
        track(s, "Worker Job Error", job_id=job.uid)

        if s.on_error:
            s.on_error(job, err)

        try:
            push_state(self.client, job, rendering_status(job))
        except StateUpdateError as e:
            s.logger.error(f"[{job.uid}] {e}. Job abandoned.")

    def run(self, job: Job) -> Job:
        s = self.settings
        log = s.logger

        job.state = STARTED
        job.started_at = utcnow()
        try:
            push_state(self.client, job, job.to_dict())
        except StateUpdateError as e:
            log.error(f"[{job.uid}] {e}. Job abandoned.")
            return job

        log.info(f"[{job.uid}] job started")
        track(s, "Worker Job Started", job_id=job.uid)
        try:
            job = self.render(job)
            job.state = FINISHED
            job.finished_at = utcnow()
            if s.on_finished:
                s.on_finished(job)
            log.info(f"[{job.uid}] job finished")
            track(s, "Worker Job Finished", job_id=job.uid)
            push_state(self.client, job, rendering_status(job))
        except WorkerInterrupted:
            raise
        except Exception as err:
            self.fail(job, err)
            if s.stop_on_error:
                raise
            log.error(f"[{job.uid}] error occurred: {err}")
            log.error(f"[{job.uid}] render process stopped with error...")
            log.info(f"[{job.uid}] continue listening next job...")

        if s.wait_between_jobs:
            self.stopping.wait(s.wait_between_jobs)
        return job
