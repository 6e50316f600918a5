import signal
import threading
from typing import Dict, Optional

from .acquisition import JobAcquisition
from .client import HttpQueueClient
from .config import WorkerSettings
from .errors import InterruptionError, StateUpdateError, WorkerInterrupted
from .executor import JobExecutor, push_state, track
from .models import QUEUED, Job, rendering_status
from .renderer import SubprocessRenderer
from .shutdown import ShutdownPolicy


class WorkerController:
    """
    Continuous loop of picking up queued jobs and rendering them, one at a time.

    stop() only clears the active flag: the loop leaves at its next check and
    an in-flight render is allowed to finish. With handle_interruption enabled,
    SIGINT/SIGTERM instead put the current job back to 'queued' and end the
    process.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, client=None, renderer=None):
        self.client = client
        self.renderer = renderer or SubprocessRenderer()
        self.settings: Optional[WorkerSettings] = None
        self.active = False
        self.current_job: Optional[Job] = None

        self._stopping = threading.Event()
        self._interrupted = threading.Event()
        self._previous_handlers: Dict[int, object] = {}

    # ---------- Signals ----------
    def _handle_signal(self, signum, frame):
        if self.settings is not None:
            self.settings.logger.info(f"[worker] Received signal {signum}, interrupting")
        self.active = False
        self._interrupted.set()
        self._stopping.set()

    def setup_signal_handlers(self):
        for sig in self.SIGNALS:
            try:
                self._previous_handlers[sig] = signal.signal(sig, self._handle_signal)
            except ValueError as e:
                # only the main thread may install handlers
                self.settings.logger.warning(f"[worker] could not handle signal {sig}: {e}")

    def restore_signal_handlers(self):
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()

    def requeue(self, job: Job):
        """Put an interrupted job back to 'queued' on the queue."""
        log = self.settings.logger
        log.info(f"[{job.uid}] Interruption signal received. Updating job state to 'queued'...")
        job.clear_callbacks()
        job.state = QUEUED
        try:
            push_state(self.client, job, rendering_status(job))
        except StateUpdateError as e:
            raise InterruptionError(f"Failed to update job state: {e}") from e
        log.info(f"[{job.uid}] Job state updated to 'queued' successfully.")

    def handle_interruption(self):
        if self.current_job is not None:
            try:
                self.requeue(self.current_job)
            except InterruptionError as e:
                self.settings.logger.error(f"[{self.current_job.uid}] {e}")
        self.active = False
        raise SystemExit(0)

    # ---------- Lifecycle ----------
    def start(self, host: Optional[str] = None, secret: Optional[str] = None,
              settings=None, headers=None, **overrides):
        s = WorkerSettings.resolve(settings, **overrides)
        self.settings = s
        log = s.logger

        self.active = True
        self.current_job = None
        self._stopping.clear()
        self._interrupted.clear()

        log.info("starting renderworker with following settings:")
        for key, value in s.describe().items():
            log.info(f" - {key}: {value}")

        if self.client is None:
            self.client = HttpQueueClient(host, secret, name=s.name, headers=headers)

        track(
            s, "Worker Started",
            worker_tags_set=bool(s.tag_selector),
            worker_setting_tolerate_empty_queues=s.tolerate_empty_queues,
            worker_setting_exit_on_empty_queue=s.exit_on_empty_queue,
            worker_setting_polling=s.polling,
            worker_setting_stop_on_error=s.stop_on_error,
        )

        policy = ShutdownPolicy.from_settings(s)
        acquisition = JobAcquisition(self.client, s, policy, self._stopping)
        executor = JobExecutor(self.client, self.renderer, s, self._interrupted, self._stopping)

        if s.handle_interruption:
            self.setup_signal_handlers()
            log.info("Interruption handling enabled.")

        try:
            while self.active:
                job = acquisition.next_job()
                self.current_job = job
                if self._interrupted.is_set():
                    self.handle_interruption()

                # the worker has been deactivated
                if job is None:
                    break

                try:
                    executor.run(job)
                except WorkerInterrupted:
                    self.handle_interruption()
                self.current_job = None

                if self._interrupted.is_set():
                    self.handle_interruption()
        finally:
            self.active = False
            self.restore_signal_handlers()

        log.info("renderworker stopped")

    def stop(self):
        if self.settings is not None:
            self.settings.logger.info("stopping renderworker")
        self.active = False
        self._stopping.set()

    def is_running(self) -> bool:
        return self.active
