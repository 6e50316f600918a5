import threading
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from typing import Optional

from .config import WorkerSettings
from .errors import AcquisitionError
from .models import Job
from .shutdown import ShutdownPolicy
from .utils import call_with_timeout


class JobAcquisition:
    """Polls the queue until a job comes back or the worker has to stop."""

    def __init__(self, client, settings: WorkerSettings, policy: ShutdownPolicy,
                 cancel: Optional[threading.Event] = None):
        self.client = client
        self.settings = settings
        self.policy = policy
        self.cancel = cancel or threading.Event()
        self.empty_returns = 0

    def pickup(self) -> Optional[Job]:
        s = self.settings
        args = (s.tag_selector,) if s.tag_selector else ()
        try:
            job = call_with_timeout(self.client.pickup_job, s.pickup_timeout, *args)
        except FutureTimeout:
            raise AcquisitionError("Job pickup request timed out")
        except Exception as e:
            raise AcquisitionError(str(e)) from e

        if isinstance(job, dict):
            job = Job.from_dict(job) if job.get("uid") else None
        return job

    def next_job(self) -> Optional[Job]:
        s = self.settings
        log = s.logger

        while not self.cancel.is_set():
            if self.policy.should_stop(datetime.now(), self.empty_returns):
                return None

            try:
                log.info("[worker] checking for new jobs...")
                job = self.pickup()

                if job is not None and job.uid:
                    self.empty_returns = 0
                    return job

                # no job was returned by the server
                self.empty_returns += 1
                bound = f" of {s.tolerate_empty_queues}" if s.tolerate_empty_queues else ""
                log.info(f"[worker] no jobs available (attempt {self.empty_returns}{bound})")
                if self.policy.empty_queue_exceeded(self.empty_returns):
                    log.info("[worker] max empty queue attempts reached, deactivating worker")
                    return None

            except AcquisitionError as e:
                log.error(f"[worker] error checking for jobs: {e}")
                if s.stop_on_error:
                    raise
                log.info("[worker] continue listening next job...")

            log.info(f"[worker] waiting {s.polling}s before next check...")
            self.cancel.wait(s.polling)

        return None
