"""
Default renderer: runs the job's render command in a subprocess and turns
its output into progress and error callbacks.

Job preparation adapters ("actions") are plain callables referenced from
job.actions as "package.module:function". They run before (prerender) and
after (postrender) the render command and may mutate the job freely.
"""
import importlib
import re
import shlex
import subprocess
import threading
from typing import Callable

from .config import WorkerSettings
from .errors import RenderError
from .models import RENDERING, Job

PROGRESS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
ERROR_RE = re.compile(r"(?i)^\s*error\b[:\s]*(.*)$")


def load_action(ref: str) -> Callable:
    module_name, _, attr = ref.partition(":")
    if not module_name or not attr:
        raise RenderError(f"Invalid action reference {ref!r}, expected 'package.module:function'")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise RenderError(f"Could not load action {ref!r}: {e}") from e


def run_actions(job: Job, settings: WorkerSettings, stage: str):
    for action in job.actions.get(stage, []):
        params = dict(action)
        ref = params.pop("module", None)
        if not ref:
            raise RenderError(f"{stage} action without a module: {action!r}")
        settings.logger.info(f"[{job.uid}] running {stage} action {ref}")
        fn = load_action(ref)
        try:
            fn(job, settings, **params)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"{stage} action {ref} failed: {e}") from e


class SubprocessRenderer:
    def __init__(self, progress_re=PROGRESS_RE, error_re=ERROR_RE):
        self.progress_re = progress_re
        self.error_re = error_re
        # uid -> running render process
        self._procs = {}
        self._cancelled = set()
        self._lock = threading.Lock()

    def cancel(self, job: Job):
        """Kill the render process of job, if one is running."""
        with self._lock:
            self._cancelled.add(job.uid)
            proc = self._procs.get(job.uid)
        if proc is not None and proc.poll() is None:
            proc.kill()

    def render(self, job: Job, settings: WorkerSettings) -> Job:
        run_actions(job, settings, "prerender")
        job.state = RENDERING
        self.run_command(job, settings)
        run_actions(job, settings, "postrender")
        return job

    def build_args(self, job: Job):
        cmd = job.template.get("command")
        if not cmd:
            raise RenderError("job template has no render command")
        if isinstance(cmd, str):
            return shlex.split(cmd)
        return [str(c) for c in cmd]

    def handle_line(self, job: Job, line: str):
        text = line.strip()
        if not text:
            return
        err = self.error_re.match(text)
        if err:
            if job.on_render_error:
                job.on_render_error(job, err.group(1) or text)
            return
        progress = self.progress_re.search(text)
        if progress:
            job.render_progress = min(float(progress.group(1)), 100.0)
            if job.on_render_progress:
                job.on_render_progress(job)

    def run_command(self, job: Job, settings: WorkerSettings):
        args = self.build_args(job)
        settings.logger.info(f"[{job.uid}] rendering: {' '.join(args)}")
        try:
            proc = subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                cwd=str(settings.workpath) if settings.workpath else None,
            )
        except FileNotFoundError:
            raise RenderError(f"Command not found: {args[0]}")

        with self._lock:
            self._procs[job.uid] = proc
            cancelled = job.uid in self._cancelled
        if cancelled:
            proc.kill()

        timed_out = threading.Event()

        def _kill():
            timed_out.set()
            proc.kill()

        timer = None
        if settings.render_timeout:
            timer = threading.Timer(settings.render_timeout, _kill)
            timer.daemon = True
            timer.start()
        try:
            for line in proc.stdout:
                self.handle_line(job, line)
            rc = proc.wait()
        finally:
            if timer is not None:
                timer.cancel()
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            with self._lock:
                self._procs.pop(job.uid, None)
                cancelled = job.uid in self._cancelled
                self._cancelled.discard(job.uid)

        if cancelled:
            raise RenderError("render cancelled")
        if timed_out.is_set():
            raise RenderError(f"render timed out after {settings.render_timeout}s")
        if rc != 0:
            raise RenderError(f"render command exited with code {rc}")
