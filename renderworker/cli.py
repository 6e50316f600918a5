import logging
from pathlib import Path

import click

from .config import LOCK_FILE_NAME
from .errors import WorkerError
from .utils import parse_delay_to_seconds, parse_stop_days, parse_stop_time
from .worker import WorkerController

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def setup_logging(level: str = "INFO"):
    logger = logging.getLogger("renderworker")
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.propagate = False


class Duration(click.ParamType):
    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return parse_delay_to_seconds(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


DURATION = Duration()


def _validate_stop_time(ctx, param, value):
    if value is None:
        return value
    try:
        parse_stop_time(value)
    except ValueError as e:
        raise click.BadParameter(str(e))
    return value


def _validate_stop_days(ctx, param, value):
    if value is None:
        return value
    try:
        parse_stop_days(value)
    except ValueError as e:
        raise click.BadParameter(str(e))
    return value


@click.group(help="renderworker — polls a render queue and renders jobs one at a time")
def cli():
    pass


# ---------- Start ----------
@cli.command("start", help="Start the worker loop")
@click.option("--host", envvar="RENDERWORKER_HOST", required=True, help="Queue server URL")
@click.option("--secret", envvar="RENDERWORKER_SECRET", default=None, help="Queue server secret")
@click.option("--name", default=None, help="Worker name reported to the queue")
@click.option("--polling", type=DURATION, default=None, help="Delay between empty polls, e.g. 30s")
@click.option("--pickup-timeout", type=DURATION, default=None, help="Max wait for one pickup request")
@click.option("--tag-selector", default=None, help="Only pick up jobs with these tags")
@click.option("--tolerate-empty-queues", type=int, default=None, help="Empty polls tolerated before exiting")
@click.option("--exit-on-empty-queue", is_flag=True, help="Exit once the empty-queue tolerance is exceeded")
@click.option("--stop-on-error", is_flag=True, help="Exit on the first error instead of continuing")
@click.option("--stop-at-time", default=None, callback=_validate_stop_time, help="Stop at HH:MM")
@click.option("--stop-days", default=None, callback=_validate_stop_days,
              help="Weekdays for --stop-at-time, e.g. 1,2,3 (0 = Sunday)")
@click.option("--handle-interruption", is_flag=True, help="Requeue the current job on SIGINT/SIGTERM")
@click.option("--wait-between-jobs", type=DURATION, default=None, help="Pause after each job")
@click.option("--lock-file", type=click.Path(dir_okay=False), default=None,
              help=f"Graceful-stop lock file (default: ./{LOCK_FILE_NAME})")
@click.option("--workpath", type=click.Path(file_okay=False), default=None, help="Working directory for renders")
@click.option("--render-timeout", type=DURATION, default=None, help="Max duration of one render")
@click.option("--log-level", default="INFO", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
def start_cmd(host, secret, log_level, **options):
    setup_logging(log_level)
    settings = {k: v for k, v in options.items() if v is not None and v is not False}

    worker = WorkerController()
    try:
        worker.start(host, secret, settings)
    except (WorkerError, ValueError, RuntimeError, OSError) as e:
        click.secho(f"Error: {e}", fg="red")
        raise SystemExit(1)
    click.secho("Worker stopped.", fg="yellow")


# ---------- Stop ----------
@cli.command("stop", help="Ask a running worker to stop after its current job")
@click.option("--lock-file", type=click.Path(dir_okay=False), default=None,
              help=f"Lock file watched by the worker (default: ./{LOCK_FILE_NAME})")
def stop_cmd(lock_file):
    path = Path(lock_file) if lock_file else Path.cwd() / LOCK_FILE_NAME
    path.touch()
    click.secho(f"Stop requested: {path}", fg="green")


def main():
    cli()
