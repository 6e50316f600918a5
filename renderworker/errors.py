class WorkerError(Exception):
    """Base worker error."""


class AcquisitionError(WorkerError):
    """Raised when a job pickup fails or times out."""


class StateUpdateError(WorkerError):
    """Raised when pushing a job state to the queue fails."""


class RenderError(WorkerError):
    """Raised when the renderer fails a job."""


class InterruptionError(WorkerError):
    """Raised when the forced requeue on shutdown cannot be reported."""


class WorkerInterrupted(Exception):
    """A termination signal was observed at a checkpoint."""
