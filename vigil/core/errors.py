"""
Vigil exception hierarchy.

Every error in the system inherits from VigilError.
Each subsystem has its own error class for targeted catching.

Usage:
    try:
        run = await agent.trigger_job(job_id)
    except JobNotFoundError:
        # 404
    except JobAlreadyRunningError:
        # 409
    except VigilError as e:
        # Any other Vigil error
"""


class VigilError(Exception):
    """Base exception for all Vigil errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ━━━ Layer 0: Core Errors ━━━


class ConfigError(VigilError):
    """Configuration is invalid, missing, or malformed."""

    pass


class ValidationError(VigilError):
    """Caller supplied input that cannot be accepted (bad query, schedule, ...)."""

    pass


# ━━━ Layer 1: Provider Errors ━━━


class StorageError(VigilError):
    """Storage backend failure - database errors, corruption, etc."""

    pass


class ExecutorError(VigilError):
    """Research executor failure - upstream API errors, bad responses."""

    def __init__(
        self,
        message: str,
        source: str = "",
        details: dict | None = None,
    ):
        self.source = source
        super().__init__(message, details)


# ━━━ Layer 2: Scheduler Errors ━━━


class NotFoundError(VigilError):
    """A job or run id does not exist in the store."""

    pass


class JobNotFoundError(NotFoundError):
    """Requested research job does not exist."""

    def __init__(self, job_id: str, details: dict | None = None):
        self.job_id = job_id
        super().__init__(f"Research job {job_id} not found", details)


class RunNotFoundError(NotFoundError):
    """Requested research run does not exist."""

    def __init__(self, run_id: str, details: dict | None = None):
        self.run_id = run_id
        super().__init__(f"Research run {run_id} not found", details)


class JobAlreadyRunningError(VigilError):
    """The job already has an in-flight run."""

    def __init__(self, job_id: str, details: dict | None = None):
        self.job_id = job_id
        super().__init__(f"Research job {job_id} is already running", details)


class RunAlreadyFinishedError(VigilError):
    """The run has already been completed or failed."""

    def __init__(self, run_id: str, details: dict | None = None):
        self.run_id = run_id
        super().__init__(f"Research run {run_id} has already finished", details)
