"""Exception types for History Weaver."""


class WeaverError(Exception):
    """Base class for all History Weaver errors."""


class ConfigError(WeaverError):
    """Raised when a run configuration cannot be loaded or is invalid."""


class PlanGenerationError(WeaverError):
    """Raised inside the plan adapter when the generator output is unusable.

    Never escapes compile_plan(); it triggers the fallback plan instead.
    """


class RemoteError(WeaverError):
    """Base class for failures reported by the remote repository."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteAccessError(RemoteError):
    """Connection or credential verification failed. Fatal for a run."""


class RemoteEventError(RemoteError):
    """A single event's remote mutation failed. The run continues."""


class RateLimitedError(RemoteEventError):
    """The remote rejected a call because of rate limiting."""

    def __init__(self, message: str, status_code: int | None = None, retry_after: float | None = None):
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after
