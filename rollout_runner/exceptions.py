"""Rollout Runner exception hierarchy.

All custom exceptions inherit from RolloutRunnerError, allowing callers
to catch broad or specific error categories as needed.
"""


class RolloutRunnerError(Exception):
    """Base exception for all Rollout Runner errors."""

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(RolloutRunnerError):
    """Raised when required input is missing or malformed.

    Examples: empty URL or token, plan name not of the form
    projects/{project}/plans/{plan}.
    """


class SchemaValidationError(RolloutRunnerError):
    """Raised when a remote payload does not match the expected schema."""


class RemoteError(RolloutRunnerError):
    """Raised when a remote API call fails.

    Examples: non-success HTTP status, connection reset, timeout.
    status_code is None when no response was received.
    """

    def __init__(
        self,
        message: str = "",
        status_code: int | None = None,
        operation: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.operation = operation
        super().__init__(message)


class NotFoundError(RemoteError):
    """Raised when a successful response carries no rollout."""


class EmptyResultError(RemoteError):
    """Raised when a successful create response carries no payload."""


class UnsupportedVersionError(RolloutRunnerError):
    """Raised when the remote server is older than the supported floor."""

    def __init__(self, message: str = "", version: str = "", minimum: str = "") -> None:
        self.version = version
        self.minimum = minimum
        super().__init__(message)


class TaskFailureError(RolloutRunnerError):
    """Raised when any task of the stage being advanced has FAILED."""

    def __init__(self, task_names: list[str]) -> None:
        self.task_names = list(task_names)
        super().__init__(f"task {','.join(self.task_names)} failed")


class TargetNotFoundError(RolloutRunnerError):
    """Raised when the requested target stage is absent from the preview."""

    def __init__(self, target: str, available: list[str]) -> None:
        self.target = target
        self.available = list(available)
        lines = "\n".join(self.available)
        super().__init__(
            f"target stage {target} not found\navailable stages:\n{lines}"
        )


class TargetNotReachedError(RolloutRunnerError):
    """Raised when every stage completed without matching the target."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(
            f"all stages completed but target stage {target} was never reached"
        )
