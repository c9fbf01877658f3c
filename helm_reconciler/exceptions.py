"""Exceptions related to helm-reconciler."""

__all__ = [
    "ReconcilerException",
    "InputException",
    "CommandException",
    "MissingValue",
    "DuplicateResource",
    "DiffConflict",
    "ApplyFailure",
    "ReadinessTimeout",
    "ApplyCancelled",
    "RevisionNotFound",
    "ReleaseNotFound",
    "ReleaseExists",
    "InvalidTransition",
    "ReleaseLocked",
    "RollbackFailed",
]


class ReconcilerException(Exception):
    """Generic base exception used for this library."""


class InputException(ReconcilerException):
    """Raised when the chart files or values are not formatted as expected."""


class CommandException(ReconcilerException):
    """Raised when there is a failure running a subcommand."""


class KubectlException(CommandException):
    """Raised when there is a failure running a kubectl command."""


class MissingValue(InputException):
    """Raised when a template references a value that is not defined."""

    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(
            f"Missing required value '{path}'" + (f": {message}" if message else "")
        )
        self.path = path


class DuplicateResource(InputException):
    """Raised when a manifest set contains the same resource identity twice."""

    def __init__(self, resource_id: object) -> None:
        super().__init__(f"Duplicate resource {resource_id} in manifest set")
        self.resource_id = resource_id


class DiffConflict(ReconcilerException):
    """Raised when the revision a plan was computed against was superseded."""


class ApplyFailure(ReconcilerException):
    """Raised when a resource could not be applied to the cluster."""

    def __init__(self, resource_id: object, cause: str, attempts: int = 1) -> None:
        super().__init__(
            f"Resource {resource_id} failed after {attempts} attempt(s): {cause}"
        )
        self.resource_id = resource_id
        self.cause = cause
        self.attempts = attempts


class ReadinessTimeout(ApplyFailure):
    """Raised when a resource did not become ready within the timeout."""


class ApplyCancelled(ReconcilerException):
    """Raised when an apply was cancelled between tiers."""


class RevisionNotFound(ReconcilerException):
    """Raised when a requested revision does not exist."""

    def __init__(self, release: str, revision: int | None) -> None:
        if revision is None:
            super().__init__(f"Release {release} has no revision to roll back to")
        else:
            super().__init__(f"Release {release} has no revision {revision}")
        self.release = release
        self.revision = revision


class ReleaseNotFound(ReconcilerException):
    """Raised when a release does not exist in the store."""

    def __init__(self, release: str) -> None:
        super().__init__(f"Release {release} not found")
        self.release = release


class ReleaseExists(ReconcilerException):
    """Raised when installing a release that is already deployed."""

    def __init__(self, release: str) -> None:
        super().__init__(f"Release {release} already exists, use upgrade instead")
        self.release = release


class InvalidTransition(ReconcilerException):
    """Raised when a release is moved into a status it cannot reach."""

    def __init__(self, release: str, current: str | None, target: str) -> None:
        super().__init__(
            f"Release {release} cannot move from {current or 'absent'} to {target}"
        )
        self.release = release
        self.current = current
        self.target = target


class ReleaseLocked(ReconcilerException):
    """Raised when another process holds the lock of a release for too long."""


class RollbackFailed(ReconcilerException):
    """Raised when rolling back a release did not reach a deployed state."""

    def __init__(self, release: str, target: int, cause: object) -> None:
        super().__init__(f"Rollback of {release} to revision {target} failed: {cause}")
        self.release = release
        self.target = target
        self.cause = cause
