"""
Exception taxonomy for SPPMon.

Every error message names the failing entity (service id, target or
release id) and the precondition that was violated.
"""


class SppmonError(Exception):
    """Base class for all SPPMon errors."""


class CatalogError(SppmonError):
    """Unknown or ambiguous service/fragment reference, or malformed catalog data."""


class BuildError(SppmonError):
    """Strict-mode violation or archive assembly failure."""


class DeploymentError(SppmonError):
    """Staging, extraction or validation failed on a target."""

    def __init__(self, target: str, release_id: str, message: str) -> None:
        super().__init__(f"[{target}] {release_id}: {message}")
        self.target = target
        self.release_id = release_id


class DeploymentCancelled(DeploymentError):
    """A deployment was cancelled before its pointer swap."""


class ActivationError(SppmonError):
    """The current pointer could not be swapped. The target state may be ambiguous."""

    def __init__(self, target: str, release_id: str, message: str) -> None:
        super().__init__(f"[{target}] activating {release_id}: {message}")
        self.target = target
        self.release_id = release_id


class RemoteExecutionError(SppmonError):
    """The remote-execution collaborator could not run an operation sequence."""


class RollbackSelectionError(SppmonError):
    """No release qualifies for the requested rollback mode."""


class NoPreviousReleaseError(RollbackSelectionError):
    pass


class NoReleasesError(RollbackSelectionError):
    pass


class ReleaseNotFoundError(RollbackSelectionError):
    pass


class SupervisorError(SppmonError):
    """A supervisor command failed; the runtime state is left consistent."""


class UnknownServiceError(SupervisorError):
    pass


class StartFailedError(SupervisorError):
    pass


class StopFailedError(SupervisorError):
    pass


class DestructiveOperationRefused(SppmonError):
    """A destructive operation was attempted without explicit confirmation."""
