import enum
import logging
from dataclasses import dataclass
from typing import List, Optional

from sppmon.deploy.manager import DeploymentManager, DeployResult, DeployState
from sppmon.errors import (
    NoPreviousReleaseError, NoReleasesError, ReleaseNotFoundError, RollbackSelectionError, SppmonError,
)

log = logging.getLogger(__name__)


class RollbackMode(enum.Enum):
    EXPLICIT = "explicit"
    PREVIOUS = "previous"
    LATEST = "latest"
    LIST = "list"


@dataclass(frozen=True)
class ReleaseInfo:
    release_id: str
    current: bool


class RollbackSelector:
    """
    Chooses an installed release on a target and reactivates it.

    Release ids sort by recency under plain string comparison, so "most recent"
    is always the greatest id. Execution reuses only the pointer swap and
    inventory refresh of the deployment manager.
    """

    def __init__(self, manager: DeploymentManager) -> None:
        self.manager = manager

    def list(self, target: str) -> List[ReleaseInfo]:
        """Read-only report of every installed release, most recent first."""
        current = self.manager.current_release(target)
        return [ReleaseInfo(rid, rid == current) for rid in self.manager.list_releases(target)]

    def select(self, target: str, mode: RollbackMode, release_id: Optional[str] = None) -> str:
        """
        Picks the release to activate on `target`.

        :raises RollbackSelectionError: If no release qualifies for `mode`.
        """
        releases = self.manager.list_releases(target)

        if mode is RollbackMode.EXPLICIT:
            if not release_id:
                raise RollbackSelectionError(f"[{target}] explicit rollback requires a release id.")
            if release_id not in releases:
                raise ReleaseNotFoundError(f"[{target}] release '{release_id}' is not installed.")
            return release_id

        if mode is RollbackMode.LATEST:
            if not releases:
                raise NoReleasesError(f"[{target}] no releases are installed.")
            return releases[0]

        if mode is RollbackMode.PREVIOUS:
            current = self.manager.current_release(target)
            candidates = [rid for rid in releases if rid != current]
            if len(releases) < 2 or not candidates:
                raise NoPreviousReleaseError(
                    f"[{target}] no previous release: {len(releases)} installed, current is '{current}'."
                )
            return candidates[0]

        raise RollbackSelectionError(f"Mode '{mode.value}' does not select a release.")

    def rollback(self, target: str, mode: RollbackMode, release_id: Optional[str] = None) -> DeployResult:
        """Selects a release and reactivates it. Errors are captured in the result."""
        selected = release_id or "-"
        try:
            selected = self.select(target, mode, release_id)
            if self.manager.current_release(target) == selected:
                log.info(f"[{target}] {selected} is already current; refreshing inventory only.")
            else:
                log.info(f"[{target}] rolling back to {selected} ({mode.value}).")
                self.manager.activate(target, selected)
        except SppmonError as e:
            log.error(f"[{target}] rollback failed: {e}")
            return DeployResult(target, selected, DeployState.FAILED, error=str(e))

        written = self.manager.refresh_inventory(target)
        return DeployResult(target, selected, DeployState.DONE, inventory_written=written)
