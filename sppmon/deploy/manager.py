import enum
import logging
import tempfile
import threading
import posixpath
from pathlib import Path
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from sppmon.config import effective_settings
from sppmon.deploy.download import fetch_archive
from sppmon.deploy.inventory import render_inventory
from sppmon.errors import ActivationError, DeploymentCancelled, DeploymentError, SppmonError
from sppmon.deploy.operations import (
    Extract, MakeDirs, Operation, RemoteExecutor, RemovePath, Rename, SwapPointer, WriteFile,
)

log = logging.getLogger(__name__)

RELEASES = effective_settings.RELEASES_DIR_NAME
CURRENT = effective_settings.CURRENT_LINK_NAME
VOLUMES = effective_settings.VOLUMES_DIR_NAME
INVENTORY_PATH = posixpath.join(RELEASES, effective_settings.INVENTORY_FILE_NAME)


class DeployState(enum.Enum):
    STAGING = "staging"
    VALIDATING = "validating"
    INSTALLING = "installing"
    ACTIVATING = "activating"
    DONE = "done"
    FAILED = "failed"


@dataclass
class DeployResult:
    target: str
    release_id: str
    state: DeployState
    error: Optional[str] = None
    inventory_written: bool = False

    @property
    def ok(self) -> bool:
        return self.state is DeployState.DONE


@dataclass
class FleetResult:
    release_id: str
    results: Dict[str, DeployResult] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[str]:
        return [t for t, r in self.results.items() if r.ok]

    @property
    def failed(self) -> List[str]:
        return [t for t, r in self.results.items() if not r.ok]

    @property
    def ok(self) -> bool:
        return bool(self.results) and not self.failed


def staging_path(release_id: str) -> str:
    return posixpath.join(RELEASES, f"{effective_settings.STAGING_PREFIX}{release_id}")


def release_path(release_id: str) -> str:
    return posixpath.join(RELEASES, release_id)


class DeploymentManager:
    """
    Drives the per-target release state machine.

    Staging -> Validating -> Installing -> Activating -> Done, with Failed
    reachable from every state before Activating. Only the pointer swap is
    externally observable, and it is a single atomic operation.
    """

    def __init__(self, executor: RemoteExecutor, cancel_event: Optional[threading.Event] = None) -> None:
        self.executor = executor
        self.cancel_event = cancel_event or threading.Event()

    #* --- Target state queries ---
    def list_releases(self, target: str) -> List[str]:
        """Installed release ids, most recent first. Staging leftovers and files are ignored."""
        names = self.executor.list_dir(target, RELEASES, dirs_only=True)
        return sorted((n for n in names if not n.startswith(".")), reverse=True)

    def current_release(self, target: str) -> Optional[str]:
        pointer = self.executor.read_pointer(target, CURRENT)
        if not pointer:
            return None
        return posixpath.basename(pointer.rstrip("/"))

    #* --- Steps ---
    def _check_cancelled(self, target: str, release_id: str, state: DeployState) -> None:
        if self.cancel_event.is_set():
            raise DeploymentCancelled(target, release_id, f"cancelled before {state.value}")

    def _run(self, target: str, release_id: str, operations: List[Operation], step: str) -> None:
        result = self.executor.run(target, operations)
        if not result.ok:
            raise DeploymentError(target, release_id, f"{step} failed: {result.output}")

    def _stage(self, target: str, release_id: str, archive: Path) -> None:
        staging = staging_path(release_id)
        self._run(target, release_id, [
            MakeDirs(RELEASES),
            MakeDirs(posixpath.join(VOLUMES, "data")),
            MakeDirs(posixpath.join(VOLUMES, "logs")),
            MakeDirs(posixpath.join(VOLUMES, "run")),
            RemovePath(staging),
            MakeDirs(staging),
            Extract(archive, staging),
        ], "staging")

    def _validate(self, target: str, release_id: str) -> None:
        entries = self.executor.list_dir(target, staging_path(release_id))
        top_dirs = self.executor.list_dir(target, staging_path(release_id), dirs_only=True)
        if entries != [release_id] or top_dirs != [release_id]:
            raise DeploymentError(
                target, release_id,
                f"archive must contain exactly one top-level directory named '{release_id}', found {entries}",
            )

    def _install(self, target: str, release_id: str) -> None:
        self._run(target, release_id, [
            RemovePath(release_path(release_id)),
            Rename(posixpath.join(staging_path(release_id), release_id), release_path(release_id)),
            RemovePath(staging_path(release_id)),
        ], "install")

    def _cleanup_staging(self, target: str, release_id: str) -> None:
        result = self.executor.run(target, [RemovePath(staging_path(release_id))])
        if not result.ok:
            log.warning(f"[{target}] could not purge staging for {release_id}: {result.output}")

    def activate(self, target: str, release_id: str) -> None:
        """
        Atomically repoints `current` at an installed release.

        :raises ActivationError: If the release is not installed or the swap failed.
        """
        if release_id not in self.list_releases(target):
            raise ActivationError(target, release_id, "release is not installed on this target")
        result = self.executor.run(target, [SwapPointer(CURRENT, release_path(release_id))])
        if not result.ok:
            raise ActivationError(target, release_id, f"pointer swap failed: {result.output}")
        log.info(f"[{target}] current -> {release_path(release_id)}")

    def refresh_inventory(self, target: str) -> bool:
        """
        Regenerates the inventory textfile from the on-disk state. Failures are logged, never raised.

        :return: True if the inventory was written.
        """
        try:
            content = render_inventory(self.list_releases(target), self.current_release(target))
            result = self.executor.run(target, [WriteFile(INVENTORY_PATH, content)])
        except SppmonError as e:
            log.warning(f"[{target}] inventory refresh failed: {e}")
            return False
        if not result.ok:
            log.warning(f"[{target}] inventory refresh failed: {result.output}")
            return False
        log.info(f"[{target}] wrote release inventory: {INVENTORY_PATH}")
        return True

    #* --- Public API ---
    def deploy(self, target: str, release_id: str, archive: Path) -> DeployResult:
        """
        Deploys one release archive to one target.

        Errors are captured in the returned result so that one target never
        affects another.
        """
        state = DeployState.STAGING
        log.info(f"[{target}] deploying {release_id} via {self.executor.describe_target(target)}")
        try:
            self._check_cancelled(target, release_id, state)
            if self.current_release(target) == release_id and release_id in self.list_releases(target):
                log.info(f"[{target}] {release_id} is already current; refreshing inventory only.")
                return DeployResult(target, release_id, DeployState.DONE,
                                    inventory_written=self.refresh_inventory(target))

            self._stage(target, release_id, archive)

            state = DeployState.VALIDATING
            log.debug(f"[{target}] {release_id}: {state.value}")
            self._validate(target, release_id)

            state = DeployState.INSTALLING
            self._check_cancelled(target, release_id, state)
            log.debug(f"[{target}] {release_id}: {state.value}")
            self._install(target, release_id)

            state = DeployState.ACTIVATING
            self._check_cancelled(target, release_id, state)
        except SppmonError as e:
            log.error(f"[{target}] deployment of {release_id} failed during {state.value}: {e}")
            self._cleanup_staging(target, release_id)
            return DeployResult(target, release_id, DeployState.FAILED, error=str(e))

        # From here on the deployment is not cancellable.
        try:
            self.activate(target, release_id)
        except SppmonError as e:
            log.critical(f"[{target}] activation of {release_id} failed, state may be ambiguous: {e}")
            return DeployResult(target, release_id, DeployState.ACTIVATING, error=str(e))

        written = self.refresh_inventory(target)
        log.info(f"[{target}] OK: {release_id} is active.")
        return DeployResult(target, release_id, DeployState.DONE, inventory_written=written)

    def deploy_all(self, targets: List[str], release_id: str, archive_location: str,
                   workers: Optional[int] = None) -> FleetResult:
        """
        Deploys one release to every target in parallel, one task per target.

        :param targets: Target identifiers.
        :param release_id: The release id packaged in the archive.
        :param archive_location: Local path or http(s) URL of the archive. URLs are fetched once.
        :param workers: Maximum parallel deployments.
        :return: The per-target results.
        """
        fleet = FleetResult(release_id=release_id)
        targets = list(dict.fromkeys(targets))
        if not targets:
            return fleet

        with tempfile.TemporaryDirectory(prefix="sppmon_fetch_") as tmp:
            try:
                archive = fetch_archive(archive_location, Path(tmp))
            except DeploymentError as e:
                for target in targets:
                    fleet.results[target] = DeployResult(target, release_id, DeployState.FAILED, error=str(e))
                return fleet

            max_workers = max(1, min(workers or effective_settings.DEPLOY_WORKERS, len(targets)))
            with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sppmon-deploy") as pool:
                futures = {pool.submit(self.deploy, target, release_id, archive): target for target in targets}
                try:
                    for future in as_completed(futures):
                        target = futures[future]
                        try:
                            fleet.results[target] = future.result()
                        except Exception as e:
                            log.error(f"[{target}] unexpected deployment error: {e}", exc_info=True)
                            fleet.results[target] = DeployResult(target, release_id, DeployState.FAILED, error=str(e))
                except KeyboardInterrupt:
                    # Targets that have not reached Activating keep their previous pointer.
                    log.warning("Interrupted: cancelling pending deployments...")
                    self.cancel_event.set()
                    raise

        fleet.results = {t: fleet.results[t] for t in targets}
        log.info(f"Deployment of {release_id}: {len(fleet.succeeded)} succeeded, {len(fleet.failed)} failed.")
        return fleet
