import os
import time
import shutil
import logging
import threading
from pathlib import Path
from collections import deque
from dataclasses import dataclass
from typing import Iterator, List, Optional

from sppmon.config import effective_settings
from sppmon.release.models import RuntimeDescriptor, RuntimeEntry
from sppmon.supervisor import persistence, process_utils
from sppmon.supervisor.descriptor import load_active_descriptor
from sppmon.supervisor.shutdown import EscalationPolicy, stop_process
from sppmon.errors import (
    DestructiveOperationRefused, StartFailedError, StopFailedError, SupervisorError, UnknownServiceError,
)

log = logging.getLogger(__name__)

ALL = "all"


@dataclass(frozen=True)
class ServiceStatus:
    service_id: str
    running: bool
    pid: Optional[int]
    description: str = ""


class ServiceSupervisor:
    """
    Manages the services of the active release on this host.

    "Running" means a PID file exists, holds an integer, and that process is
    alive. PID files are written only after a verified spawn, so an aborted
    command never leaves a PID file behind.

    Two concurrent `start` invocations race between the liveness check and the
    PID file write; the PID file check is the only serialization point.
    """

    def __init__(self, base_dir: Optional[Path] = None, policy: Optional[EscalationPolicy] = None,
                 start_grace_period: Optional[float] = None) -> None:
        self.base_dir = Path(base_dir or effective_settings.BASE_DIR)
        self.paths = persistence.RuntimePaths(self.base_dir / effective_settings.VOLUMES_DIR_NAME)
        self.policy = policy or EscalationPolicy.from_settings()
        self.start_grace_period = (
            effective_settings.START_GRACE_PERIOD if start_grace_period is None else start_grace_period
        )

    #* --- Descriptor access ---
    def descriptor(self) -> RuntimeDescriptor:
        """Re-reads the runtime descriptor of the active release."""
        return load_active_descriptor(self.base_dir)[0]

    def _entry(self, descriptor: RuntimeDescriptor, service_id: str) -> RuntimeEntry:
        entry = descriptor.get(service_id)
        if entry is None:
            raise UnknownServiceError(
                f"Unknown service '{service_id}': not a launchable service of release {descriptor.release_id}."
            )
        return entry

    def _targets(self, descriptor: RuntimeDescriptor, service: str) -> List[str]:
        if service == ALL:
            return descriptor.service_ids()
        return [self._entry(descriptor, service).id]

    #* --- Queries ---
    def get_pid(self, service_id: str) -> Optional[int]:
        """The pid of a running service, or None."""
        pid = persistence.read_pid(self.paths.pid_file(service_id))
        if pid is not None and process_utils.is_alive(pid):
            return pid
        return None

    def is_running(self, service_id: str) -> bool:
        return self.get_pid(service_id) is not None

    def list_services(self) -> List[RuntimeEntry]:
        return list(self.descriptor().services)

    def status(self, service: Optional[str] = None) -> List[ServiceStatus]:
        """Status of one service, or of every launchable service when none is given."""
        descriptor = self.descriptor()
        entries = [self._entry(descriptor, service)] if service and service != ALL else descriptor.services
        return [ServiceStatus(e.id, self.is_running(e.id), self.get_pid(e.id), e.description) for e in entries]

    #* --- Lifecycle ---
    def _start_one(self, entry: RuntimeEntry, release_dir: Path) -> int:
        pid_path = self.paths.pid_file(entry.id)
        running_pid = self.get_pid(entry.id)
        if running_pid is not None:
            log.info(f"Service '{entry.id}' is already running (PID {running_pid}).")
            return running_pid

        # A PID file whose process is gone is stale.
        persistence.remove_pid_file(pid_path)

        binary_path = release_dir / effective_settings.RELEASE_BINARIES_DIR / entry.binary
        if not binary_path.is_file():
            raise StartFailedError(f"Service '{entry.id}': binary '{binary_path}' is missing.")

        log_path = self.paths.log_file(entry.id)
        log.info(f"Starting service '{entry.id}'...")
        try:
            proc = process_utils.launch_process(entry, release_dir, self.paths.volumes_dir, log_path)
        except OSError as e:
            raise StartFailedError(f"Service '{entry.id}': spawn of '{binary_path}' failed: {e}") from e

        time.sleep(self.start_grace_period)
        if proc.poll() is not None or not process_utils.is_alive(proc.pid):
            persistence.remove_pid_file(pid_path)
            raise StartFailedError(
                f"Service '{entry.id}' exited right after start (exit code {proc.poll()}). See {log_path}."
            )

        persistence.write_pid_file(pid_path, proc.pid)
        log.info(f"Service '{entry.id}' started with PID {proc.pid}. Log: {log_path}")
        return proc.pid

    def start(self, service: str) -> None:
        """
        Starts one launchable service, or every one in declared order for `all`.

        :raises UnknownServiceError: If the service is not launchable in the active release.
        :raises StartFailedError: If a process dies during the grace period.
        """
        descriptor, release_dir = load_active_descriptor(self.base_dir)
        self.paths.ensure()
        for service_id in self._targets(descriptor, service):
            self._start_one(self._entry(descriptor, service_id), release_dir)

    def _stop_one(self, service_id: str) -> None:
        pid_path = self.paths.pid_file(service_id)
        pid = self.get_pid(service_id)
        if pid is None:
            if pid_path.exists():
                log.info(f"Removing stale PID file of '{service_id}'.")
                persistence.remove_pid_file(pid_path)
            log.info(f"Service '{service_id}' is not running.")
            return

        log.info(f"Stopping service '{service_id}' (PID {pid})...")
        try:
            stopped = stop_process(pid, self.policy)
        finally:
            persistence.remove_pid_file(pid_path)
        if not stopped:
            raise StopFailedError(f"Service '{service_id}' (PID {pid}) survived the forced kill.")
        log.info(f"Service '{service_id}' stopped.")

    def stop(self, service: str) -> None:
        """
        Stops one service, or every one in reverse declared order for `all`.

        :raises StopFailedError: If a process is still alive after the forced kill.
        """
        descriptor = self.descriptor()
        targets = self._targets(descriptor, service)
        if service == ALL:
            targets = list(reversed(targets))

        failures: List[str] = []
        for service_id in targets:
            try:
                self._stop_one(service_id)
            except StopFailedError as e:
                log.error(str(e))
                failures.append(service_id)
        if failures:
            raise StopFailedError(f"Could not stop: {', '.join(failures)}.")

    def restart(self, service: str) -> None:
        self.stop(service)
        self.start(service)

    #* --- Logs ---
    def logs(self, service_id: str, tail: Optional[int] = None, follow: bool = False,
             stop_event: Optional[threading.Event] = None) -> Iterator[str]:
        """
        Yields the last `tail` lines of a service log, then new lines while following.

        :param service_id: A launchable service of the active release.
        :param tail: Number of trailing lines; defaults to DEFAULT_TAIL_LINES.
        :param follow: Keep yielding appended lines until `stop_event` is set.
        :param stop_event: Ends a follow.
        :raises SupervisorError: If the log does not exist yet.
        """
        self._entry(self.descriptor(), service_id)
        log_path = self.paths.log_file(service_id)
        if not log_path.is_file():
            raise SupervisorError(f"No log for '{service_id}' yet: '{log_path}' does not exist.")

        tail = effective_settings.DEFAULT_TAIL_LINES if tail is None else max(0, int(tail))
        with log_path.open("r", encoding="utf-8", errors="replace") as f:
            if tail:
                for line in deque(f, maxlen=tail):
                    yield line.rstrip("\n")
            else:
                f.seek(0, os.SEEK_END)
            if not follow:
                return

            # Position is at the end of the file here.
            stop_event = stop_event or threading.Event()
            while not stop_event.is_set():
                line = f.readline()
                if line:
                    yield line.rstrip("\n")
                else:
                    stop_event.wait(effective_settings.LOG_FOLLOW_INTERVAL)

    #* --- Cleanup ---
    def clean(self, what: str, force: bool = False, service: Optional[str] = None) -> None:
        """
        `logs` and `run` delete log or PID files only. `data` wipes persistent
        data and refuses without `force`.
        """
        if what == "logs":
            self._remove_files(self.paths.log_dir, "*.log")
        elif what == "run":
            self._remove_files(self.paths.run_dir, "*.pid")
        elif what == "data":
            self._clean_data(force, service)
        else:
            raise SupervisorError(f"clean expects logs|run|data, got '{what}'.")

    def _remove_files(self, directory: Path, pattern: str) -> None:
        log.info(f"Cleaning {pattern} in {directory}")
        if not directory.is_dir():
            return
        for path in directory.glob(pattern):
            path.unlink(missing_ok=True)

    def _clean_data(self, force: bool, service: Optional[str]) -> None:
        target = self.paths.data_dir
        if service:
            self._entry(self.descriptor(), service)
            target = self.paths.service_data_dir(service)
        if not force:
            raise DestructiveOperationRefused(f"Refusing to remove data at '{target}' without --force.")

        log.warning(f"Removing data directory: {target}")
        if target.exists():
            shutil.rmtree(target)
        target.mkdir(parents=True, exist_ok=True)
