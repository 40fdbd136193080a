import psutil
import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from sppmon.config import effective_settings
from sppmon.errors import SupervisorError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EscalationPolicy:
    """
    Bounds the graceful-to-forced stop sequence.

    :param graceful_timeout: Seconds to wait after SIGTERM before escalating.
    :param kill_timeout: Seconds to wait after SIGKILL before giving up.
    :param poll_interval: Seconds between liveness checks while waiting.
    """
    graceful_timeout: float = effective_settings.GRACEFUL_STOP_TIMEOUT
    kill_timeout: float = effective_settings.FORCED_KILL_TIMEOUT
    poll_interval: float = effective_settings.STOP_POLL_INTERVAL

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise SupervisorError(f"Invalid stop policy: poll_interval must be > 0, got {self.poll_interval}.")
        if self.graceful_timeout < 0 or self.kill_timeout < 0:
            raise SupervisorError("Invalid stop policy: timeouts must not be negative.")

    @classmethod
    def from_settings(cls) -> "EscalationPolicy":
        return cls(
            graceful_timeout=float(effective_settings.GRACEFUL_STOP_TIMEOUT),
            kill_timeout=float(effective_settings.FORCED_KILL_TIMEOUT),
            poll_interval=float(effective_settings.STOP_POLL_INTERVAL),
        )


def identify_processes_to_stop(pid: int) -> Set[psutil.Process]:
    """
    Returns the process and all of its children.

    :param pid: The pid recorded for a service.
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return set()
    procs: Set[psutil.Process] = {parent}
    try:
        procs.update(parent.children(recursive=True))
    except psutil.NoSuchProcess:
        log.debug(f"Process {pid} exited while collecting its children.")
    return procs


def _wait(procs: List[psutil.Process], timeout: float, policy: EscalationPolicy) -> List[psutil.Process]:
    """Polls until every process is gone (zombies count as gone) or the timeout expires."""
    if not procs:
        return []
    remaining = timeout
    alive = list(procs)
    while True:
        _, alive = psutil.wait_procs(alive, timeout=min(policy.poll_interval, max(remaining, 0)))
        alive = [p for p in alive if _is_live(p)]
        remaining -= policy.poll_interval
        if not alive or remaining <= 0:
            return alive


def _is_live(proc: psutil.Process) -> bool:
    try:
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


def _terminate_processes(procs: Set[psutil.Process]) -> None:
    """Sends SIGTERM to every process."""
    for proc in procs:
        try:
            log.debug(f"Sending SIGTERM to PID {proc.pid}")
            proc.terminate()
        except psutil.NoSuchProcess:
            continue


def _forceful_kill(procs: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    for proc in procs:
        try:
            log.warning(f"Killing stubborn process PID {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            continue


def stop_process(pid: int, policy: Optional[EscalationPolicy] = None) -> bool:
    """
    Stops a process tree: SIGTERM, bounded wait, then SIGKILL for survivors.

    :param pid: The pid recorded for a service.
    :param policy: The escalation timeouts to apply.
    :return: True if the recorded process is gone, False if it survived the forced kill.
    """
    policy = policy or EscalationPolicy.from_settings()
    procs = identify_processes_to_stop(pid)
    if not procs:
        return True

    _terminate_processes(procs)
    alive = _wait(list(procs), policy.graceful_timeout, policy)
    if alive:
        log.warning(f"{len(alive)} process(es) of PID {pid} did not terminate within "
                    f"{policy.graceful_timeout}s. Forcing shutdown...")
        _forceful_kill(alive)
        alive = _wait(alive, policy.kill_timeout, policy)

    return not any(p.pid == pid for p in alive)
