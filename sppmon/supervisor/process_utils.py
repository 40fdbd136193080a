import os
import shlex
import string
import psutil
import logging
import subprocess
from pathlib import Path
from typing import Dict, List

from sppmon.config import effective_settings
from sppmon.release.models import RuntimeEntry

log = logging.getLogger(__name__)


#* --- Process Status ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists for easy testing/mocking if needed."""
    return psutil.pid_exists(pid)


def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)


def is_alive(pid: int) -> bool:
    """True if a process with this pid exists and is not a zombie."""
    if pid <= 0 or not pid_exists(pid):
        return False
    try:
        return get_process_from_pid(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but belongs to someone else.
        return True


#* --- Process Creation ---
def service_environment(release_dir: Path, volumes_dir: Path, service_id: str) -> Dict[str, str]:
    """The `SPPMON_*` variables exported to every service of a release."""
    return {
        "SPPMON_RELEASE_DIR": str(release_dir),
        "SPPMON_BIN_DIR": str(release_dir / effective_settings.RELEASE_BINARIES_DIR),
        "SPPMON_CONFIG_DIR": str(release_dir / effective_settings.RELEASE_CONFIG_DIR),
        "SPPMON_DATA_DIR": str(volumes_dir / "data" / service_id),
        "SPPMON_LOG_DIR": str(volumes_dir / "logs"),
        "SPPMON_RUN_DIR": str(volumes_dir / "run"),
        "SPPMON_SERVICE": service_id,
    }


def get_process_args(entry: RuntimeEntry, environment: Dict[str, str]) -> List[str]:
    """
    Returns the argv of a service: its process title followed by the resolved arguments.

    The title `sppmon:<service>:<binary>` makes managed processes easy to spot in `ps`.
    """
    rendered = string.Template(entry.args).safe_substitute(environment)
    return [f"sppmon:{entry.id}:{entry.binary}", *shlex.split(rendered)]


def launch_process(entry: RuntimeEntry, release_dir: Path, volumes_dir: Path, log_path: Path) -> subprocess.Popen:
    """
    Spawns one service detached from the caller.

    The process gets its own session, reads from /dev/null and appends its
    combined output to `log_path`.
    """
    binary_path = release_dir / effective_settings.RELEASE_BINARIES_DIR / entry.binary
    environment = service_environment(release_dir, volumes_dir, entry.id)
    args = get_process_args(entry, environment)

    Path(environment["SPPMON_DATA_DIR"]).mkdir(parents=True, exist_ok=True)
    log.debug(f"Spawning {entry.id}: {binary_path} {' '.join(args[1:])}")
    with log_path.open("ab") as log_file:
        return subprocess.Popen(
            args,
            executable=str(binary_path),
            cwd=str(release_dir),
            env={**os.environ, **environment},
            stdin=subprocess.DEVNULL,
            stdout=log_file,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
