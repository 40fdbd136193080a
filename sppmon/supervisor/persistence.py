import logging
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)


class RuntimePaths:
    """Runtime state root of one host: `<volumes>/run`, `<volumes>/logs` and `<volumes>/data`."""

    def __init__(self, volumes_dir: Path) -> None:
        self.volumes_dir = Path(volumes_dir)
        self.run_dir = self.volumes_dir / "run"
        self.log_dir = self.volumes_dir / "logs"
        self.data_dir = self.volumes_dir / "data"

    def ensure(self) -> None:
        for directory in (self.run_dir, self.log_dir, self.data_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def pid_file(self, service_id: str) -> Path:
        return self.run_dir / f"{service_id}.pid"

    def log_file(self, service_id: str) -> Path:
        return self.log_dir / f"{service_id}.log"

    def service_data_dir(self, service_id: str) -> Path:
        return self.data_dir / service_id


def read_pid(pid_path: Path) -> Optional[int]:
    """
    Reads a PID file.

    :param pid_path: The PID file of one service.
    :return: The recorded pid, or None if the file is missing or does not hold an integer.
    """
    try:
        content = pid_path.read_text().strip()
    except FileNotFoundError:
        return None
    except OSError as e:
        log.warning(f"Cannot read PID file '{pid_path}': {e}")
        return None
    try:
        return int(content)
    except ValueError:
        log.debug(f"PID file '{pid_path}' does not contain a pid: {content!r}")
        return None


def write_pid_file(pid_path: Path, pid: int) -> None:
    """
    Atomically writes a pid to a PID file.

    :param pid_path: The PID file of one service.
    :param pid: The pid to record.
    """
    temp_pid_path = pid_path.with_suffix(".tmp")
    try:
        temp_pid_path.write_text(f"{pid}\n")
        temp_pid_path.replace(pid_path)
    finally:
        temp_pid_path.unlink(missing_ok=True)


def remove_pid_file(pid_path: Path) -> None:
    pid_path.unlink(missing_ok=True)
