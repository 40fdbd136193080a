import os
import shutil
import logging
import tarfile
from pathlib import Path
from typing import List, Optional, Sequence

from sppmon.config import effective_settings
from sppmon.errors import RemoteExecutionError
from sppmon.deploy.operations.base import (
    ExecutionResult, Extract, MakeDirs, Operation, RemoteExecutor, RemovePath, Rename, SwapPointer, WriteFile,
)

log = logging.getLogger(__name__)


class LocalExecutor(RemoteExecutor):
    """
    Simulated fleet on the local filesystem.

    Each target lives under `<hosts_dir>/<target><remote_base>`; any path
    resolving outside the simulated host root is refused.
    """

    def __init__(self, hosts_dir: Optional[Path] = None, remote_base: Optional[str] = None) -> None:
        self.hosts_dir = Path(hosts_dir or effective_settings.HOSTS_DIR)
        self.remote_base = remote_base if remote_base is not None else effective_settings.REMOTE_BASE

    def base_dir(self, target: str) -> Path:
        hosts_dir = os.path.normpath(self.hosts_dir)
        host_root = os.path.normpath(os.path.join(hosts_dir, target))
        if host_root == hosts_dir or os.path.commonpath([hosts_dir, host_root]) != hosts_dir:
            raise RemoteExecutionError(f"[{target}] invalid target name for the simulated fleet.")
        base = os.path.normpath(f"{host_root}/{self.remote_base.strip('/')}")
        if os.path.commonpath([host_root, base]) != host_root:
            raise RemoteExecutionError(f"[{target}] refusing to deploy outside simulated host root: base={base}")
        return Path(base)

    def _path(self, target: str, relative: str) -> Path:
        base = str(self.base_dir(target))
        resolved = os.path.normpath(os.path.join(base, relative))
        if os.path.commonpath([base, resolved]) != base:
            raise RemoteExecutionError(f"[{target}] path '{relative}' escapes the deployment base.")
        return Path(resolved)

    #* --- Operation handlers ---
    def _apply(self, target: str, op: Operation) -> None:
        if isinstance(op, MakeDirs):
            self._path(target, op.path).mkdir(parents=True, exist_ok=True)
        elif isinstance(op, RemovePath):
            path = self._path(target, op.path)
            if path.is_symlink() or path.is_file():
                path.unlink()
            elif path.is_dir():
                shutil.rmtree(path)
        elif isinstance(op, Extract):
            dest = self._path(target, op.dest)
            with tarfile.open(op.archive, "r:*") as tar:
                tar.extractall(dest, filter="data")
        elif isinstance(op, Rename):
            self._path(target, op.src).rename(self._path(target, op.dst))
        elif isinstance(op, SwapPointer):
            link = self._path(target, op.link)
            temp_link = link.with_name(f".{link.name}.{os.getpid()}.tmp")
            temp_link.unlink(missing_ok=True)
            os.symlink(op.target, temp_link)
            os.replace(temp_link, link)
        elif isinstance(op, WriteFile):
            path = self._path(target, op.path)
            temp_path = path.with_name(f".{path.name}.tmp")
            temp_path.write_text(op.content)
            temp_path.replace(path)
        else:
            raise RemoteExecutionError(f"[{target}] unsupported operation: {op!r}")

    def run(self, target: str, operations: Sequence[Operation]) -> ExecutionResult:
        lines: List[str] = []
        for op in operations:
            try:
                self._apply(target, op)
            except (OSError, tarfile.TarError, RemoteExecutionError) as e:
                lines.append(f"FAILED {op.describe()}: {e}")
                log.debug(f"[{target}] {op.describe()} failed: {e}")
                return ExecutionResult(ok=False, output="\n".join(lines), failed_operation=op)
            lines.append(op.describe())
            log.debug(f"[{target}] {op.describe()}")
        return ExecutionResult(ok=True, output="\n".join(lines))

    def list_dir(self, target: str, path: str, dirs_only: bool = False) -> List[str]:
        directory = self._path(target, path)
        if not directory.is_dir():
            return []
        return sorted(
            entry.name for entry in directory.iterdir()
            if not dirs_only or (entry.is_dir() and not entry.is_symlink())
        )

    def read_pointer(self, target: str, link: str) -> Optional[str]:
        path = self._path(target, link)
        if not path.is_symlink():
            return None
        return os.readlink(path)

    def describe_target(self, target: str) -> str:
        return f"{target} (simulated at {self.base_dir(target)})"
