import shlex
import logging
import posixpath
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from sppmon.errors import RemoteExecutionError
from sppmon.config import effective_settings, resolve_tool
from sppmon.deploy.operations.base import (
    ExecutionResult, Extract, MakeDirs, Operation, RemoteExecutor, RemovePath, Rename, SwapPointer, WriteFile,
)

log = logging.getLogger(__name__)


def _ssh_error_hint(stderr: str) -> str:
    stderr_lower = stderr.lower()
    if "connection refused" in stderr_lower:
        return "check that SSH is running on the remote host"
    if "could not resolve" in stderr_lower or "name or service not known" in stderr_lower:
        return "check that the hostname is correct"
    if "permission denied" in stderr_lower:
        return "check your SSH credentials or key configuration"
    if "timed out" in stderr_lower:
        return "the host may be down or blocked by a firewall"
    return "check that the host is reachable and SSH is running"


class SSHExecutor(RemoteExecutor):
    """
    Runs operation sequences on real hosts.

    Each sequence is rendered into one `set -eu` shell script piped to
    `ssh <target> bash -s`; archives are uploaded with `scp` first.
    """

    def __init__(self, remote_base: Optional[str] = None, user: Optional[str] = None,
                 port: Optional[int] = None, options: Optional[str] = None, timeout: Optional[int] = None) -> None:
        self.remote_base = remote_base if remote_base is not None else effective_settings.REMOTE_BASE
        self.user = user if user is not None else effective_settings.SSH_USER
        self.port = port or effective_settings.SSH_PORT
        self.options = shlex.split(options if options is not None else effective_settings.SSH_OPTIONS)
        self.timeout = timeout or effective_settings.SSH_TIMEOUT

    def _tool(self, name: str) -> str:
        path = resolve_tool(name)
        if not path:
            raise RemoteExecutionError(f"'{name}' is required for remote deployment but was not found.")
        return path

    def _destination(self, target: str) -> str:
        return f"{self.user}@{target}" if self.user else target

    def _abs(self, relative: str) -> str:
        return posixpath.normpath(posixpath.join(self.remote_base, relative))

    def _ssh(self, target: str, script: str) -> subprocess.CompletedProcess:
        cmd = [self._tool("ssh"), *self.options, "-p", str(self.port), self._destination(target), "bash", "-s"]
        try:
            return subprocess.run(cmd, input=script, capture_output=True, text=True, timeout=self.timeout, check=False)
        except subprocess.TimeoutExpired as e:
            raise RemoteExecutionError(f"[{target}] remote script timed out after {self.timeout}s") from e

    def _upload(self, target: str, archive: Path, remote_path: str) -> None:
        cmd = [self._tool("scp"), *self.options, "-P", str(self.port), str(archive),
               f"{self._destination(target)}:{remote_path}"]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=False)
        except subprocess.TimeoutExpired as e:
            raise RemoteExecutionError(f"[{target}] upload of '{archive.name}' timed out") from e
        if result.returncode != 0:
            raise RemoteExecutionError(
                f"[{target}] upload of '{archive.name}' failed: {result.stderr.strip()} ({_ssh_error_hint(result.stderr)})"
            )

    def _render(self, op: Operation, uploads: dict) -> List[str]:
        q = shlex.quote
        if isinstance(op, MakeDirs):
            return [f"mkdir -p {q(self._abs(op.path))}"]
        if isinstance(op, RemovePath):
            return [f"rm -rf {q(self._abs(op.path))}"]
        if isinstance(op, Extract):
            remote_archive = uploads[op.archive]
            return [f"tar -xzf {q(remote_archive)} -C {q(self._abs(op.dest))}", f"rm -f {q(remote_archive)}"]
        if isinstance(op, Rename):
            return [f"mv {q(self._abs(op.src))} {q(self._abs(op.dst))}"]
        if isinstance(op, SwapPointer):
            link = self._abs(op.link)
            temp_link = f"{posixpath.dirname(link)}/.{posixpath.basename(link)}.tmp"
            return [f"ln -sfn {q(op.target)} {q(temp_link)}", f"mv -Tf {q(temp_link)} {q(link)}"]
        if isinstance(op, WriteFile):
            path = self._abs(op.path)
            temp_path = f"{posixpath.dirname(path)}/.{posixpath.basename(path)}.tmp"
            return [f"printf '%s' {q(op.content)} > {q(temp_path)}", f"mv -f {q(temp_path)} {q(path)}"]
        raise RemoteExecutionError(f"unsupported operation: {op!r}")

    def run(self, target: str, operations: Sequence[Operation]) -> ExecutionResult:
        uploads = {}
        try:
            for op in operations:
                if isinstance(op, Extract) and op.archive not in uploads:
                    remote_path = f"/tmp/sppmon_{Path(op.archive).name}"
                    self._upload(target, Path(op.archive), remote_path)
                    uploads[op.archive] = remote_path

            lines = ["set -eu"]
            for op in operations:
                lines.append(f"echo {shlex.quote(op.describe())}")
                lines.extend(self._render(op, uploads))
            result = self._ssh(target, "\n".join(lines) + "\n")
        except RemoteExecutionError as e:
            return ExecutionResult(ok=False, output=str(e))

        output = (result.stdout + result.stderr).strip()
        if result.returncode == 255:
            output = f"{output}\nhint: {_ssh_error_hint(result.stderr)}"
        return ExecutionResult(ok=result.returncode == 0, output=output)

    def list_dir(self, target: str, path: str, dirs_only: bool = False) -> List[str]:
        directory = shlex.quote(self._abs(path))
        kind = "-type d " if dirs_only else ""
        script = f"[ -d {directory} ] || exit 0\nfind {directory} -mindepth 1 -maxdepth 1 {kind}-printf '%f\\n'\n"
        result = self._ssh(target, script)
        if result.returncode != 0:
            raise RemoteExecutionError(f"[{target}] cannot list '{path}': {result.stderr.strip()}")
        return sorted(line for line in result.stdout.splitlines() if line)

    def read_pointer(self, target: str, link: str) -> Optional[str]:
        script = f"readlink {shlex.quote(self._abs(link))} || true\n"
        result = self._ssh(target, script)
        if result.returncode != 0:
            raise RemoteExecutionError(f"[{target}] cannot read pointer '{link}': {result.stderr.strip()}")
        value = result.stdout.strip()
        return value or None

    def describe_target(self, target: str) -> str:
        return f"{self._destination(target)}:{self.remote_base}"
