import logging
from pathlib import Path
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

log = logging.getLogger(__name__)


#* --- Operations ---
# Paths are relative to the deployment base of the target.
@dataclass(frozen=True)
class MakeDirs:
    path: str

    def describe(self) -> str:
        return f"mkdir -p {self.path}"


@dataclass(frozen=True)
class RemovePath:
    path: str

    def describe(self) -> str:
        return f"rm -rf {self.path}"


@dataclass(frozen=True)
class Extract:
    archive: Path  # local archive, shipped to the target by the executor
    dest: str

    def describe(self) -> str:
        return f"extract {Path(self.archive).name} -> {self.dest}"


@dataclass(frozen=True)
class Rename:
    src: str
    dst: str

    def describe(self) -> str:
        return f"mv {self.src} {self.dst}"


@dataclass(frozen=True)
class SwapPointer:
    """Atomically repoints `link` at `target`, a path relative to the link's directory."""
    link: str
    target: str

    def describe(self) -> str:
        return f"swap {self.link} -> {self.target}"


@dataclass(frozen=True)
class WriteFile:
    path: str
    content: str

    def describe(self) -> str:
        return f"write {self.path} ({len(self.content)} bytes)"


Operation = Union[MakeDirs, RemovePath, Extract, Rename, SwapPointer, WriteFile]


@dataclass
class ExecutionResult:
    ok: bool
    output: str = ""
    failed_operation: Optional[Operation] = None


class RemoteExecutor(ABC):
    """
    Runs ordered filesystem operation sequences against a target.

    Execution stops at the first failing operation. Read queries are separate
    from `run` so the deployment state machine never parses command output.
    """

    @abstractmethod
    def run(self, target: str, operations: Sequence[Operation]) -> ExecutionResult:
        """Executes `operations` in order on `target`."""

    @abstractmethod
    def list_dir(self, target: str, path: str, dirs_only: bool = False) -> List[str]:
        """Returns the sorted entry names of a directory, or an empty list if it does not exist."""

    @abstractmethod
    def read_pointer(self, target: str, link: str) -> Optional[str]:
        """Returns the raw value of a symlink, or None if it does not exist."""

    def describe_target(self, target: str) -> str:
        return target
