"""
Remote execution of typed filesystem operations.

The deployment state machine composes operation sequences; executors decide
how they reach a target (local simulation or SSH).
"""
from .base import (
    ExecutionResult, Extract, MakeDirs, Operation, RemoteExecutor, RemovePath, Rename, SwapPointer, WriteFile,
)
from .local import LocalExecutor
from .ssh import SSHExecutor

__all__ = [
    'ExecutionResult', 'Extract', 'MakeDirs', 'Operation', 'RemoteExecutor', 'RemovePath', 'Rename',
    'SwapPointer', 'WriteFile', 'LocalExecutor', 'SSHExecutor',
]
