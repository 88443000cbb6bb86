"""Core modules for pkgsys"""

from .backend import CommitResult, SelectorResult
from .config import SystemConfig, load_config
from .transaction import ChangeSet, FailureReason, PackageSystem, TransactionState

__all__ = [
    'CommitResult', 'SelectorResult', 'SystemConfig', 'load_config',
    'ChangeSet', 'FailureReason', 'PackageSystem', 'TransactionState',
]
