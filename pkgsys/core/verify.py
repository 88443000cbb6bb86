"""Interpretation of commit results."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from .backend import CommitResult


class CommitVerdict(Enum):
    SUCCEEDED = "succeeded"
    COMMIT_FAILED = "commit_failed"
    PACKAGE_REMAINED = "package_remained"


@dataclass(frozen=True)
class Verification:
    verdict: CommitVerdict
    failed: Tuple[str, ...] = ()
    remaining: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.verdict is CommitVerdict.SUCCEEDED


def verify_commit(result: Optional[CommitResult],
                  to_install: Iterable[str]) -> Verification:
    """Turn a commit result into a verdict.

    A missing result or any failed package is a commit failure. Otherwise
    every requested install still listed as remaining is an inconsistency:
    the package manager may report success while a requested package was
    silently not installed.
    """
    if result is None:
        return Verification(CommitVerdict.COMMIT_FAILED)
    if result.failed:
        return Verification(CommitVerdict.COMMIT_FAILED, failed=tuple(result.failed))

    remaining = set(result.remaining)
    left = tuple(name for name in to_install if name in remaining)
    if left:
        return Verification(CommitVerdict.PACKAGE_REMAINED, remaining=left)

    return Verification(CommitVerdict.SUCCEEDED)
