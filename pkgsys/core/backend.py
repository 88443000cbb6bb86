"""
Collaborator contracts used by the transaction orchestrator.

The orchestrator only sequences calls; the concrete work is done by:
- a lock service (package system lock)
- a repository service (repository list, cache, rpmdb target)
- a solver service (flags, licenses, selection, solve, commit)
- a presenter (questions, reports, assisted package selection)
- a runtime environment (agent registration, kernel change notice)

Concrete implementations live in lock.py, solver.py, environment.py
and cli/presenter.py. Tests provide in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# Solver flag name -> value
SolverFlags = Dict[str, Any]

# Package name -> license text
LicenseSet = Dict[str, str]


@dataclass
class CommitResult:
    """Outcome of one commit call, consumed immediately by the verifier."""
    successful: int = 0
    failed: List[str] = field(default_factory=list)
    remaining: List[str] = field(default_factory=list)
    src_remaining: List[str] = field(default_factory=list)
    update_messages: List[str] = field(default_factory=list)


class SelectorResult(Enum):
    """How the user left the assisted package selection."""
    CONTINUE = "continue"
    CANCEL = "cancel"
    CLOSE = "close"


class LockService(ABC):

    @abstractmethod
    def check(self) -> bool:
        """Make sure the package system lock is held. False if unavailable."""


class RepositoryService(ABC):

    @abstractmethod
    def list_repositories(self, enabled_only: bool) -> List[str]:
        """Names of configured repositories (all, or only enabled ones)."""

    @abstractmethod
    def start_cache(self, force: bool) -> None:
        """Load repository metadata so that queries can run."""

    @abstractmethod
    def target_init(self, root: str, rebuild: bool) -> bool:
        """Load the installed package database found under root."""


class SolverService(ABC):
    """Dependency solver plus commit engine."""

    last_error: str = ""

    @abstractmethod
    def get_flags(self) -> SolverFlags:
        """Return a copy of the current solver flags."""

    @abstractmethod
    def set_flags(self, flags: SolverFlags) -> None:
        """Apply solver flags. Names not given keep their value."""

    @abstractmethod
    def licenses_to_confirm(self, names: List[str]) -> LicenseSet:
        """Licenses that must be accepted before installing names."""

    @abstractmethod
    def mark_license_confirmed(self, name: str) -> None:
        pass

    @abstractmethod
    def reset_selection(self) -> None:
        """Drop marks and any solved transaction left by an earlier attempt."""

    @abstractmethod
    def mark_install(self, name: str) -> bool:
        pass

    @abstractmethod
    def mark_remove(self, name: str) -> bool:
        pass

    @abstractmethod
    def solve(self, filter_conflicts: bool) -> bool:
        """Resolve the marked changes. False if problems remain."""

    @abstractmethod
    def is_any_to_install(self) -> bool:
        """True if a package or patch is scheduled for installation."""

    @abstractmethod
    def commit(self, medium: int) -> Optional[CommitResult]:
        """Apply the solved transaction. None if nothing could be run."""

    @abstractmethod
    def is_available(self, capability: str) -> bool:
        """Is anything in the enabled repositories providing capability?"""

    @abstractmethod
    def package_available(self, name: str) -> bool:
        """Is a package with exactly this name in the enabled repositories?"""

    @abstractmethod
    def what_provides(self, capability: str) -> List[str]:
        """Names of available (not installed) packages providing capability."""


class Presenter(ABC):
    """User interaction, rendered by the CLI or a popup front end."""

    @abstractmethod
    def print(self, text: str) -> None:
        pass

    @abstractmethod
    def yes_no(self, question: str) -> bool:
        pass

    @abstractmethod
    def any_question_rich_text(self, heading: str, text: str, width: int,
                               height: int, yes_label: str = "Yes",
                               no_label: str = "No") -> bool:
        """Show rich text with a question, True if the yes button was used."""

    @abstractmethod
    def message(self, text: str) -> None:
        pass

    @abstractmethod
    def error(self, text: str) -> None:
        pass

    @abstractmethod
    def show_update_messages(self, messages: List[str]) -> None:
        pass

    @abstractmethod
    def run_package_selector(self, enable_repo_mgr: bool,
                             mode: str) -> SelectorResult:
        """Let the user fix an unresolvable selection by hand."""


class RuntimeEnvironment(ABC):

    @abstractmethod
    def register_new_agents(self) -> None:
        """Pick up agents that newly installed packages may have shipped."""

    @abstractmethod
    def inform_about_kernel_change(self) -> None:
        """Tell the user if a reboot is needed for a new kernel."""
