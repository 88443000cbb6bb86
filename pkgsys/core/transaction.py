"""
Package transaction orchestrator.

Sequences one install/remove request through the collaborators:

    flags override -> lock -> source/target init -> license gate
    -> select -> solve -> commit -> verify -> notify -> flags restore

Every failure is returned as False with a FailureReason recorded on the
transaction context; nothing is raised to the caller. A declined license
additionally sets the cancellation flag so callers can tell "the user said
no" from a real error.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .audit import AuditLogger
from .backend import (
    LockService, Presenter, RepositoryService, RuntimeEnvironment,
    SelectorResult, SolverFlags, SolverService,
)
from .config import SystemConfig, load_config
from .flags import TRANSACTION_FLAGS, overridden_solver_flags
from .initializer import Initializer
from .licenses import Confirmer, LicenseGate, make_confirmer
from .probe import AvailabilityProber
from .verify import CommitVerdict, verify_commit

logger = logging.getLogger(__name__)

UNRESOLVED_MESSAGE = (
    "There are unresolved dependencies which need\n"
    "to be solved manually in the software manager."
)


class TransactionState(Enum):
    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    INITIALIZED = "initialized"
    LICENSE_GATED = "license_gated"
    SOLVED = "solved"
    COMMITTED = "committed"
    VERIFIED = "verified"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(Enum):
    INVALID_CHANGESET = "invalid_changeset"
    LOCK_UNAVAILABLE = "lock_unavailable"
    INIT_FAILED = "init_failed"
    LICENSE_DECLINED = "license_declined"
    SELECTION_FAILED = "selection_failed"
    UNRESOLVED_DEPENDENCIES = "unresolved_dependencies"
    COMMIT_FAILED = "commit_failed"
    PACKAGE_REMAINED = "package_remained"
    BACKEND_ERROR = "backend_error"


def _unique(names: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(names))


@dataclass(frozen=True)
class ChangeSet:
    """Package names to install and to remove in one transaction."""
    to_install: Tuple[str, ...] = ()
    to_remove: Tuple[str, ...] = ()

    @classmethod
    def of(cls, to_install: Iterable[str] = (), to_remove: Iterable[str] = ()) -> 'ChangeSet':
        return cls(_unique(to_install), _unique(to_remove))

    def overlap(self) -> List[str]:
        """Names requested for both installation and removal."""
        removing = set(self.to_remove)
        return [name for name in self.to_install if name in removing]

    @property
    def is_empty(self) -> bool:
        return not self.to_install and not self.to_remove


@dataclass
class TransactionContext:
    """State of one transaction attempt."""
    change_set: ChangeSet
    state: TransactionState = TransactionState.IDLE
    reason: Optional[FailureReason] = None
    failed: List[str] = field(default_factory=list)
    remaining: List[str] = field(default_factory=list)
    any_to_install: bool = False
    saved_flags: Optional[SolverFlags] = None

    @property
    def succeeded(self) -> bool:
        return self.state is TransactionState.SUCCEEDED

    def advance(self, state: TransactionState):
        logger.debug(f"Transaction: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, reason: FailureReason):
        logger.debug(f"Transaction: {self.state.value} -> failed ({reason.value})")
        self.state = TransactionState.FAILED
        self.reason = reason


class PackageSystem:
    """Installs and removes packages through the solver and commit engine."""

    def __init__(
        self,
        repos: RepositoryService,
        solver: SolverService,
        presenter: Presenter,
        environment: RuntimeEnvironment,
        lock: LockService,
        config: SystemConfig = None,
        confirmer: Confirmer = None,
        audit: AuditLogger = None
    ):
        """Initialize the orchestrator.

        Args:
            repos: Repository service
            solver: Solver and commit service
            presenter: User interaction (CLI or popup)
            environment: Runtime environment notifications
            lock: Package system lock
            config: System configuration (default: load_config())
            confirmer: License confirmer (default: picked from config.ui_mode)
            audit: Optional audit logger
        """
        self.config = config or load_config()
        self.repos = repos
        self.solver = solver
        self.presenter = presenter
        self.environment = environment
        self.lock = lock
        self.audit = audit
        self.initializer = Initializer(repos, lock, self.config)
        self.prober = AvailabilityProber(self.initializer, solver, self.config)
        self.license_gate = LicenseGate(
            solver, confirmer or make_confirmer(self.config.ui_mode, presenter)
        )
        self.last_context: Optional[TransactionContext] = None
        self._last_op_canceled = False

    @classmethod
    def for_system(cls, config: SystemConfig, presenter: Presenter,
                   audit: AuditLogger = None) -> 'PackageSystem':
        """Wire the libsolv/librpm backend for the running system."""
        from .environment import SystemEnvironment
        from .lock import PackageLock
        from .solver import SolvBackend

        backend = SolvBackend(config)
        return cls(
            repos=backend,
            solver=backend,
            presenter=presenter,
            environment=SystemEnvironment(config, presenter),
            lock=PackageLock(config.lock_file),
            config=config,
            audit=audit,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    def last_operation_canceled(self) -> bool:
        """Was the last failed operation declined by the user?"""
        return self._last_op_canceled

    def last_failure(self) -> Optional[FailureReason]:
        if self.last_context is None:
            return None
        return self.last_context.reason

    def install(self, packages: Iterable[str]) -> bool:
        return self.install_and_remove(packages, [])

    def remove(self, packages: Iterable[str]) -> bool:
        return self.install_and_remove([], packages)

    def install_and_remove(self, to_install: Iterable[str],
                           to_remove: Iterable[str]) -> bool:
        """Install and remove packages in one transaction.

        Args:
            to_install: Package names to install
            to_remove: Package names to remove

        Returns:
            True on success. On False, last_operation_canceled() tells
            whether the user declined a license.
        """
        change_set = ChangeSet.of(to_install, to_remove)
        ctx = TransactionContext(change_set)
        self.last_context = ctx
        logger.debug(f"toinstall: {list(change_set.to_install)}, "
                     f"toremove: {list(change_set.to_remove)}")

        overlap = change_set.overlap()
        if overlap:
            logger.error(f"Packages requested for both install and removal: {overlap}")
            ctx.failed = overlap
            ctx.fail(FailureReason.INVALID_CHANGESET)
            return self._finish(ctx)

        if self.audit:
            self.audit.log_transaction_start(change_set.to_install, change_set.to_remove)

        try:
            with overridden_solver_flags(self.solver, TRANSACTION_FLAGS) as saved:
                ctx.saved_flags = saved
                self._run(ctx)
        except Exception:
            logger.exception(f"Package transaction aborted: {change_set}")
            ctx.fail(FailureReason.BACKEND_ERROR)

        return self._finish(ctx)

    def install_kernel(self, kernel_modules: List[str]) -> bool:
        """Make sure a kernel package is installed.

        Args:
            kernel_modules: Modules the caller needs; empty means nothing to do

        Returns:
            True if a kernel is installed (already or now)
        """
        logger.info(f"want: {kernel_modules}")
        if not kernel_modules:
            return True

        # Ask rpm first, do not load the solver if not necessary
        packages = self.prober.providers_installed("kernel")
        if packages:
            logger.info(f"Packages providing tag 'kernel': {packages}")
            return True

        logger.warning("No installed package provides 'kernel', querying the package manager...")
        self.initializer.ensure_target_init()
        self.initializer.ensure_source_init()

        providers = self.solver.what_provides("kernel")
        logger.info(f"provides: {providers}")
        if len(providers) != 1:
            logger.error("not exactly one package provides tag kernel")
        if not providers:
            return False

        return self.install(providers[:1])

    # =========================================================================
    # Transaction steps
    # =========================================================================

    def _run(self, ctx: TransactionContext):
        change_set = ctx.change_set

        if not self.lock.check():
            ctx.fail(FailureReason.LOCK_UNAVAILABLE)
            return
        ctx.advance(TransactionState.LOCK_ACQUIRED)

        # Source first: target init may need repository keys
        if not self.initializer.ensure_source_init() or not self.initializer.ensure_target_init():
            ctx.fail(FailureReason.INIT_FAILED)
            return
        ctx.advance(TransactionState.INITIALIZED)

        # Removals never need a license
        if not self.license_gate.check(change_set.to_install):
            self._last_op_canceled = True
            ctx.failed = list(change_set.to_install)
            ctx.fail(FailureReason.LICENSE_DECLINED)
            return
        if self.license_gate.prompted:
            self._last_op_canceled = False
        ctx.advance(TransactionState.LICENSE_GATED)

        if not self._select(ctx):
            ctx.fail(FailureReason.SELECTION_FAILED)
            return

        if not self._solve():
            ctx.fail(FailureReason.UNRESOLVED_DEPENDENCIES)
            return
        ctx.advance(TransactionState.SOLVED)

        # is a package or a patch selected for installation?
        ctx.any_to_install = self.solver.is_any_to_install()

        result = self.solver.commit(0)
        logger.debug(f"Commit: {result}")
        ctx.advance(TransactionState.COMMITTED)

        if result is not None:
            self.presenter.show_update_messages(result.update_messages)

        verification = verify_commit(result, change_set.to_install)
        if verification.verdict is CommitVerdict.COMMIT_FAILED:
            logger.error(f"Package commit failed: {list(verification.failed)}")
            ctx.failed = list(verification.failed)
            ctx.fail(FailureReason.COMMIT_FAILED)
            return
        if verification.verdict is CommitVerdict.PACKAGE_REMAINED:
            logger.error(f"Package remain: {list(verification.remaining)}")
            ctx.remaining = list(verification.remaining)
            ctx.fail(FailureReason.PACKAGE_REMAINED)
            return
        ctx.advance(TransactionState.VERIFIED)

        self._notify(ctx)
        ctx.advance(TransactionState.SUCCEEDED)

    def _select(self, ctx: TransactionContext) -> bool:
        """Mark the whole change set; an install failure skips all removals."""
        self.solver.reset_selection()

        for name in ctx.change_set.to_install:
            if not self.solver.mark_install(name):
                logger.error(f"Package {name} install failed: {self.solver.last_error}")
                ctx.failed = [name]
                return False

        for name in ctx.change_set.to_remove:
            if not self.solver.mark_remove(name):
                logger.error(f"Package {name} delete failed: {self.solver.last_error}")
                ctx.failed = [name]
                return False

        return True

    def _solve(self) -> bool:
        """Solve, falling back to manual resolution by the user."""
        if self.solver.solve(False):
            return True

        logger.error(f"Package solve failed: {self.solver.last_error}")
        self.presenter.error(UNRESOLVED_MESSAGE)

        # no repository management inside the installer
        ret = self.presenter.run_package_selector(
            enable_repo_mgr=not self.config.in_installation,
            mode="summary",
        )
        logger.info(f"Package selector returned: {ret.value}")

        return ret not in (SelectorResult.CANCEL, SelectorResult.CLOSE)

    def _notify(self, ctx: TransactionContext):
        # The installer checks for a new kernel once at its end
        if not self.config.in_installation:
            self.environment.inform_about_kernel_change()

        # a new package may ship a new agent
        if ctx.any_to_install:
            self.environment.register_new_agents()

    def _finish(self, ctx: TransactionContext) -> bool:
        change_set = ctx.change_set
        if not ctx.succeeded:
            reason = ctx.reason.value if ctx.reason else "unknown"
            logger.info(f"Transaction failed ({reason}): install={list(change_set.to_install)} "
                        f"remove={list(change_set.to_remove)}")
        if self.audit and ctx.reason is not FailureReason.INVALID_CHANGESET:
            self.audit.log_transaction_complete(
                change_set.to_install,
                change_set.to_remove,
                success=ctx.succeeded,
                reason=ctx.reason.value if ctx.reason else None,
                packages=ctx.failed or ctx.remaining,
            )
        return ctx.succeeded
