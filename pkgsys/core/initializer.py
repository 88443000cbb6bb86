"""
Target and source initialization.

Makes sure the installed package database (the "target") and the
configured repositories (the "sources") are loaded before anything is
queried. Both steps are idempotent: once a state is reached, asking for
it again does nothing.

Two policy exceptions are expressed as guards:
- skip_target_init: first installation stage without a live system,
  there is no rpmdb in the installer RAM disk.
- no_repositories: nothing configured (not even disabled repos), only
  the repository cache is started and the target is left alone.
"""

import logging
from enum import Enum

from .backend import LockService, RepositoryService
from .config import Stage, SystemConfig

logger = logging.getLogger(__name__)


class RepositoryState(Enum):
    UNINITIALIZED = 0
    CACHE_STARTED = 1
    SOURCES_INITIALIZED = 2


class TargetState(Enum):
    UNINITIALIZED = 0
    INITIALIZED = 1


class Initializer:
    """Brings repositories and target to a queryable state."""

    def __init__(self, repos: RepositoryService, lock: LockService,
                 config: SystemConfig):
        self.repos = repos
        self.lock = lock
        self.config = config
        self.target_state = TargetState.UNINITIALIZED
        self.repository_state = RepositoryState.UNINITIALIZED

    @property
    def target_initialized(self) -> bool:
        return self.target_state is TargetState.INITIALIZED

    # =========================================================================
    # Guards
    # =========================================================================

    def skip_target_init(self) -> bool:
        return self.config.stage is Stage.INITIAL and not self.config.live_installation

    def no_repositories(self) -> bool:
        return not self.repos.list_repositories(enabled_only=False)

    # =========================================================================
    # Transitions
    # =========================================================================

    def _advance_repositories(self, state: RepositoryState):
        # Forward only
        if state.value > self.repository_state.value:
            logger.debug(f"Repositories: {self.repository_state.name} -> {state.name}")
            self.repository_state = state

    def ensure_target_init(self) -> bool:
        """Load the installed package database.

        Returns:
            False if the lock is unavailable or the rpmdb could not be read.
        """
        if self.target_initialized:
            return True

        if self.skip_target_init():
            logger.info("Skipping target initialization in first stage installation")
            return True

        if not self.lock.check():
            return False

        if not self.repos.target_init(self.config.root, False):
            logger.error(f"Target initialization failed for root {self.config.root}")
            return False

        logger.debug(f"Target: {self.target_state.name} -> INITIALIZED")
        self.target_state = TargetState.INITIALIZED
        return True

    def ensure_source_init(self) -> bool:
        """Load repository metadata.

        Returns:
            False only if the package lock is unavailable.
        """
        if not self.lock.check():
            return False

        if self.repository_state is RepositoryState.SOURCES_INITIALIZED:
            return True

        if self.no_repositories():
            if self.repository_state is RepositoryState.UNINITIALIZED:
                self.repos.start_cache(True)
                self._advance_repositories(RepositoryState.CACHE_STARTED)
            return True

        if not self.target_initialized:
            # Repository metadata is signed, keys live in the rpmdb
            self.ensure_target_init()

        if not self.repos.list_repositories(enabled_only=True):
            logger.warning("No package repository available")

        self._advance_repositories(RepositoryState.SOURCES_INITIALIZED)
        return True
