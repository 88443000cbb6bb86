"""
Availability prober.

Fast existence checks for packages. Installed checks go straight to rpm
and never load the solver (that would read the whole rpmdb); available
checks need the repositories and initialize them on demand.
"""

import logging
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional

from .backend import SolverService
from .config import SystemConfig
from .initializer import Initializer

logger = logging.getLogger(__name__)

RPM_BINARY = Path("/usr/bin/rpm")
RPMQPACK_BINARY = Path("/usr/bin/rpmqpack")


class AvailabilityProber:
    """Answers "is it there?" questions about packages."""

    def __init__(self, initializer: Initializer, solver: SolverService,
                 config: SystemConfig):
        self.initializer = initializer
        self.solver = solver
        self.config = config
        self._query_command: Optional[List[str]] = None

    def _rpm_command(self) -> List[str]:
        cmd = [str(RPM_BINARY)]
        if self.config.root != "/":
            cmd += ['--root', self.config.root]
        return cmd

    def _name_query_command(self) -> List[str]:
        """Pick the name-only query tool once; rpmqpack is a lot faster."""
        if self._query_command is None:
            if self.config.root == "/" and RPMQPACK_BINARY.exists():
                self._query_command = [str(RPMQPACK_BINARY)]
            else:
                self._query_command = self._rpm_command() + ['-q']
        return self._query_command

    def _repositories_usable(self) -> bool:
        self.initializer.ensure_source_init()
        # at least one enabled repository present?
        return bool(self.initializer.repos.list_repositories(enabled_only=True))

    # =========================================================================
    # Available
    # =========================================================================

    def available(self, capability: str) -> Optional[bool]:
        """Is anything providing capability available?

        Returns:
            None if no enabled repository exists
        """
        if not self._repositories_usable():
            return None
        return self.solver.is_available(capability)

    def package_available(self, name: str) -> Optional[bool]:
        """Is a package with this exact name available?

        Returns:
            None if no enabled repository exists
        """
        if not self._repositories_usable():
            return None
        return self.solver.package_available(name)

    def available_all(self, names: Iterable[str]) -> bool:
        return all(self.available(name) for name in names)

    def available_any(self, names: Iterable[str]) -> bool:
        return any(self.available(name) for name in names)

    # =========================================================================
    # Installed
    # =========================================================================

    def providers_installed(self, capability: str) -> List[str]:
        """Installed packages providing capability (empty if none)."""
        cmd = self._rpm_command() + ['-q', '--qf', '%{NAME}\\n', '--whatprovides', capability]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"RPM query failed ({e}), querying the package manager...")
            return []
        logger.info(f"Query installed package with '{' '.join(cmd)}' and result {result.stdout.strip()}")
        # exit status 1 just means "not provided"
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def installed(self, capability: str) -> bool:
        """Is there any installed package providing capability?"""
        return bool(self.providers_installed(capability))

    def package_installed(self, name: str) -> bool:
        """Is a package with this exact name installed?"""
        cmd = self._name_query_command() + [name]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"RPM query for {name} failed: {e}")
            return False
        return result.returncode == 0

    def installed_all(self, names: Iterable[str]) -> bool:
        return all(self.installed(name) for name in names)

    def installed_any(self, names: Iterable[str]) -> bool:
        return any(self.installed(name) for name in names)
