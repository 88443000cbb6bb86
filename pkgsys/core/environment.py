"""Runtime environment notifications after a successful transaction."""

import importlib
import logging
import os
import subprocess
from importlib.metadata import entry_points
from typing import Dict, List, Optional, Tuple

from .backend import Presenter, RuntimeEnvironment
from .config import SystemConfig

logger = logging.getLogger(__name__)

AGENT_GROUP = "pkgsys.agents"

REBOOT_MESSAGE = (
    "A new kernel has been installed ({new}).\n"
    "The running kernel is {running}.\n"
    "Reboot the system to use the new kernel."
)


def get_running_kernel() -> str:
    """Release of the running kernel, e.g. "6.6.58-1.mga9-desktop"."""
    return os.uname().release


def is_running_kernel(version_release: str, running: str) -> bool:
    # Package version-release "6.6.58-1.mga9" is a prefix of the uname release
    return running.startswith(version_release)


class SystemEnvironment(RuntimeEnvironment):
    """Environment of the running system: agents and kernel."""

    def __init__(self, config: SystemConfig, presenter: Presenter):
        self.config = config
        self.presenter = presenter
        self.agents: Dict[str, object] = {}

    def register_new_agents(self):
        """Load agents published under the pkgsys.agents entry point group.

        Agents already loaded are kept; only new entry points are picked up.
        """
        # freshly installed distributions must be visible to importlib
        importlib.invalidate_caches()

        for ep in entry_points(group=AGENT_GROUP):
            if ep.name in self.agents:
                continue
            try:
                self.agents[ep.name] = ep.load()
            except Exception as e:
                logger.warning(f"Failed to load agent {ep.name} ({ep.value}): {e}")
                continue
            logger.info(f"Registered agent {ep.name}")

    def _installed_kernels(self) -> List[Tuple[int, str]]:
        """(install time, version-release) of every installed kernel."""
        cmd = ['rpm']
        if self.config.root != "/":
            cmd += ['--root', self.config.root]
        cmd += ['-q', '--whatprovides', 'kernel', '--qf', '%{INSTALLTIME} %{VERSION}-%{RELEASE}\\n']

        result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
        if result.returncode != 0:
            return []

        kernels = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[0].isdigit():
                kernels.append((int(parts[0]), parts[1]))
        return kernels

    def newest_kernel(self) -> Optional[str]:
        """Version-release of the most recently installed kernel."""
        kernels = self._installed_kernels()
        if not kernels:
            return None
        return max(kernels)[1]

    def inform_about_kernel_change(self):
        newest = self.newest_kernel()
        if newest is None:
            logger.debug("No installed kernel found")
            return

        running = get_running_kernel()
        if is_running_kernel(newest, running):
            return

        logger.info(f"Kernel changed: running {running}, newest installed {newest}")
        self.presenter.message(REBOOT_MESSAGE.format(new=newest, running=running))
