"""
License gate.

Packages may carry a license (EULA) that has to be accepted before they
are installed. The gate asks the solver which licenses are pending for a
set of packages, lets the user accept or decline them all at once, and
marks them confirmed on acceptance.

Acceptance is never remembered between transactions: the license text
may change between sessions.
"""

import logging
from abc import ABC, abstractmethod
from typing import List

from .backend import LicenseSet, Presenter, SolverService
from .config import UiMode

logger = logging.getLogger(__name__)

LICENSE_QUESTION = "Do you accept this license agreement?"


class Confirmer(ABC):
    """Collects a yes/no answer for a set of licenses."""

    def __init__(self, presenter: Presenter):
        self.presenter = presenter

    @abstractmethod
    def confirm(self, licenses: LicenseSet) -> bool:
        pass


class CommandLineConfirmer(Confirmer):
    """Plain text licenses followed by a yes/no question."""

    def format(self, licenses: LicenseSet) -> List[str]:
        return [f"{name}\n{text}" for name, text in licenses.items()]

    def confirm(self, licenses: LicenseSet) -> bool:
        self.presenter.print("\n".join(self.format(licenses)))
        return self.presenter.yes_no(LICENSE_QUESTION)


class PopupConfirmer(Confirmer):
    """Rich text popup with Yes/No buttons."""

    width = 70
    height = 20

    def format(self, licenses: LicenseSet) -> List[str]:
        return [f"<p><b>{name}</b></p>\n{text}" for name, text in licenses.items()]

    def confirm(self, licenses: LicenseSet) -> bool:
        return self.presenter.any_question_rich_text(
            LICENSE_QUESTION,
            "\n".join(self.format(licenses)),
            self.width,
            self.height,
            "Yes",
            "No",
        )


def make_confirmer(ui_mode: UiMode, presenter: Presenter) -> Confirmer:
    """Pick the confirmer matching the process UI mode."""
    if ui_mode is UiMode.COMMANDLINE:
        return CommandLineConfirmer(presenter)
    return PopupConfirmer(presenter)


class LicenseGate:
    """Blocks installation until pending licenses are accepted."""

    def __init__(self, solver: SolverService, confirmer: Confirmer):
        self.solver = solver
        self.confirmer = confirmer
        self.prompted = False

    def check(self, to_install: List[str]) -> bool:
        """Run the gate for one transaction attempt.

        Args:
            to_install: Package names about to be installed

        Returns:
            True if nothing needs confirmation or everything was accepted.
        """
        self.prompted = False
        licenses = self.solver.licenses_to_confirm(list(to_install))
        if not licenses:
            return True

        self.prompted = True
        accepted = self.confirmer.confirm(licenses)
        logger.info(f"Licenses accepted: {accepted}")

        if not accepted:
            logger.info(f"License not accepted: {list(to_install)}")
            return False

        for name in licenses:
            self.solver.mark_license_confirmed(name)
        return True
