"""Scoped override of the global solver flags."""

import logging
from contextlib import contextmanager
from typing import Iterator

from .backend import SolverFlags, SolverService

logger = logging.getLogger(__name__)

# Do not pull in recommends of packages that are already installed
TRANSACTION_FLAGS: SolverFlags = {"ignoreAlreadyRecommended": True}


@contextmanager
def overridden_solver_flags(solver: SolverService,
                            overrides: SolverFlags) -> Iterator[SolverFlags]:
    """Override solver flags for the duration of a block.

    The flags seen before entering are restored on every exit path,
    including exceptions. Not reentrant.

    Yields:
        The saved flags
    """
    saved = solver.get_flags()
    solver.set_flags(overrides)
    logger.debug(f"Solver flags overridden: {overrides} (saved {saved})")
    try:
        yield saved
    finally:
        solver.set_flags(saved)
        logger.debug(f"Solver flags restored: {saved}")
