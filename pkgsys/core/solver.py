"""
libsolv/librpm backend.

Implements the repository and solver services on top of a libsolv Pool:
- repositories come from repos.d YAML definitions (see repos.py)
- the target is the rpmdb under the configured root
- commit runs the ordered libsolv transaction through librpm

The pool is rebuilt lazily: after a commit the rpmdb has changed, so the
next query reloads everything that was loaded before.
"""

import bz2
import gzip
import logging
import lzma
import os
import re
import tempfile
from functools import cmp_to_key
from pathlib import Path
from typing import Dict, List, Optional, Set

import rpm
import solv
import zstandard

from .backend import (
    CommitResult, LicenseSet, RepositoryService, SolverFlags, SolverService,
)
from .config import SystemConfig
from .repos import Repository, load_repositories

logger = logging.getLogger(__name__)

# Magic bytes for synthesis compression detection
MAGIC_ZSTD = b'\x28\xb5\x2f\xfd'
MAGIC_GZIP = b'\x1f\x8b'
MAGIC_XZ = b'\xfd7zXZ\x00'
MAGIC_BZ2 = b'BZ'

DEFAULT_SOLVER_FLAGS: SolverFlags = {
    "ignoreAlreadyRecommended": False,
    "onlyRequires": False,
    "allowVendorChange": False,
    "focusInstalled": True,
}

# flag name -> (libsolv flag, inverted)
FLAG_MAP = {
    "ignoreAlreadyRecommended": (solv.Solver.SOLVER_FLAG_ADD_ALREADY_RECOMMENDED, True),
    "onlyRequires": (solv.Solver.SOLVER_FLAG_IGNORE_RECOMMENDED, False),
    "allowVendorChange": (solv.Solver.SOLVER_FLAG_ALLOW_VENDORCHANGE, False),
    "focusInstalled": (solv.Solver.SOLVER_FLAG_FOCUS_INSTALLED, False),
}

SELECT_FLAGS = (solv.Selection.SELECTION_NAME |
                solv.Selection.SELECTION_CANON |
                solv.Selection.SELECTION_DOTARCH |
                solv.Selection.SELECTION_REL)

INSTALL_STEPS = (
    solv.Transaction.SOLVER_TRANSACTION_INSTALL,
    solv.Transaction.SOLVER_TRANSACTION_UPGRADE,
    solv.Transaction.SOLVER_TRANSACTION_DOWNGRADE,
    solv.Transaction.SOLVER_TRANSACTION_REINSTALL,
    solv.Transaction.SOLVER_TRANSACTION_MULTIINSTALL,
)


def decompress_synthesis(data: bytes) -> bytes:
    """Decompress synthesis data, detecting the format from magic bytes."""
    if data[:4] == MAGIC_ZSTD:
        return zstandard.ZstdDecompressor().decompressobj().decompress(data)
    if data[:2] == MAGIC_GZIP:
        return gzip.decompress(data)
    if data[:6] == MAGIC_XZ:
        return lzma.decompress(data)
    if data[:2] == MAGIC_BZ2:
        return bz2.decompress(data)
    return data


def mentions_package(message: str, name: str) -> bool:
    """Does an rpm problem message name this package (or one of its NEVRAs)?"""
    pattern = rf'(?<![\w.+-]){re.escape(name)}(?=$|[\s:,;()]|-\d)'
    return re.search(pattern, message) is not None


class SolvBackend(RepositoryService, SolverService):
    """Repository and solver services backed by libsolv and librpm."""

    def __init__(self, config: SystemConfig):
        self.config = config
        self.pool = None
        self.last_error = ""
        self._flags: SolverFlags = dict(DEFAULT_SOLVER_FLAGS)
        self._jobs = []
        # requested name -> names of the packages it selected
        self._install_names: Dict[str, Set[str]] = {}
        self._transaction = None
        self._target_root: Optional[str] = None
        self._rpmdb_loaded = False

    # =========================================================================
    # Pool
    # =========================================================================

    def _create_pool(self) -> solv.Pool:
        pool = solv.Pool()
        pool.setdisttype(solv.Pool.DISTTYPE_RPM)
        pool.setarch(self.config.arch)

        self._rpmdb_loaded = False
        if self._target_root is not None:
            flags = 0
            if self._target_root != "/":
                pool.set_rootdir(self._target_root)
                flags = solv.Repo.REPO_USE_ROOTDIR
            installed = pool.add_repo("@System")
            installed.appdata = {"type": "installed"}
            self._rpmdb_loaded = bool(installed.add_rpmdb(None, flags))
            pool.installed = installed
            logger.debug(f"Loaded {installed.nsolvables} installed packages from {self._target_root}")

        for repo in self._repositories(enabled_only=True):
            self._load_repo(pool, repo)

        pool.addfileprovides()
        pool.createwhatprovides()
        return pool

    def _load_repo(self, pool: solv.Pool, repo: Repository):
        solv_repo = pool.add_repo(repo.name)
        solv_repo.appdata = {"type": "available", "repository": repo}
        # libsolv prefers higher values, repository files use lower = better
        solv_repo.priority = 99 - repo.priority

        try:
            path = repo.metadata_file()
        except ValueError as e:
            logger.warning(str(e))
            return
        if not path.exists():
            logger.warning(f"No metadata for repository '{repo.name}': {path}")
            return

        if repo.type == 'synthesis':
            # add_mdk can't read the .cz container directly
            data = decompress_synthesis(path.read_bytes())
            with tempfile.NamedTemporaryFile(suffix='.hdlist', delete=False) as tmp:
                tmp.write(data)
                tmp_path = tmp.name
            try:
                f = solv.xfopen(tmp_path)
                solv_repo.add_mdk(f)
                f.close()
            finally:
                Path(tmp_path).unlink()
        else:
            f = solv.xfopen(str(path))
            if repo.type == 'solv':
                solv_repo.add_solv(f)
            else:
                solv_repo.add_rpmmd(f, None, 0)
            f.close()

        logger.debug(f"Loaded {solv_repo.nsolvables} packages from '{repo.name}'")

    def _pool(self) -> solv.Pool:
        if self.pool is None:
            self.pool = self._create_pool()
        return self.pool

    def _is_installed(self, solvable) -> bool:
        installed = self._pool().installed
        return installed is not None and solvable.repo == installed

    def _available(self, solvables) -> list:
        return [s for s in solvables if not self._is_installed(s)]

    def _best(self, solvables):
        if not solvables:
            return None
        return max(solvables, key=cmp_to_key(lambda a, b: a.evrcmp(b)))

    # =========================================================================
    # RepositoryService
    # =========================================================================

    def _repositories(self, enabled_only: bool) -> List[Repository]:
        repos = load_repositories(self.config.repos_dir)
        if enabled_only:
            repos = [r for r in repos if r.enabled]
        return repos

    def list_repositories(self, enabled_only: bool) -> List[str]:
        return [r.name for r in self._repositories(enabled_only)]

    def start_cache(self, force: bool) -> None:
        if self.pool is not None and not force:
            return
        self.pool = None
        self._pool()

    def target_init(self, root: str, rebuild: bool) -> bool:
        if self._target_root == root and self._rpmdb_loaded and not rebuild:
            return True
        self._target_root = root
        self.pool = None
        self._pool()
        if not self._rpmdb_loaded:
            self.last_error = f"Cannot read the RPM database under {root}"
        return self._rpmdb_loaded

    # =========================================================================
    # Flags and licenses
    # =========================================================================

    def get_flags(self) -> SolverFlags:
        return dict(self._flags)

    def set_flags(self, flags: SolverFlags) -> None:
        for name, value in flags.items():
            if name not in FLAG_MAP:
                logger.warning(f"Unknown solver flag ignored: {name}")
                continue
            self._flags[name] = value

    def licenses_to_confirm(self, names: List[str]) -> LicenseSet:
        pool = self._pool()
        licenses = {}
        for name in names:
            sel = pool.select(name, SELECT_FLAGS)
            best = self._best(self._available(sel.solvables()))
            if best is None:
                continue
            # already installed under this name: accepted back then
            installed = pool.select(best.name, solv.Selection.SELECTION_NAME |
                                    solv.Selection.SELECTION_INSTALLED_ONLY)
            if not installed.isempty():
                continue
            eula = best.lookup_str(solv.SOLVABLE_EULA)
            if eula:
                licenses[best.name] = eula
        return licenses

    def mark_license_confirmed(self, name: str) -> None:
        # libsolv keeps no license state; acceptance only covers the
        # transaction that asked for it
        logger.debug(f"License confirmed: {name}")

    # =========================================================================
    # Selection and solving
    # =========================================================================

    def mark_install(self, name: str) -> bool:
        pool = self._pool()
        sel = pool.select(name, SELECT_FLAGS)
        if sel.isempty():
            sel = pool.select(name, solv.Selection.SELECTION_PROVIDES)
        if sel.isempty():
            self.last_error = f"Package not found: {name}"
            return False
        self._jobs += sel.jobs(solv.Job.SOLVER_INSTALL)
        # "foo.x86_64" or "foo>=1" never show up as an rpmdb name
        self._install_names[name] = {s.name for s in sel.solvables()}
        return True

    def mark_remove(self, name: str) -> bool:
        pool = self._pool()
        sel = pool.select(name, solv.Selection.SELECTION_NAME |
                          solv.Selection.SELECTION_CANON |
                          solv.Selection.SELECTION_INSTALLED_ONLY)
        if sel.isempty():
            self.last_error = f"Package not installed: {name}"
            return False
        self._jobs += sel.jobs(solv.Job.SOLVER_ERASE)
        return True

    def solve(self, filter_conflicts: bool) -> bool:
        pool = self._pool()
        solver = pool.Solver()
        for name, value in self._flags.items():
            flag, inverted = FLAG_MAP[name]
            solver.set_flag(flag, int(bool(value) != inverted))
        if filter_conflicts:
            solver.set_flag(solv.Solver.SOLVER_FLAG_ALLOW_UNINSTALL, 1)

        problems = solver.solve(self._jobs)

        # Even with problems the solver proposes a transaction (problem
        # jobs dropped); it is committed if the user chooses to go on
        trans = solver.transaction()
        trans.order()
        self._transaction = trans

        if problems:
            self.last_error = "\n".join(str(p) for p in problems)
            return False

        self.last_error = ""
        return True

    def is_any_to_install(self) -> bool:
        if self._transaction is None:
            return False
        return bool(self._transaction.newsolvables())

    # =========================================================================
    # Commit
    # =========================================================================

    def _package_path(self, solvable) -> Path:
        repo = solvable.repo.appdata["repository"]
        location, _medianr = solvable.lookup_location()
        return repo.path / location

    def commit(self, medium: int) -> Optional[CommitResult]:
        """Run the solved transaction through librpm.

        Args:
            medium: Install only from this medium number (0 = all)

        Returns:
            CommitResult, or None if nothing was solved
        """
        trans = self._transaction
        if trans is None:
            self.last_error = "No solved transaction to commit"
            return None

        root = self._target_root or self.config.root
        ts = rpm.TransactionSet(root)
        failed = []
        names = []
        open_fds: Dict[str, int] = {}

        for s in trans.steps():
            step_type = trans.steptype(s, solv.Transaction.SOLVER_TRANSACTION_SHOW_ACTIVE)
            if step_type == solv.Transaction.SOLVER_TRANSACTION_IGNORE:
                continue

            if step_type == solv.Transaction.SOLVER_TRANSACTION_ERASE:
                dbid = s.lookup_num(solv.RPM_RPMDBID)
                ts.addErase(dbid if dbid else s.name)
                names.append(s.name)
                continue

            if step_type not in INSTALL_STEPS:
                continue
            if medium and s.lookup_location()[1] != medium:
                continue

            path = self._package_path(s)
            try:
                fd = os.open(str(path), os.O_RDONLY)
                try:
                    hdr = ts.hdrFromFdno(fd)
                finally:
                    os.close(fd)
                ts.addInstall(hdr, str(path), 'u')
                names.append(s.name)
            except (OSError, rpm.error) as e:
                logger.error(f"{path.name}: {e}")
                failed.append(s.name)

        if failed:
            return CommitResult(failed=failed, remaining=self._remaining(root))

        unresolved = ts.check()
        if unresolved:
            for prob in unresolved:
                logger.error(f"Dependency problem: {prob}")
            return CommitResult(failed=names, remaining=self._remaining(root))

        ts.order()

        def callback(reason, amount, total, key, client_data):
            if reason == rpm.RPMCALLBACK_INST_OPEN_FILE:
                fd = os.open(key, os.O_RDONLY)
                open_fds[key] = fd
                return fd
            elif reason == rpm.RPMCALLBACK_INST_CLOSE_FILE:
                fd = open_fds.pop(key, None)
                if fd is not None:
                    os.close(fd)

        try:
            problems = ts.run(callback, '')
        finally:
            for fd in open_fds.values():
                try:
                    os.close(fd)
                except OSError:
                    pass
            open_fds.clear()

        if problems:
            messages = [str(p) for p in problems]
            for message in messages:
                logger.error(message)
            failed = [n for n in names if any(mentions_package(m, n) for m in messages)] or names

        result = CommitResult(
            successful=len(names) - len(failed),
            failed=failed,
            remaining=self._remaining(root),
        )

        # rpmdb changed, reload on next use
        self.reset_selection()
        self.pool = None
        return result

    def _remaining(self, root: str) -> List[str]:
        """Requested installs none of whose selected packages is in the rpmdb."""
        ts = rpm.TransactionSet(root)
        return [request for request, selected in self._install_names.items()
                if not any(ts.dbMatch('name', name).count() for name in selected)]

    def reset_selection(self) -> None:
        self._jobs = []
        self._install_names = {}
        self._transaction = None

    # =========================================================================
    # Queries
    # =========================================================================

    def is_available(self, capability: str) -> bool:
        pool = self._pool()
        return bool(self._available(pool.whatprovides(pool.Dep(capability))))

    def package_available(self, name: str) -> bool:
        sel = self._pool().select(name, solv.Selection.SELECTION_NAME)
        return bool(self._available(sel.solvables()))

    def what_provides(self, capability: str) -> List[str]:
        pool = self._pool()
        providers = self._available(pool.whatprovides(pool.Dep(capability)))
        return sorted({s.name for s in providers})
