"""
Repository definitions.

One YAML file per repository in the repository directory
(default /etc/pkgsys/repos.d/*.yaml):

    name: core-release
    baseurl: /srv/mirror/9/x86_64/media/core/release
    enabled: true
    type: synthesis      # rpmmd, synthesis or solv
    priority: 50         # lower is preferred

baseurl is a local directory (or a file:// URL); fetching remote
metadata is the job of the mirroring tools, not of the transaction code.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List
from urllib.parse import urlparse

import yaml

from .config import parse_bool

logger = logging.getLogger(__name__)

REPO_TYPES = ('rpmmd', 'synthesis', 'solv')
DEFAULT_PRIORITY = 50


@dataclass
class Repository:
    """A configured package repository."""
    name: str
    baseurl: str
    enabled: bool = True
    type: str = "rpmmd"
    priority: int = DEFAULT_PRIORITY

    @property
    def path(self) -> Path:
        """Local directory holding the repository."""
        parsed = urlparse(self.baseurl)
        if parsed.scheme in ('', 'file'):
            return Path(parsed.path)
        raise ValueError(f"Repository {self.name}: only local repositories are supported ({self.baseurl})")

    def metadata_file(self) -> Path:
        """Metadata file to load for this repository type."""
        base = self.path
        if self.type == 'synthesis':
            return base / "media_info" / "synthesis.hdlist.cz"
        if self.type == 'solv':
            return base / f"{self.name}.solv"
        matches = sorted((base / "repodata").glob('*primary.xml*'))
        return matches[0] if matches else base / "repodata" / "primary.xml.gz"


def _parse_repository(data: dict, default_name: str) -> Repository:
    repo_type = str(data.get('type', 'rpmmd')).lower()
    if repo_type not in REPO_TYPES:
        raise ValueError(f"unknown repository type {repo_type!r}")
    if not data.get('baseurl'):
        raise ValueError("missing baseurl")

    return Repository(
        name=str(data.get('name') or default_name),
        baseurl=str(data['baseurl']),
        enabled=parse_bool(data.get('enabled', True)),
        type=repo_type,
        priority=int(data.get('priority', DEFAULT_PRIORITY)),
    )


def load_repositories(repos_dir: Path) -> List[Repository]:
    """Load repository definitions.

    Malformed files are logged and skipped.

    Returns:
        Repositories sorted by priority, then name
    """
    repos = {}
    repos_dir = Path(repos_dir)
    if not repos_dir.exists():
        return []

    for yaml_file in sorted(repos_dir.glob('*.yaml')):
        try:
            with open(yaml_file, 'r') as f:
                data = yaml.safe_load(f)

            if not isinstance(data, dict):
                logger.warning(f"Ignoring {yaml_file}: not a mapping")
                continue

            repo = _parse_repository(data, yaml_file.stem)
        except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load repository {yaml_file}: {e}")
            continue

        if repo.name in repos:
            logger.warning(f"Duplicate repository '{repo.name}' in {yaml_file} ignored")
            continue
        repos[repo.name] = repo

    return sorted(repos.values(), key=lambda r: (r.priority, r.name))
