"""
Central configuration for pkgsys.

Sources, later ones win:
    1. Built-in defaults (normal stage, command line UI, root "/")
    2. /etc/pkgsys/pkgsys.conf (one key=value per line)
    3. Environment: PKGSYS_ROOT, PKGSYS_STAGE, PKGSYS_UI, PKGSYS_LIVE

pkgsys.conf format:
    root=/mnt
    stage=initial
    ui=popup
    live_installation=no
    lock_file=/var/lib/rpm/.pkgsys.lock
    repos_dir=/etc/pkgsys/repos.d
    # Comments start with #
"""

import os
import platform
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

CONFIG_FILE = Path("/etc/pkgsys/pkgsys.conf")
DEFAULT_LOCK_FILE = Path("/var/lib/rpm/.pkgsys.lock")
DEFAULT_REPOS_DIR = Path("/etc/pkgsys/repos.d")

_TRUE_VALUES = ('1', 'yes', 'true', 'on')

# Cache for loaded config (avoid re-reading the file for every call)
_cached_config: Optional['SystemConfig'] = None


class ConfigError(ValueError):
    """Raised when a configuration value cannot be understood."""


class Stage(Enum):
    """Installation stage the system is running in."""
    NORMAL = "normal"        # Installed, running system
    INITIAL = "initial"      # First stage, installer RAM disk
    CONTINUE = "continue"    # Second stage, first boot of the new system


class UiMode(Enum):
    """How questions are presented to the user."""
    COMMANDLINE = "commandline"
    POPUP = "popup"


@dataclass
class SystemConfig:
    """Runtime configuration shared by the core and the CLI."""
    root: str = "/"
    stage: Stage = Stage.NORMAL
    ui_mode: UiMode = UiMode.COMMANDLINE
    live_installation: bool = False
    lock_file: Path = DEFAULT_LOCK_FILE
    repos_dir: Path = DEFAULT_REPOS_DIR
    arch: str = field(default_factory=platform.machine)
    auto_confirm: bool = False

    @property
    def in_installation(self) -> bool:
        """True while running inside the installer (either stage)."""
        return self.stage in (Stage.INITIAL, Stage.CONTINUE)


def parse_bool(value) -> bool:
    """YAML/ini style boolean: strings use the yes/no words, others bool()."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_VALUES
    return bool(value)


def parse_stage(value: str) -> Stage:
    try:
        return Stage(value.strip().lower())
    except ValueError:
        raise ConfigError(f"Unknown installation stage: {value!r}")


def parse_ui_mode(value: str) -> UiMode:
    try:
        return UiMode(value.strip().lower())
    except ValueError:
        raise ConfigError(f"Unknown UI mode: {value!r}")


def _read_config_file(path: Path) -> dict:
    """Read a key=value config file.

    Returns:
        Dict with raw string values (empty if the file doesn't exist)
    """
    values = {}
    if not path.exists():
        return values

    try:
        with open(path) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                if '=' in line:
                    key, value = line.split('=', 1)
                    values[key.strip().lower()] = value.strip()
    except (OSError, IOError):
        return {}

    return values


def _apply(config: SystemConfig, values: dict):
    """Apply raw string values onto a config object."""
    if 'root' in values:
        config.root = values['root'] or "/"
    if 'stage' in values:
        config.stage = parse_stage(values['stage'])
    if 'ui' in values:
        config.ui_mode = parse_ui_mode(values['ui'])
    if 'live_installation' in values:
        config.live_installation = parse_bool(values['live_installation'])
    if 'lock_file' in values:
        config.lock_file = Path(values['lock_file']).expanduser()
    if 'repos_dir' in values:
        config.repos_dir = Path(values['repos_dir']).expanduser()
    if 'arch' in values:
        config.arch = values['arch']


def load_config(path: Path = None, environ: dict = None) -> SystemConfig:
    """Load configuration from file and environment.

    Args:
        path: Config file (default: /etc/pkgsys/pkgsys.conf)
        environ: Environment mapping (default: os.environ)

    Returns:
        SystemConfig

    Raises:
        ConfigError: If a stage or UI mode value is unknown
    """
    global _cached_config
    use_cache = path is None and environ is None
    if use_cache and _cached_config is not None:
        return _cached_config

    if environ is None:
        environ = os.environ

    config = SystemConfig()
    _apply(config, _read_config_file(path or CONFIG_FILE))

    env_values = {}
    for var, key in (('PKGSYS_ROOT', 'root'), ('PKGSYS_STAGE', 'stage'),
                     ('PKGSYS_UI', 'ui'), ('PKGSYS_LIVE', 'live_installation')):
        if environ.get(var):
            env_values[key] = environ[var]
    _apply(config, env_values)

    if use_cache:
        _cached_config = config
    return config


def reset_config_cache():
    """Forget the cached configuration (tests, CLI overrides)."""
    global _cached_config
    _cached_config = None
