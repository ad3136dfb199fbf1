"""
Bitbucket Server updater utilities.

Shared constants, configuration and cache-location helpers used by the API client,
the cached resources and the CLI.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Set

import yaml

# Global logger for the module
_logger = logging.getLogger(__name__)

#
# Cache policy constants (single source of truth)
#
DEFAULT_CACHE_TTL_HOURS: float = 12.0
# ^ How long (hours) a fetched remote resource is trusted before it is fetched again.
#   Example: tags fetched at 08:00 are reused until 20:00; the next update cycle after
#   that refetches them. Debug setups often use a tiny value (e.g. 0.0001h ~ 0.36s).
DEFAULT_LIST_LIMIT: int = 100
# ^ `limit` query param for tag/branch listings (Bitbucket Server pages at 25 by default).
DEFAULT_TIMEOUT_S: int = 10
# ^ Per-request HTTP timeout (seconds).
DEFAULT_HOST_PATTERN: str = "bitbucket"
# ^ Substring that marks a URL as belonging to the provider (used by auth injection).
DEFAULT_PRIMARY_BRANCH: str = "master"


# ======================================================================================
# IMPORTANT: Cache location policy
#
# All *persistent* caches MUST live under:
#   - $BITBUCKET_UPDATER_CACHE_DIR        (explicit override), else
#   - ~/.cache/bitbucket-server-updater   (default)
#
# Relative cache file names passed by call sites are rooted there; a leading ".cache/"
# is stripped so older paths still land in the global cache dir.
# ======================================================================================

def updater_cache_dir() -> Path:
    """Return the cache directory for the updater.

    Resolution order:
    - BITBUCKET_UPDATER_CACHE_DIR (explicit override)
    - ~/.cache/bitbucket-server-updater
    """
    override = os.environ.get("BITBUCKET_UPDATER_CACHE_DIR")
    if override:
        return Path(override).expanduser()

    return Path.home() / ".cache" / "bitbucket-server-updater"


def resolve_cache_path(cache_file: str) -> Path:
    """Resolve a cache file path into the global updater cache directory.

    - Absolute paths are used as-is.
    - Relative paths are rooted under `updater_cache_dir()`.
    - If the relative path starts with ".cache/", that prefix is stripped.
    """
    p = Path(cache_file).expanduser()
    if p.is_absolute():
        return p

    # Normalize any leading "./"
    rel = Path(*p.parts[1:]) if p.parts[:1] == (".",) else p

    # Strip leading ".cache/" if present
    if rel.parts[:1] == (".cache",):
        rel = Path(*rel.parts[1:])

    return updater_cache_dir() / rel


# ======================================================================================
# Configuration
# ======================================================================================

CONFIG_ENV_VAR = "BITBUCKET_UPDATER_CONFIG"
USERNAME_ENV_VAR = "BITBUCKET_SERVER_USERNAME"
PASSWORD_ENV_VAR = "BITBUCKET_SERVER_PASSWORD"


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "bitbucket-server-updater.yml"


@dataclass
class UpdaterConfig:
    """Explicit configuration threaded into the API client, auth injector and fetcher.

    Holds the stored Bitbucket Server credentials, the set of repositories flagged
    private, and cache/listing knobs. Nothing reads credentials from ambient state
    once this object exists.
    """

    username: Optional[str] = None
    password: Optional[str] = None
    cache_ttl_hours: float = DEFAULT_CACHE_TTL_HOURS
    private_repos: Set[str] = field(default_factory=set)
    branch_switch: bool = False
    list_limit: int = DEFAULT_LIST_LIMIT
    timeout_s: int = DEFAULT_TIMEOUT_S
    host_pattern: str = DEFAULT_HOST_PATTERN

    @property
    def cache_ttl_s(self) -> float:
        return max(0.0, float(self.cache_ttl_hours) * 3600.0)

    def has_credentials(self) -> bool:
        """True when at least one stored credential is non-empty."""
        return bool(self.username) or bool(self.password)

    def is_private_repo(self, repo: str) -> bool:
        return bool(repo) and repo in self.private_repos

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "UpdaterConfig":
        cfg = cls()
        if not isinstance(raw, dict):
            return cfg
        if raw.get("username") is not None:
            cfg.username = str(raw["username"])
        if raw.get("password") is not None:
            cfg.password = str(raw["password"])
        try:
            if raw.get("cache_ttl_hours") is not None:
                cfg.cache_ttl_hours = float(raw["cache_ttl_hours"])
        except (ValueError, TypeError):
            _logger.warning("Ignoring invalid cache_ttl_hours=%r", raw.get("cache_ttl_hours"))
        repos = raw.get("private_repos") or []
        if isinstance(repos, (list, tuple, set)):
            cfg.private_repos = {str(r) for r in repos if str(r)}
        cfg.branch_switch = bool(raw.get("branch_switch", False))
        try:
            if raw.get("list_limit") is not None:
                cfg.list_limit = max(1, int(raw["list_limit"]))
            if raw.get("timeout_s") is not None:
                cfg.timeout_s = max(1, int(raw["timeout_s"]))
        except (ValueError, TypeError):
            _logger.warning("Ignoring invalid list_limit/timeout_s in config")
        if raw.get("host_pattern"):
            cfg.host_pattern = str(raw["host_pattern"])
        return cfg


def load_updater_config(path: Optional[Path] = None) -> UpdaterConfig:
    """Load UpdaterConfig from YAML, then apply environment overrides.

    Priority (per credential): 1) environment variable, 2) config file, 3) unset.
    A missing or unreadable file yields the defaults.
    """
    cfg_path = Path(path).expanduser() if path is not None else default_config_path()
    raw: Dict[str, Any] = {}
    try:
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                loaded = yaml.safe_load(f)
            if isinstance(loaded, dict):
                raw = loaded
            elif loaded is not None:
                _logger.warning("Config %s is not a mapping; using defaults", cfg_path)
    except (OSError, yaml.YAMLError) as e:
        _logger.warning("Failed to read config %s: %s", cfg_path, e)

    cfg = UpdaterConfig.from_dict(raw)
    cfg.username = os.environ.get(USERNAME_ENV_VAR) or cfg.username
    cfg.password = os.environ.get(PASSWORD_ENV_VAR) or cfg.password
    return cfg
