"""Configuration loading and management for coverwatch.

Configuration sources are merged in priority order:
    1. Defaults (defined in CoverageConfig)
    2. Global config (~/.coverwatch.toml)
    3. Project config (./coverwatch.toml)
    4. Explicit config file
    5. Environment variables (COVERWATCH_* prefix)
    6. Overrides (passed as kwargs)

Example:
    >>> config = load_config(verbose=True, store_type="memory")
    >>> config.verbose
    True
"""

from __future__ import annotations

import os
import re
import site
import sysconfig
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError, InvalidConfigError

StoreType = Literal["memory", "file", "sqlite", "http"]

# Paths containing any of these substrings are never tracked. The package
# directory markers keep virtualenvs that live inside the project root out of
# the report unless third-party tracking is switched on.
IGNORE_DEFAULTS = [
    "site-packages",
    "dist-packages",
    "__pycache__",
    "<frozen",
    "<string>",
    "<stdin>",
]

THIRD_PARTY_MARKERS = ("site-packages", "dist-packages")

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH")


def default_third_party_paths() -> list[str]:
    """Installed-package directories that exist on this system."""
    candidates = [
        sysconfig.get_paths().get("purelib"),
        sysconfig.get_paths().get("platlib"),
    ]
    try:
        candidates.extend(site.getsitepackages())
    except AttributeError:
        # Old virtualenv builds ship a site module without getsitepackages
        pass
    user_site = site.getusersitepackages()
    if isinstance(user_site, str):
        candidates.append(user_site)

    paths: list[str] = []
    for candidate in candidates:
        if candidate and os.path.isdir(candidate) and candidate not in paths:
            paths.append(candidate)
    return paths


@dataclass(frozen=True)
class CoverageConfig:
    """Settings consumed by the collector, classifier and store factory.

    Attributes:
        Tracking scope:
            root: Project root; files under it are tracked
            root_paths: Extra roots tracked like the project root, e.g. previous
                release directories; their files are keyed relative to the root
            ignore: Substrings; any path containing one is ignored
            track_third_party: Also track installed packages
            third_party_paths: Package roots tracked when track_third_party is set
            groups: Report group name -> regex matched against the path

        Error handling:
            verbose: Log collector failures
            test_mode: Re-raise collector failures instead of swallowing them
            log_file: Optional file that also receives log records

        Store:
            store_type: memory, file, sqlite or http
            store_path: File or database path for file/sqlite stores
            store_timeout: Seconds to wait for a store lock

        HTTP store:
            http_save_url / http_save_method / http_save_timeout
            http_get_url / http_get_method / http_get_timeout

        Reporting:
            background_reporting_enabled: Flush from a daemon thread
            background_reporting_sleep_seconds: Interval between flushes
            report_on_exit: Flush once more when the interpreter exits
    """

    # Tracking scope
    root: str = field(default_factory=os.getcwd)
    root_paths: list[str] = field(default_factory=list)
    ignore: list[str] = field(default_factory=lambda: list(IGNORE_DEFAULTS))
    track_third_party: bool = False
    third_party_paths: list[str] = field(default_factory=default_third_party_paths)
    groups: dict[str, str] = field(default_factory=dict)

    # Error handling
    verbose: bool = False
    test_mode: bool = False
    log_file: Optional[str] = None

    # Store
    store_type: StoreType = "sqlite"
    store_path: Optional[str] = None
    store_timeout: float = 10.0

    # HTTP store
    http_save_url: Optional[str] = None
    http_save_method: str = "POST"
    http_save_timeout: float = 10.0
    http_get_url: Optional[str] = None
    http_get_method: str = "GET"
    http_get_timeout: float = 10.0

    # Reporting
    background_reporting_enabled: bool = True
    background_reporting_sleep_seconds: float = 30.0
    report_on_exit: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.store_type not in ("memory", "file", "sqlite", "http"):
            raise InvalidConfigError("store_type", self.store_type, "unknown store type")
        if self.store_timeout <= 0:
            raise InvalidConfigError("store_timeout", self.store_timeout, "must be positive")
        if self.http_save_timeout <= 0:
            raise InvalidConfigError(
                "http_save_timeout", self.http_save_timeout, "must be positive"
            )
        if self.http_get_timeout <= 0:
            raise InvalidConfigError("http_get_timeout", self.http_get_timeout, "must be positive")
        if self.background_reporting_sleep_seconds <= 0:
            raise InvalidConfigError(
                "background_reporting_sleep_seconds",
                self.background_reporting_sleep_seconds,
                "must be positive",
            )
        for key in ("http_save_method", "http_get_method"):
            method = getattr(self, key)
            if method.upper() not in HTTP_METHODS:
                raise InvalidConfigError(key, method, f"expected one of {', '.join(HTTP_METHODS)}")
        if any(not pattern for pattern in self.ignore):
            raise InvalidConfigError("ignore", self.ignore, "patterns must be non-empty")
        if isinstance(self.root_paths, str) or any(not p for p in self.root_paths):
            raise InvalidConfigError("root_paths", self.root_paths, "expected a list of directories")

    @property
    def project_root(self) -> str:
        return os.path.abspath(os.path.expanduser(self.root))

    @property
    def all_root_paths(self) -> list[str]:
        """Every directory whose files are tracked, project root last."""
        roots = [os.path.abspath(os.path.expanduser(p)) for p in self.root_paths]
        if self.track_third_party:
            roots.extend(os.path.abspath(p) for p in self.third_party_paths)
        roots.append(self.project_root)
        return roots

    @property
    def effective_ignore(self) -> list[str]:
        """Ignore patterns with the package-directory defaults lifted when
        third-party tracking is on."""
        if not self.track_third_party:
            return list(self.ignore)
        return [p for p in self.ignore if p not in THIRD_PARTY_MARKERS]

    @property
    def effective_groups(self) -> dict[str, str]:
        """Configured groups plus App / Third-party when third-party tracking is on."""
        groups = dict(self.groups)
        if self.track_third_party:
            groups.setdefault("App", _escape_path(self.project_root))
            if self.third_party_paths:
                groups.setdefault(
                    "Third-party", "|".join(_escape_path(p) for p in self.third_party_paths)
                )
        return groups

    @property
    def resolved_store_path(self) -> str:
        if self.store_path:
            return os.path.abspath(os.path.expanduser(self.store_path))
        name = "coverage.json" if self.store_type == "file" else "coverage.db"
        return os.path.join(self.project_root, ".coverwatch", name)


def _escape_path(path: str) -> str:
    return "^" + re.escape(os.path.join(os.path.abspath(path), ""))


def load_config(config_file: Optional[Path] = None, **overrides) -> CoverageConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from the host application)

    Returns:
        Validated CoverageConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing
    """
    merged: dict = {}

    global_config = Path.home() / ".coverwatch.toml"
    if global_config.exists():
        try:
            merged.update(_load_toml_file(global_config))
        except Exception as e:
            raise ConfigurationError(f"Invalid global config '{global_config}': {e}")

    project_config = Path.cwd() / "coverwatch.toml"
    if project_config.exists():
        try:
            merged.update(_load_toml_file(project_config))
        except Exception as e:
            raise ConfigurationError(f"Invalid project config '{project_config}': {e}")

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        try:
            merged.update(_load_toml_file(config_file))
        except Exception as e:
            raise ConfigurationError(f"Invalid config file '{config_file}': {e}")

    merged.update(_load_env_vars())
    merged.update(overrides)

    # User ignores extend the defaults, never replace them
    extra_ignore = merged.pop("ignore", None)
    if extra_ignore is not None:
        if isinstance(extra_ignore, str) or not isinstance(extra_ignore, (list, tuple)):
            raise InvalidConfigError("ignore", extra_ignore, "expected a list of strings")
        ignore = list(IGNORE_DEFAULTS)
        for pattern in extra_ignore:
            if pattern not in ignore:
                ignore.append(pattern)
        merged["ignore"] = ignore

    groups = merged.get("groups")
    if groups is not None and not isinstance(groups, dict):
        raise InvalidConfigError("groups", groups, "expected a table of name = pattern")

    try:
        return CoverageConfig(**merged)
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from COVERWATCH_* environment variables.

    List and table fields (ignore, groups, root_paths, third_party_paths) are
    file-only.
    """
    type_hints = get_type_hints(CoverageConfig)

    result: dict[str, Any] = {}

    for field_name in CoverageConfig.__dataclass_fields__:
        env_key = f"COVERWATCH_{field_name.upper()}"
        env_value = os.environ.get(env_key)

        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint)
            if parsed is not None:
                result[field_name] = parsed
        except ValueError as e:
            raise ConfigurationError(f"Invalid {env_key}: {e}")

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the field's type."""
    origin = getattr(type_hint, "__origin__", None)

    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if origin in (list, dict) or type_hint in (list, dict):
        return None

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict."""
    try:
        import tomllib
    except ModuleNotFoundError:
        try:
            import tomli as tomllib  # type: ignore
        except ImportError:
            raise ConfigurationError(
                "TOML support requires Python 3.11+ or 'tomli' package. "
                "Install with: pip install tomli"
            )

    with open(path, "rb") as f:
        return tomllib.load(f)
