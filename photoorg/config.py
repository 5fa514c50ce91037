"""
Configuration management for photoorg.

Settings are layered: config file (YAML or TOML), then PHOTOORG_* environment
variables, then command-line overrides. The result is validated into a
LibraryConfig consumed by the organizer.
"""

import os
import tomllib
import zoneinfo
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .constants import DATE_SOURCES, META_DIRNAME, PROGRAM, VALID_EXTENSIONS, get_logger
from .errors import ConfigError
from .policies import POLICIES
from .scanner import normalize_extension

ENV_PREFIX = "PHOTOORG_"

# Picked up from the working directory when no config path is given
LOCAL_CONFIG_FILENAME = "po.toml"

KNOWN_KEYS = (
    "inputs", "output", "extensions", "sort_policy", "date_sources", "timezone",
    "recursive", "workers", "checkpoint_interval",
)


def default_config_path() -> Path:
    """Default config location: ./po.toml if present, else ~/.<PROGRAM>/config.yml"""
    local = Path.cwd() / LOCAL_CONFIG_FILENAME
    if local.is_file():
        return local
    return Path.home() / f".{PROGRAM}" / "config.yml"


def default_workers() -> int:
    return max(1, min(8, os.cpu_count() or 1))


@dataclass(frozen=True)
class LibraryConfig:
    """Validated settings for one organize run."""

    inputs: Tuple[Path, ...]
    output: Path
    extensions: frozenset = frozenset(e.lstrip(".") for e in VALID_EXTENSIONS)
    sort_policy: str = "date"
    date_sources: Tuple[str, ...] = DATE_SOURCES
    timezone: str = "UTC"
    recursive: bool = True
    workers: int = field(default_factory=default_workers)
    checkpoint_interval: int = 1

    @property
    def meta_root(self) -> Path:
        return self.output / META_DIRNAME


class ConfigFile:
    """Reads the raw settings mapping from a YAML or TOML file."""

    def __init__(self, config_path: Optional[Path] = None):
        self.explicit = config_path is not None
        self.config_path = Path(config_path).expanduser() if config_path else default_config_path()
        self.data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            if self.explicit:
                raise ConfigError(f"Config file not found: {self.config_path}")
            return {}

        try:
            if self.config_path.suffix.lower() == ".toml":
                with open(self.config_path, "rb") as f:
                    data = tomllib.load(f)
            else:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Could not load config {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config {self.config_path} must contain a mapping of settings")
        get_logger().debug(f"Loaded config from {self.config_path}")
        return data


def settings_from_env(env: Mapping[str, str]) -> Dict[str, Any]:
    """Collect PHOTOORG_* settings from an environment mapping."""
    settings: Dict[str, Any] = {}
    if env.get(f"{ENV_PREFIX}INPUTS"):
        settings["inputs"] = [p for p in env[f"{ENV_PREFIX}INPUTS"].split(os.pathsep) if p]
    if env.get(f"{ENV_PREFIX}OUTPUT"):
        settings["output"] = env[f"{ENV_PREFIX}OUTPUT"]
    if env.get(f"{ENV_PREFIX}EXTENSIONS"):
        settings["extensions"] = [e for e in env[f"{ENV_PREFIX}EXTENSIONS"].split(",") if e.strip()]
    if env.get(f"{ENV_PREFIX}SORT_POLICY"):
        settings["sort_policy"] = env[f"{ENV_PREFIX}SORT_POLICY"]
    if env.get(f"{ENV_PREFIX}DATE_SOURCES"):
        settings["date_sources"] = [s for s in env[f"{ENV_PREFIX}DATE_SOURCES"].split(",") if s.strip()]
    if env.get(f"{ENV_PREFIX}TIMEZONE"):
        settings["timezone"] = env[f"{ENV_PREFIX}TIMEZONE"]
    if env.get(f"{ENV_PREFIX}WORKERS"):
        settings["workers"] = env[f"{ENV_PREFIX}WORKERS"]
    return settings


def load_config(config_path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None,
                overrides: Optional[Mapping[str, Any]] = None) -> LibraryConfig:
    """Load, merge and validate settings from file, environment and overrides."""
    env = os.environ if env is None else env
    if config_path is None and env.get(f"{ENV_PREFIX}CONFIG"):
        config_path = Path(env[f"{ENV_PREFIX}CONFIG"])

    settings = dict(ConfigFile(config_path).data)
    settings.update(settings_from_env(env))
    settings.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return validate_config(settings)


def load_output_dir(config_path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None,
                    override: Optional[str] = None) -> Path:
    """Resolve just the library output directory, for commands that never scan inputs."""
    env = os.environ if env is None else env
    if override:
        return _resolve(override, "output")
    if config_path is None and env.get(f"{ENV_PREFIX}CONFIG"):
        config_path = Path(env[f"{ENV_PREFIX}CONFIG"])

    settings = dict(ConfigFile(config_path).data)
    settings.update(settings_from_env(env))
    if not settings.get("output"):
        raise ConfigError("An output directory is required")
    return _resolve(settings["output"], "output")


def validate_config(settings: Mapping[str, Any]) -> LibraryConfig:
    """Turn a raw settings mapping into a LibraryConfig, or raise ConfigError."""
    unknown = sorted(set(settings) - set(KNOWN_KEYS))
    if unknown:
        raise ConfigError(f"Unknown config key(s): {', '.join(unknown)}")

    inputs = settings.get("inputs")
    if isinstance(inputs, (str, Path)):
        inputs = [inputs]
    if not inputs:
        raise ConfigError("At least one input directory is required")
    input_paths = tuple(_resolve(p, "inputs") for p in inputs)

    if not settings.get("output"):
        raise ConfigError("An output directory is required")
    output = _resolve(settings["output"], "output")

    meta_root = output / META_DIRNAME
    for path in input_paths:
        if path == output:
            raise ConfigError(f"Input and output directory are identical: {path}")
        if path == meta_root or meta_root in path.parents:
            raise ConfigError(f"Input {path} lies inside the library metadata directory")

    values: Dict[str, Any] = {"inputs": input_paths, "output": output}

    if settings.get("extensions") is not None:
        extensions = _string_list(settings["extensions"], "extensions")
        values["extensions"] = frozenset(normalize_extension(e) for e in extensions)
        if not values["extensions"] or not all(values["extensions"]):
            raise ConfigError("At least one non-empty extension is required")

    if settings.get("sort_policy") is not None:
        policy = str(settings["sort_policy"]).strip().lower()
        if policy not in POLICIES:
            raise ConfigError(f"Unknown sort policy '{settings['sort_policy']}' "
                              f"(choose from: {', '.join(sorted(POLICIES))})")
        values["sort_policy"] = policy

    if settings.get("date_sources") is not None:
        sources = [s.strip().lower() for s in _string_list(settings["date_sources"], "date_sources")]
        bad = [s for s in sources if s not in DATE_SOURCES]
        if bad or not sources:
            raise ConfigError(f"Invalid date_sources {sources} (choose from: {', '.join(DATE_SOURCES)})")
        values["date_sources"] = tuple(dict.fromkeys(sources))

    if settings.get("timezone") is not None:
        tz_name = str(settings["timezone"])
        try:
            zoneinfo.ZoneInfo(tz_name)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown timezone '{tz_name}'") from e
        values["timezone"] = tz_name

    if settings.get("recursive") is not None:
        if not isinstance(settings["recursive"], bool):
            raise ConfigError("recursive must be true or false")
        values["recursive"] = settings["recursive"]

    for key in ("workers", "checkpoint_interval"):
        if settings.get(key) is not None:
            values[key] = _positive_int(settings[key], key)

    return LibraryConfig(**values)


def _resolve(value: Any, key: str) -> Path:
    if not isinstance(value, (str, Path)) or not str(value).strip():
        raise ConfigError(f"Invalid path in {key}: {value!r}")
    return Path(value).expanduser().resolve()


def _string_list(value: Any, key: str) -> List[str]:
    if isinstance(value, str):
        value = [v for v in value.split(",")]
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{key} must be a list of strings")
    return [v.strip() for v in value if v.strip()]


def _positive_int(value: Any, key: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    if isinstance(value, bool) or number < 1:
        raise ConfigError(f"{key} must be at least 1, got {value!r}")
    return number
