"""Run configuration: defaults, config file, environment and presets."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "Generate a one line summary of the following text."
DEFAULT_MODEL = "llama3.2"
DEFAULT_URL = "http://localhost:11434"
DEFAULT_BUFFER_TIME = 1

CONFIG_FILE_ENV = "CONFIG_FILE"
CONFIG_FILE_CANDIDATES = (
    Path("~/.config/inlama/config.toml"),
    Path("~/.inlama.toml"),
)

# Environment overrides, applied after .env has been loaded
ENV_OVERRIDES = {
    "INLAMA_MODEL": "model",
    "INLAMA_URL": "url",
    "INLAMA_PROMPT": "prompt",
    "INLAMA_BUFFER_TIME": "buffer_time",
    "INLAMA_DEBUG": "debug",
}

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class Config:
    """Settings read by the pipeline for the whole run."""

    model: str = DEFAULT_MODEL
    url: str = DEFAULT_URL
    prompt: str = DEFAULT_PROMPT  # system prompt sent with every turn
    buffer_time: int = DEFAULT_BUFFER_TIME  # debounce interval, seconds
    stream: bool = False  # follow stdin and debounce it into turns
    debug: bool = False
    presets: List[str] = field(default_factory=lambda: [DEFAULT_PROMPT])
    flush_on_eof: bool = False

    @property
    def debounce_seconds(self) -> float:
        return float(self.buffer_time)


_FIELD_TYPES = {
    "model": str,
    "url": str,
    "prompt": str,
    "buffer_time": int,
    "stream": bool,
    "debug": bool,
    "presets": list,
    "flush_on_eof": bool,
}


def validate(config: Config) -> Config:
    """Check value ranges that the type annotations cannot express."""
    if isinstance(config.buffer_time, bool) or not isinstance(config.buffer_time, int):
        raise ConfigError(f"buffer_time must be an integer, got {config.buffer_time!r}")
    if config.buffer_time < 0:
        raise ConfigError(f"buffer_time must be >= 0, got {config.buffer_time}")
    if not config.url:
        raise ConfigError("url must not be empty")
    if not all(isinstance(p, str) for p in config.presets):
        raise ConfigError("presets must be a list of strings")
    return config


def from_mapping(values: Mapping[str, Any], base: Optional[Config] = None) -> Config:
    """Overlay known keys from a parsed config file onto ``base``."""
    base = base or Config()
    known = {f.name for f in fields(Config)}
    updates: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            logger.debug(f"Ignoring unknown config key: {key}")
            continue
        expected = _FIELD_TYPES[key]
        if expected is int and isinstance(value, bool):
            raise ConfigError(f"config key '{key}' must be an integer")
        if not isinstance(value, expected):
            raise ConfigError(f"config key '{key}' must be {expected.__name__}, got {type(value).__name__}")
        updates[key] = list(value) if key == "presets" else value
    return validate(replace(base, **updates))


def find_config_file(environ: Optional[Mapping[str, str]] = None) -> Optional[Path]:
    """Locate the config file: $CONFIG_FILE first, then the home directory defaults."""
    environ = os.environ if environ is None else environ

    env_path = environ.get(CONFIG_FILE_ENV)
    if env_path:
        path = Path(env_path).expanduser()
        if path.is_file():
            return path
        logger.debug(f"{CONFIG_FILE_ENV} points at missing file {path}, falling back")

    for candidate in CONFIG_FILE_CANDIDATES:
        path = candidate.expanduser()
        if path.is_file():
            return path
    return None


def load_config_file(path: Path, base: Optional[Config] = None) -> Config:
    try:
        with open(path, "rb") as f:
            values = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Error reading config file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Error reading config file {path}: {e}") from e
    logger.debug(f"📄 Loaded config file {path}")
    return from_mapping(values, base)


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def apply_environment(config: Config, environ: Optional[Mapping[str, str]] = None) -> Config:
    """Apply INLAMA_* environment variables on top of ``config``."""
    environ = os.environ if environ is None else environ
    updates: Dict[str, Any] = {}
    for name, key in ENV_OVERRIDES.items():
        raw = environ.get(name)
        if raw is None:
            continue
        if key == "buffer_time":
            try:
                updates[key] = int(raw)
            except ValueError:
                raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
        elif key == "debug":
            updates[key] = _parse_bool(name, raw)
        else:
            updates[key] = raw
    if not updates:
        return config
    return validate(replace(config, **updates))


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build the configuration from defaults, the config file and the environment."""
    config = Config()
    path = find_config_file(environ)
    if path is not None:
        config = load_config_file(path, config)
    return apply_environment(config, environ)


def select_preset(config: Config, index: int) -> Config:
    try:
        prompt = config.presets[index]
    except IndexError:
        raise ConfigError(f"No preset with index {index}") from None
    return replace(config, prompt=prompt)


__all__ = [
    "Config",
    "DEFAULT_PROMPT",
    "DEFAULT_MODEL",
    "DEFAULT_URL",
    "apply_environment",
    "find_config_file",
    "from_mapping",
    "load_config",
    "load_config_file",
    "select_preset",
    "validate",
]
