"""
Settings of the language service.

Editors send settings as a `{"coffeemap": {...}}` section with camelCase
keys; the same shape can be read from a JSON file.
"""

import json
import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigError


logger = logging.getLogger(__name__)

SECTION = 'coffeemap'
LOG_LEVELS = ('INFO', 'DEBUG')


@dataclass(frozen=True)
class Settings:
    # seconds a transpilation result stays cached by content
    cache_ttl: float = 180.0
    # debounce delay of validation after a change, in seconds
    validation_delay: float = 0.2
    # diagnostic codes of the language service that are never reported
    ignored_error_codes: Tuple[int, ...] = ()
    file_extensions: Tuple[str, ...] = ('coffee',)
    log_level: str = 'INFO'
    # CoffeeScript browser bundle to use instead of the packaged compiler
    compiler_script: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Settings':
        """Build settings from an editor settings object.

        Accepts the whole object or just its `coffeemap` section. Unknown
        keys are ignored, known keys with a wrong type raise ConfigError.
        """
        if not isinstance(data, Mapping):
            raise ConfigError(f"settings must be an object, got {type(data).__name__}")
        section = data.get(SECTION, data)
        if not isinstance(section, Mapping):
            raise ConfigError(f"'{SECTION}' settings must be an object")

        known = {_camel_case(f.name): f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in section.items():
            name = known.get(key)
            if name is None:
                logger.debug(f"ignoring unknown setting {key}")
                continue
            values[name] = _CONVERTERS[name](key, value)
        return cls(**values)

    @classmethod
    def load(cls, path: str) -> 'Settings':
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"invalid settings file {path}: {e}") from e
        return cls.from_dict(data)


def _camel_case(name: str) -> str:
    first, *rest = name.split('_')
    return first + ''.join(part.capitalize() for part in rest)


def _seconds(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"{key} must be a non-negative number, got {value!r}")
    return float(value)


def _codes(key: str, value: Any) -> Tuple[int, ...]:
    if not isinstance(value, list) or not all(
            isinstance(v, int) and not isinstance(v, bool) for v in value):
        raise ConfigError(f"{key} must be a list of integers, got {value!r}")
    return tuple(value)


def _extensions(key: str, value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{key} must be a list of strings, got {value!r}")
    return tuple(v.lstrip('.') for v in value)


def _log_level(key: str, value: Any) -> str:
    if not isinstance(value, str) or value.upper() not in LOG_LEVELS:
        raise ConfigError(f"{key} must be one of {', '.join(LOG_LEVELS)}, got {value!r}")
    return value.upper()


def _optional_path(key: str, value: Any) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"{key} must be a path, got {value!r}")
    return value or None


_CONVERTERS = {
    'cache_ttl': _seconds,
    'validation_delay': _seconds,
    'ignored_error_codes': _codes,
    'file_extensions': _extensions,
    'log_level': _log_level,
    'compiler_script': _optional_path,
}
