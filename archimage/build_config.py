from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml

from .errors import ConfigError

DEFAULT_IMAGE_SIZE = "10GiB"
DEFAULT_HOSTNAME = "arch-image"
DEFAULT_TIMEZONE = "Universal"

KNOWN_KEYS = {
    "image_size",
    "packages",
    "hostname",
    "setup_script",
    "setup_dir",
    "setup_exclude",
    "timezone",
    "regenerate_initramfs",
}

_SIZE_RE = re.compile(r"^\s*(\d+)\s*(?:([KMGTP])(iB|B)?)?\s*$", re.IGNORECASE)
_UNITS = "KMGTP"


def parse_size(value: Any) -> int:
    """Parse a byte count the way ``truncate --size`` reads it.

    ``10G`` and ``10GiB`` are powers of 1024, ``10GB`` is powers of 1000.
    """

    if isinstance(value, bool):
        raise ConfigError(f"Invalid size: {value!r}")
    if isinstance(value, int):
        size = value
    else:
        m = _SIZE_RE.match(str(value))
        if not m:
            raise ConfigError(f"Invalid size: {value!r}")
        number, unit, suffix = m.groups()
        size = int(number)
        if unit:
            base = 1000 if (suffix or "").upper() == "B" else 1024
            size *= base ** (_UNITS.index(unit.upper()) + 1)
    if size <= 0:
        raise ConfigError(f"Size must be positive: {value!r}")
    return size


@dataclass(frozen=True)
class BuildConfig:
    config_dir: Path
    image_size: int = parse_size(DEFAULT_IMAGE_SIZE)
    packages: Tuple[str, ...] = ()
    hostname: str = DEFAULT_HOSTNAME
    setup_script: Optional[Path] = None
    setup_dir: Optional[Path] = None
    setup_exclude: Optional[Path] = None
    timezone: str = DEFAULT_TIMEZONE
    regenerate_initramfs: bool = False


def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def _string(raw: Dict[str, Any], key: str, default: str) -> str:
    value = raw.get(key, default)
    # YAML reads HOSTNAME: 2024 as a number.
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} must be a non-empty string")
    return value


def _packages(raw: Dict[str, Any]) -> Tuple[str, ...]:
    value = raw.get("packages") or []
    if isinstance(value, str):
        value = value.split()
    if not isinstance(value, list) or not all(isinstance(p, str) and p for p in value):
        raise ConfigError("packages must be a list of package names")
    return _unique(value)


def _path(raw: Dict[str, Any], key: str, config_dir: Path, *, want_dir: bool) -> Optional[Path]:
    value = raw.get(key)
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a path")
    # Relative to the config file, never to the working directory.
    p = config_dir / value
    if want_dir and not p.is_dir():
        raise ConfigError(f"{key} is not a directory: {p}")
    if not want_dir and not p.is_file():
        raise ConfigError(f"{key} is not a file: {p}")
    return p


def _lower_keys(raw: Dict[Any, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in raw.items():
        key = str(k).lower()
        if key in out:
            raise ConfigError(f"Duplicate config key (keys are case-insensitive): {k}")
        out[key] = v
    return out


def build_config_from_mapping(raw: Dict[str, Any], *, config_dir: Path) -> BuildConfig:
    raw = _lower_keys(raw)
    unknown = sorted(set(raw) - KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    regenerate = raw.get("regenerate_initramfs", False)
    if not isinstance(regenerate, bool):
        raise ConfigError("regenerate_initramfs must be true or false")

    return BuildConfig(
        config_dir=config_dir,
        image_size=parse_size(raw.get("image_size", DEFAULT_IMAGE_SIZE)),
        packages=_packages(raw),
        hostname=_string(raw, "hostname", DEFAULT_HOSTNAME),
        setup_script=_path(raw, "setup_script", config_dir, want_dir=False),
        setup_dir=_path(raw, "setup_dir", config_dir, want_dir=True),
        setup_exclude=_path(raw, "setup_exclude", config_dir, want_dir=False),
        timezone=_string(raw, "timezone", DEFAULT_TIMEZONE),
        regenerate_initramfs=regenerate,
    )


def load_build_config(path: str) -> BuildConfig:
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError("build config must contain a mapping/object")

    return build_config_from_mapping(raw, config_dir=p.resolve().parent)
