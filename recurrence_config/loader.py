"""
Settings loader (``recurrence_config.loader``).

Responsibility
--------------
Loads YAML settings files and parses them into a frozen
``EngineSettings``.  Runtime callers go through
``recurrence_config.get_active_config()`` instead of calling this module.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; a typo never silently
  falls back to a default.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the merged
  settings for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ValueError`` from ``EngineSettings``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from recurrence_config.schema import EngineSettings

# (section, key) -> EngineSettings field
_FIELD_MAP: dict[tuple[str, str], str] = {
    ("expansion", "max_instances"): "max_instances",
    ("expansion", "horizon_years"): "horizon_years",
    ("expansion", "max_expansion_steps"): "max_expansion_steps",
    ("sweep", "workers"): "sweep_workers",
    ("sweep", "cron"): "sweep_cron",
    ("lease_reminders", "cron"): "lease_reminder_cron",
    ("lease_reminders", "lead_days"): "lease_end_reminder_days",
    ("cascade", "max_attempts"): "cascade_max_attempts",
    ("cascade", "lock_timeout_seconds"): "lock_timeout_seconds",
    ("scheduler", "tick_seconds"): "scheduler_tick_seconds",
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` onto ``base`` one section deep."""
    merged = {section: dict(values or {}) for section, values in base.items()}
    for section, values in override.items():
        if not isinstance(values, dict):
            raise ValueError(f"Section {section!r} must be a mapping")
        merged.setdefault(section, {}).update(values)
    return merged


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Parse a sectioned settings dict into ``EngineSettings``."""
    kwargs: dict[str, Any] = {}
    for section, values in data.items():
        if not isinstance(values, dict):
            raise ValueError(f"Section {section!r} must be a mapping")
        for key, value in values.items():
            field_name = _FIELD_MAP.get((section, key))
            if field_name is None:
                raise ValueError(f"Unknown setting {section}.{key}")
            if field_name == "lease_end_reminder_days":
                value = tuple(value)
            elif field_name in ("lock_timeout_seconds", "scheduler_tick_seconds"):
                value = float(value)
            kwargs[field_name] = value
    return EngineSettings(**kwargs)


def settings_to_dict(settings: EngineSettings) -> dict[str, dict[str, Any]]:
    """Inverse of ``parse_settings`` (used for checksums and dumps)."""
    data: dict[str, dict[str, Any]] = {}
    for (section, key), field_name in _FIELD_MAP.items():
        value = getattr(settings, field_name)
        if isinstance(value, tuple):
            value = list(value)
        data.setdefault(section, {})[key] = value
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
