"""
recurrence_config -- single public entrypoint for engine settings.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    The packaged ``defaults.yaml`` is always loaded first; an explicit
    path, or the file named by ``RECURRENCE_CONFIG_PATH``, is merged over
    it section by section.

Architecture position:
    Configuration -- sits above ``recurrence_kernel`` and below
    ``recurrence_batch``.  The kernel MUST NEVER import from this package;
    ``recurrence_config.bridges`` translates settings into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- unknown keys or out-of-range values.

Every successful call logs ``RECURRENCE_CONFIG_TRACE`` with the source
paths and the SHA-256 checksum of the merged settings.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from recurrence_config.loader import (
    compute_checksum,
    load_yaml_file,
    merge_settings,
    parse_settings,
    settings_to_dict,
)
from recurrence_config.schema import EngineSettings

_logger = logging.getLogger("recurrence_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_PATH_ENV = "RECURRENCE_CONFIG_PATH"


def get_active_config(path: Path | str | None = None) -> EngineSettings:
    """Load the packaged defaults, merge the override file, and validate.

    Args:
        path: Override file.  Defaults to ``$RECURRENCE_CONFIG_PATH`` when
            set, otherwise the packaged defaults are used alone.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    sources = [str(DEFAULTS_PATH)]

    override = path or os.environ.get(CONFIG_PATH_ENV)
    if override:
        override_path = Path(override)
        data = merge_settings(data, load_yaml_file(override_path))
        sources.append(str(override_path))

    settings = parse_settings(data)
    _logger.info(
        "RECURRENCE_CONFIG_TRACE",
        extra={
            "trace_type": "RECURRENCE_CONFIG_TRACE",
            "sources": sources,
            "checksum": compute_checksum(settings_to_dict(settings)),
        },
    )
    return settings


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULTS_PATH",
    "EngineSettings",
    "compute_checksum",
    "get_active_config",
]
