"""
approval_config -- single public entrypoint for approval engine settings.

Responsibility:
    ``get_active_settings()`` is the only way to obtain settings at runtime.
    It reads a YAML file (default: ``approval_config/settings/default.yaml``),
    applies the ``DATABASE_URL`` environment override and any keyword
    overrides, and returns a frozen ``ApprovalSettings``.

Architecture position:
    Configuration.  Sits beside ``approval_kernel``; the kernel never
    imports from this package.  Wiring code passes the settings object to
    ``create_engine_from_settings`` and ``ApprovalService.from_settings``.

Failure modes:
    - ``FileNotFoundError`` -- settings file missing.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from approval_config.loader import compute_checksum, load_yaml_file, parse_settings
from approval_config.schema import ApprovalSettings

_logger = logging.getLogger("approval_kernel.config")

_DEFAULT_SETTINGS_FILE = Path(__file__).parent / "settings" / "default.yaml"

DATABASE_URL_ENV = "DATABASE_URL"


def settings_checksum(settings: ApprovalSettings) -> str:
    """Deterministic SHA-256 fingerprint of a settings object."""
    return compute_checksum(settings.to_dict())


def get_active_settings(
    path: Path | str | None = None,
    **overrides: Any,
) -> ApprovalSettings:
    """Load, validate and return the active settings.

    Precedence (lowest to highest): YAML file, ``DATABASE_URL`` environment
    variable, keyword overrides.
    """
    settings_path = Path(path) if path is not None else _DEFAULT_SETTINGS_FILE
    data = load_yaml_file(settings_path)

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        data["database_url"] = env_url
    data.update(overrides)

    settings = parse_settings(data)
    _logger.info(
        "approval_settings_loaded",
        extra={
            "settings_path": str(settings_path),
            "checksum": settings_checksum(settings),
            "submit_on_create": settings.submit_on_create,
            "store_timeout_seconds": settings.store_timeout_seconds,
            "gateway_timeout_seconds": settings.gateway_timeout_seconds,
        },
    )
    return settings


__all__ = [
    "ApprovalSettings",
    "DATABASE_URL_ENV",
    "get_active_settings",
    "settings_checksum",
]
