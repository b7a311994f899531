"""
prepaid_config -- single public entrypoint for ledger settings.

Responsibility:
    Provides the one way to obtain settings at runtime through
    ``get_active_config()``.  Services receive their module config objects
    from the returned ``LedgerSettings``; they never read files or
    environment variables themselves.

Architecture position:
    Configuration -- sits above ``prepaid_modules`` (it builds their config
    dataclasses).  The kernel MUST NEVER import from ``prepaid_config``.

Resolution order:
    1. The ``path`` argument.
    2. The ``PREPAID_LEDGER_CONFIG`` environment variable.
    3. The packaged ``defaults.yaml``.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry with the config id, version, source
    and checksum of the loaded document.
"""

from __future__ import annotations

import os
from pathlib import Path

from prepaid_config.loader import compute_checksum, load_settings, parse_settings
from prepaid_config.schema import DatabaseSettings, LedgerSettings
from prepaid_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "PREPAID_LEDGER_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerSettings:
    """
    Load the active settings document.

    Raises:
        FileNotFoundError: the resolved file does not exist.
        ConfigurationError: the document fails validation.
    """
    resolved = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    settings = load_settings(resolved)

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "source": settings.source,
            "checksum": settings.checksum,
        },
    )
    return settings


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "DatabaseSettings",
    "LedgerSettings",
    "compute_checksum",
    "get_active_config",
    "load_settings",
    "parse_settings",
]
