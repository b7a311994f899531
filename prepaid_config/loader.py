"""
Settings Loader (``prepaid_config.loader``).

Responsibility
--------------
Loads a YAML settings document and parses it into a typed, frozen
``LedgerSettings``.  The single public entry point for runtime settings is
``prepaid_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown keys are rejected; there are no silent typos.
* Every validation failure surfaces as ``ConfigurationError`` naming the
  source file and the offending section.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  document, so two files that differ only in formatting share a checksum.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from decimal import InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from prepaid_config.schema import DatabaseSettings, LedgerSettings
from prepaid_kernel.exceptions import ConfigurationError
from prepaid_modules.consumption.config import ConsumptionConfig
from prepaid_modules.forecast.config import ForecastConfig
from prepaid_modules.refund.config import RefundConfig

_TOP_LEVEL_KEYS = frozenset({
    "config_id", "version", "log_level", "max_attempts",
    "database", "consumption", "refund", "forecast",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigurationError: if the file is not valid YAML or not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(**data)


def _log_level(value: Any) -> str:
    level = str(value).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"unknown log level {value!r}")
    return level


def _section(data: dict[str, Any], name: str, source: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(source, f"{name}: must be a mapping")
    return section


def _build(source: str, name: str, factory, section: dict[str, Any]):
    try:
        return factory(section)
    except (TypeError, ValueError, KeyError, InvalidOperation) as exc:
        raise ConfigurationError(source, f"{name}: {exc}") from exc


def parse_settings(data: dict[str, Any], source: str = "<memory>") -> LedgerSettings:
    """
    Parse a settings mapping into ``LedgerSettings``.

    ``max_attempts`` at top level is the default for every module section
    that does not set its own.

    Raises:
        ConfigurationError: on unknown keys or invalid values.
    """
    unknown = sorted(set(data) - _TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigurationError(source, f"unknown keys: {', '.join(unknown)}")

    max_attempts = data.get("max_attempts", 3)
    if not isinstance(max_attempts, int) or max_attempts < 1:
        raise ConfigurationError(source, "max_attempts must be a positive integer")

    def module_section(name: str) -> dict[str, Any]:
        section = dict(_section(data, name, source))
        section.setdefault("max_attempts", max_attempts)
        return section

    return LedgerSettings(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        source=source,
        checksum=compute_checksum(data),
        log_level=_build(source, "log_level", _log_level, data.get("log_level", "INFO")),
        max_attempts=max_attempts,
        database=_build(source, "database", parse_database, _section(data, "database", source)),
        consumption=_build(
            source, "consumption", ConsumptionConfig.from_dict, module_section("consumption"),
        ),
        refund=_build(source, "refund", RefundConfig.from_dict, module_section("refund")),
        forecast=_build(source, "forecast", ForecastConfig.from_dict, module_section("forecast")),
    )


def load_settings(path: Path) -> LedgerSettings:
    """Load and parse one settings file."""
    return parse_settings(load_yaml_file(path), source=str(path))
