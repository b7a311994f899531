"""
Ledger settings schema (``prepaid_config.schema``).

Frozen dataclasses describing one loaded settings document.  Module
settings reuse each module's own config dataclass so validation lives in
exactly one place.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from prepaid_modules.consumption.config import ConsumptionConfig
from prepaid_modules.forecast.config import ForecastConfig
from prepaid_modules.refund.config import RefundConfig


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith("postgresql")

    def engine_kwargs(self) -> dict[str, object]:
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
        }


@dataclass(frozen=True)
class LedgerSettings:
    """The runtime artifact returned by ``get_active_config()``."""

    config_id: str
    version: int
    source: str
    checksum: str
    log_level: str = "INFO"
    max_attempts: int = 3
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    consumption: ConsumptionConfig = field(default_factory=ConsumptionConfig)
    refund: RefundConfig = field(default_factory=RefundConfig)
    forecast: ForecastConfig = field(default_factory=ForecastConfig)
