"""
Runtime settings schema.

Process-level settings (database, providers, background enrichment) as
frozen dataclasses, parsed from YAML by billing_config.loader.  Business
configuration lives in the ``config_entries`` table instead and is read
through ConfigResolver.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///billing.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class ProviderSettings:
    """Which external providers to use and how to reach them."""

    geocoder: str | None = None  # "google" | "census" | None
    standardizer: str | None = None  # "census" | None
    tax_district: str | None = None  # "wa_dor" | None
    google_api_key: str | None = None
    census_base_url: str = "https://geocoding.geo.census.gov/geocoder"
    wa_dor_base_url: str = "https://webgis.dor.wa.gov/webapi/AddressRates.aspx"
    timeout_seconds: float = 10.0
    max_retries: int = 2
    backoff_seconds: float = 1.0


@dataclass(frozen=True)
class EnrichmentSettings:
    # 86,400 / 35 = 2,468 geocoder lookups a day, under a 2,500/day quota
    set_coord_delay_seconds: float = 35.0
    default_census_year: int = 2020


@dataclass(frozen=True)
class RuntimeSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    providers: ProviderSettings = field(default_factory=ProviderSettings)
    enrichment: EnrichmentSettings = field(default_factory=EnrichmentSettings)
    config_cache_enabled: bool = False
    default_locale: str | None = None
    log_level: str = "INFO"
