"""
Config -> Kernel Bridges.

Functions that turn resolved configuration and runtime settings into
kernel-side inputs (LocationPolicy, provider clients, lookups).  They live
in billing_config because the kernel must NEVER import billing_config.

Usage:
    from billing_config.bridges import build_location_policy, build_providers

    resolver = ConfigResolver(session, context)
    policy = build_location_policy(resolver)
    providers = build_providers(settings.providers)
    reconciler = LocationReconciler(session, policy, geocoder=providers.geocoder)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import httpx

from billing_config.resolver import ConfigResolver
from billing_config.schema import EnrichmentSettings, ProviderSettings
from billing_kernel.domain.policy import DEFAULT_CENSUS_YEAR, LocationPolicy
from billing_kernel.exceptions import ConfigValueError
from billing_kernel.providers.base import (
    AddressStandardizer,
    CensusTractProvider,
    GeocodingProvider,
    TaxDistrictProvider,
)
from billing_kernel.providers.http import CensusGeocoder, GoogleGeocoder, WashingtonDistrictProvider


def _census_year(resolver: ConfigResolver, enrichment: EnrichmentSettings | None) -> int:
    raw = resolver.config("census_legacy")
    if raw:
        try:
            return int(raw)
        except ValueError:
            raise ConfigValueError("census_legacy", f"not a year: {raw}") from None
    if enrichment is not None:
        return enrichment.default_census_year
    return DEFAULT_CENSUS_YEAR


def build_location_policy(
    resolver: ConfigResolver,
    enrichment: EnrichmentSettings | None = None,
) -> LocationPolicy:
    """Snapshot the location-related configuration keys into a LocationPolicy."""
    return LocationPolicy(
        no_city=resolver.exists("cust_main-no_city_in_address"),
        require_address2=resolver.exists("cust_main-require_address2"),
        prospect_location_kind_required=resolver.exists("prospect_main-alt_address_format"),
        tax_district_method=resolver.config("tax_district_method") or None,
        census_year=_census_year(resolver, enrichment),
        exporters=tuple(name for name in resolver.config_list("cust_location-exports") if name),
        label_prefix=resolver.config("cust_location-label_prefix") or None,
        default_country=resolver.config("countrydefault") or "US",
    )


def build_agent_prefix_lookup(resolver: ConfigResolver) -> Callable[[int | None], str | None]:
    """agent_num -> the agent's customer display prefix, for CoStAg labels."""

    def lookup(agent_num: int | None) -> str | None:
        return resolver.config("cust_main-custnum-display_prefix", agent_num) or None

    return lookup


@dataclass(frozen=True)
class ProviderSet:
    geocoder: GeocodingProvider | None = None
    standardizer: AddressStandardizer | None = None
    census: CensusTractProvider | None = None
    tax_district: TaxDistrictProvider | None = None


def build_providers(settings: ProviderSettings, client: httpx.Client | None = None) -> ProviderSet:
    """
    Instantiate the configured provider clients.

    Raises:
        ValueError: for an unknown provider name, or Google without an API key.
    """
    common = {
        "timeout": settings.timeout_seconds,
        "max_retries": settings.max_retries,
        "backoff_seconds": settings.backoff_seconds,
        "client": client,
    }
    census = CensusGeocoder(base_url=settings.census_base_url, **common)

    geocoder: GeocodingProvider | None
    if settings.geocoder is None:
        geocoder = None
    elif settings.geocoder == "google":
        if not settings.google_api_key:
            raise ValueError("providers.google_api_key is required for the google geocoder")
        geocoder = GoogleGeocoder(settings.google_api_key, **common)
    elif settings.geocoder == "census":
        geocoder = census
    else:
        raise ValueError(f"Unknown geocoder: {settings.geocoder}")

    if settings.standardizer not in (None, "census"):
        raise ValueError(f"Unknown address standardizer: {settings.standardizer}")
    if settings.tax_district not in (None, "wa_dor"):
        raise ValueError(f"Unknown tax district provider: {settings.tax_district}")

    return ProviderSet(
        geocoder=geocoder,
        standardizer=census if settings.standardizer == "census" else None,
        census=census,
        tax_district=(
            WashingtonDistrictProvider(base_url=settings.wa_dor_base_url, **common)
            if settings.tax_district == "wa_dor"
            else None
        ),
    )
