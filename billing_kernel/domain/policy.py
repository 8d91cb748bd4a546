"""
LocationPolicy -- the configuration switches location handling depends on.

The kernel never reads configuration itself.  billing_config.bridges builds
a LocationPolicy from the resolved configuration and hands it to the
validator and reconciler.
"""

from dataclasses import dataclass

DEFAULT_CENSUS_YEAR = 2020

WA_SALES_DISTRICT_METHOD = "wa_sales"


@dataclass(frozen=True)
class LocationPolicy:
    """
    Immutable snapshot of location-related configuration.

    Attributes:
        no_city: cities are not part of addresses; city is always blank.
        require_address2: a unit number (address2) is mandatory.
        prospect_location_kind_required: prospect locations need a
            location kind (R or B).
        tax_district_method: name of the district-based tax method, if any.
        census_year: year stamped on locations that carry a census tract.
        exporters: names of exporters run on insert and replace, in order.
        label_prefix: "CoStAg", "_location" or None.
        default_country: country assumed by callers that omit one.
    """

    no_city: bool = False
    require_address2: bool = False
    prospect_location_kind_required: bool = False
    tax_district_method: str | None = None
    census_year: int = DEFAULT_CENSUS_YEAR
    exporters: tuple[str, ...] = ()
    label_prefix: str | None = None
    default_country: str = "US"

    @property
    def checks_tax_district(self) -> bool:
        return self.tax_district_method == WA_SALES_DISTRICT_METHOD
