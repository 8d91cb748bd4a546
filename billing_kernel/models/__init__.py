"""ORM models for the billing kernel."""

from billing_kernel.models.config_entry import ConfigEntryModel
from billing_kernel.models.customer import Agent, Contact, Customer, Prospect
from billing_kernel.models.geography import TaxRegion
from billing_kernel.models.location import Location, LocationAddressChange
from billing_kernel.models.package import ONE_TIME_FREQ, Package, PackageDefinition

__all__ = [
    "Agent",
    "ConfigEntryModel",
    "Contact",
    "Customer",
    "Location",
    "LocationAddressChange",
    "ONE_TIME_FREQ",
    "Package",
    "PackageDefinition",
    "Prospect",
    "TaxRegion",
]
