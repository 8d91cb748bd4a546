"""
Module: billing_kernel.models.geography
Responsibility: ORM persistence for the tax-region table: the known
    country/state/county combinations and, for district-based tax methods,
    the known tax district codes.
Architecture position: Kernel > Models.  May import from db/base.py only.
    Read-only from the point of view of location validation.

Invariants enforced:
    - A row with an empty state covers a whole country: any state/county
      in that country is accepted.
"""

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class TaxRegion(TrackedBase):
    """A known country/state/county (and optional tax district) combination."""

    __tablename__ = "tax_regions"

    __table_args__ = (
        Index("idx_tax_region_geo", "country", "state", "county"),
        Index("idx_tax_region_district", "district"),
    )

    country: Mapped[str] = mapped_column(String(2), nullable=False)

    state: Mapped[str | None] = mapped_column(String(64), nullable=True)

    county: Mapped[str | None] = mapped_column(String(64), nullable=True)

    city: Mapped[str | None] = mapped_column(String(64), nullable=True)

    district: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<TaxRegion {self.country}/{self.state}/{self.county} district={self.district}>"
