"""
Module: billing_kernel.models.location
Responsibility: ORM persistence for customer and prospect locations, and the
    audit trail written when background standardization rewrites an address.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, domain/, or outer layers.

Invariants enforced:
    - Exactly one of customer_id / prospect_id is set, unless the
      transient customer_pending marker is set (checked by the location
      validator, not the ORM).
    - Essential fields (see billing_kernel.domain.location_identity) are
      stored whitespace-trimmed.
    - Physical-address fields of a customer location are immutable (ORM
      backstop in db/immutability.py; domain check in LocationReconciler).
    - Locations are never deleted; they are retired with disabled=True.

Audit relevance:
    Invoices and tax records reference locations by id.  Because the
    physical address of a customer location never changes in place, the
    address an invoice was taxed against is always recoverable.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString


class Location(TrackedBase):
    """
    A physical service or billing location.

    Contract:
        Instances are proposed transient (not yet in a session) and
        persisted through LocationReconciler, which normalizes, validates
        and exports them.

    Non-goals:
        - The model does not validate itself; see LocationValidator.
    """

    __tablename__ = "locations"

    __table_args__ = (
        Index("idx_location_customer", "customer_id"),
        Index("idx_location_prospect", "prospect_id"),
        Index("idx_location_match", "address1", "zip", "country"),
        Index("idx_location_disabled", "disabled"),
    )

    customer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=True,
    )

    prospect_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("prospects.id"),
        nullable=True,
    )

    location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # active_history: the immutability listener compares against the
    # previous value even when the attribute was expired before the change
    address1: Mapped[str] = mapped_column(String(255), nullable=False, active_history=True)
    address2: Mapped[str | None] = mapped_column(String(255), nullable=True, active_history=True)
    city: Mapped[str | None] = mapped_column(String(255), nullable=True, active_history=True)
    county: Mapped[str | None] = mapped_column(String(255), nullable=True)
    state: Mapped[str | None] = mapped_column(String(64), nullable=True, active_history=True)
    zip: Mapped[str | None] = mapped_column(String(20), nullable=True, active_history=True)
    country: Mapped[str] = mapped_column(String(2), nullable=False, active_history=True)

    location_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    location_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # "" (unspecified), "R" (residential) or "B" (business)
    location_kind: Mapped[str | None] = mapped_column(String(1), nullable=True)

    geocode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    latitude: Mapped[Decimal | None] = mapped_column(nullable=True)
    longitude: Mapped[Decimal | None] = mapped_column(nullable=True)
    # True when coordinates came from a geocoder rather than manual entry
    coord_auto: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # True once the address has been standardized
    addr_clean: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    census_tract: Mapped[str | None] = mapped_column(String(20), nullable=True)
    census_year: Mapped[int | None] = mapped_column(nullable=True)
    tax_district: Mapped[str | None] = mapped_column(String(20), nullable=True)
    incorporated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Transient: the owning customer is being created in the same unit of
    # work and has no id yet.  Never persisted.
    customer_pending = False

    @property
    def owner_id(self) -> UUID | None:
        return self.customer_id or self.prospect_id

    def __repr__(self) -> str:
        return f"<Location {self.id}: {self.address1}, {self.city} {self.state}>"


class LocationAddressChange(TrackedBase):
    """
    One field rewritten on one location by address standardization.

    Rows are append-only: the pair (old_value, new_value) is the before and
    after of the field at the moment the job changed it.
    """

    __tablename__ = "location_address_changes"

    __table_args__ = (
        Index("idx_location_change_location", "location_id"),
        Index("idx_location_change_job", "job_id"),
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    field: Mapped[str] = mapped_column(String(64), nullable=False)

    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
