"""
Module: billing_kernel.models.package
Responsibility: ORM persistence for billable packages and their definitions,
    to the extent location reconciliation needs them: which location a
    package is billed to, whether it is cancelled, supplemental, or an
    already-charged one-time charge.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A package with cancelled_at set no longer references its location
      for reference-counting purposes.
    - A package whose definition has freq "0" (one-time charge) and whose
      setup_at is set has been invoiced; its location is historical record.
    - Moving a package between locations never touches its billing dates.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUIDString

ONE_TIME_FREQ = "0"


class PackageDefinition(TrackedBase):
    """A sellable package definition; freq "0" marks a one-time charge."""

    __tablename__ = "package_definitions"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    freq: Mapped[str] = mapped_column(String(10), nullable=False, default="1")


class Package(TrackedBase):
    """A customer's instance of a package definition."""

    __tablename__ = "packages"

    __table_args__ = (
        Index("idx_package_location", "location_id"),
        Index("idx_package_customer", "customer_id"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    definition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("package_definitions.id"),
        nullable=False,
    )

    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=True,
    )

    # Set when this package is supplemental to another package
    main_package_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("packages.id"),
        nullable=True,
    )

    setup_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_bill_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    next_bill_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    definition: Mapped[PackageDefinition] = relationship(PackageDefinition)

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def is_supplemental(self) -> bool:
        return self.main_package_id is not None

    @property
    def is_charged_one_time(self) -> bool:
        """A one-time charge that has already been set up (and so invoiced)."""
        return self.definition.freq == ONE_TIME_FREQ and self.setup_at is not None

    def __repr__(self) -> str:
        return f"<Package {self.id} location={self.location_id}>"
