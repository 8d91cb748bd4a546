"""
Module: billing_kernel.models.customer
Responsibility: ORM persistence for the parties that own or reference
    locations: agents (the resellers customers belong to), customers,
    prospects and contacts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Agent.agent_num is unique; it is the integer agent scope used by
      configuration lookups.
    - Customer.bill_location_id / ship_location_id and
      Contact.location_id count as live references to a location when
      deciding whether it can be disabled.

Failure modes:
    - IntegrityError on duplicate agent_num.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString


class Agent(TrackedBase):
    """Reseller/agent that customers and prospects belong to."""

    __tablename__ = "agents"

    agent_num: Mapped[int] = mapped_column(nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Agent {self.agent_num}: {self.name}>"


class Customer(TrackedBase):
    """
    A billed customer.

    Contract:
        A location owned by a customer becomes address-immutable (see
        LocationReconciler.replace).  bill_location_id and ship_location_id
        reference locations.id; they are plain columns because locations
        also reference customers.
    """

    __tablename__ = "customers"

    __table_args__ = (
        Index("idx_customer_bill_location", "bill_location_id"),
        Index("idx_customer_ship_location", "ship_location_id"),
    )

    agent_num: Mapped[int | None] = mapped_column(
        ForeignKey("agents.agent_num"),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    bill_location_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    ship_location_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Customer {self.id}: {self.name}>"


class Prospect(TrackedBase):
    """A prospective customer; its locations carry no billing history."""

    __tablename__ = "prospects"

    agent_num: Mapped[int | None] = mapped_column(
        ForeignKey("agents.agent_num"),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Prospect {self.id}: {self.name}>"


class Contact(TrackedBase):
    """A contact person, optionally pinned to a location."""

    __tablename__ = "contacts"

    __table_args__ = (
        Index("idx_contact_location", "location_id"),
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

    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
