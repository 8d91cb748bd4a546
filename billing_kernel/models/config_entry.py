"""
Module: billing_kernel.models.config_entry
Responsibility: ORM persistence for scoped configuration values.  One row per
    (name, agent_scope, locale) triple holds the raw stored value.
Architecture position: Kernel > Models.  May import from db/base.py only.
    Reading and writing goes through billing_config (ConfigResolver /
    ConfigMutator); nothing in the kernel queries this table directly.

Invariants enforced:
    - At most one entry per (name, agent_scope, locale) triple
      (uq_config_entry_scope; NULL scopes are enforced by ConfigMutator,
      which always replaces the existing row for a triple).
    - agent_scope NULL means global; locale NULL means locale-independent.
    - value is stored verbatim (multi-line values are newline separated;
      binary values are base64 text).

Failure modes:
    - IntegrityError on a duplicate non-NULL triple.
"""

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class ConfigEntryModel(TrackedBase):
    """
    A single stored configuration value.

    Contract:
        Rows are created, replaced and deleted only by ConfigMutator.  The
        resolver reads them and converts them to ConfigEntry DTOs before
        caching, so cached values never reference live ORM state.
    """

    __tablename__ = "config_entries"

    __table_args__ = (
        UniqueConstraint("name", "agent_scope", "locale", name="uq_config_entry_scope"),
        Index("idx_config_entry_name", "name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    agent_scope: Mapped[int | None] = mapped_column(nullable=True)

    locale: Mapped[str | None] = mapped_column(String(16), nullable=True)

    value: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<ConfigEntryModel {self.name} agent={self.agent_scope} locale={self.locale}>"
