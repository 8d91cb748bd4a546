"""
ConfigResolver -- effective configuration values across overlapping scopes.

Responsibility:
    Answers "what is the value of setting X" for an optional agent scope
    and the context's locale scope, falling back from specific scopes to
    global ones, and caching every exact-scope lookup (misses included).

Architecture position:
    Config layer.  Reads the ``config_entries`` table through the caller's
    session; never writes.

Invariants enforced:
    - Agent candidates are tried outer, locale candidates inner:
      (agent, locale), (agent, -), (-, locale), (-, -), dropping the
      global agent in agent-only mode and the global locale in
      locale-only mode.
    - An entry at the exact requested scope always wins over fallbacks.
    - Missing keys are a silent None; only store failures raise
      (ConfigStoreError).
    - Re-entrant resolution (a lookup started while another is querying
      the store) bypasses the cache.

Failure modes:
    - ConfigStoreError when the store cannot be read.
"""

from __future__ import annotations

import base64
import binascii

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_config.cache import MISS
from billing_config.context import ConfigContext
from billing_config.scope import ConfigEntry, ScopeKey, normalize_agent, normalize_locale
from billing_kernel.exceptions import ConfigStoreError, ConfigValueError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.config_entry import ConfigEntryModel

logger = get_logger("config.resolver")


def scope_filter(query, key: ScopeKey):
    """Restrict a ConfigEntryModel query to exactly ``key``'s scope."""
    query = query.where(ConfigEntryModel.name == key.name)
    if key.agent_scope is None:
        query = query.where(ConfigEntryModel.agent_scope.is_(None))
    else:
        query = query.where(ConfigEntryModel.agent_scope == key.agent_scope)
    if key.locale is None:
        query = query.where(ConfigEntryModel.locale.is_(None))
    else:
        query = query.where(ConfigEntryModel.locale == key.locale)
    return query


class ConfigResolver:
    """Scoped, cached configuration reads."""

    def __init__(self, session: Session, context: ConfigContext | None = None):
        self.session = session
        self.context = context if context is not None else ConfigContext()

    # ------------------------------------------------------------------
    # candidate scopes
    # ------------------------------------------------------------------

    @staticmethod
    def agent_candidates(agent_scope: int | None, agent_only: bool = False) -> list[int | None]:
        agent = normalize_agent(agent_scope)
        if agent is None:
            return [None]
        return [agent] if agent_only else [agent, None]

    def locale_candidates(self, locale: str | None = None) -> list[str | None]:
        locale = normalize_locale(locale) or self.context.locale
        if locale is None:
            return [None]
        return [locale] if self.context.locale_only else [locale, None]

    def candidate_keys(
        self,
        name: str,
        agent_scope: int | None = None,
        locale: str | None = None,
        agent_only: bool = False,
    ) -> list[ScopeKey]:
        return [
            ScopeKey(name, agent, loc)
            for agent in self.agent_candidates(agent_scope, agent_only)
            for loc in self.locale_candidates(locale)
        ]

    # ------------------------------------------------------------------
    # exact-scope lookup
    # ------------------------------------------------------------------

    def lookup(self, key: ScopeKey) -> ConfigEntry | None:
        """The entry at exactly ``key``'s scope, through the cache."""
        reentrant = self.context.resolving
        if not reentrant:
            cached = self.context.cache.get(key)
            if cached is not MISS:
                return cached

        entry = self._query(key)
        if not reentrant:
            self.context.cache.put(key, entry)
        return entry

    def _query(self, key: ScopeKey) -> ConfigEntry | None:
        with self.context.suspended():
            try:
                model = self.session.scalars(
                    scope_filter(select(ConfigEntryModel), key)
                ).first()
            except SQLAlchemyError as exc:
                logger.error(
                    "config_read_failed",
                    extra={"config_name": key.name, "error": str(exc)},
                )
                raise ConfigStoreError(key.name, "reading", str(exc)) from exc
        return ConfigEntry.from_model(model) if model is not None else None

    # ------------------------------------------------------------------
    # resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        name: str,
        agent_scope: int | None = None,
        locale: str | None = None,
        *,
        agent_only: bool = False,
    ) -> ConfigEntry | None:
        """
        The first entry found across the candidate scopes, or None.

        Agent scopes are tried outermost: ``agent_scope`` then global
        (unless ``agent_only``), each with ``locale`` (or the bound locale)
        then locale-independent.
        """
        for key in self.candidate_keys(name, agent_scope, locale, agent_only):
            entry = self.lookup(key)
            if entry is not None:
                return entry
        return None

    conf = resolve

    def config(self, name: str, agent_scope: int | None = None, agent_only: bool = False) -> str | None:
        """Single-value form: the first line of the value, or None if unset."""
        entry = self.resolve(name, agent_scope, agent_only=agent_only)
        return entry.first_line() if entry is not None else None

    def config_list(
        self, name: str, agent_scope: int | None = None, agent_only: bool = False
    ) -> list[str]:
        """Multi-value form: every line of the value, [] if unset or empty."""
        entry = self.resolve(name, agent_scope, agent_only=agent_only)
        return entry.lines() if entry is not None else []

    def config_binary(
        self, name: str, agent_scope: int | None = None, agent_only: bool = False
    ) -> bytes | None:
        """The base64-decoded value; b"" for an empty value, None if unset."""
        entry = self.resolve(name, agent_scope, agent_only=agent_only)
        if entry is None:
            return None
        if not entry.value:
            return b""
        try:
            return base64.b64decode(entry.value)
        except (binascii.Error, ValueError) as exc:
            raise ConfigValueError(name, "stored value is not valid base64") from exc

    def exists(self, name: str, agent_scope: int | None = None, agent_only: bool = False) -> bool:
        """True if the key is set at any candidate scope, even to ""."""
        return self.resolve(name, agent_scope, agent_only=agent_only) is not None

    def resolve_bool(self, name: str, agent_scope: int | None = None, agent_only: bool = False) -> bool:
        """
        Boolean form.

        An entry found at an agent- or locale-specific scope whose value is
        exactly "0" is an explicit override to False and stops the search.
        Any other entry found is True; no entry is False.
        """
        for key in self.candidate_keys(name, agent_scope, None, agent_only):
            entry = self.lookup(key)
            if entry is None:
                continue
            return not (entry.value == "0" and entry.is_scoped)
        return False

    config_bool = resolve_bool

    def key_orbase(self, name: str, suffix: str) -> str:
        """``name_suffix`` if that key exists, else ``name``."""
        suffixed = f"{name}_{suffix}"
        return suffixed if self.exists(suffixed) else name

    def config_orbase(self, name: str, suffix: str, agent_scope: int | None = None) -> str | None:
        """
        The value of ``name_suffix`` if it exists, else of ``name``.

        The suffixed key is chosen first; agent fallback applies within
        whichever key was chosen.
        """
        suffixed = f"{name}_{suffix}"
        if self.exists(suffixed, agent_scope):
            return self.config(suffixed, agent_scope)
        return self.config(name, agent_scope)
