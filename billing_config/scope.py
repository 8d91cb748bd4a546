"""
Scope keys and resolved configuration entries.

``ScopeKey`` is the lookup descriptor (name, agent scope, locale scope);
``ConfigEntry`` is the immutable value the resolver caches and returns.
Neither references ORM state.
"""

from __future__ import annotations

from dataclasses import dataclass


def normalize_agent(agent_scope: int | None) -> int | None:
    """Agent 0 and None both mean the global scope."""
    return agent_scope or None


def normalize_locale(locale: str | None) -> str | None:
    return locale or None


@dataclass(frozen=True)
class ScopeKey:
    """
    Composite configuration lookup key.

    Equality is structural.  Construct through ``ScopeKey.of`` to get the
    global scope normalized to None.
    """

    name: str
    agent_scope: int | None = None
    locale: str | None = None

    @classmethod
    def of(cls, name: str, agent_scope: int | None = None, locale: str | None = None) -> ScopeKey:
        return cls(name, normalize_agent(agent_scope), normalize_locale(locale))

    @property
    def cache_key(self) -> str:
        """"name:agent:locale", with empty strings for global scopes."""
        agent = "" if self.agent_scope is None else str(self.agent_scope)
        return f"{self.name}:{agent}:{self.locale or ''}"

    @property
    def is_global(self) -> bool:
        return self.agent_scope is None and self.locale is None


@dataclass(frozen=True)
class ConfigEntry:
    """A stored configuration value at one exact scope."""

    name: str
    agent_scope: int | None
    locale: str | None
    value: str

    @classmethod
    def from_model(cls, model) -> ConfigEntry:
        return cls(
            name=model.name,
            agent_scope=model.agent_scope,
            locale=model.locale,
            value=model.value or "",
        )

    @property
    def scope(self) -> ScopeKey:
        return ScopeKey(self.name, self.agent_scope, self.locale)

    @property
    def is_scoped(self) -> bool:
        """True for agent- or locale-specific entries."""
        return not self.scope.is_global

    def lines(self) -> list[str]:
        """
        All values of a multi-value entry.

        One trailing newline is dropped, then the value is split on
        newlines keeping empty lines (trailing ones included).  An empty
        value has no lines.
        """
        value = self.value
        if value.endswith("\n"):
            value = value[:-1]
        if not value:
            return []
        return value.split("\n")

    def first_line(self) -> str:
        """The single-value form: the first line, "" for an empty value."""
        return self.value.split("\n", 1)[0]
