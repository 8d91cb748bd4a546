"""
ConfigCache -- per-connection memoization of scoped configuration lookups.

Maps ``ScopeKey.cache_key`` to a ConfigEntry or None (a cached miss).
Only valid within one logical connection: ConfigContext.bind_connection
clears it.  Caching is opt-in: a new cache is disabled, and while
disabled ``get`` always reports MISS and ``put`` does nothing.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from billing_config.scope import ConfigEntry, ScopeKey


class _Miss:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS = _Miss()


class ConfigCache:
    """Plain mapping guarded by an enable toggle; never shared across connections."""

    def __init__(self, enabled: bool = False):
        self._entries: dict[str, ConfigEntry | None] = {}
        self._enabled = enabled
        self.hits = 0
        self.misses = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = bool(value)
        if not self._enabled:
            self._entries.clear()

    def get(self, key: ScopeKey) -> ConfigEntry | None | _Miss:
        if not self._enabled or key.cache_key not in self._entries:
            self.misses += 1
            return MISS
        self.hits += 1
        return self._entries[key.cache_key]

    def put(self, key: ScopeKey, entry: ConfigEntry | None) -> None:
        if self._enabled:
            self._entries[key.cache_key] = entry

    def clear(self) -> None:
        self._entries.clear()

    @contextmanager
    def disabled(self) -> Iterator[ConfigCache]:
        """Pass-through mode for the duration of the block."""
        previous = self._enabled
        self._enabled = False
        try:
            yield self
        finally:
            # writes inside the block were not cached; drop what they made stale
            self._entries.clear()
            self._enabled = previous

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: ScopeKey) -> bool:
        return key.cache_key in self._entries
