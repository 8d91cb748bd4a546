"""
ConfigContext -- the per-connection state configuration lookups run in.

Responsibility:
    Owns the ConfigCache and the locale binding, clears the cache whenever
    a new logical connection starts, and carries the reentrancy guard that
    hides the "current" context while a resolution is in progress.

Architecture position:
    Config layer.  Hooks into billing_kernel.db.engine through a session
    callback, so every session handed out by get_session() starts with an
    empty cache.

Invariants enforced:
    - The cache never outlives the logical connection it was filled in.
    - While a resolution is querying the store, ``ConfigContext.current()``
      returns None, so code reached from inside the query (ORM events,
      validators) cannot start another resolution through the ambient
      context and recurse.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4

from billing_config.cache import ConfigCache
from billing_kernel.db.engine import install_session_callback, remove_session_callback
from billing_kernel.logging_config import LogContext, get_logger

logger = get_logger("config.context")

_current: ContextVar[ConfigContext | None] = ContextVar("config_context", default=None)


class ConfigContext:
    """
    Connection-scoped configuration state.

    Args:
        cache: the cache to use; a fresh, disabled cache by default.
        locale: locale scope tried before the locale-independent scope.
        locale_only: do not fall back from ``locale`` to the
            locale-independent scope.
    """

    def __init__(
        self,
        cache: ConfigCache | None = None,
        locale: str | None = None,
        locale_only: bool = False,
    ):
        self.cache = cache if cache is not None else ConfigCache()
        self.locale = locale or None
        self.locale_only = locale_only
        self.connection_id: str | None = None
        self._suspended = 0

    def bind_connection(self, connection_id: str | None = None) -> str:
        """Start a new logical connection: clear the cache and tag the logs."""
        self.connection_id = connection_id or uuid4().hex
        self.cache.clear()
        LogContext.set(connection_id=self.connection_id)
        logger.debug("config_connection_bound", extra={"connection_id": self.connection_id})
        return self.connection_id

    def _on_new_session(self, session) -> None:
        self.bind_connection()

    def install(self) -> None:
        """Clear this context's cache for every new session from get_session()."""
        install_session_callback(self._on_new_session)

    def uninstall(self) -> None:
        remove_session_callback(self._on_new_session)

    # ------------------------------------------------------------------
    # ambient context and reentrancy guard
    # ------------------------------------------------------------------

    @classmethod
    def current(cls) -> ConfigContext | None:
        """The active context, or None if none is active or it is mid-resolution."""
        context = _current.get()
        if context is None or context._suspended:
            return None
        return context

    @contextmanager
    def activate(self) -> Iterator[ConfigContext]:
        """Make this the ambient context for the block."""
        token = _current.set(self)
        try:
            yield self
        finally:
            _current.reset(token)

    @property
    def resolving(self) -> bool:
        """True while a resolution is querying the store."""
        return self._suspended > 0

    @contextmanager
    def suspended(self) -> Iterator[None]:
        self._suspended += 1
        try:
            yield
        finally:
            self._suspended -= 1
