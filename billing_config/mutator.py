"""
ConfigMutator -- writes configuration values and keeps the cache coherent.

Responsibility:
    set / set_binary / delete / delete_bool / touch at an exact
    (name, agent scope, context locale) triple.  Every write lands in the
    connection's ConfigCache, so a later resolve in the same connection
    sees it without a store round trip.

Architecture position:
    Config layer.  Flushes through the caller's session inside a
    SAVEPOINT; the caller commits.

Invariants enforced:
    - At most one row per scope triple: ``set`` replaces an existing row.
    - Values are stored verbatim apart from NUL characters.
    - Store failures are never swallowed: the SAVEPOINT rolls back and
      ConfigStoreError is raised.

Audit relevance:
    Logs config_set / config_deleted with the key name and scope.  Values
    are never logged; they may be credentials.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_config.catalog import ConfigCatalog, Lookup, validate_value
from billing_config.resolver import ConfigResolver, scope_filter
from billing_config.scope import ConfigEntry, ScopeKey
from billing_kernel.exceptions import ConfigStoreError, ConfigValueError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.config_entry import ConfigEntryModel

logger = get_logger("config.mutator")


class ConfigMutator:
    """
    Configuration writes.

    Args:
        session: the caller's session.
        resolver: shares its ConfigContext (cache and locale).
        catalog: when given, values are validated against declared items
            before they are written.
        lookups: named lookups for ``external_lookup`` rules.
    """

    def __init__(
        self,
        session: Session,
        resolver: ConfigResolver,
        catalog: ConfigCatalog | None = None,
        lookups: Mapping[str, Lookup] | None = None,
    ):
        self.session = session
        self.resolver = resolver
        self.context = resolver.context
        self.catalog = catalog
        self.lookups = dict(lookups or {})

    def _key(self, name: str, agent_scope: int | None) -> ScopeKey:
        return ScopeKey.of(name, agent_scope, self.context.locale)

    def _find(self, key: ScopeKey) -> ConfigEntryModel | None:
        return self.session.scalars(scope_filter(select(ConfigEntryModel), key)).first()

    def _validate(self, name: str, value: str, agent_scope: int | None) -> None:
        if self.catalog is None:
            return
        item = self.catalog.get(name)
        if agent_scope and not item.per_agent:
            raise ConfigValueError(name, "not an agent-specific setting")
        validate_value(item, value, self.lookups)

    def set(self, name: str, value: str, agent_scope: int | None = None) -> ConfigEntry:
        """Store ``value`` at (name, agent_scope, context locale), replacing any existing row."""
        value = (value or "").replace("\x00", "")
        self._validate(name, value, agent_scope)
        key = self._key(name, agent_scope)
        try:
            with self.session.begin_nested():
                model = self._find(key)
                if model is None:
                    model = ConfigEntryModel(
                        name=key.name,
                        agent_scope=key.agent_scope,
                        locale=key.locale,
                        value=value,
                    )
                    self.session.add(model)
                else:
                    model.value = value
                self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "config_set_failed",
                extra={"config_name": name, "agent_scope": key.agent_scope, "error": str(exc)},
            )
            raise ConfigStoreError(name, "setting", str(exc)) from exc

        entry = ConfigEntry(key.name, key.agent_scope, key.locale, value)
        self.context.cache.put(key, entry)
        logger.info(
            "config_set",
            extra={"config_name": name, "agent_scope": key.agent_scope, "locale": key.locale},
        )
        return entry

    def set_binary(self, name: str, value: bytes, agent_scope: int | None = None) -> ConfigEntry:
        """Store arbitrary bytes (base64-encoded); read back with config_binary."""
        encoded = base64.encodebytes(value).decode("ascii")
        return self.set(name, encoded, agent_scope)

    def delete(self, name: str, agent_scope: int | None = None) -> bool:
        """Remove the exact-scope row.  Returns False if there was none."""
        key = self._key(name, agent_scope)
        try:
            with self.session.begin_nested():
                model = self._find(key)
                if model is not None:
                    self.session.delete(model)
                    self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "config_delete_failed",
                extra={"config_name": name, "agent_scope": key.agent_scope, "error": str(exc)},
            )
            raise ConfigStoreError(name, "deleting", str(exc)) from exc

        self.context.cache.put(key, None)
        if model is None:
            return False
        logger.info(
            "config_deleted",
            extra={"config_name": name, "agent_scope": key.agent_scope, "locale": key.locale},
        )
        return True

    def delete_bool(self, name: str, agent_scope: int | None = None) -> None:
        """
        Turn a boolean key off at this scope.

        Deletes the exact-scope row if there is one; otherwise, for an agent
        scope, stores "0" so the agent no longer inherits a global "on".
        """
        if self.delete(name, agent_scope):
            return
        if agent_scope:
            self.set(name, "0", agent_scope)

    def touch(self, name: str, agent_scope: int | None = None) -> None:
        """
        Turn a boolean key on at this scope unless it already is.

        If the agent has an explicit "0" override while a global entry
        exists, the override is deleted so the global value applies;
        otherwise the key is set to "".
        """
        if self.resolver.resolve_bool(name, agent_scope):
            return
        if (
            agent_scope
            and self.resolver.exists(name)
            and self.resolver.config(name, agent_scope) == "0"
        ):
            self.delete(name, agent_scope)
        else:
            self.set(name, "", agent_scope)


def import_config_dir(mutator: ConfigMutator, catalog: ConfigCatalog, directory: Path | str) -> list[str]:
    """
    Import every catalog item that has a same-named file in ``directory``.

    Binary and image items are stored with set_binary, others with set.
    Returns the imported keys.
    """
    directory = Path(directory)
    imported: list[str] = []
    for item in catalog:
        path = directory / item.key
        if not path.is_file():
            logger.debug("config_import_skipped", extra={"config_name": item.key})
            continue
        if item.is_binary:
            mutator.set_binary(item.key, path.read_bytes())
        else:
            mutator.set(item.key, path.read_text())
        imported.append(item.key)
    logger.info("config_dir_imported", extra={"directory": str(directory), "count": len(imported)})
    return imported
