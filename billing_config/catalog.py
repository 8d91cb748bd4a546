"""
Config-item catalog -- declared keys and their validation rules.

Responsibility:
    Loads ``items/*.yaml`` into ConfigItem records and validates values
    against each item's rules.  Rules are tagged variants interpreted by
    ``validate_value``; configuration data never carries executable code.

Rule kinds:
    required          value must be non-blank
    pattern           value must match ``regex`` (full match)
    numeric           value must be a number, optionally ``integer``,
                      within ``min``/``max``
    enum              value must be one of ``values``
    external_lookup   value must be accepted by the named lookup
                      (``lookup: country`` is built in; callers supply
                      the others)

Each rule applies to every line of a multi-line value.  A blank value
passes every rule except ``required``.

Failure modes:
    - ValueError for a malformed catalog file or an unknown rule kind.
    - ConfigKeyUnknownError from ``ConfigCatalog.get`` for undeclared keys.
    - ConfigValueError from ``validate_value``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from billing_kernel.domain.country import CountryRegistry
from billing_kernel.exceptions import ConfigKeyUnknownError, ConfigValueError

_DEFAULT_ITEMS_DIR = Path(__file__).parent / "items"

RULE_KINDS = ("required", "pattern", "numeric", "enum", "external_lookup")

ITEM_TYPES = ("text", "textarea", "checkbox", "select", "binary", "image")

Lookup = Callable[[str], bool]

BUILTIN_LOOKUPS: dict[str, Lookup] = {
    "country": CountryRegistry.is_valid,
}


@dataclass(frozen=True)
class ValidationRule:
    """One tagged validation rule; ``params`` holds the kind's arguments."""

    kind: str
    params: tuple[tuple[str, Any], ...] = ()
    message: str | None = None

    def param(self, name: str, default: Any = None) -> Any:
        return dict(self.params).get(name, default)


@dataclass(frozen=True)
class ConfigItem:
    key: str
    section: str
    description: str
    type: str = "text"
    per_agent: bool = False
    per_locale: bool = False
    rules: tuple[ValidationRule, ...] = field(default_factory=tuple)

    @property
    def is_binary(self) -> bool:
        return self.type in ("binary", "image")


def parse_rule(data: dict[str, Any]) -> ValidationRule:
    data = dict(data)
    kind = data.pop("kind", None)
    if kind not in RULE_KINDS:
        raise ValueError(f"Unknown validation rule kind: {kind!r}")
    message = data.pop("message", None)
    if kind == "pattern":
        re.compile(data["regex"])
    elif kind == "enum" and not data.get("values"):
        raise ValueError("enum rule needs a non-empty 'values' list")
    elif kind == "external_lookup" and not data.get("lookup"):
        raise ValueError("external_lookup rule needs a 'lookup' name")
    if "values" in data:
        data["values"] = tuple(str(v) for v in data["values"])
    return ValidationRule(kind=kind, params=tuple(sorted(data.items())), message=message)


def parse_item(data: dict[str, Any]) -> ConfigItem:
    item_type = data.get("type", "text")
    if item_type not in ITEM_TYPES:
        raise ValueError(f"Config item {data.get('key')!r}: unknown type {item_type!r}")
    return ConfigItem(
        key=data["key"],
        section=data.get("section", ""),
        description=data.get("description", ""),
        type=item_type,
        per_agent=bool(data.get("per_agent", False)),
        per_locale=bool(data.get("per_locale", False)),
        rules=tuple(parse_rule(rule) for rule in data.get("rules") or ()),
    )


class ConfigCatalog:
    """The declared configuration items, by key."""

    def __init__(self, items: list[ConfigItem] | tuple[ConfigItem, ...] = ()):
        self._items: dict[str, ConfigItem] = {}
        for item in items:
            if item.key in self._items:
                raise ValueError(f"Duplicate config item: {item.key}")
            self._items[item.key] = item

    @classmethod
    def load(cls, directory: Path | str | None = None) -> ConfigCatalog:
        """Load every ``*.yaml`` file in ``directory`` (the packaged items by default)."""
        directory = Path(directory) if directory is not None else _DEFAULT_ITEMS_DIR
        items: list[ConfigItem] = []
        for path in sorted(directory.glob("*.yaml")):
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            for entry in data.get("items") or ():
                items.append(parse_item(entry))
        return cls(items)

    def get(self, key: str) -> ConfigItem:
        try:
            return self._items[key]
        except KeyError:
            raise ConfigKeyUnknownError(key) from None

    def find(self, key: str) -> ConfigItem | None:
        return self._items.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __iter__(self):
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def sections(self) -> list[str]:
        return sorted({item.section for item in self._items.values()})


def _check_line(item: ConfigItem, rule: ValidationRule, line: str, lookups: Mapping[str, Lookup]) -> str | None:
    """Return a failure reason for one line, or None."""
    if rule.kind == "pattern":
        if not re.fullmatch(rule.param("regex"), line):
            return f"does not match {rule.param('regex')}"
    elif rule.kind == "numeric":
        try:
            number = Decimal(line.strip())
        except InvalidOperation:
            return "must be a number"
        if rule.param("integer") and number != number.to_integral_value():
            return "must be a whole number"
        low, high = rule.param("min"), rule.param("max")
        if low is not None and number < Decimal(str(low)):
            return f"must be at least {low}"
        if high is not None and number > Decimal(str(high)):
            return f"must be at most {high}"
    elif rule.kind == "enum":
        if line not in rule.param("values"):
            return f"must be one of {', '.join(rule.param('values'))}"
    elif rule.kind == "external_lookup":
        name = rule.param("lookup")
        lookup = lookups.get(name) or BUILTIN_LOOKUPS.get(name)
        if lookup is None:
            return f"no lookup named {name}"
        if not lookup(line):
            return f"unknown {name}: {line}"
    return None


def validate_value(
    item: ConfigItem,
    value: str,
    lookups: Mapping[str, Lookup] | None = None,
) -> None:
    """
    Check ``value`` against ``item``'s rules.

    Raises:
        ConfigValueError: naming the key and the first failing rule.
    """
    lookups = lookups or {}
    lines = [line for line in value.split("\n") if line.strip()]
    for rule in item.rules:
        if rule.kind == "required":
            if not lines:
                raise ConfigValueError(item.key, rule.message or "a value is required")
            continue
        for line in lines:
            reason = _check_line(item, rule, line, lookups)
            if reason is not None:
                raise ConfigValueError(item.key, rule.message or reason)
