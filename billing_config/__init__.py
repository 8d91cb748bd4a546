"""
billing_config -- scoped business configuration and runtime settings.

Responsibility:
    Resolves configuration values across agent and locale scopes with a
    per-connection cache (ConfigResolver, ConfigCache, ConfigContext),
    writes them back coherently (ConfigMutator), declares the keys this
    core consumes with their validation rules (ConfigCatalog), and loads
    process settings from YAML (load_settings).

Architecture position:
    Configuration -- sits above ``billing_kernel`` and below
    ``billing_batch``.  The kernel MUST NEVER import from
    ``billing_config``; bridges in this package translate configuration
    into kernel-compatible inputs.
"""

from billing_config.bridges import (
    ProviderSet,
    build_agent_prefix_lookup,
    build_location_policy,
    build_providers,
)
from billing_config.cache import MISS, ConfigCache
from billing_config.catalog import ConfigCatalog, ConfigItem, ValidationRule, validate_value
from billing_config.context import ConfigContext
from billing_config.loader import load_settings
from billing_config.mutator import ConfigMutator, import_config_dir
from billing_config.resolver import ConfigResolver
from billing_config.schema import RuntimeSettings
from billing_config.scope import ConfigEntry, ScopeKey

__all__ = [
    "MISS",
    "ConfigCache",
    "ConfigCatalog",
    "ConfigContext",
    "ConfigEntry",
    "ConfigItem",
    "ConfigMutator",
    "ConfigResolver",
    "ProviderSet",
    "RuntimeSettings",
    "ScopeKey",
    "ValidationRule",
    "build_agent_prefix_lookup",
    "build_location_policy",
    "build_providers",
    "import_config_dir",
    "load_settings",
    "validate_value",
]
