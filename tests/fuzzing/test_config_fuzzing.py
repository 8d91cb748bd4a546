"""
Hypothesis-based fuzzing for scoped configuration.

Property-based tests that verify:
1. The most specific stored scope always wins, agent before locale
2. Setting a value twice leaves exactly one row holding it
3. Arbitrary bytes survive set_binary / config_binary, cached or not

Every example runs inside a SAVEPOINT that is rolled back afterwards, so
the function-scoped session starts each example with an empty store.
"""

from contextlib import contextmanager

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite
from sqlalchemy import func, select

from billing_config.cache import ConfigCache
from billing_config.context import ConfigContext
from billing_config.mutator import ConfigMutator
from billing_config.resolver import ConfigResolver
from billing_config.scope import ScopeKey
from billing_kernel.models import ConfigEntryModel

FIXTURE_SETTINGS = settings(
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


@contextmanager
def rolled_back(session):
    savepoint = session.begin_nested()
    try:
        yield session
    finally:
        savepoint.rollback()


# =============================================================================
# Strategies
# =============================================================================

config_names = st.text(alphabet="abcdefghijklmnopqrstuvwxyz_-", min_size=1, max_size=40)

agent_scopes = st.integers(min_value=1, max_value=10_000)

# SQLite stores UTF-8: no lone surrogates
config_values = st.text(
    alphabet=st.characters(exclude_categories=("Cs",)),
    max_size=200,
)

# written straight to the table, bypassing the NUL strip in ConfigMutator.set
stored_values = st.text(
    alphabet=st.characters(exclude_categories=("Cs", "Cc")),
    max_size=200,
)


@composite
def stored_scopes(draw):
    """Which of the four scopes around (agent, fr_CA) hold a value."""
    return {
        "agent_locale": draw(st.booleans()),
        "agent": draw(st.booleans()),
        "locale": draw(st.booleans()),
        "global": draw(st.booleans()),
    }


# =============================================================================
# Resolution
# =============================================================================


class TestScopePrecedenceFuzzing:
    """The first stored candidate in agent-outer, locale-inner order wins."""

    @given(name=config_names, agent=agent_scopes, present=stored_scopes())
    @FIXTURE_SETTINGS
    def test_most_specific_stored_scope_wins(self, session, name, agent, present):
        scopes = {
            "agent_locale": (agent, "fr_CA"),
            "agent": (agent, None),
            "locale": (None, "fr_CA"),
            "global": (None, None),
        }
        with rolled_back(session):
            for label, (agent_scope, locale) in scopes.items():
                if present[label]:
                    session.add(
                        ConfigEntryModel(
                            name=name, agent_scope=agent_scope, locale=locale, value=label,
                        )
                    )
            session.flush()
            resolver = ConfigResolver(session, ConfigContext(locale="fr_CA"))

            expected = next((label for label in scopes if present[label]), None)
            assert resolver.config(name, agent) == expected

            expected_agent_only = next(
                (label for label in ("agent_locale", "agent") if present[label]), None
            )
            assert resolver.config(name, agent, agent_only=True) == expected_agent_only

    @given(name=config_names, agent=agent_scopes, value=stored_values)
    @FIXTURE_SETTINGS
    def test_agent_entry_never_leaks_to_other_agents(self, session, name, agent, value):
        with rolled_back(session):
            session.add(ConfigEntryModel(name=name, agent_scope=agent, value=value))
            session.flush()
            resolver = ConfigResolver(session, ConfigContext())

            assert resolver.resolve(name, agent).value == value
            assert resolver.resolve(name, agent + 1) is None
            assert resolver.resolve(name) is None


# =============================================================================
# Writes
# =============================================================================


class TestSetFuzzing:
    @given(
        name=config_names,
        agent=st.one_of(st.none(), agent_scopes),
        first=config_values,
        value=config_values,
    )
    @FIXTURE_SETTINGS
    def test_set_is_idempotent(self, session, mutator, name, agent, first, value):
        mutator.context.cache.clear()
        with rolled_back(session):
            mutator.set(name, first, agent)
            mutator.set(name, value, agent)
            mutator.set(name, value, agent)

            key = ScopeKey.of(name, agent)
            rows = session.scalar(
                select(func.count()).select_from(ConfigEntryModel).where(
                    ConfigEntryModel.name == key.name,
                    ConfigEntryModel.agent_scope.is_(None)
                    if key.agent_scope is None
                    else ConfigEntryModel.agent_scope == key.agent_scope,
                )
            )
            stored = value.replace("\x00", "")
            assert rows == 1
            assert mutator.resolver.resolve(name, agent, agent_only=True).value == stored

    @given(name=config_names, value=st.binary(max_size=2048))
    @FIXTURE_SETTINGS
    def test_binary_round_trip(self, session, name, value):
        context = ConfigContext(cache=ConfigCache(enabled=True))
        resolver = ConfigResolver(session, context)
        with rolled_back(session):
            ConfigMutator(session, resolver).set_binary(name, value)

            assert resolver.config_binary(name) == value
            context.bind_connection()
            assert resolver.config_binary(name) == value
