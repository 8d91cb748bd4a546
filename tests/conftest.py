"""
Pytest fixtures for the billing core test suite.

Provides:
- In-memory SQLite sessions with working SAVEPOINTs
- Seeded agents, owners and tax geography
- Config context / resolver / mutator wiring
- In-memory fakes for the external providers and exporters
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import billing_batch.models  # noqa: F401  (registers batch tables)
from billing_batch.orchestrator import BatchOrchestrator
from billing_config.bridges import ProviderSet
from billing_config.cache import ConfigCache
from billing_config.catalog import ConfigCatalog
from billing_config.context import ConfigContext
from billing_config.mutator import ConfigMutator
from billing_config.resolver import ConfigResolver
from billing_kernel.db.base import Base
from billing_kernel.db.engine import enable_sqlite_savepoints
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.domain.policy import LocationPolicy
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_kernel.models import (
    Agent,
    Customer,
    Location,
    Package,
    PackageDefinition,
    Prospect,
    TaxRegion,
)
from billing_kernel.providers.base import StandardizedAddress
from billing_kernel.services.export_registry import ExporterRegistry
from billing_kernel.services.location_service import LocationReconciler
from tests.fakes import (
    FakeCensus,
    FakeDistricts,
    FakeGeocoder,
    FakeStandardizer,
    RecordingExporter,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, reconciler):
            reconciler.insert(location)
            logs = captured_logs()
            assert any(r["message"] == "location_inserted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """One in-memory SQLite database per test, shared by all its sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Session:
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock():
    return DeterministicClock(
        fixed_time=datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc),
    )


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def agents(session):
    acme = Agent(agent_num=1, name="Acme Telecom")
    beacon = Agent(agent_num=2, name="Beacon Networks")
    session.add_all([acme, beacon])
    session.flush()
    return acme, beacon


@pytest.fixture
def customer(session, agents):
    customer = Customer(agent_num=1, name="Springfield Hardware")
    session.add(customer)
    session.flush()
    return customer


@pytest.fixture
def other_customer(session, agents):
    customer = Customer(agent_num=2, name="Capitol Diner")
    session.add(customer)
    session.flush()
    return customer


@pytest.fixture
def prospect(session, agents):
    prospect = Prospect(agent_num=1, name="Lincoln Dental")
    session.add(prospect)
    session.flush()
    return prospect


@pytest.fixture
def geography(session):
    """Tax regions: IL and WA by county, Canada as a whole-country catch-all."""
    regions = [
        TaxRegion(country="US", state="IL"),
        TaxRegion(country="US", state="IL", county="Sangamon"),
        TaxRegion(country="US", state="WA"),
        TaxRegion(country="US", state="WA", county="King", city="Seattle", district="1726"),
        TaxRegion(country="CA"),
    ]
    session.add_all(regions)
    session.flush()
    return regions


@pytest.fixture
def monthly_plan(session):
    definition = PackageDefinition(name="Business Broadband", freq="1")
    session.add(definition)
    session.flush()
    return definition


@pytest.fixture
def setup_fee(session):
    definition = PackageDefinition(name="Installation", freq="0")
    session.add(definition)
    session.flush()
    return definition


# =============================================================================
# Location helpers
# =============================================================================


def location_values(**overrides) -> dict:
    values = {
        "address1": "123 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip": "62701",
        "country": "US",
    }
    values.update(overrides)
    return values


@pytest.fixture
def make_location(customer, geography):
    """Build a transient location owned by ``customer`` unless told otherwise."""

    def _make(**overrides) -> Location:
        values = location_values(**overrides)
        if "prospect_id" not in values and "customer_id" not in values:
            values["customer_id"] = customer.id
        return Location(**values)

    return _make


@pytest.fixture
def make_package(session, customer, monthly_plan):
    def _make(location, **overrides) -> Package:
        values = {
            "customer_id": customer.id,
            "definition_id": monthly_plan.id,
            "location_id": location.id,
        }
        values.update(overrides)
        package = Package(**values)
        session.add(package)
        session.flush()
        return package

    return _make


# =============================================================================
# Exporters and providers
# =============================================================================


@pytest.fixture
def recorder():
    return RecordingExporter()


@pytest.fixture
def exporters(recorder):
    registry = ExporterRegistry()
    registry.register("recorder", recorder)
    return registry


@pytest.fixture
def queued_districts():
    """A district_enqueuer that records the location ids it is given."""
    queued: list = []
    return queued


@pytest.fixture
def make_reconciler(session, exporters, queued_districts):
    """Build a LocationReconciler; keyword arguments become LocationPolicy fields."""

    def _make(geocoder=None, bulk_import=False, agent_prefix=None, **policy_fields):
        policy_fields.setdefault("exporters", ("recorder",))
        return LocationReconciler(
            session,
            policy=LocationPolicy(**policy_fields),
            exporters=exporters,
            geocoder=geocoder,
            bulk_import=bulk_import,
            district_enqueuer=queued_districts.append,
            agent_prefix=agent_prefix,
        )

    return _make


@pytest.fixture
def reconciler(make_reconciler):
    return make_reconciler()


# =============================================================================
# Configuration fixtures
# =============================================================================


@pytest.fixture
def config_context():
    """A connection context with caching switched on."""
    return ConfigContext(cache=ConfigCache(enabled=True))


@pytest.fixture
def resolver(session, config_context):
    return ConfigResolver(session, config_context)


@pytest.fixture
def mutator(session, resolver):
    """Mutator without a catalog: any key and value is accepted."""
    return ConfigMutator(session, resolver)


@pytest.fixture
def catalog():
    return ConfigCatalog.load()


@pytest.fixture
def checked_mutator(session, resolver, catalog):
    """Mutator that validates against the packaged catalog."""
    return ConfigMutator(session, resolver, catalog)


# =============================================================================
# Background enrichment fixtures
# =============================================================================


STANDARDIZED_MAIN_ST = StandardizedAddress(
    address1="123 MAIN ST",
    city="SPRINGFIELD",
    county="Sangamon",
    state="IL",
    zip="62701-1234",
)


@pytest.fixture
def providers():
    return ProviderSet(
        geocoder=FakeGeocoder(),
        standardizer=FakeStandardizer({"123 Main St": STANDARDIZED_MAIN_ST}),
        census=FakeCensus(),
        tax_district=FakeDistricts(),
    )


@pytest.fixture
def sleeps():
    """A sleep function's record of the pauses it was asked for."""
    return []


@pytest.fixture
def make_orchestrator(session, providers, exporters, clock, sleeps):
    """Build a BatchOrchestrator; keyword arguments become LocationPolicy fields."""

    def _make(settings=None, providers=providers, **policy_fields):
        policy_fields.setdefault("exporters", ("recorder",))
        return BatchOrchestrator(
            session,
            policy=LocationPolicy(**policy_fields),
            providers=providers,
            settings=settings,
            exporters=exporters,
            clock=clock,
            sleep=sleeps.append,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator(tax_district_method="wa_sales")
