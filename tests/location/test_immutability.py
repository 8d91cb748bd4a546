"""
Flush-time immutability of customer location addresses.

LocationReconciler.replace() refuses address edits before anything is
written; these tests cover the ORM listener that catches the same edit made
by direct attribute assignment.
"""

import pytest

from billing_kernel.db.immutability import (
    PROTECTED_LOCATION_FIELDS,
    allow_location_edit,
    changed_protected_field,
    location_edit_allowed,
)
from billing_kernel.exceptions import ImmutabilityViolationError, LocationImmutableError


@pytest.fixture
def stored(reconciler, make_location):
    return reconciler.insert(make_location())


class TestFlushBackstop:
    @pytest.mark.parametrize(
        "field, value",
        [
            ("address1", "456 Oak Ave"),
            ("city", "Chatham"),
            ("zip", "62629"),
            ("country", "CA"),
        ],
    )
    def test_direct_edit_is_refused(self, session, stored, field, value):
        setattr(stored, field, value)

        with pytest.raises(LocationImmutableError) as exc_info:
            session.flush()

        assert exc_info.value.field == field
        session.rollback()

    def test_error_is_an_immutability_violation(self, session, stored):
        stored.address1 = "456 Oak Ave"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_descriptive_fields_stay_editable(self, session, stored):
        stored.location_name = "Loading dock"
        stored.geocode = "G-12"
        stored.county = "Sangamon"

        session.flush()

        assert stored.location_name == "Loading dock"

    def test_blank_to_none_is_not_a_change(self, session, stored):
        stored.address2 = ""
        session.flush()

    def test_prospect_location_is_editable(self, session, reconciler, make_location, prospect):
        location = reconciler.insert(make_location(customer_id=None, prospect_id=prospect.id))

        location.address1 = "456 Oak Ave"
        session.flush()

        assert location.address1 == "456 Oak Ave"

    def test_allow_location_edit_permits_the_flush(self, session, stored):
        stored.address1 = "456 Oak Ave"

        with allow_location_edit(session):
            session.flush()

        assert stored.address1 == "456 Oak Ave"

    def test_blocked_edit_is_logged(self, session, stored, captured_logs):
        stored.zip = "62629"

        with pytest.raises(LocationImmutableError):
            session.flush()
        session.rollback()

        records = [r for r in captured_logs() if r["message"] == "location_immutability_blocked"]
        assert records[0]["field"] == "zip"


class TestAllowLocationEdit:
    def test_flag_is_scoped_to_the_block(self, session):
        assert location_edit_allowed(session) is False
        with allow_location_edit(session):
            assert location_edit_allowed(session) is True
        assert location_edit_allowed(session) is False

    def test_nested_blocks_restore_outer_state(self, session):
        with allow_location_edit(session):
            with allow_location_edit(session):
                pass
            assert location_edit_allowed(session) is True

    def test_flag_is_cleared_on_error(self, session):
        with pytest.raises(RuntimeError):
            with allow_location_edit(session):
                raise RuntimeError("boom")
        assert location_edit_allowed(session) is False


def test_changed_protected_field_reports_first_change(stored):
    assert changed_protected_field(stored) is None

    stored.state = "WA"
    stored.address1 = "400 Pine St"

    assert changed_protected_field(stored) == "address1"


def test_protected_fields_are_the_physical_address():
    assert set(PROTECTED_LOCATION_FIELDS) == {"address1", "address2", "city", "state", "zip", "country"}
