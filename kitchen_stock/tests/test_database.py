"""Tests for run_in_session, the session and error handling shared by all services."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from kitchen_stock.services.database import run_in_session
from kitchen_stock.services.exceptions import (
    ConcurrencyConflict,
    DatabaseError,
    InsufficientStock,
    ValidationError,
)


def _raising(error):
    def _impl(sess):
        raise error

    return _impl


class TestRunInSession:
    def test_caller_session_is_used(self, test_db):
        session = test_db()
        assert run_in_session(lambda sess: sess, session, "Failed") is session

    def test_own_session_when_none_given(self, test_db):
        assert run_in_session(lambda sess: sess is not None, None, "Failed") is True

    def test_service_errors_pass_through(self, test_db):
        error = InsufficientStock(1, 2, 1, 7)
        with pytest.raises(InsufficientStock) as exc_info:
            run_in_session(_raising(error), None, "Failed to consume")
        assert exc_info.value is error

    def test_stale_write_with_key_is_conflict(self, test_db):
        with pytest.raises(ConcurrencyConflict) as exc_info:
            run_in_session(
                _raising(StaleDataError("version mismatch")),
                None,
                "Failed to consume",
                conflict_key=(1, 7),
            )
        assert exc_info.value.raw_material_id == 7

    def test_stale_write_without_key_is_database_error(self, test_db):
        with pytest.raises(DatabaseError, match="Failed to consume"):
            run_in_session(_raising(StaleDataError("version mismatch")), None, "Failed to consume")

    def test_integrity_error_as_validation(self, test_db):
        error = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        with pytest.raises(ValidationError, match="UNIQUE constraint failed"):
            run_in_session(
                _raising(error), None, "Failed to create kitchen", integrity_as_validation=True
            )

    def test_integrity_error_is_database_error_by_default(self, test_db):
        error = IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))
        with pytest.raises(DatabaseError) as exc_info:
            run_in_session(_raising(error), None, "Failed to record stock-in")
        assert exc_info.value.original_error is error

    def test_other_sqlalchemy_errors_are_database_errors(self, test_db):
        error = OperationalError("SELECT", {}, Exception("database is locked"))
        with pytest.raises(DatabaseError, match="Failed to load"):
            run_in_session(_raising(error), None, "Failed to load")
