# Overview: Pytest coverage for the unit-of-work retry and row-lock helpers.

import pytest
from sqlalchemy.orm.exc import StaleDataError
from lpgops.models import Customer
from lpgops.services.concurrency import lock_row, run_with_retry
from lpgops.validation import ValidationError


class FlakyWrite:
    """Callable that loses `failures` races before succeeding."""

    def __init__(self, failures, exc=StaleDataError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc("customers row changed underneath us")
        return "committed"


class TestRunWithRetry:

    def test_retries_a_version_conflict(self, db_session):
        write = FlakyWrite(failures=2)
        assert run_with_retry(write, description="record SALE", backoff_base=0) == "committed"
        assert write.calls == 3

    def test_gives_up_after_the_last_attempt(self, db_session):
        write = FlakyWrite(failures=5)
        with pytest.raises(StaleDataError):
            run_with_retry(write, attempts=3, backoff_base=0)
        assert write.calls == 3

    def test_domain_errors_are_not_retried(self, db_session):
        write = FlakyWrite(failures=1, exc=ValidationError)
        with pytest.raises(ValidationError):
            run_with_retry(write, backoff_base=0)
        assert write.calls == 1


class TestLockRow:

    def test_existing_and_missing(self, db_session, customer):
        assert lock_row(Customer, customer.id) is customer
        assert lock_row(Customer, 99999) is None
