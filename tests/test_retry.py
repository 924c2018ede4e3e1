"""Tests for the deadlock retry helper."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import DBAPIError

from oee_engine.repository.retry import run_with_deadlock_retry


def _db_error(*args) -> DBAPIError:
    return DBAPIError("INSERT INTO OEETimeSeries ...", {}, Exception(*args))


class TestRunWithDeadlockRetry:

    def test_returns_result(self):
        assert run_with_deadlock_retry(lambda: 42) == 42

    def test_retries_mysql_deadlock(self):
        sleep = MagicMock()
        fn = MagicMock(side_effect=[_db_error(1213, "Deadlock found"), "ok"])

        assert run_with_deadlock_retry(fn, max_retries=3, sleep=sleep) == "ok"
        assert fn.call_count == 2
        delay = sleep.call_args[0][0]
        assert 1.0 <= delay <= 1.1

    def test_retries_sqlstate_deadlock(self):
        sleep = MagicMock()
        fn = MagicMock(side_effect=[_db_error("40001", "[40001] deadlock victim"), "ok"])

        assert run_with_deadlock_retry(fn, sleep=sleep) == "ok"

    def test_gives_up_after_max_retries(self):
        sleep = MagicMock()
        fn = MagicMock(side_effect=_db_error(1213, "Deadlock found"))

        with pytest.raises(DBAPIError):
            run_with_deadlock_retry(fn, max_retries=3, sleep=sleep)
        assert fn.call_count == 3
        assert sleep.call_count == 2

    def test_final_deadlock_is_raised_unchanged(self):
        sleep = MagicMock()
        errors = [_db_error(1213, "Deadlock found"), _db_error(1213, "Deadlock found again")]
        fn = MagicMock(side_effect=errors)

        with pytest.raises(DBAPIError) as exc:
            run_with_deadlock_retry(fn, max_retries=2, sleep=sleep)
        assert exc.value is errors[-1]
        assert sleep.call_count == 1

    def test_single_attempt_never_sleeps(self):
        sleep = MagicMock()
        fn = MagicMock(side_effect=_db_error(1213, "Deadlock found"))

        with pytest.raises(DBAPIError):
            run_with_deadlock_retry(fn, max_retries=1, sleep=sleep)
        assert fn.call_count == 1
        sleep.assert_not_called()

    def test_other_errors_are_not_retried(self):
        sleep = MagicMock()
        fn = MagicMock(side_effect=_db_error(1062, "Duplicate entry"))

        with pytest.raises(DBAPIError):
            run_with_deadlock_retry(fn, sleep=sleep)
        assert fn.call_count == 1
        sleep.assert_not_called()

    def test_invalid_max_retries(self):
        with pytest.raises(ValueError):
            run_with_deadlock_retry(lambda: 1, max_retries=0)
