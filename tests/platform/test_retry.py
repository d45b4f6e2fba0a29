from unittest.mock import MagicMock

import pytest

from sitecraft.platform.utils.retry import RetryPolicy, run_with_retry


class Transient(Exception):
    pass


def test_delay_grows_exponentially_and_is_capped():
    policy = RetryPolicy(max_attempts=5, delay_seconds=1.0, factor=2.0, max_delay_seconds=3.0)

    assert [policy.delay_for(attempt) for attempt in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]


def test_returns_first_success_after_retries():
    func = MagicMock(side_effect=[Transient("a"), Transient("b"), "done"])
    sleeps = []

    result = run_with_retry(
        func,
        RetryPolicy(max_attempts=3, delay_seconds=0.5),
        retry_on=(Transient,),
        sleep=sleeps.append,
    )

    assert result == "done"
    assert func.call_count == 3
    assert sleeps == [0.5, 1.0]


def test_reraises_last_error_when_attempts_run_out():
    func = MagicMock(side_effect=Transient("still down"))
    on_retry = MagicMock()

    with pytest.raises(Transient, match="still down"):
        run_with_retry(
            func,
            RetryPolicy(max_attempts=3, delay_seconds=0.0),
            retry_on=(Transient,),
            sleep=lambda seconds: None,
            on_retry=on_retry,
        )

    assert func.call_count == 3
    assert on_retry.call_count == 2


def test_other_errors_are_not_retried():
    func = MagicMock(side_effect=KeyError("boom"))

    with pytest.raises(KeyError):
        run_with_retry(func, RetryPolicy(max_attempts=5), retry_on=(Transient,), sleep=lambda seconds: None)

    func.assert_called_once()
