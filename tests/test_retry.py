"""Tests for the polling and retry helpers."""

from __future__ import annotations

from backupfetch.retry import retry_call, wait_until


class TestWaitUntil:
    """Tests for wait_until()."""

    def test_immediate_success_does_not_sleep(self) -> None:
        sleeps: list[float] = []
        assert wait_until(lambda: True, attempts=5, delay=1.0, sleep=sleeps.append)
        assert sleeps == []

    def test_succeeds_on_later_attempt(self) -> None:
        answers = iter([False, False, True])
        sleeps: list[float] = []
        assert wait_until(lambda: next(answers), attempts=5, delay=0.5, sleep=sleeps.append)
        assert sleeps == [0.5, 0.5]

    def test_gives_up_after_budget(self) -> None:
        checks = []
        sleeps: list[float] = []

        def predicate() -> bool:
            checks.append(1)
            return False

        assert not wait_until(predicate, attempts=3, delay=1.0, sleep=sleeps.append)
        assert len(checks) == 3
        assert len(sleeps) == 2

    def test_zero_attempts_still_checks_once(self) -> None:
        assert wait_until(lambda: True, attempts=0, delay=1.0, sleep=lambda _s: None)


class TestRetryCall:
    """Tests for retry_call()."""

    def test_backoff_grows(self) -> None:
        results = iter([1, 2, 3, 4])
        sleeps: list[float] = []
        result, made = retry_call(
            lambda: next(results), lambda r: r >= 3,
            attempts=5, delay=0.1, backoff=2.0, sleep=sleeps.append,
        )
        assert result == 3
        assert made == 3
        assert sleeps == [0.1, 0.2]

    def test_returns_last_result_when_exhausted(self) -> None:
        result, made = retry_call(
            lambda: "still there", lambda r: False,
            attempts=2, delay=0, sleep=lambda _s: None,
        )
        assert result == "still there"
        assert made == 2
