import pytest

from docsync.retry import call_with_retry


class Flaky:
    def __init__(self, failures: int, error: type[Exception] = ConnectionError):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self, value: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error("try again")
        return value


class TestCallWithRetry:
    def test_recovers_from_transient_errors(self) -> None:
        fn = Flaky(failures=2)
        assert call_with_retry(fn, "ok", attempts=3, max_wait=0) == "ok"
        assert fn.calls == 3

    def test_reraises_last_error(self) -> None:
        fn = Flaky(failures=5, error=TimeoutError)
        with pytest.raises(TimeoutError):
            call_with_retry(fn, "ok", attempts=2, max_wait=0)
        assert fn.calls == 2

    def test_does_not_retry_programming_errors(self) -> None:
        fn = Flaky(failures=1, error=ValueError)
        with pytest.raises(ValueError):
            call_with_retry(fn, "ok", attempts=3, max_wait=0)
        assert fn.calls == 1
