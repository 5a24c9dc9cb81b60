"""Tests for the bounded read retry helper."""

import pytest

from approval_kernel.exceptions import (
    GatewayError,
    PermissionDeniedError,
    StorageError,
)
from approval_kernel.services.retry import is_gateway_error, retry_read


class Flaky:
    """Callable that fails ``failures`` times before returning ``value``."""

    def __init__(self, failures, exc, value="ok"):
        self.failures = failures
        self.exc = exc
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return self.value


class TestRetryRead:

    def test_success_first_try(self):
        func = Flaky(0, None)
        assert retry_read("op", func) == "ok"
        assert func.calls == 1

    def test_transient_storage_error_retried_once(self, captured_logs):
        func = Flaky(1, StorageError("read", "connection reset", transient=True))
        assert retry_read("load", func) == "ok"
        assert func.calls == 2
        retries = [r for r in captured_logs() if r["message"] == "read_retry"]
        assert len(retries) == 1
        assert retries[0]["operation"] == "load"

    def test_gives_up_after_attempts(self):
        exc = StorageError("read", "timeout", transient=True)
        func = Flaky(5, exc)
        with pytest.raises(StorageError):
            retry_read("load", func, attempts=1)
        assert func.calls == 2

    def test_permanent_storage_error_not_retried(self):
        func = Flaky(1, StorageError("read", "integrity", transient=False))
        with pytest.raises(StorageError):
            retry_read("load", func)
        assert func.calls == 1

    def test_deterministic_errors_not_retried(self):
        func = Flaky(1, PermissionDeniedError("view", "u", "a", "nope"))
        with pytest.raises(PermissionDeniedError):
            retry_read("load", func)
        assert func.calls == 1

    def test_zero_attempts_means_single_call(self):
        func = Flaky(1, StorageError("read", "timeout", transient=True))
        with pytest.raises(StorageError):
            retry_read("load", func, attempts=0)
        assert func.calls == 1

    def test_custom_predicate(self):
        func = Flaky(1, GatewayError("directory", "503"))
        assert retry_read("resolve", func, is_retryable=is_gateway_error) == "ok"
        assert func.calls == 2
