"""
Bounded retry for idempotent reads.

Responsibility:
    Runs a read callable and repeats it a bounded number of times when it
    fails with a transient error.  Writes never go through here: a retried
    comment insert would duplicate the comment.

Architecture position:
    Kernel > Services -- small helper used by ApprovalService.

Invariants enforced:
    - Only failures matched by ``is_retryable`` are repeated.  Validation,
      permission and transition errors always surface on the first attempt.
    - At most ``attempts`` extra calls are made (default: one retry).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from approval_kernel.exceptions import GatewayError, StorageError
from approval_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")


def is_transient_storage_error(exc: BaseException) -> bool:
    return isinstance(exc, StorageError) and exc.transient


def is_gateway_error(exc: BaseException) -> bool:
    return isinstance(exc, GatewayError)


def retry_read(
    operation: str,
    func: Callable[[], T],
    attempts: int = 1,
    is_retryable: Callable[[BaseException], bool] = is_transient_storage_error,
) -> T:
    """Call ``func``; on a retryable failure call it again up to ``attempts`` times.

    The last failure is re-raised unchanged once the attempts run out.
    """
    remaining = max(attempts, 0)
    while True:
        try:
            return func()
        except Exception as exc:
            if remaining <= 0 or not is_retryable(exc):
                raise
            remaining -= 1
            logger.warning(
                "read_retry",
                extra={
                    "operation": operation,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                    "retries_left": remaining,
                },
            )
