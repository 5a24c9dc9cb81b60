"""Services for the approval kernel (write side and orchestration)."""

from approval_kernel.services.approval_service import (
    ApprovalChangeListener,
    ApprovalService,
)
from approval_kernel.services.approval_store import ApprovalStore, WriteResult
from approval_kernel.services.permission_gate import ApprovalAction, PermissionGate
from approval_kernel.services.retry import retry_read

__all__ = [
    "ApprovalAction",
    "ApprovalChangeListener",
    "ApprovalService",
    "ApprovalStore",
    "PermissionGate",
    "WriteResult",
    "retry_read",
]
