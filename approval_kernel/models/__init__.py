"""ORM models for the approval kernel."""

from approval_kernel.models.approval import (
    ApprovalCommentModel,
    ApprovalModel,
    ApproverModel,
    ApproverResponseModel,
)

__all__ = [
    "ApprovalModel",
    "ApproverModel",
    "ApproverResponseModel",
    "ApprovalCommentModel",
]
