"""
Pure domain layer.

Value objects, the transition table and the clock abstraction, with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Gateways or other I/O

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.approval import (
    COMMENT_REQUIRED_DECISIONS,
    TERMINAL_APPROVAL_STATUSES,
    UNKNOWN_USER_NAME,
    Approval,
    ApprovalChange,
    ApprovalComment,
    ApprovalDetails,
    ApprovalFilters,
    ApprovalRecord,
    ApprovalStatus,
    ApproverAssignment,
    ApproverResponse,
    ApproverView,
    ChangeKind,
    CommentView,
    EntityPreview,
    EntityType,
    ParticipantRole,
    ProjectRole,
    ResponseDecision,
    UserProfile,
    parse_entity_type,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.transitions import (
    APPROVAL_TRANSITIONS,
    ApprovalEvent,
    TransitionEngine,
)

__all__ = [
    "APPROVAL_TRANSITIONS",
    "COMMENT_REQUIRED_DECISIONS",
    "TERMINAL_APPROVAL_STATUSES",
    "UNKNOWN_USER_NAME",
    "Approval",
    "ApprovalChange",
    "ApprovalComment",
    "ApprovalDetails",
    "ApprovalEvent",
    "ApprovalFilters",
    "ApprovalRecord",
    "ApprovalStatus",
    "ApproverAssignment",
    "ApproverResponse",
    "ApproverView",
    "ChangeKind",
    "Clock",
    "CommentView",
    "DeterministicClock",
    "EntityPreview",
    "EntityType",
    "ParticipantRole",
    "ProjectRole",
    "ResponseDecision",
    "SystemClock",
    "TransitionEngine",
    "UserProfile",
    "parse_entity_type",
]
