"""
Approval transition engine (``approval_kernel.domain.transitions``).

Responsibility
--------------
Computes legal next states and validates attempted transitions, including
the status an approver's decision moves the approval to.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over value objects.  ZERO I/O.
The store calls ``next_status`` while it holds the approval row lock, so
validation always happens before any write (check-then-act).

Invariants enforced
-------------------
* ``APPROVAL_TRANSITIONS`` is the only source of legal status changes.
  Terminal statuses (approved, declined) have no outgoing edges.
* The only edge back to ``submitted`` is a resubmission from
  ``revision_requested``.
* A single approver's decision sets the aggregate status; there is no
  quorum.  Decisions are accepted while the approval is ``submitted`` or
  ``revision_requested``, so the most recently recorded decision wins
  until one of them reaches a terminal status.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

from approval_kernel.domain.approval import (
    COMMENT_REQUIRED_DECISIONS,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalStatus,
    ResponseDecision,
)
from approval_kernel.exceptions import (
    ApprovalAlreadyResolvedError,
    CommentRequiredError,
    InvalidTransitionError,
)


class ApprovalEvent(str, Enum):
    """Events that drive the approval state machine."""

    SUBMIT = "submit"
    APPROVE = "approve"
    DECLINE = "decline"
    REQUEST_REVISION = "request_revision"


APPROVAL_TRANSITIONS: Mapping[ApprovalStatus, Mapping[ApprovalEvent, ApprovalStatus]] = (
    MappingProxyType({
        ApprovalStatus.DRAFT: MappingProxyType({
            ApprovalEvent.SUBMIT: ApprovalStatus.SUBMITTED,
        }),
        ApprovalStatus.SUBMITTED: MappingProxyType({
            ApprovalEvent.APPROVE: ApprovalStatus.APPROVED,
            ApprovalEvent.DECLINE: ApprovalStatus.DECLINED,
            ApprovalEvent.REQUEST_REVISION: ApprovalStatus.REVISION_REQUESTED,
        }),
        ApprovalStatus.REVISION_REQUESTED: MappingProxyType({
            ApprovalEvent.SUBMIT: ApprovalStatus.SUBMITTED,
            ApprovalEvent.APPROVE: ApprovalStatus.APPROVED,
            ApprovalEvent.DECLINE: ApprovalStatus.DECLINED,
            ApprovalEvent.REQUEST_REVISION: ApprovalStatus.REVISION_REQUESTED,
        }),
        ApprovalStatus.APPROVED: MappingProxyType({}),
        ApprovalStatus.DECLINED: MappingProxyType({}),
    })
)

DECISION_EVENTS: Mapping[ResponseDecision, ApprovalEvent] = MappingProxyType({
    ResponseDecision.APPROVED: ApprovalEvent.APPROVE,
    ResponseDecision.DECLINED: ApprovalEvent.DECLINE,
    ResponseDecision.REVISION_REQUESTED: ApprovalEvent.REQUEST_REVISION,
})


class TransitionEngine:
    """Validates approval events against ``APPROVAL_TRANSITIONS``.

    Contract:
        Stateless.  Every method is a pure function of its arguments.

    Guarantees:
        - ``next_status`` never returns a status outside the table.
        - An illegal event raises before the caller has touched any state.
    """

    def allowed_events(self, status: ApprovalStatus) -> frozenset[ApprovalEvent]:
        return frozenset(APPROVAL_TRANSITIONS[status])

    def can_apply(self, status: ApprovalStatus, event: ApprovalEvent) -> bool:
        return event in APPROVAL_TRANSITIONS[status]

    def is_terminal(self, status: ApprovalStatus) -> bool:
        return status in TERMINAL_APPROVAL_STATUSES

    def next_status(
        self,
        status: ApprovalStatus,
        event: ApprovalEvent,
        approval_id: str | None = None,
    ) -> ApprovalStatus:
        """Return the status reached by applying ``event`` to ``status``.

        Raises:
            ApprovalAlreadyResolvedError: status is terminal.
            InvalidTransitionError: event has no edge from status.
        """
        edges = APPROVAL_TRANSITIONS[status]
        if event not in edges:
            if status in TERMINAL_APPROVAL_STATUSES:
                raise ApprovalAlreadyResolvedError(
                    approval_id or "?", status.value, event.value,
                )
            raise InvalidTransitionError(status.value, event.value, approval_id)
        return edges[event]

    def event_for_decision(self, decision: ResponseDecision) -> ApprovalEvent:
        return DECISION_EVENTS[decision]

    def requires_comment(self, decision: ResponseDecision) -> bool:
        return decision in COMMENT_REQUIRED_DECISIONS

    def validate_response(
        self, decision: ResponseDecision, comment: str | None,
    ) -> str | None:
        """Normalize a response comment, enforcing the required-comment rule.

        Returns the stripped comment, or None when blank and not required.
        """
        normalized = comment.strip() if comment else ""
        if not normalized:
            if self.requires_comment(decision):
                raise CommentRequiredError(decision.value)
            return None
        return normalized

    def accepts_decisions(self, status: ApprovalStatus) -> bool:
        """True when every approver decision has an edge out of ``status``."""
        edges = APPROVAL_TRANSITIONS[status]
        return all(event in edges for event in DECISION_EVENTS.values())

    def outcome_of(self, decision: ResponseDecision) -> ApprovalStatus:
        """Status a decision moves an open approval to."""
        return APPROVAL_TRANSITIONS[ApprovalStatus.SUBMITTED][
            self.event_for_decision(decision)
        ]
