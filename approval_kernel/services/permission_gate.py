"""
PermissionGate -- who may do what to an approval.

Responsibility:
    Answers "can view / can submit / can respond / can comment / can manage
    approvers" for one user against one approval snapshot, and turns a
    negative answer into a typed PermissionDeniedError.

Architecture position:
    Kernel > Services.  Holds no persistent state; every answer is a
    function of the approval record plus one membership lookup through the
    injected MembershipProvider.

Invariants enforced:
    - A user outside the approver set can never respond, regardless of the
      approval's status (``require`` checks participation only).
    - Membership lookups that fail are treated as "no role": a degraded
      membership service denies, it never allows.

Failure modes:
    - PermissionDeniedError from ``require`` with an actionable reason.
    - NotAnApproverError (a PermissionDeniedError) for responses from users
      outside the approver set.
"""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from approval_kernel.domain.approval import (
    PROJECT_ADMIN_ROLES,
    ApprovalRecord,
    MembershipProvider,
)
from approval_kernel.domain.transitions import ApprovalEvent, TransitionEngine
from approval_kernel.exceptions import (
    GatewayError,
    NotAnApproverError,
    PermissionDeniedError,
)
from approval_kernel.logging_config import get_logger

logger = get_logger("services.permission_gate")


class ApprovalAction(str, Enum):
    """Actions the gate can authorize."""

    VIEW = "view"
    SUBMIT = "submit"
    RESPOND = "respond"
    COMMENT = "comment"
    MANAGE_APPROVERS = "manage_approvers"


_DENIAL_REASONS = {
    ApprovalAction.VIEW: "You do not have access to this approval",
    ApprovalAction.SUBMIT: "Only the requester can submit this approval",
    ApprovalAction.COMMENT: "Only participants can comment on this approval",
    ApprovalAction.MANAGE_APPROVERS: (
        "Only the requester or a project admin can change approvers"
    ),
}


class PermissionGate:
    """Authorization checks for approval actions.

    Contract:
        The boolean ``can_*`` methods report the full rule, status clauses
        included.  ``require`` enforces only the participation part; the
        status part is left to the TransitionEngine so that an approver
        acting in the wrong state gets InvalidTransitionError while a
        non-participant always gets PermissionDeniedError.
    """

    def __init__(
        self,
        membership: MembershipProvider,
        transitions: TransitionEngine | None = None,
    ):
        self._membership = membership
        self._transitions = transitions or TransitionEngine()

    # -- participation ----------------------------------------------------

    def is_requester(self, user_id: UUID, record: ApprovalRecord) -> bool:
        return record.approval.requester_id == user_id

    def is_approver(self, user_id: UUID, record: ApprovalRecord) -> bool:
        return user_id in record.approver_ids

    def is_project_admin(self, user_id: UUID, record: ApprovalRecord) -> bool:
        project_id = record.approval.project_id
        if project_id is None:
            return False
        try:
            role = self._membership.role_of(user_id, project_id)
        except GatewayError as exc:
            logger.warning(
                "membership_lookup_failed",
                extra={
                    "user_id": user_id,
                    "project_id": project_id,
                    "reason": exc.reason,
                },
            )
            return False
        return role in PROJECT_ADMIN_ROLES

    def _is_participant(self, user_id: UUID, record: ApprovalRecord) -> bool:
        return (
            self.is_requester(user_id, record)
            or self.is_approver(user_id, record)
            or self.is_project_admin(user_id, record)
        )

    # -- boolean checks -----------------------------------------------------

    def can_view(self, user_id: UUID, record: ApprovalRecord) -> bool:
        return self._is_participant(user_id, record)

    def can_comment(self, user_id: UUID, record: ApprovalRecord) -> bool:
        return self._is_participant(user_id, record)

    def can_submit(self, user_id: UUID, record: ApprovalRecord) -> bool:
        return self.is_requester(user_id, record) and self._transitions.can_apply(
            record.approval.status, ApprovalEvent.SUBMIT,
        )

    def can_respond(self, user_id: UUID, record: ApprovalRecord) -> bool:
        # submitted or revision_requested
        return self.is_approver(user_id, record) and (
            self._transitions.accepts_decisions(record.approval.status)
        )

    def can_manage_approvers(self, user_id: UUID, record: ApprovalRecord) -> bool:
        if record.approval.is_terminal:
            return False
        return self.is_requester(user_id, record) or self.is_project_admin(
            user_id, record,
        )

    # -- enforcement ----------------------------------------------------------

    def require(
        self, action: ApprovalAction, user_id: UUID, record: ApprovalRecord,
    ) -> None:
        """Raise PermissionDeniedError unless ``user_id`` may take ``action``."""
        if action is ApprovalAction.RESPOND:
            allowed = self.is_approver(user_id, record)
        elif action is ApprovalAction.SUBMIT:
            allowed = self.is_requester(user_id, record)
        elif action is ApprovalAction.MANAGE_APPROVERS:
            allowed = self.is_requester(user_id, record) or self.is_project_admin(
                user_id, record,
            )
        else:
            allowed = self._is_participant(user_id, record)

        if allowed:
            return

        approval_id = str(record.approval.id)
        logger.info(
            "permission_denied",
            extra={
                "action": action.value,
                "user_id": user_id,
                "approval_id": approval_id,
            },
        )
        if action is ApprovalAction.RESPOND:
            raise NotAnApproverError(str(user_id), approval_id)
        raise PermissionDeniedError(
            action=action.value,
            user_id=str(user_id),
            approval_id=approval_id,
            reason=_DENIAL_REASONS[action],
        )
