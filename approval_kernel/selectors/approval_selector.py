"""
Module: approval_kernel.selectors.approval_selector
Responsibility: Read-only queries over approvals: the consistent details
    snapshot, latest-approval-for-entity and participant listings.
Architecture position: Kernel > Selectors.  May import from models/,
    domain value objects and selectors/base.py.

Invariants enforced:
    - ``load_record`` reads the approval and all child collections in ONE
      eager-joined SELECT, so a concurrent write is seen either entirely or
      not at all.
    - DTO convention: public methods return frozen domain records, never ORM
      instances.

Failure modes:
    - Returns None / empty tuples when nothing matches; never raises on
      absence of data.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from approval_kernel.domain.approval import (
    ApprovalRecord,
    ApprovalStatus,
    EntityType,
    ParticipantRole,
)
from approval_kernel.models.approval import ApprovalModel, ApproverModel
from approval_kernel.selectors.base import BaseSelector


class ApprovalSelector(BaseSelector[ApprovalModel]):
    """
    Selector for approval queries.

    Guarantees:
        - Read-only: no mutations are performed.
        - Listing results are ordered newest first (created_at desc, id as a
          tie-breaker) so pagination and "latest" lookups are deterministic.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _with_children(self):
        return select(ApprovalModel).options(
            joinedload(ApprovalModel.approvers),
            joinedload(ApprovalModel.responses),
            joinedload(ApprovalModel.comments),
        )

    def load_record(self, approval_id: UUID) -> ApprovalRecord | None:
        """Approval plus approvers, responses and comments in one SELECT."""
        stmt = self._with_children().where(ApprovalModel.id == approval_id)
        model = self.session.scalars(stmt).unique().one_or_none()
        return model.to_record() if model is not None else None

    def latest_for_entity(
        self, entity_type: EntityType, entity_id: str,
    ) -> UUID | None:
        """Id of the most recently created approval for a target, if any."""
        stmt = (
            select(ApprovalModel.id)
            .where(
                ApprovalModel.entity_type == entity_type.value,
                ApprovalModel.entity_id == entity_id,
            )
            .order_by(ApprovalModel.created_at.desc(), ApprovalModel.id.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def list_for_participant(
        self,
        user_id: UUID,
        admin_project_ids: Iterable[str] = (),
        entity_type: EntityType | None = None,
        status: ApprovalStatus | None = None,
        role: ParticipantRole | None = None,
    ) -> tuple[ApprovalRecord, ...]:
        """
        Approvals visible to ``user_id``: requested by them, assigned to
        them, or (unless a role filter is given) inside a project they
        administer.
        """
        approver_of = (
            select(ApproverModel.approval_id)
            .where(ApproverModel.approver_id == user_id)
        )
        if role is ParticipantRole.REQUESTER:
            visible = ApprovalModel.requester_id == user_id
        elif role is ParticipantRole.APPROVER:
            visible = ApprovalModel.id.in_(approver_of)
        else:
            clauses = [
                ApprovalModel.requester_id == user_id,
                ApprovalModel.id.in_(approver_of),
            ]
            projects = sorted(set(admin_project_ids))
            if projects:
                clauses.append(ApprovalModel.project_id.in_(projects))
            visible = or_(*clauses)

        stmt = self._with_children().where(visible)
        if entity_type is not None:
            stmt = stmt.where(ApprovalModel.entity_type == entity_type.value)
        if status is not None:
            stmt = stmt.where(ApprovalModel.status == status.value)
        stmt = stmt.order_by(
            ApprovalModel.created_at.desc(), ApprovalModel.id.desc(),
        )
        models = self.session.scalars(stmt).unique().all()
        return tuple(m.to_record() for m in models)
