"""
Module: approval_kernel.models.approval
Responsibility: ORM persistence for approvals, approver assignments,
    approver responses and discussion comments.

Architecture position: Kernel > Models.  May import from db/base.py,
    exceptions and the domain value objects (for to_dto only).

Invariants enforced:
    - Status values are limited by CHECK constraints on both the approval
      aggregate and individual responses.
    - UNIQUE(approval_id, approver_id) on assignments: the approver set is a
      set, never a multiset.
    - UNIQUE(approval_id, approver_id) on responses: at most one live
      response per approver (upsert target).
    - A response references its assignment with ON DELETE CASCADE (and an
      ORM delete-orphan cascade), so removing an approver removes the
      response and a response can never outlive its assignment.
    - Comments are append-only; approvals are never hard-deleted.

Failure modes:
    - IntegrityError on duplicate assignment or response rows.
    - ImmutabilityViolationError on comment UPDATE/DELETE or approval DELETE.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.approval import (
        Approval,
        ApprovalComment,
        ApprovalRecord,
        ApproverAssignment,
        ApproverResponse,
    )


class ApprovalModel(Base):
    """Persistent approval aggregate.

    Contract:
        ``status`` only changes through the store, which validates every
        change against the transition table while holding this row's lock.

    Guarantees:
        - Never deleted; terminal approvals are retained for audit.
        - ``last_updated`` moves on every status, approver-set or response
          change.
    """

    __tablename__ = "approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'approved', 'declined', "
            "'revision_requested')",
            name="ck_approvals_valid_status",
        ),
        # Latest-for-entity lookups
        Index(
            "ix_approvals_entity_created",
            "entity_type", "entity_id", "created_at",
        ),
        Index("ix_approvals_requester", "requester_id"),
        Index("ix_approvals_project", "project_id"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    requester_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    project_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="draft",
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )

    approvers: Mapped[list["ApproverModel"]] = relationship(
        "ApproverModel",
        back_populates="approval",
        order_by="ApproverModel.assigned_at",
        cascade="all, delete-orphan",
    )
    responses: Mapped[list["ApproverResponseModel"]] = relationship(
        "ApproverResponseModel",
        back_populates="approval",
        order_by="ApproverResponseModel.responded_at",
    )
    comments: Mapped[list["ApprovalCommentModel"]] = relationship(
        "ApprovalCommentModel",
        back_populates="approval",
        order_by="ApprovalCommentModel.created_at",
    )

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} {self.entity_type}/{self.entity_id} "
            f"status={self.status}>"
        )

    def to_dto(self) -> Approval:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            Approval as ApprovalDTO,
            ApprovalStatus,
            EntityType,
        )

        return ApprovalDTO(
            id=self.id,
            entity_type=EntityType(self.entity_type),
            entity_id=self.entity_id,
            requester_id=self.requester_id,
            status=ApprovalStatus(self.status),
            created_at=self.created_at,
            last_updated=self.last_updated,
            project_id=self.project_id,
            submitted_at=self.submitted_at,
        )

    def to_record(self) -> ApprovalRecord:
        """Convert the approval and its loaded children to one snapshot."""
        from approval_kernel.domain.approval import ApprovalRecord

        return ApprovalRecord(
            approval=self.to_dto(),
            approvers=tuple(a.to_dto() for a in self.approvers),
            responses=tuple(r.to_dto() for r in self.responses),
            comments=tuple(c.to_dto() for c in self.comments),
        )


class ApproverModel(Base):
    """Assignment of one user to the reviewer set of one approval."""

    __tablename__ = "approval_approvers"

    __table_args__ = (
        UniqueConstraint(
            "approval_id", "approver_id",
            name="uq_approval_approvers_member",
        ),
        Index("ix_approval_approvers_approver", "approver_id"),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approvals.id"),
        nullable=False,
    )
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    approval: Mapped["ApprovalModel"] = relationship(
        "ApprovalModel",
        back_populates="approvers",
    )
    response: Mapped["ApproverResponseModel | None"] = relationship(
        "ApproverResponseModel",
        back_populates="assignment",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Approver {self.approver_id} approval={self.approval_id}>"

    def to_dto(self) -> ApproverAssignment:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApproverAssignment as AssignmentDTO,
        )

        return AssignmentDTO(
            id=self.id,
            approval_id=self.approval_id,
            approver_id=self.approver_id,
            assigned_at=self.assigned_at,
        )


class ApproverResponseModel(Base):
    """One approver's current disposition.  Overwritten on re-response.

    Guarantees:
        - UNIQUE(approval_id, approver_id): one live response per approver.
        - Deleted with its assignment (FK ON DELETE CASCADE).
    """

    __tablename__ = "approval_responses"

    __table_args__ = (
        CheckConstraint(
            "status IN ('approved', 'declined', 'revision_requested')",
            name="ck_approval_responses_valid_status",
        ),
        UniqueConstraint(
            "approval_id", "approver_id",
            name="uq_approval_responses_approver",
        ),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approvals.id"),
        nullable=False,
    )
    assignment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_approvers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    approval: Mapped["ApprovalModel"] = relationship(
        "ApprovalModel",
        back_populates="responses",
    )
    assignment: Mapped["ApproverModel"] = relationship(
        "ApproverModel",
        back_populates="response",
    )

    def __repr__(self) -> str:
        return (
            f"<ApproverResponse {self.approver_id} "
            f"approval={self.approval_id} status={self.status}>"
        )

    def to_dto(self) -> ApproverResponse:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApproverResponse as ResponseDTO,
            ResponseDecision,
        )

        return ResponseDTO(
            id=self.id,
            approval_id=self.approval_id,
            approver_id=self.approver_id,
            status=ResponseDecision(self.status),
            responded_at=self.responded_at,
            comment=self.comment,
        )


class ApprovalCommentModel(Base):
    """Discussion entry on an approval. Append-only."""

    __tablename__ = "approval_comments"

    __table_args__ = (
        Index("ix_approval_comments_approval", "approval_id", "created_at"),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approvals.id"),
        nullable=False,
    )
    author_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    approval: Mapped["ApprovalModel"] = relationship(
        "ApprovalModel",
        back_populates="comments",
    )

    def __repr__(self) -> str:
        return f"<ApprovalComment {self.id} approval={self.approval_id}>"

    def to_dto(self) -> ApprovalComment:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalComment as CommentDTO,
        )

        return CommentDTO(
            id=self.id,
            approval_id=self.approval_id,
            author_id=self.author_id,
            body=self.body,
            created_at=self.created_at,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ApprovalCommentModel, "before_update")
def prevent_comment_update(mapper, connection, target):
    """Prevent updates to comments."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalComment",
        entity_id=str(target.id),
        reason="Comments are append-only -- cannot modify",
    )


@event.listens_for(ApprovalCommentModel, "before_delete")
def prevent_comment_delete(mapper, connection, target):
    """Prevent deletion of comments."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalComment",
        entity_id=str(target.id),
        reason="Comments are append-only -- cannot delete",
    )


@event.listens_for(ApprovalModel, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    """Approvals are retained for audit, including terminal ones."""
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="Approvals are never hard-deleted",
    )
