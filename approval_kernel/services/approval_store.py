"""
ApprovalStore -- durable persistence for approvals and their child records.

Responsibility:
    Owns the four approval records (approval, approver assignment, approver
    response, comment) and enforces their write-time invariants.  Every
    public method is one atomic transaction.

Architecture position:
    Kernel > Services -- imperative shell over models/ and selectors/.
    Constructed with an injected session factory; it never reaches for a
    module-level engine or session.

Invariants enforced:
    - Check-then-act: every write locks the approval row
      (``SELECT ... FOR UPDATE``), validates against the TransitionEngine
      and only then mutates.  A rejected write leaves all state unchanged.
    - Writers on one approval serialize in commit order; each committed
      response sets the aggregate status, and once it is terminal later
      responses are rejected by the transition guard.
    - A response exists only for a member of the approver set.
    - The approver set is never empty.
    - ``last_updated`` is bumped on every status, approver-set or response
      change.  Comments do not bump it.

Failure modes:
    - ApprovalNotFoundError for unknown approval ids.
    - EmptyApproverSetError when a write would leave no approvers.
    - NotAnApproverError for a response from outside the approver set.
    - InvalidTransitionError / ApprovalAlreadyResolvedError from the
      TransitionEngine.
    - StorageError wrapping any SQLAlchemyError.  ``transient`` is True for
      operational failures and timeouts.  This layer never retries.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.db.engine import session_scope
from approval_kernel.domain.approval import (
    ApprovalComment,
    ApprovalRecord,
    ApprovalStatus,
    EntityType,
    ParticipantRole,
    ResponseDecision,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.transitions import ApprovalEvent, TransitionEngine
from approval_kernel.exceptions import (
    ApprovalAlreadyResolvedError,
    ApprovalNotFoundError,
    EmptyApproverSetError,
    NotAnApproverError,
    StorageError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.approval import (
    ApprovalCommentModel,
    ApprovalModel,
    ApproverModel,
    ApproverResponseModel,
)
from approval_kernel.selectors.approval_selector import ApprovalSelector

logger = get_logger("services.approval_store")


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a store write.

    ``changed`` is False when the write was an idempotent repeat and nothing
    was persisted.
    """

    record: ApprovalRecord
    changed: bool = True

    @property
    def status(self) -> ApprovalStatus:
        return self.record.approval.status


def _unique(ids: Iterable[UUID]) -> list[UUID]:
    """De-duplicate while keeping first-seen order."""
    seen: set[UUID] = set()
    result = []
    for user_id in ids:
        if user_id not in seen:
            seen.add(user_id)
            result.append(user_id)
    return result


class ApprovalStore:
    """Atomic write operations and consistent reads for approvals.

    Contract:
        Each public method opens its own transaction through the injected
        session factory and commits before returning.  Returned values are
        frozen domain records, never ORM instances.

    Non-goals:
        - Does NOT check who is acting; that is the PermissionGate's job.
        - Does NOT validate comment text; the service does that.
        - Does NOT retry anything.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        transitions: TransitionEngine | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._transitions = transitions or TransitionEngine()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            transient = isinstance(exc, (OperationalError, PoolTimeoutError))
            logger.warning(
                "storage_failure",
                extra={
                    "operation": operation,
                    "transient": transient,
                    "error_type": type(exc).__name__,
                },
            )
            raise StorageError(operation, str(exc), transient=transient) from exc

    def _lock(self, session: Session, approval_id: UUID) -> ApprovalModel:
        """Load the approval row FOR UPDATE or raise ApprovalNotFoundError."""
        stmt = (
            select(ApprovalModel)
            .where(ApprovalModel.id == approval_id)
            .with_for_update()
        )
        model = session.scalars(stmt).one_or_none()
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))
        return model

    def _guard_open(self, model: ApprovalModel) -> None:
        if self._transitions.is_terminal(ApprovalStatus(model.status)):
            raise ApprovalAlreadyResolvedError(str(model.id), model.status)

    def _reload(self, session: Session, approval_id: UUID) -> ApprovalRecord:
        session.flush()
        session.expire_all()
        record = ApprovalSelector(session).load_record(approval_id)
        if record is None:
            raise ApprovalNotFoundError(str(approval_id))
        return record

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_approval(
        self,
        entity_type: EntityType,
        entity_id: str,
        requester_id: UUID,
        approver_ids: Iterable[UUID],
        project_id: str | None = None,
        submit: bool = False,
    ) -> ApprovalRecord:
        """Insert an approval and its approver set.

        The approval starts in ``draft`` or, with ``submit=True``, directly
        in ``submitted``.
        """
        approvers = _unique(approver_ids)
        if not approvers:
            raise EmptyApproverSetError()

        now = self._clock.now()
        status = ApprovalStatus.SUBMITTED if submit else ApprovalStatus.DRAFT
        with self._transaction("create_approval") as session:
            model = ApprovalModel(
                entity_type=entity_type.value,
                entity_id=str(entity_id),
                requester_id=requester_id,
                project_id=project_id,
                status=status.value,
                created_at=now,
                last_updated=now,
                submitted_at=now if submit else None,
            )
            model.approvers = [
                ApproverModel(approver_id=user_id, assigned_at=now)
                for user_id in approvers
            ]
            session.add(model)
            session.flush()
            record = self._reload(session, model.id)

        logger.info(
            "approval_created",
            extra={
                "approval_id": record.approval.id,
                "entity_type": entity_type.value,
                "entity_id": str(entity_id),
                "status": status.value,
                "approver_count": len(approvers),
            },
        )
        return record

    def add_approvers(
        self, approval_id: UUID, user_ids: Iterable[UUID],
    ) -> WriteResult:
        """Insert assignments for users not already in the set."""
        return self._change_approvers(
            "add_approvers", approval_id, add=_unique(user_ids), remove=[],
        )

    def remove_approvers(
        self, approval_id: UUID, user_ids: Iterable[UUID],
    ) -> WriteResult:
        """Delete assignments (and their responses) for the given users."""
        return self._change_approvers(
            "remove_approvers", approval_id, add=[], remove=_unique(user_ids),
        )

    def replace_approvers(
        self, approval_id: UUID, user_ids: Iterable[UUID],
    ) -> WriteResult:
        """Make the approver set equal ``user_ids``, applying only the delta.

        The add and remove halves of the diff commit together.
        """
        target = _unique(user_ids)
        if not target:
            raise EmptyApproverSetError(str(approval_id))
        return self._change_approvers(
            "replace_approvers", approval_id, add=target, remove=None,
        )

    def _change_approvers(
        self,
        operation: str,
        approval_id: UUID,
        add: list[UUID],
        remove: list[UUID] | None,
    ) -> WriteResult:
        # remove=None means "remove everyone not in add"
        with self._transaction(operation) as session:
            model = self._lock(session, approval_id)
            self._guard_open(model)

            current = {a.approver_id: a for a in model.approvers}
            if remove is None:
                to_remove = [uid for uid in current if uid not in set(add)]
            else:
                to_remove = [uid for uid in remove if uid in current]
            to_add = [uid for uid in add if uid not in current]

            remaining = (set(current) - set(to_remove)) | set(to_add)
            if not remaining:
                raise EmptyApproverSetError(str(approval_id))

            if not to_add and not to_remove:
                return WriteResult(self._reload(session, approval_id), changed=False)

            now = self._clock.now()
            for user_id in to_remove:
                # delete-orphan cascades to the assignment's response
                model.approvers.remove(current[user_id])
            for user_id in to_add:
                model.approvers.append(
                    ApproverModel(approver_id=user_id, assigned_at=now),
                )
            model.last_updated = now
            record = self._reload(session, approval_id)

        logger.info(
            "approvers_updated",
            extra={
                "approval_id": approval_id,
                "added": to_add,
                "removed": to_remove,
            },
        )
        return WriteResult(record)

    def submit(self, approval_id: UUID) -> WriteResult:
        """Apply the ``submit`` event (draft or revision_requested)."""
        with self._transaction("submit") as session:
            model = self._lock(session, approval_id)
            current = ApprovalStatus(model.status)
            target = self._transitions.next_status(
                current, ApprovalEvent.SUBMIT, str(approval_id),
            )
            now = self._clock.now()
            model.status = target.value
            model.submitted_at = now
            model.last_updated = now
            record = self._reload(session, approval_id)

        logger.info(
            "approval_submitted",
            extra={
                "approval_id": approval_id,
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return WriteResult(record)

    def record_response(
        self,
        approval_id: UUID,
        approver_id: UUID,
        decision: ResponseDecision,
        comment: str | None = None,
    ) -> WriteResult:
        """Upsert the approver's response and move the aggregate status.

        A repeat of the approver's current response in the current review
        round (same decision and comment, aggregate already at that
        decision's outcome) is a no-op and returns ``changed=False``.
        """
        with self._transaction("record_response") as session:
            model = self._lock(session, approval_id)
            assignment = next(
                (a for a in model.approvers if a.approver_id == approver_id),
                None,
            )
            if assignment is None:
                raise NotAnApproverError(str(approver_id), str(approval_id))

            current = ApprovalStatus(model.status)
            existing = assignment.response
            if (
                existing is not None
                and existing.status == decision.value
                and existing.comment == comment
                and current is self._transitions.outcome_of(decision)
                and (
                    model.submitted_at is None
                    or existing.responded_at >= model.submitted_at
                )
            ):
                logger.info(
                    "approver_response_unchanged",
                    extra={
                        "approval_id": approval_id,
                        "approver_id": approver_id,
                        "decision": decision.value,
                    },
                )
                return WriteResult(self._reload(session, approval_id), changed=False)

            target = self._transitions.next_status(
                current,
                self._transitions.event_for_decision(decision),
                str(approval_id),
            )

            now = self._clock.now()
            if existing is None:
                session.add(ApproverResponseModel(
                    approval_id=model.id,
                    assignment=assignment,
                    approver_id=approver_id,
                    status=decision.value,
                    comment=comment,
                    responded_at=now,
                ))
            else:
                existing.status = decision.value
                existing.comment = comment
                existing.responded_at = now
            model.status = target.value
            model.last_updated = now
            record = self._reload(session, approval_id)

        logger.info(
            "approver_response_recorded",
            extra={
                "approval_id": approval_id,
                "approver_id": approver_id,
                "decision": decision.value,
                "from_status": current.value,
                "to_status": target.value,
                "overwrote": existing is not None,
            },
        )
        return WriteResult(record)

    def append_comment(
        self, approval_id: UUID, author_id: UUID, body: str,
    ) -> ApprovalComment:
        """Insert a comment.  Comments are never updated or deleted."""
        with self._transaction("append_comment") as session:
            # Lock so the comment commits in order with other writers.
            self._lock(session, approval_id)
            comment = ApprovalCommentModel(
                approval_id=approval_id,
                author_id=author_id,
                body=body,
                created_at=self._clock.now(),
            )
            session.add(comment)
            session.flush()
            dto = comment.to_dto()

        logger.info(
            "comment_appended",
            extra={
                "approval_id": approval_id,
                "comment_id": dto.id,
                "length": len(body),
            },
        )
        return dto

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_approval_with_details(self, approval_id: UUID) -> ApprovalRecord:
        """Approval, approvers, responses and comments as one snapshot."""
        with self._transaction("get_approval_with_details") as session:
            record = ApprovalSelector(session).load_record(approval_id)
        if record is None:
            raise ApprovalNotFoundError(str(approval_id))
        return record

    def find_latest_approval_for_entity(
        self, entity_type: EntityType, entity_id: str,
    ) -> ApprovalRecord | None:
        """The approval with the greatest ``created_at`` for a target."""
        with self._transaction("find_latest_approval_for_entity") as session:
            selector = ApprovalSelector(session)
            approval_id = selector.latest_for_entity(entity_type, str(entity_id))
            if approval_id is None:
                return None
            return selector.load_record(approval_id)

    def list_approvals(
        self,
        user_id: UUID,
        admin_project_ids: Iterable[str] = (),
        entity_type: EntityType | None = None,
        status: ApprovalStatus | None = None,
        role: ParticipantRole | None = None,
    ) -> tuple[ApprovalRecord, ...]:
        """Approvals the user requested, reviews, or administers."""
        with self._transaction("list_approvals") as session:
            return ApprovalSelector(session).list_for_participant(
                user_id,
                admin_project_ids=admin_project_ids,
                entity_type=entity_type,
                status=status,
                role=role,
            )
