"""
approval_kernel.services.approval_service -- Approval workflow orchestration.

Responsibility:
    The public face of the approval engine.  Every write composes
    PermissionGate -> TransitionEngine (inside the store, under the row
    lock) -> ApprovalStore.  Reads load one consistent snapshot from the
    store, authorize it, and then enrich it through the Directory and
    Entity gateways into an ``ApprovalDetails`` read model.

Architecture position:
    Kernel > Services.  Root of the approval engine.  Collaborators are
    injected at construction; there is no module-level client state.

Invariants enforced:
    - Authorization before validation before mutation: a non-approver
      always gets PermissionDeniedError, a missing required comment always
      gets CommentRequiredError, and neither touches the store.
    - Enrichment happens after the authoritative write has committed.  No
      store transaction is held open across a gateway call.
    - Store reads are retried once on transient failure; store writes are
      never retried.
    - Gateway failures degrade to placeholder data and never fail a read.
    - Change listeners run after commit; a failing listener is logged and
      never fails the committed operation.

Failure modes:
    - ValidationError subclasses for malformed input.
    - PermissionDeniedError / NotAnApproverError from the gate.
    - InvalidTransitionError / ApprovalAlreadyResolvedError from the engine.
    - ApprovalNotFoundError for unknown approvals.
    - StorageError when the store fails (after the read retry, if any).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from uuid import UUID

from approval_kernel.domain.approval import (
    Approval,
    ApprovalChange,
    ApprovalComment,
    ApprovalDetails,
    ApprovalFilters,
    ApprovalRecord,
    ApprovalStatus,
    ApproverView,
    ChangeKind,
    CommentView,
    DirectoryGateway,
    EntityGateway,
    EntityPreview,
    EntityType,
    MembershipProvider,
    ParticipantRole,
    ResponseDecision,
    UserProfile,
    parse_entity_type,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.transitions import TransitionEngine
from approval_kernel.exceptions import (
    ApprovalNotFoundError,
    EmptyApproverSetError,
    GatewayError,
    InvalidCommentError,
    ValidationError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.approval_store import ApprovalStore
from approval_kernel.services.permission_gate import ApprovalAction, PermissionGate
from approval_kernel.services.retry import is_gateway_error, retry_read

logger = get_logger("services.approval_service")

ApprovalChangeListener = Callable[[ApprovalChange], None]

DEFAULT_MAX_COMMENT_LENGTH = 1000


class ApprovalService:
    """Create, submit, respond, comment, manage approvers and query approvals.

    Contract:
        Every public method is synchronous and completes before returning.
        Each write is one atomic store call; multi-part changes (such as an
        approver-set diff) are never split across transactions.
    """

    def __init__(
        self,
        store: ApprovalStore,
        directory: DirectoryGateway,
        entities: EntityGateway,
        membership: MembershipProvider,
        gate: PermissionGate | None = None,
        transitions: TransitionEngine | None = None,
        clock: Clock | None = None,
        max_comment_length: int = DEFAULT_MAX_COMMENT_LENGTH,
        submit_on_create: bool = False,
        gateway_timeout: float | None = 3.0,
        read_retry_attempts: int = 1,
    ) -> None:
        self._store = store
        self._directory = directory
        self._entities = entities
        self._membership = membership
        self._transitions = transitions or TransitionEngine()
        self._gate = gate or PermissionGate(membership, self._transitions)
        self._clock = clock or SystemClock()
        self._max_comment_length = max_comment_length
        self._submit_on_create = submit_on_create
        self._gateway_timeout = gateway_timeout
        self._read_retry_attempts = read_retry_attempts
        self._listeners: list[ApprovalChangeListener] = []

    @classmethod
    def from_settings(
        cls,
        settings,
        store: ApprovalStore,
        directory: DirectoryGateway,
        entities: EntityGateway,
        membership: MembershipProvider,
        clock: Clock | None = None,
    ) -> ApprovalService:
        """Build a service from an ``approval_config.ApprovalSettings``."""
        return cls(
            store=store,
            directory=directory,
            entities=entities,
            membership=membership,
            clock=clock,
            max_comment_length=settings.max_comment_length,
            submit_on_create=settings.submit_on_create,
            gateway_timeout=settings.gateway_timeout_seconds,
            read_retry_attempts=settings.read_retry_attempts,
        )

    # =========================================================================
    # Change notification
    # =========================================================================

    def add_listener(self, listener: ApprovalChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ApprovalChangeListener) -> None:
        self._listeners.remove(listener)

    def _notify(
        self, approval: Approval, kind: ChangeKind, actor_id: UUID,
    ) -> None:
        change = ApprovalChange(
            approval_id=approval.id,
            kind=kind,
            actor_id=actor_id,
            status=approval.status,
            occurred_at=self._clock.now(),
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(
                    "approval_listener_failed",
                    extra={"kind": kind.value, "listener": repr(listener)},
                )

    # =========================================================================
    # Writes
    # =========================================================================

    def create_approval(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        requester_id: UUID,
        approver_ids: Iterable[UUID],
        project_id: str | None = None,
        submit: bool | None = None,
    ) -> Approval:
        """Create an approval for one entity with a non-empty approver set.

        The approval starts in ``draft`` unless ``submit`` (or the service's
        ``submit_on_create`` default) asks for ``submitted``.
        """
        kind = parse_entity_type(entity_type)
        approvers = list(approver_ids)
        if not approvers:
            raise EmptyApproverSetError()
        if submit is None:
            submit = self._submit_on_create

        with LogContext.bind(
            actor_id=requester_id, entity_type=kind.value, entity_id=entity_id,
        ):
            record = self._store.create_approval(
                kind,
                str(entity_id),
                requester_id,
                approvers,
                project_id=project_id,
                submit=submit,
            )
            self._notify(record.approval, ChangeKind.CREATED, requester_id)
            if submit:
                self._notify(record.approval, ChangeKind.SUBMITTED, requester_id)
        return record.approval

    def submit(self, approval_id: UUID, user_id: UUID) -> Approval:
        """Submit (or resubmit after a revision request).  Requester only."""
        with LogContext.bind(actor_id=user_id, approval_id=approval_id):
            record = self._load(approval_id)
            self._gate.require(ApprovalAction.SUBMIT, user_id, record)
            result = self._store.submit(approval_id)
            self._notify(result.record.approval, ChangeKind.SUBMITTED, user_id)
        return result.record.approval

    def respond(
        self,
        approval_id: UUID,
        user_id: UUID,
        decision: ResponseDecision | str,
        comment: str | None = None,
    ) -> Approval:
        """Record an approver's decision and move the aggregate status.

        Decisions are accepted while the approval is submitted or awaiting
        revision; the first one to reach a terminal status wins.  Repeating
        one's current decision verbatim is a no-op.
        """
        try:
            decision = ResponseDecision(decision)
        except ValueError:
            raise ValidationError(f"Unknown decision: {decision}") from None
        with LogContext.bind(actor_id=user_id, approval_id=approval_id):
            record = self._load(approval_id)
            self._gate.require(ApprovalAction.RESPOND, user_id, record)
            normalized = self._transitions.validate_response(decision, comment)
            if normalized is not None:
                self._check_length(normalized)
            result = self._store.record_response(
                approval_id, user_id, decision, normalized,
            )
            if result.changed:
                self._notify(result.record.approval, ChangeKind.RESPONDED, user_id)
        return result.record.approval

    def add_comment(
        self, approval_id: UUID, user_id: UUID, body: str,
    ) -> ApprovalComment:
        """Append a discussion comment.  Never changes the approval status."""
        with LogContext.bind(actor_id=user_id, approval_id=approval_id):
            record = self._load(approval_id)
            self._gate.require(ApprovalAction.COMMENT, user_id, record)
            text = (body or "").strip()
            if not text:
                raise InvalidCommentError(0, self._max_comment_length)
            self._check_length(text)
            comment = self._store.append_comment(approval_id, user_id, text)
            self._notify(record.approval, ChangeKind.COMMENTED, user_id)
        return comment

    def update_approvers(
        self,
        approval_id: UUID,
        user_id: UUID,
        approver_ids: Iterable[UUID],
    ) -> Approval:
        """Replace the approver set, inserting and deleting only the delta.

        Removing an approver also removes their response.
        """
        target = list(approver_ids)
        with LogContext.bind(actor_id=user_id, approval_id=approval_id):
            record = self._load(approval_id)
            self._gate.require(ApprovalAction.MANAGE_APPROVERS, user_id, record)
            if not target:
                raise EmptyApproverSetError(str(approval_id))
            result = self._store.replace_approvers(approval_id, target)
            if result.changed:
                self._notify(
                    result.record.approval, ChangeKind.APPROVERS_UPDATED, user_id,
                )
        return result.record.approval

    def _check_length(self, text: str) -> None:
        if len(text) > self._max_comment_length:
            raise InvalidCommentError(len(text), self._max_comment_length)

    # =========================================================================
    # Reads
    # =========================================================================

    def _load(self, approval_id: UUID) -> ApprovalRecord:
        return retry_read(
            "get_approval_with_details",
            lambda: self._store.get_approval_with_details(approval_id),
            attempts=self._read_retry_attempts,
        )

    def get_details(self, approval_id: UUID, user_id: UUID) -> ApprovalDetails:
        """Approval with approvers, responses, comments and entity preview."""
        with LogContext.bind(actor_id=user_id, approval_id=approval_id):
            record = self._load(approval_id)
            self._gate.require(ApprovalAction.VIEW, user_id, record)
            return self._enrich([record], user_id)[0]

    def get_for_entity(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        user_id: UUID,
    ) -> ApprovalDetails | None:
        """The current (most recently created) approval for an entity."""
        kind = parse_entity_type(entity_type)
        with LogContext.bind(
            actor_id=user_id, entity_type=kind.value, entity_id=entity_id,
        ):
            record = retry_read(
                "find_latest_approval_for_entity",
                lambda: self._store.find_latest_approval_for_entity(
                    kind, str(entity_id),
                ),
                attempts=self._read_retry_attempts,
            )
            if record is None:
                return None
            self._gate.require(ApprovalAction.VIEW, user_id, record)
            return self._enrich([record], user_id)[0]

    def can_user_approve(self, approval_id: UUID, user_id: UUID) -> bool:
        """Whether the user could respond to the approval right now."""
        try:
            record = self._load(approval_id)
        except ApprovalNotFoundError:
            return False
        return self._gate.can_respond(user_id, record)

    def list_for_user(
        self,
        user_id: UUID,
        filters: ApprovalFilters | None = None,
    ) -> list[ApprovalDetails]:
        """Approvals the user requested, reviews or administers, newest first."""
        filters = filters or ApprovalFilters()
        with LogContext.bind(actor_id=user_id):
            admin_projects: frozenset[str] = frozenset()
            if filters.role is None:
                admin_projects = self._admin_projects(user_id)
            records = retry_read(
                "list_approvals",
                lambda: self._store.list_approvals(
                    user_id,
                    admin_project_ids=admin_projects,
                    entity_type=filters.entity_type,
                    status=filters.status,
                    role=filters.role,
                ),
                attempts=self._read_retry_attempts,
            )
            details = self._enrich(records, user_id)
            return [d for d in details if filters.matches_text(d)]

    def list_pending_for_approver(self, user_id: UUID) -> list[ApprovalDetails]:
        """Submitted approvals waiting on this approver."""
        return self.list_for_user(
            user_id,
            ApprovalFilters(
                role=ParticipantRole.APPROVER, status=ApprovalStatus.SUBMITTED,
            ),
        )

    def list_requested_by(self, user_id: UUID) -> list[ApprovalDetails]:
        """Approvals this user requested, in any status."""
        return self.list_for_user(
            user_id, ApprovalFilters(role=ParticipantRole.REQUESTER),
        )

    def list_eligible_approvers(self, project_id: str) -> tuple[UserProfile, ...]:
        """Active project members, resolved to profiles, for approver pickers."""
        try:
            member_ids = retry_read(
                "active_member_ids",
                lambda: self._membership.active_member_ids(project_id),
                attempts=self._read_retry_attempts,
                is_retryable=is_gateway_error,
            )
        except GatewayError as exc:
            self._log_degraded(exc)
            return ()
        profiles = self._resolve_users(member_ids)
        return tuple(profiles[m] for m in member_ids)

    # =========================================================================
    # Enrichment
    # =========================================================================

    def _admin_projects(self, user_id: UUID) -> frozenset[str]:
        try:
            return frozenset(retry_read(
                "admin_project_ids",
                lambda: self._membership.admin_project_ids(user_id),
                attempts=self._read_retry_attempts,
                is_retryable=is_gateway_error,
            ))
        except GatewayError as exc:
            self._log_degraded(exc)
            return frozenset()

    def _log_degraded(self, exc: GatewayError) -> None:
        logger.warning(
            "gateway_degraded",
            extra={"gateway": exc.gateway, "reason": exc.reason},
        )

    def _resolve_users(self, user_ids: Sequence[UUID]) -> dict[UUID, UserProfile]:
        """One batched directory lookup; unknown or failed ids get placeholders."""
        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return {}
        try:
            profiles = retry_read(
                "resolve_users",
                lambda: self._directory.resolve_users(
                    unique_ids, timeout=self._gateway_timeout,
                ),
                attempts=self._read_retry_attempts,
                is_retryable=is_gateway_error,
            )
        except GatewayError as exc:
            self._log_degraded(exc)
            profiles = ()
        resolved = {p.id: p for p in profiles}
        return {
            uid: resolved.get(uid) or UserProfile.placeholder(uid)
            for uid in unique_ids
        }

    def _resolve_entity(self, entity_type: EntityType, entity_id: str) -> EntityPreview:
        try:
            return retry_read(
                "resolve_entity",
                lambda: self._entities.resolve_entity(
                    entity_type, entity_id, timeout=self._gateway_timeout,
                ),
                attempts=self._read_retry_attempts,
                is_retryable=is_gateway_error,
            )
        except GatewayError as exc:
            self._log_degraded(exc)
            return EntityPreview.unavailable(entity_type, entity_id)

    def _enrich(
        self, records: Sequence[ApprovalRecord], viewer_id: UUID,
    ) -> list[ApprovalDetails]:
        user_ids: list[UUID] = []
        for record in records:
            user_ids.append(record.approval.requester_id)
            user_ids.extend(a.approver_id for a in record.approvers)
            user_ids.extend(c.author_id for c in record.comments)
        profiles = self._resolve_users(user_ids)

        details = []
        for record in records:
            approval = record.approval
            entity = self._resolve_entity(approval.entity_type, approval.entity_id)
            details.append(ApprovalDetails(
                approval=approval,
                entity=entity,
                requester=profiles[approval.requester_id],
                approvers=tuple(
                    ApproverView(
                        profile=profiles[a.approver_id],
                        response=record.response_for(a.approver_id),
                    )
                    for a in record.approvers
                ),
                responses=record.responses,
                comments=tuple(
                    CommentView(comment=c, author=profiles[c.author_id])
                    for c in record.comments
                ),
                viewer_id=viewer_id,
                viewer_can_respond=self._gate.can_respond(viewer_id, record),
                viewer_can_submit=self._gate.can_submit(viewer_id, record),
                viewer_can_manage_approvers=self._gate.can_manage_approvers(
                    viewer_id, record,
                ),
                viewer_response=record.response_for(viewer_id),
            ))
        return details


__all__ = [
    "ApprovalChangeListener",
    "ApprovalService",
    "DEFAULT_MAX_COMMENT_LENGTH",
]
