"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the approval workflow engine: status and decision
enums, the entity-type tag, the four persisted records (approval,
approver assignment, approver response, comment) and the enriched
read-models handed back to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``ApprovalStatus`` is a closed set of five values.
* ``EntityType`` is an explicit tag; unknown tags are rejected by
  ``parse_entity_type`` rather than silently passed through.
* Declines and revision requests are the decisions that need a comment
  (``COMMENT_REQUIRED_DECISIONS``).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from approval_kernel.exceptions import UnknownEntityTypeError


# =========================================================================
# Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Aggregate status of an approval."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DECLINED = "declined"
    REVISION_REQUESTED = "revision_requested"


TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.DECLINED,
})


class ResponseDecision(str, Enum):
    """An individual approver's disposition."""

    APPROVED = "approved"
    DECLINED = "declined"
    REVISION_REQUESTED = "revision_requested"


COMMENT_REQUIRED_DECISIONS: frozenset[ResponseDecision] = frozenset({
    ResponseDecision.DECLINED,
    ResponseDecision.REVISION_REQUESTED,
})


# =========================================================================
# Entity Tag
# =========================================================================


class EntityType(str, Enum):
    """Kinds of record that can be routed for approval."""

    FORM = "form"
    SITE_DIARY = "site_diary"
    ENTRY = "entry"
    TASK = "task"


def parse_entity_type(value: EntityType | str) -> EntityType:
    """Coerce a tag into ``EntityType`` or raise UnknownEntityTypeError."""
    if isinstance(value, EntityType):
        return value
    try:
        return EntityType(value)
    except ValueError:
        raise UnknownEntityTypeError(str(value)) from None


class ParticipantRole(str, Enum):
    """How a user participates in an approval (used for list filtering)."""

    REQUESTER = "requester"
    APPROVER = "approver"


# =========================================================================
# Persisted Records
# =========================================================================


@dataclass(frozen=True)
class Approval:
    """One review request against exactly one target entity."""

    id: UUID
    entity_type: EntityType
    entity_id: str
    requester_id: UUID
    status: ApprovalStatus
    created_at: datetime
    last_updated: datetime
    project_id: str | None = None
    submitted_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES


@dataclass(frozen=True)
class ApproverAssignment:
    """Membership of a user in the reviewer set of one approval."""

    id: UUID
    approval_id: UUID
    approver_id: UUID
    assigned_at: datetime


@dataclass(frozen=True)
class ApproverResponse:
    """One reviewer's current disposition.  Overwritten on re-response."""

    id: UUID
    approval_id: UUID
    approver_id: UUID
    status: ResponseDecision
    responded_at: datetime
    comment: str | None = None


@dataclass(frozen=True)
class ApprovalComment:
    """Append-only discussion entry.  Never affects approval status."""

    id: UUID
    approval_id: UUID
    author_id: UUID
    body: str
    created_at: datetime


@dataclass(frozen=True)
class ApprovalRecord:
    """An approval with all of its child records, read in one snapshot."""

    approval: Approval
    approvers: tuple[ApproverAssignment, ...] = ()
    responses: tuple[ApproverResponse, ...] = ()
    comments: tuple[ApprovalComment, ...] = ()

    @property
    def approver_ids(self) -> frozenset[UUID]:
        return frozenset(a.approver_id for a in self.approvers)

    def response_for(self, approver_id: UUID) -> ApproverResponse | None:
        for response in self.responses:
            if response.approver_id == approver_id:
                return response
        return None


# =========================================================================
# Gateway Results
# =========================================================================


UNKNOWN_USER_NAME = "Unknown user"


@dataclass(frozen=True)
class UserProfile:
    """Directory entry for a user.  ``found=False`` marks a placeholder."""

    id: UUID
    display_name: str
    email: str = ""
    found: bool = True

    @classmethod
    def placeholder(cls, user_id: UUID) -> UserProfile:
        return cls(id=user_id, display_name=UNKNOWN_USER_NAME, email="", found=False)


@dataclass(frozen=True)
class EntityPreview:
    """Title and preview payload for an approval's target entity."""

    entity_type: EntityType
    entity_id: str
    title: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    found: bool = True

    @classmethod
    def not_found(cls, entity_type: EntityType, entity_id: str) -> EntityPreview:
        label = entity_type.value.replace("_", " ")
        return cls(
            entity_type=entity_type,
            entity_id=entity_id,
            title=f"Deleted {label} #{entity_id}",
            payload={},
            found=False,
        )

    @classmethod
    def unavailable(cls, entity_type: EntityType, entity_id: str) -> EntityPreview:
        """Placeholder used when the entity catalog could not be reached."""
        label = entity_type.value.replace("_", " ").capitalize()
        return cls(
            entity_type=entity_type,
            entity_id=entity_id,
            title=f"{label} #{entity_id}",
            payload={},
            found=False,
        )


# =========================================================================
# Read Models
# =========================================================================


@dataclass(frozen=True)
class ApproverView:
    """An approver with their resolved profile and current response."""

    profile: UserProfile
    response: ApproverResponse | None = None

    @property
    def has_responded(self) -> bool:
        return self.response is not None


@dataclass(frozen=True)
class CommentView:
    """A comment with its author's resolved profile."""

    comment: ApprovalComment
    author: UserProfile


@dataclass(frozen=True)
class ApprovalDetails:
    """Everything a caller needs to render one approval for one viewer."""

    approval: Approval
    entity: EntityPreview
    requester: UserProfile
    approvers: tuple[ApproverView, ...]
    responses: tuple[ApproverResponse, ...]
    comments: tuple[CommentView, ...]
    viewer_id: UUID
    viewer_can_respond: bool = False
    viewer_can_submit: bool = False
    viewer_can_manage_approvers: bool = False
    viewer_response: ApproverResponse | None = None

    @property
    def id(self) -> UUID:
        return self.approval.id

    @property
    def status(self) -> ApprovalStatus:
        return self.approval.status

    @property
    def entity_title(self) -> str:
        return self.entity.title

    @property
    def requester_name(self) -> str:
        return self.requester.display_name


@dataclass(frozen=True)
class ApprovalFilters:
    """Optional filters for listing approvals."""

    entity_type: EntityType | None = None
    status: ApprovalStatus | None = None
    role: ParticipantRole | None = None
    search: str | None = None

    def matches_text(self, details: ApprovalDetails) -> bool:
        """Case-insensitive match of ``search`` on title or requester name."""
        if not self.search or not self.search.strip():
            return True
        needle = self.search.strip().lower()
        return (
            needle in details.entity_title.lower()
            or needle in details.requester_name.lower()
        )


# =========================================================================
# Change Notifications
# =========================================================================


class ChangeKind(str, Enum):
    """What kind of committed write produced an ApprovalChange."""

    CREATED = "created"
    SUBMITTED = "submitted"
    RESPONDED = "responded"
    COMMENTED = "commented"
    APPROVERS_UPDATED = "approvers_updated"


@dataclass(frozen=True)
class ApprovalChange:
    """Signal emitted after every committed write to an approval."""

    approval_id: UUID
    kind: ChangeKind
    actor_id: UUID
    status: ApprovalStatus
    occurred_at: datetime


# =========================================================================
# Collaborator Protocols
# =========================================================================


class ProjectRole(str, Enum):
    """A user's role within a project, as reported by the membership service."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


PROJECT_ADMIN_ROLES: frozenset[ProjectRole] = frozenset({
    ProjectRole.OWNER,
    ProjectRole.ADMIN,
})


class DirectoryGateway(Protocol):
    """Resolves user ids to display names and emails."""

    def resolve_users(
        self, user_ids: Sequence[UUID], timeout: float | None = None,
    ) -> tuple[UserProfile, ...]:
        """Return one profile per id; unknown ids get a placeholder."""
        ...


class EntityGateway(Protocol):
    """Resolves an approval target to a title and preview payload."""

    def resolve_entity(
        self, entity_type: EntityType, entity_id: str, timeout: float | None = None,
    ) -> EntityPreview:
        """Return the preview, or ``EntityPreview.not_found`` when missing."""
        ...


class MembershipProvider(Protocol):
    """Pluggable interface for project membership and role lookups."""

    def role_of(self, user_id: UUID, project_id: str) -> ProjectRole | None:
        """Return the user's role in the project, or None if not a member."""
        ...

    def admin_project_ids(self, user_id: UUID) -> frozenset[str]:
        """Return the projects where the user is an owner or admin."""
        ...

    def active_member_ids(self, project_id: str) -> tuple[UUID, ...]:
        """Return the active members of a project."""
        ...
