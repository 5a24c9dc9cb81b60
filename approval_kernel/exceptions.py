"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval engine (web handlers, background jobs, tests) must be
able to turn every rejected operation into an actionable message without
parsing strings.  Every error therefore:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (approval_id, user_id, ...)

Example - WRONG way to handle errors:
    try:
        service.respond(approval_id, user_id, decision)
    except Exception as e:
        if "not an approver" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        service.respond(approval_id, user_id, decision)
    except PermissionDeniedError as e:
        return error_response(code=e.code, action=e.action)
    except CommentRequiredError as e:
        return error_response(code=e.code, decision=e.decision)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- ValidationError
    |   +-- EmptyApproverSetError
    |   +-- CommentRequiredError
    |   +-- InvalidCommentError
    |   +-- UnknownEntityTypeError
    |
    +-- PermissionDeniedError
    |   +-- NotAnApproverError
    |
    +-- InvalidTransitionError
    |   +-- ApprovalAlreadyResolvedError
    |
    +-- NotFoundError
    |   +-- ApprovalNotFoundError
    |
    +-- StorageError
    |
    +-- GatewayError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                       | When Raised
--------------|----------------------------|-------------------------------------
Validation    | EMPTY_APPROVER_SET         | Approval created/updated with no approvers
              | COMMENT_REQUIRED           | Decline / revision request without comment
              | INVALID_COMMENT            | Comment empty or longer than the limit
              | UNKNOWN_ENTITY_TYPE        | entity_type tag not recognised
--------------|----------------------------|-------------------------------------
Permission    | PERMISSION_DENIED          | Permission gate rejected the actor
              | NOT_AN_APPROVER            | Response from a user outside the set
--------------|----------------------------|-------------------------------------
Transition    | INVALID_TRANSITION         | Event not legal from current status
              | APPROVAL_ALREADY_RESOLVED  | Mutation of an approved/declined approval
--------------|----------------------------|-------------------------------------
Lookup        | APPROVAL_NOT_FOUND         | Unknown approval id
--------------|----------------------------|-------------------------------------
Storage       | STORAGE_ERROR              | Underlying store failure (wrapped)
Gateway       | GATEWAY_ERROR              | Directory / entity / membership lookup failed
Immutability  | IMMUTABILITY_VIOLATION     | Update/delete of append-only record

===============================================================================
PROPAGATION
===============================================================================

Validation, permission and transition errors are deterministic: they are
surfaced to the caller unchanged and never retried.

StorageError on a READ may be retried once by the service when
``transient`` is True.  StorageError on a WRITE is always surfaced
immediately -- comments are pure inserts and a blind retry would
duplicate them.

GatewayError during read enrichment is caught by the service and replaced
with placeholder values; it only escapes from the gateway adapters.
"""

from __future__ import annotations


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Validation exceptions


class ValidationError(ApprovalKernelError):
    """Malformed input rejected before any state was touched."""

    code: str = "VALIDATION_ERROR"


class EmptyApproverSetError(ValidationError):
    """An approval must always have at least one approver."""

    code: str = "EMPTY_APPROVER_SET"

    def __init__(self, approval_id: str | None = None):
        self.approval_id = approval_id
        target = f" for approval {approval_id}" if approval_id else ""
        super().__init__(f"At least one approver is required{target}")


class CommentRequiredError(ValidationError):
    """Declining or requesting a revision needs an explanatory comment."""

    code: str = "COMMENT_REQUIRED"

    def __init__(self, decision: str):
        self.decision = decision
        verb = "decline" if decision == "declined" else "request a revision"
        super().__init__(f"A comment is required to {verb}")


class InvalidCommentError(ValidationError):
    """Comment body is empty or exceeds the configured maximum length."""

    code: str = "INVALID_COMMENT"

    def __init__(self, length: int, max_length: int):
        self.length = length
        self.max_length = max_length
        if length == 0:
            message = "Comment cannot be empty"
        else:
            message = (
                f"Comment is {length} characters; "
                f"the maximum is {max_length}"
            )
        super().__init__(message)


class UnknownEntityTypeError(ValidationError):
    """entity_type tag is not one of the registered entity kinds."""

    code: str = "UNKNOWN_ENTITY_TYPE"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Unknown entity type: {entity_type}")


# Permission exceptions


class PermissionDeniedError(ApprovalKernelError):
    """The permission gate rejected the actor for this action."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, action: str, user_id: str, approval_id: str, reason: str):
        self.action = action
        self.user_id = user_id
        self.approval_id = approval_id
        self.reason = reason
        super().__init__(reason)


class NotAnApproverError(PermissionDeniedError):
    """A response was attempted by a user outside the approver set."""

    code: str = "NOT_AN_APPROVER"

    def __init__(self, user_id: str, approval_id: str):
        super().__init__(
            action="respond",
            user_id=user_id,
            approval_id=approval_id,
            reason="You are not an approver on this request",
        )


# Transition exceptions


class InvalidTransitionError(ApprovalKernelError):
    """The requested event is not legal from the approval's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, from_status: str, event: str, approval_id: str | None = None):
        self.from_status = from_status
        self.event = event
        self.approval_id = approval_id
        super().__init__(
            f"Cannot {event.replace('_', ' ')} an approval "
            f"in status '{from_status}'"
        )


class ApprovalAlreadyResolvedError(InvalidTransitionError):
    """The approval is approved or declined and accepts no further changes."""

    code: str = "APPROVAL_ALREADY_RESOLVED"

    def __init__(self, approval_id: str, status: str, event: str = "modify"):
        super().__init__(status, event, approval_id)
        self.args = (f"Approval {approval_id} is already {status}",)


# Lookup exceptions


class NotFoundError(ApprovalKernelError):
    """A referenced record does not exist."""

    code: str = "NOT_FOUND"


class ApprovalNotFoundError(NotFoundError):
    """Approval with given ID was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(f"Approval not found: {approval_id}")


# Infrastructure exceptions


class StorageError(ApprovalKernelError):
    """
    The underlying store failed.

    ``transient`` is True for failures worth one retry on an idempotent
    read (dropped connection, lock/statement timeout).  Integrity errors
    and programming errors are never transient.
    """

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, reason: str, transient: bool = False):
        self.operation = operation
        self.reason = reason
        self.transient = transient
        super().__init__(f"Storage failure during {operation}: {reason}")


class GatewayError(ApprovalKernelError):
    """A directory, entity or membership lookup failed."""

    code: str = "GATEWAY_ERROR"

    def __init__(self, gateway: str, reason: str):
        self.gateway = gateway
        self.reason = reason
        super().__init__(f"{gateway} lookup failed: {reason}")


class ImmutabilityViolationError(ApprovalKernelError):
    """Attempt to modify or delete a record that is append-only."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
