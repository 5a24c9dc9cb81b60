"""
Tests for the approval transition engine (``approval_kernel.domain.transitions``).

Covers the transition table, terminal absorption, decision-to-event mapping,
the required-comment rule and which statuses accept approver decisions.
"""

import pytest

from approval_kernel.domain.approval import (
    ApprovalStatus,
    ResponseDecision,
)
from approval_kernel.domain.transitions import (
    APPROVAL_TRANSITIONS,
    DECISION_EVENTS,
    ApprovalEvent,
    TransitionEngine,
)
from approval_kernel.exceptions import (
    ApprovalAlreadyResolvedError,
    CommentRequiredError,
    InvalidTransitionError,
)


@pytest.fixture
def engine():
    return TransitionEngine()


class TestTransitionTable:

    def test_every_status_has_an_entry(self):
        assert set(APPROVAL_TRANSITIONS) == set(ApprovalStatus)

    @pytest.mark.parametrize("status, event, target", [
        (ApprovalStatus.DRAFT, ApprovalEvent.SUBMIT, ApprovalStatus.SUBMITTED),
        (ApprovalStatus.SUBMITTED, ApprovalEvent.APPROVE, ApprovalStatus.APPROVED),
        (ApprovalStatus.SUBMITTED, ApprovalEvent.DECLINE, ApprovalStatus.DECLINED),
        (
            ApprovalStatus.SUBMITTED,
            ApprovalEvent.REQUEST_REVISION,
            ApprovalStatus.REVISION_REQUESTED,
        ),
        (
            ApprovalStatus.REVISION_REQUESTED,
            ApprovalEvent.SUBMIT,
            ApprovalStatus.SUBMITTED,
        ),
        (
            ApprovalStatus.REVISION_REQUESTED,
            ApprovalEvent.APPROVE,
            ApprovalStatus.APPROVED,
        ),
        (
            ApprovalStatus.REVISION_REQUESTED,
            ApprovalEvent.DECLINE,
            ApprovalStatus.DECLINED,
        ),
        (
            ApprovalStatus.REVISION_REQUESTED,
            ApprovalEvent.REQUEST_REVISION,
            ApprovalStatus.REVISION_REQUESTED,
        ),
    ])
    def test_legal_edges(self, engine, status, event, target):
        assert engine.next_status(status, event) is target

    def test_exactly_eight_edges(self):
        assert sum(len(edges) for edges in APPROVAL_TRANSITIONS.values()) == 8

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            APPROVAL_TRANSITIONS[ApprovalStatus.DRAFT] = {}

    def test_only_resubmission_returns_to_submitted(self):
        sources = {
            (status, event)
            for status, edges in APPROVAL_TRANSITIONS.items()
            for event, target in edges.items()
            if target is ApprovalStatus.SUBMITTED
        }
        assert sources == {
            (ApprovalStatus.DRAFT, ApprovalEvent.SUBMIT),
            (ApprovalStatus.REVISION_REQUESTED, ApprovalEvent.SUBMIT),
        }


class TestIllegalTransitions:

    @pytest.mark.parametrize("status", [
        ApprovalStatus.APPROVED, ApprovalStatus.DECLINED,
    ])
    @pytest.mark.parametrize("event", list(ApprovalEvent))
    def test_terminal_statuses_absorb(self, engine, status, event):
        with pytest.raises(ApprovalAlreadyResolvedError) as exc_info:
            engine.next_status(status, event, "appr-1")
        assert exc_info.value.approval_id == "appr-1"
        assert exc_info.value.code == "APPROVAL_ALREADY_RESOLVED"

    def test_cannot_approve_a_draft(self, engine):
        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.next_status(ApprovalStatus.DRAFT, ApprovalEvent.APPROVE)
        assert not isinstance(exc_info.value, ApprovalAlreadyResolvedError)
        assert exc_info.value.from_status == "draft"
        assert exc_info.value.event == "approve"

    def test_cannot_submit_twice(self, engine):
        with pytest.raises(InvalidTransitionError):
            engine.next_status(ApprovalStatus.SUBMITTED, ApprovalEvent.SUBMIT)


class TestQueries:

    def test_allowed_events(self, engine):
        assert engine.allowed_events(ApprovalStatus.SUBMITTED) == frozenset(
            DECISION_EVENTS.values()
        )
        assert engine.allowed_events(ApprovalStatus.REVISION_REQUESTED) == frozenset(
            ApprovalEvent
        )
        assert engine.allowed_events(ApprovalStatus.APPROVED) == frozenset()

    def test_can_apply(self, engine):
        assert engine.can_apply(ApprovalStatus.DRAFT, ApprovalEvent.SUBMIT)
        assert not engine.can_apply(ApprovalStatus.DRAFT, ApprovalEvent.APPROVE)

    def test_is_terminal(self, engine):
        assert engine.is_terminal(ApprovalStatus.DECLINED)
        assert not engine.is_terminal(ApprovalStatus.REVISION_REQUESTED)

    @pytest.mark.parametrize("status, expected", [
        (ApprovalStatus.DRAFT, False),
        (ApprovalStatus.SUBMITTED, True),
        (ApprovalStatus.REVISION_REQUESTED, True),
        (ApprovalStatus.APPROVED, False),
        (ApprovalStatus.DECLINED, False),
    ])
    def test_accepts_decisions(self, engine, status, expected):
        assert engine.accepts_decisions(status) is expected

    @pytest.mark.parametrize("decision, outcome", [
        (ResponseDecision.APPROVED, ApprovalStatus.APPROVED),
        (ResponseDecision.DECLINED, ApprovalStatus.DECLINED),
        (ResponseDecision.REVISION_REQUESTED, ApprovalStatus.REVISION_REQUESTED),
    ])
    def test_outcome_of(self, engine, decision, outcome):
        assert engine.outcome_of(decision) is outcome
        assert engine.next_status(
            ApprovalStatus.REVISION_REQUESTED, engine.event_for_decision(decision),
        ) is outcome


class TestResponseValidation:

    @pytest.mark.parametrize("comment", [None, "", "   \n"])
    @pytest.mark.parametrize("decision", [
        ResponseDecision.DECLINED, ResponseDecision.REVISION_REQUESTED,
    ])
    def test_comment_required(self, engine, decision, comment):
        with pytest.raises(CommentRequiredError) as exc_info:
            engine.validate_response(decision, comment)
        assert exc_info.value.decision == decision.value

    def test_decline_message_is_actionable(self, engine):
        with pytest.raises(CommentRequiredError, match="required to decline"):
            engine.validate_response(ResponseDecision.DECLINED, None)

    def test_approve_without_comment(self, engine):
        assert engine.validate_response(ResponseDecision.APPROVED, "  ") is None

    def test_comment_is_stripped(self, engine):
        assert engine.validate_response(
            ResponseDecision.DECLINED, "  missing signature \n",
        ) == "missing signature"
