"""Tests for structured logging (approval_kernel/logging_config.py).

The first half drives real approval operations and checks the request
fields the service binds onto every line; the second half covers the JSON
encoding of approval values and the ``configure_logging`` entry point.
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import (
    ApprovalStatus,
    EntityType,
    ResponseDecision,
)
from approval_kernel.exceptions import (
    CommentRequiredError,
    PermissionDeniedError,
    StorageError,
)
from approval_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def json_stream():
    """Route approval_kernel logging into a fresh stream; return a line reader."""
    stream = StringIO()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=stream)

    def _lines() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield _lines
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _only(records, message):
    matches = [r for r in records if r["message"] == message]
    assert len(matches) == 1, [r["message"] for r in records]
    return matches[0]


# ---------------------------------------------------------------------------
# Fields bound by service operations
# ---------------------------------------------------------------------------


class TestOperationContext:

    def test_create_binds_entity_and_requester(
        self, approval_service, requester_id, approver_a, captured_logs,
    ):
        approval = approval_service.create_approval(
            "site_diary", "7", requester_id, [approver_a],
        )
        created = _only(captured_logs(), "approval_created")
        assert created["entity_type"] == "site_diary"
        assert created["entity_id"] == "7"
        assert created["actor_id"] == str(requester_id)
        assert created["approval_id"] == str(approval.id)

    def test_response_line_carries_actor_and_approval(
        self, approval_service, submitted_approval, approver_b, captured_logs,
    ):
        approval_service.respond(
            submitted_approval.id, approver_b, "declined", "missing signature",
        )
        recorded = _only(captured_logs(), "approver_response_recorded")
        assert recorded["actor_id"] == str(approver_b)
        assert recorded["approval_id"] == str(submitted_approval.id)
        assert recorded["decision"] == "declined"
        assert recorded["from_status"] == "submitted"
        assert recorded["to_status"] == "declined"
        assert recorded["overwrote"] is False

    def test_denied_lookup_by_entity(
        self, approval_service, draft_approval, outsider_id, captured_logs,
    ):
        with pytest.raises(PermissionDeniedError):
            approval_service.get_for_entity("form", "42", outsider_id)
        denied = _only(captured_logs(), "permission_denied")
        assert denied["action"] == "view"
        assert denied["entity_type"] == "form"
        assert denied["entity_id"] == "42"
        assert denied["actor_id"] == str(outsider_id)
        assert denied["approval_id"] == str(draft_approval.id)

    def test_context_is_released_after_operation(
        self, approval_service, submitted_approval, requester_id,
    ):
        approval_service.add_comment(submitted_approval.id, requester_id, "Ping")
        assert LogContext.get_all() == {}

    def test_failing_listener_logged_with_exception(
        self, approval_service, submitted_approval, approver_a, captured_logs,
    ):
        def broken(change):
            raise RuntimeError("webhook down")

        approval_service.add_listener(broken)
        approval_service.respond(submitted_approval.id, approver_a, "approved")

        failed = _only(captured_logs(), "approval_listener_failed")
        assert failed["level"] == "ERROR"
        assert failed["kind"] == "responded"
        assert failed["approval_id"] == str(submitted_approval.id)
        assert failed["exc_type"] == "RuntimeError"
        assert "webhook down" in failed["traceback"]


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_nested_bind_layers_fields(self):
        approval_id = uuid4()
        with LogContext.bind(actor_id="u-1", entity_type=EntityType.SITE_DIARY):
            with LogContext.bind(approval_id=approval_id, actor_id="u-2"):
                assert LogContext.get_all() == {
                    "actor_id": "u-2",
                    "entity_type": "site_diary",
                    "approval_id": str(approval_id),
                }
            assert LogContext.get_all() == {
                "actor_id": "u-1",
                "entity_type": "site_diary",
            }
        assert LogContext.get_all() == {}

    def test_bind_unwinds_on_error(self):
        with pytest.raises(CommentRequiredError):
            with LogContext.bind(approval_id="a-1"):
                raise CommentRequiredError("declined")
        assert "approval_id" not in LogContext.get_all()

    def test_set_skips_none_and_unknown_names(self):
        LogContext.set(entity_id="42", actor_id=None, decision="approved")
        assert LogContext.get_all() == {"entity_id": "42"}


# ---------------------------------------------------------------------------
# JSON encoding
# ---------------------------------------------------------------------------


class TestJSONEncoding:

    def test_approval_values_serialized(self, json_stream):
        approval_id = uuid4()
        at = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
        get_logger("test").info(
            "snapshot",
            extra={
                "approval_ref": approval_id,
                "status": ApprovalStatus.REVISION_REQUESTED,
                "decisions": {ResponseDecision.DECLINED, ResponseDecision.APPROVED},
                "responded_at": at,
            },
        )
        line = _only(json_stream(), "snapshot")
        assert line["approval_ref"] == str(approval_id)
        assert line["status"] == "revision_requested"
        assert line["decisions"] == ["approved", "declined"]
        assert line["responded_at"] == "2024-03-01T09:30:00+00:00"

    def test_bound_context_beats_extra(self, json_stream):
        with LogContext.bind(approval_id="bound"):
            get_logger("test").info("clash", extra={"approval_id": "extra", "level": "x"})
        line = _only(json_stream(), "clash")
        assert line["approval_id"] == "bound"
        assert line["level"] == "INFO"

    def test_storage_error_fields(self, json_stream):
        try:
            raise StorageError("record_response", "lock timeout", transient=True)
        except StorageError:
            get_logger("services.approval_store").exception("write_failed")
        line = _only(json_stream(), "write_failed")
        assert line["logger"] == "approval_kernel.services.approval_store"
        assert line["exc_code"] == "STORAGE_ERROR"
        assert line["exc_operation"] == "record_response"
        assert line["exc_reason"] == "lock timeout"
        assert line["exc_transient"] is True

    def test_plain_exception_has_no_code(self, json_stream):
        try:
            {}["missing"]
        except KeyError:
            get_logger("test").warning("lookup", exc_info=True)
        line = _only(json_stream(), "lookup")
        assert line["exc_type"] == "KeyError"
        assert "exc_code" not in line


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_lowercase_level_name_from_settings(self):
        stream = StringIO()
        reset_logging()
        try:
            configure_logging(level="warning", stream=stream)
            logger = get_logger("services.approval_service")
            logger.info("quiet")
            logger.warning("gateway_degraded", extra={"gateway": "directory"})
            lines = [json.loads(line) for line in stream.getvalue().splitlines()]
            assert [line["message"] for line in lines] == ["gateway_degraded"]
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)

    def test_second_call_keeps_first_handler(self, json_stream):
        other = StringIO()
        configure_logging(level=logging.ERROR, stream=other)
        get_logger("test").info("still_here")
        assert other.getvalue() == ""
        assert [line["message"] for line in json_stream()] == ["still_here"]
        assert len(logging.getLogger("approval_kernel").handlers) == 1
