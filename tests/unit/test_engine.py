"""Tests for TranscriptEngine routing, dedupe, ordering, status and outbound payloads."""

import json
import logging

import pytest

from chatlog import AlreadyAnsweredError, TranscriptEngine, UnknownCardError, ValidationError
from chatlog._types import (
    Attachment,
    EffectType,
    InputState,
    MessageType,
    PermissionState,
    StatusState,
    ToolState,
)

FENCED_DIFF = "```diff\n@@ -1,2 +1,3 @@\n-a\n+b\n+c\n```"


def delta(message_type, content="", **fields):
    return {"type": "streaming", "message_type": message_type, "content": content, **fields}


def status(text, state):
    return {"status": text, "status_state": state}


def types(engine):
    return [message.type for message in engine.messages]


class TestDedupe:
    def test_batch_copy_of_finalized_stream_is_suppressed(self, engine):
        """Streamed "Fixed the bug." followed by the same complete message keeps one entry."""
        engine.ingest(delta("text_chunk", "Fixed the "))
        engine.ingest(delta("text_chunk", "bug."))
        engine.ingest(status("Done", "completed"))
        assert len(engine.messages) == 1

        effects = engine.ingest({"type": "assistant", "content": "Fixed the bug."})
        assert effects == []
        assert len(engine.messages) == 1

    def test_only_one_suppression_per_finalize(self, engine):
        engine.ingest(delta("text_chunk", "Fixed the bug."))
        engine.finalize_stream()
        engine.ingest({"type": "assistant", "content": "Fixed the bug."})
        engine.ingest({"type": "assistant", "content": "Fixed the bug."})
        assert len(engine.messages) == 2

    def test_different_text_clears_memo(self, engine):
        engine.ingest(delta("text_chunk", "First answer"))
        engine.finalize_stream()
        engine.ingest({"type": "assistant", "content": "Other answer"})
        engine.ingest({"type": "assistant", "content": "First answer"})
        assert [m.content for m in engine.messages] == [
            "First answer",
            "Other answer",
            "First answer",
        ]

    def test_open_stream_finalized_in_place(self, engine):
        engine.ingest(delta("text_chunk", "All green.", item_id="msg-1"))
        effects = engine.ingest({"type": "assistant_message", "content": "All green.\n"})
        assert len(engine.messages) == 1
        assert engine.session is None
        assert EffectType.STREAM_FINALIZED in [e.type for e in effects]
        # The in-place finalize consumed the memo.
        engine.ingest({"type": "assistant", "content": "All green."})
        assert len(engine.messages) == 2


class TestOrdering:
    def test_finalized_stream_keeps_its_position(self, engine):
        engine.ingest(delta("text_chunk", "Working on it"))
        engine.ingest({"type": "system", "content": "Background note"})
        engine.ingest(status("", "idle"))
        assert types(engine) == [MessageType.ASSISTANT, MessageType.SYSTEM]

    def test_tool_call_finalizes_open_stream(self, engine):
        engine.ingest(delta("text_chunk", "Let me look"))
        engine.ingest(delta("tool_call", name="Read", arguments='{"path": "a.py"}'))
        assert types(engine) == [MessageType.ASSISTANT, MessageType.TOOL_CALL]
        assert engine.status_text == "Running: Read"

    def test_permission_record_finalizes_open_stream(self, engine):
        engine.ingest(delta("reasoning_chunk", "Need approval"))
        engine.ingest(
            {
                "type": "permission_request",
                "request_id": "r1",
                "tool_name": "execute_command",
                "raw_input": {"command": "npm test"},
            }
        )
        assert types(engine) == [MessageType.REASONING, MessageType.PERMISSION_REQUEST]

    def test_diff_inserted_before_open_stream(self, engine):
        engine.ingest(delta("tool_call", name="Edit", arguments="{}"))
        engine.ingest(delta("text_chunk", "Editing now"))
        assert engine.session.anchor == 1

        engine.ingest(delta("tool_return", FENCED_DIFF))
        assert engine.session.anchor == 2

        engine.finalize_stream()
        assert types(engine) == [MessageType.TOOL_CALL, MessageType.DIFF, MessageType.ASSISTANT]
        assert (engine.tally.additions, engine.tally.deletions) == (2, 1)

    def test_reasoning_then_text(self, engine):
        engine.ingest(delta("reasoning_chunk", "\nHmm", item_id="ignored"))
        engine.ingest(delta("text_chunk", "Answer"))
        engine.finalize_stream()
        assert types(engine) == [MessageType.REASONING, MessageType.ASSISTANT]
        assert engine.messages[0].content == "Hmm"


class TestToolResults:
    def test_read_with_null_result(self, engine):
        engine.ingest(delta("tool_call", name="Read", arguments="{}"))
        engine.ingest(delta("tool_return", "null"))
        invocation = engine.messages[0].content
        assert invocation.state == ToolState.COMPLETE
        assert invocation.result is None
        assert MessageType.DIFF not in types(engine)

    def test_record_tool_return_merges_into_pending_call(self, engine):
        engine.ingest({"type": "tool_call", "tool_call": {"name": "Bash", "arguments": "{}"}})
        engine.ingest({"type": "tool_return", "tool_return": "exit 0"})
        assert len(engine.messages) == 1
        assert engine.messages[0].content.result == "exit 0"

    def test_record_tool_return_without_call_is_standalone(self, engine):
        engine.ingest({"type": "tool_return_message", "content": "orphan", "timestamp": "t1"})
        message = engine.messages[0]
        assert message.type == MessageType.TOOL_RETURN
        assert message.timestamp == "t1"


class TestRecords:
    def test_unknown_type_becomes_system(self, engine):
        engine.ingest({"type": "mystery", "content": "hello"})
        assert types(engine) == [MessageType.SYSTEM]

    def test_unknown_delta_is_ignored(self, engine):
        assert engine.ingest(delta("telepathy", "x")) == []
        assert engine.messages == []

    def test_plan_update_replaces_plan_without_message(self, engine):
        content = json.dumps({"explanation": "Go", "plan": [{"step": "A", "status": "done"}]})
        effects = engine.ingest({"type": "plan_update", "content": content})
        assert engine.messages == []
        assert engine.plan.steps[0].status == "completed"
        assert effects[0].type == EffectType.PLAN_UPDATED

        engine.ingest(delta("plan_update", json.dumps({"plan": []})))
        assert engine.plan.steps == []

    def test_plan_content_appends_note(self, engine):
        content = json.dumps({"content": "# Plan\n- step", "file_path": "PLAN.md"})
        engine.ingest({"type": "plan_content", "content": content})
        note = engine.messages[0].content
        assert note.text == "# Plan\n- step"
        assert note.file_path == "PLAN.md"

    def test_plain_plan_content(self, engine):
        engine.ingest(delta("plan_content", "Just text", file_path="p.md"))
        assert engine.messages[0].content.text == "Just text"
        assert engine.messages[0].content.file_path == "p.md"

    def test_reasoning_record_trimmed(self, engine):
        engine.ingest({"type": "reasoning", "reasoning": "\n\nStep back  \n"})
        assert engine.messages[0].content == "Step back"

    def test_blank_reasoning_record_dropped(self, engine):
        assert engine.ingest({"type": "reasoning", "content": "\n  \n"}) == []

    def test_file_edit_preview(self, engine):
        engine.ingest({"type": "file_edit", "edit_content": "y" * 400})
        edit = engine.messages[0].content
        assert edit.file_path == "Unknown file"
        assert edit.preview == "y" * 300 + "... (truncated)"

    def test_diff_record(self, engine):
        engine.ingest({"type": "diff", "diff": "diff --git a/x.py b/x.py\n@@ -1 +1 @@\n-a\n+b"})
        assert engine.messages[0].content.title == "x.py"
        assert engine.tally.additions == 1

    def test_empty_diff_record_dropped(self, engine):
        assert engine.ingest({"type": "diff", "content": "   "}) == []

    def test_error_record(self, engine):
        engine.ingest({"type": "error", "content": "Agent crashed"})
        assert types(engine) == [MessageType.ERROR]

    def test_user_record_with_attachments(self, engine):
        engine.ingest(
            {
                "type": "user",
                "content": "See image",
                "attachments": [{"id": "a1", "fileName": "shot.png", "mimeType": "image/png"}],
            }
        )
        attachment = engine.messages[0].attachments[0]
        assert attachment.file_name == "shot.png"

    def test_assistant_record_uses_markup(self, timer):
        engine = TranscriptEngine(markup=str.upper, timer=timer)
        engine.ingest({"type": "assistant", "content": "hello"})
        assert engine.messages[0].rendered == "HELLO"


class TestStatus:
    def test_running_starts_timer(self, engine, timer):
        effects = engine.ingest(status("Thinking...", "running"))
        timer.start.assert_called_once()
        assert engine.generating is True
        assert engine.status_text == "Working"
        assert effects[-1].payload == {"text": "Working", "state": "running", "elapsed": "0s"}

    def test_specific_running_status_kept(self, engine):
        engine.set_status("Installing dependencies", StatusState.RUNNING)
        assert engine.status_text == "Installing dependencies"

    def test_completed_finalizes_and_stops_timer(self, engine, timer):
        engine.ingest(delta("text_chunk", "Done"))
        engine.ingest(status("Completed", "completed"))
        timer.stop.assert_called()
        assert engine.generating is False
        assert engine.session is None
        assert engine.status_state == StatusState.COMPLETED

    def test_empty_status_is_ready(self, engine):
        engine.set_status("", "idle")
        assert engine.status_text == "Ready"

    def test_error_keeps_stream_open(self, engine, timer):
        engine.ingest(delta("text_chunk", "partial"))
        engine.set_status("Failed", "error")
        timer.stop.assert_called()
        assert engine.session is not None

    def test_stop_generation(self, engine):
        engine.ingest(delta("tool_call", name="Bash", arguments="{}"))
        engine.ingest(delta("text_chunk", "Running tests"))
        engine.stop_generation()
        assert types(engine) == [MessageType.TOOL_CALL, MessageType.ASSISTANT, MessageType.SYSTEM]
        assert engine.messages[2].content == "Stopping generation..."
        assert engine.messages[0].content.is_pending

        engine.ingest(delta("tool_return", "late result"))
        assert engine.messages[0].content.result == "late result"

    def test_stop_when_idle_is_noop(self, engine):
        assert engine.stop_generation() == []

    def test_notify(self, engine):
        (effect,) = engine.notify("Upload failed")
        assert effect.type == EffectType.NOTIFICATION
        assert effect.payload == "Upload failed"


class TestPermissions:
    OPTIONS = [
        {"id": "allow", "label": "Allow", "kind": "allow_once"},
        {"id": "reject-1", "label": "Reject", "kind": "reject_once"},
    ]

    def _request(self, engine):
        engine.ingest(
            delta(
                "permission_request",
                request_id="r1",
                tool_name="execute_command",
                raw_input='{"command": "npm test"}',
                options=self.OPTIONS,
            )
        )
        return engine.messages[-1].content

    def test_request_card(self, engine):
        request = self._request(engine)
        assert request.action_label == "Run Command"
        assert request.command == "npm test"
        assert engine.status_text == "Waiting for permission..."

    def test_confirm(self, engine):
        request = self._request(engine)
        outbound = engine.respond_to_permission("r1", "allow")
        assert outbound.payload == {"requestId": "r1", "responseId": "allow"}
        assert request.state == PermissionState.CONFIRMED
        assert outbound.effects[0].type == EffectType.MESSAGE_UPDATED

    def test_deny_by_option_kind(self, engine):
        request = self._request(engine)
        engine.respond_to_permission("r1", "reject-1")
        assert request.state == PermissionState.DENIED

    def test_missing_ids_abort(self, engine, caplog):
        with caplog.at_level(logging.ERROR):
            assert engine.respond_to_permission(None, "allow") is None
            assert engine.respond_to_permission("r1", "") is None
        assert "Missing request or response ID" in caplog.text

    def test_unknown_request_still_sends(self, engine):
        outbound = engine.respond_to_permission("r404", "allow")
        assert outbound.payload["requestId"] == "r404"
        assert outbound.effects == []


class TestQuestions:
    def test_user_input_response(self, engine):
        engine.ingest(
            delta(
                "user_input_request",
                request_id="r2",
                questions=[
                    {"id": "q1", "question": "Pick", "options": ["A", "B"]},
                    {"id": "q2", "question": "Why?"},
                ],
            )
        )
        assert engine.status_text == "Waiting for input..."
        outbound = engine.respond_to_user_input("r2", {"q1": "B", "q2": "Speed"})
        assert outbound.payload == {
            "requestId": "r2",
            "answers": {"q1": {"answers": ["B"]}, "q2": {"answers": ["Speed"]}},
        }
        assert engine.messages[0].content.state == InputState.ANSWERED

    def test_unknown_input_request(self, engine):
        with pytest.raises(UnknownCardError) as exc_info:
            engine.respond_to_user_input("nope", {})
        assert exc_info.value.card == "nope"
        assert isinstance(exc_info.value, ValidationError)

    def test_input_request_answered_twice(self, engine):
        engine.ingest(
            delta(
                "user_input_request",
                request_id="r3",
                questions=[{"id": "q1", "question": "Pick", "options": ["A", "B"]}],
            )
        )
        engine.respond_to_user_input("r3", {"q1": "A"})
        with pytest.raises(AlreadyAnsweredError):
            engine.respond_to_user_input("r3", {"q1": "B"})

    def test_missing_input_request_id(self, engine):
        assert engine.respond_to_user_input(None) is None

    def test_answer_tool_question(self, engine):
        engine.ingest(
            delta("tool_call", name="AskUserQuestion", arguments='{"question": "Go?", "options": ["Yes", "No"]}')
        )
        outbound = engine.answer_tool_question(0, {"askuserquestion": "Yes"})
        assert outbound.payload == {"type": "user", "content": "Yes"}
        assert engine.messages[0].content.answered is True
        assert engine.messages[1].type == MessageType.USER
        assert outbound.effects[0].type == EffectType.MESSAGE_UPDATED

        with pytest.raises(AlreadyAnsweredError):
            engine.answer_tool_question(0, {"askuserquestion": "No"})

    def test_unanswered_tool_question(self, engine):
        engine.ingest(delta("tool_call", name="AskUserQuestion", arguments='{"question": "Go?"}'))
        assert engine.answer_tool_question(0, {}) is None
        assert engine.messages[0].content.answered is False

    def test_answer_rejects_non_cards(self, engine):
        engine.ingest({"type": "system", "content": "hi"})
        with pytest.raises(UnknownCardError):
            engine.answer_tool_question(0, {})
        with pytest.raises(UnknownCardError):
            engine.answer_tool_question(5, {})


class TestUserMessages:
    def test_payload_with_attachments(self, engine):
        attachment = Attachment(id="a1", file_name="shot.png", mime_type="image/png")
        outbound = engine.add_user_message("  Look at this  ", [attachment])
        assert outbound.payload == {
            "type": "user",
            "content": "Look at this",
            "attachments": [
                {"id": "a1", "fileName": "shot.png", "mimeType": "image/png", "dataRef": None}
            ],
        }
        assert engine.messages[0].timestamp
        assert engine.status_text == "Sending..."

    def test_empty_message_not_sent(self, engine):
        assert engine.add_user_message("   ") is None
        assert engine.messages == []


class TestBatch:
    RECORDS = [
        {"type": "user", "content": "Fix the test", "timestamp": "2024-01-01T00:00:00Z"},
        {"type": "reasoning", "content": "Look at the failure first"},
        {"type": "tool_call", "name": "Read", "arguments": '{"path": "test_app.py"}'},
        {"type": "tool_return", "content": "def test_app(): ..."},
        {"type": "tool_call", "name": "Edit", "arguments": "{}"},
        {"type": "tool_return", "content": FENCED_DIFF},
        {"type": "assistant", "content": "Fixed the bug."},
    ]

    def test_reload_is_idempotent(self, engine):
        """Loading the same batch twice reproduces an identical transcript."""
        engine.load_batch(self.RECORDS)
        first = engine.snapshot()
        engine.load_batch(self.RECORDS)
        second = engine.snapshot()
        assert first["messages"] == second["messages"]
        assert first["tally"] == second["tally"] == {"additions": 2, "deletions": 1}

    def test_batch_replaces_transcript(self, engine):
        engine.ingest({"type": "system", "content": "stale"})
        effects = engine.load_batch(self.RECORDS[:1])
        assert effects[0].type == EffectType.TRANSCRIPT_CLEARED
        assert types(engine) == [MessageType.USER]

    def test_clear_drops_open_session(self, engine):
        engine.ingest(delta("text_chunk", "partial"))
        engine.clear()
        assert engine.session is None
        assert engine.snapshot()["session"] is None
