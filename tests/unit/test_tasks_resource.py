"""Tests for client.tasks endpoints."""

import base64
import json

import pytest
import responses

from chatlog._exceptions import ValidationError
from chatlog._resources.tasks import MAX_ATTACHMENT_BYTES
from chatlog._types import ReviewContext

BASE = "http://bridge.test/tasks/t1"


class TestHistory:
    @responses.activate
    def test_list_body(self, client):
        responses.add(
            responses.GET, f"{BASE}/messages", json=[{"type": "user", "content": "hi"}, "junk"]
        )
        assert client.tasks.history("t1") == [{"type": "user", "content": "hi"}]

    @responses.activate
    def test_wrapped_body(self, client):
        responses.add(
            responses.GET, f"{BASE}/messages", json={"messages": [{"type": "assistant", "content": "ok"}]}
        )
        assert client.tasks.history("t1")[0]["type"] == "assistant"

    @responses.activate
    def test_data_key(self, client):
        responses.add(responses.GET, f"{BASE}/messages", json={"data": []})
        assert client.tasks.history("t1") == []

    @responses.activate
    def test_bridge_frames_are_translated(self, client):
        responses.add(
            responses.GET,
            f"{BASE}/messages",
            json=[
                {"type": "user_message", "content": "Rename foo"},
                {
                    "type": "assistant",
                    "message": {
                        "content": [
                            {"type": "tool_use", "name": "Edit", "input": {"file_path": "app.py"}}
                        ]
                    },
                },
            ],
        )
        records = client.tasks.history("t1")
        assert records[0] == {"type": "user", "content": "Rename foo", "timestamp": None}
        assert records[1]["message_type"] == "tool_call"
        assert records[1]["name"] == "Edit"
        assert len(records) == 2


class TestEvents:
    @responses.activate
    def test_stream_events(self, client):
        body = (
            'data: {"type": "streaming", "message_type": "text_chunk", "content": "Hi"}\n\n'
            'data: {"type": "result"}\n\n'
            "data: [DONE]\n\n"
        )
        responses.add(
            responses.GET, f"{BASE}/events", body=body, content_type="text/event-stream"
        )
        with client.tasks.events("t1") as stream:
            events = list(stream)
        assert events == [
            {"type": "streaming", "message_type": "text_chunk", "content": "Hi"},
            {"status": "Completed", "status_state": "completed"},
        ]


class TestActions:
    @responses.activate
    def test_send_payload(self, client):
        responses.add(responses.POST, f"{BASE}/messages", json={}, status=201)
        client.tasks.send("t1", {"type": "user", "content": "Yes"})
        assert json.loads(responses.calls[0].request.body) == {"type": "user", "content": "Yes"}

    @responses.activate
    def test_respond_permission(self, client):
        responses.add(responses.POST, f"{BASE}/permissions/r1", json={})
        client.tasks.respond_permission("t1", request_id="r1", response_id="allow")
        assert json.loads(responses.calls[0].request.body) == {
            "requestId": "r1",
            "responseId": "allow",
        }

    @responses.activate
    def test_respond_user_input(self, client):
        responses.add(responses.POST, f"{BASE}/user-input/r2", json={})
        answers = {"q1": {"answers": ["A"]}}
        client.tasks.respond_user_input("t1", request_id="r2", answers=answers)
        assert json.loads(responses.calls[0].request.body)["answers"] == answers

    @responses.activate
    def test_interrupt(self, client):
        responses.add(responses.POST, f"{BASE}/interrupt", status=204)
        client.tasks.interrupt("t1")
        assert len(responses.calls) == 1

    @responses.activate
    def test_delete_attachment(self, client):
        responses.add(responses.DELETE, f"{BASE}/attachments/a1", status=204)
        client.tasks.delete_attachment("t1", "a1")
        assert responses.calls[0].request.method == "DELETE"


class TestUploadAttachment:
    @responses.activate
    def test_upload(self, client):
        responses.add(responses.POST, f"{BASE}/attachments", json={"id": "a9"})
        attachment = client.tasks.upload_attachment(
            "t1", file_name="shot.png", mime_type="image/png", data=b"\x89PNG"
        )
        body = json.loads(responses.calls[0].request.body)
        assert base64.b64decode(body["data"]) == b"\x89PNG"
        assert attachment.id == "a9"
        assert attachment.file_name == "shot.png"
        assert attachment.data_ref.startswith("data:image/png;base64,")

    def test_rejects_non_image(self, client):
        with pytest.raises(ValidationError):
            client.tasks.upload_attachment("t1", file_name="a.txt", mime_type="text/plain", data=b"x")

    def test_rejects_oversized_image(self, client):
        with pytest.raises(ValidationError, match="5MB"):
            client.tasks.upload_attachment(
                "t1",
                file_name="big.png",
                mime_type="image/png",
                data=b"x" * (MAX_ATTACHMENT_BYTES + 1),
            )


class TestReview:
    @responses.activate
    def test_review_context(self, client):
        responses.add(
            responses.GET,
            f"{BASE}/review-context",
            json={
                "current_branch": "feature/rename",
                "base_branch": "develop",
                "commit_log": "abc123 Rename foo",
                "diff": "+bar = 1",
                "diff_truncated": True,
            },
        )
        context = client.tasks.review_context("t1")
        assert context == ReviewContext(
            current_branch="feature/rename",
            base_branch="develop",
            commit_log="abc123 Rename foo",
            diff="+bar = 1",
            diff_truncated=True,
        )

    @responses.activate
    def test_start_review(self, client):
        responses.add(responses.POST, f"{BASE}/reviews", json={"taskId": "t2"}, status=201)
        assert client.tasks.start_review("t1", prompt="Review this", agent_id="codex") == "t2"
        assert json.loads(responses.calls[0].request.body) == {
            "prompt": "Review this",
            "agentId": "codex",
        }
