"""Tasks resource: live events, history and user actions for one agent task."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

from .._exceptions import ValidationError
from .._streaming import EventStream
from .._types import Attachment, ReviewContext
from ..events import BridgeFrameAdapter

if TYPE_CHECKING:
    from .._http import HTTPClient

MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024


class Tasks:
    """client.tasks: follow a task and send user actions back to it."""

    def __init__(self, http: HTTPClient):
        self._http = http

    def events(self, task_id: str) -> EventStream:
        """Open the live event stream (SSE) for a task."""
        resp = self._http.stream("GET", f"/tasks/{task_id}/events")
        return EventStream(resp)

    def history(self, task_id: str) -> list[dict[str, Any]]:
        """Complete message records for a task, oldest first.

        Bridge frames in the stored history are translated the same way as
        frames on the live stream.
        """
        resp = self._http.request("GET", f"/tasks/{task_id}/messages")
        body = resp.json()
        if isinstance(body, dict):
            body = body.get("messages") or body.get("data") or []
        records: list[dict[str, Any]] = []
        for item in body:
            if isinstance(item, dict):
                records.extend(BridgeFrameAdapter.normalize(item))
        return records

    def send(self, task_id: str, payload: dict[str, Any]) -> None:
        """Post an outgoing user message payload built by the engine."""
        self._http.request("POST", f"/tasks/{task_id}/messages", json=payload)

    def respond_permission(self, task_id: str, *, request_id: str, response_id: str) -> None:
        self._http.request(
            "POST",
            f"/tasks/{task_id}/permissions/{request_id}",
            json={"requestId": request_id, "responseId": response_id},
        )

    def respond_user_input(
        self, task_id: str, *, request_id: str, answers: dict[str, dict[str, list[str]]]
    ) -> None:
        self._http.request(
            "POST",
            f"/tasks/{task_id}/user-input/{request_id}",
            json={"requestId": request_id, "answers": answers},
        )

    def interrupt(self, task_id: str) -> None:
        """Ask the agent to stop the current generation."""
        self._http.request("POST", f"/tasks/{task_id}/interrupt")

    def upload_attachment(
        self, task_id: str, *, file_name: str, mime_type: str, data: bytes
    ) -> Attachment:
        """Upload an image for the next user message.

        Raises:
            ValidationError: For non-image files and images over 5MB
        """
        if not mime_type.startswith("image/"):
            raise ValidationError(f"Only images can be attached, got {mime_type!r}")
        if len(data) > MAX_ATTACHMENT_BYTES:
            raise ValidationError("Image exceeds 5MB size limit. Please use a smaller image.")

        encoded = base64.b64encode(data).decode("ascii")
        resp = self._http.request(
            "POST",
            f"/tasks/{task_id}/attachments",
            json={"fileName": file_name or "image.png", "mimeType": mime_type, "data": encoded},
        )
        attachment = Attachment.from_dict(resp.json())
        attachment.file_name = attachment.file_name or file_name or "image.png"
        attachment.mime_type = attachment.mime_type or mime_type
        attachment.data_ref = attachment.data_ref or f"data:{mime_type};base64,{encoded}"
        return attachment

    def delete_attachment(self, task_id: str, attachment_id: str) -> None:
        self._http.request("DELETE", f"/tasks/{task_id}/attachments/{attachment_id}")

    def review_context(self, task_id: str) -> ReviewContext:
        """Branch, commit log and diff of the task's working tree."""
        resp = self._http.request("GET", f"/tasks/{task_id}/review-context")
        return ReviewContext.from_dict(resp.json())

    def start_review(self, task_id: str, *, prompt: str, agent_id: str | None = None) -> str:
        """Start a review session for the task's changes; returns the new task id."""
        body: dict[str, Any] = {"prompt": prompt}
        if agent_id:
            body["agentId"] = agent_id
        resp = self._http.request("POST", f"/tasks/{task_id}/reviews", json=body)
        data = resp.json()
        return str(data.get("taskId") or data.get("id") or "")
