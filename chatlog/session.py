"""LiveSession: keeps a TranscriptEngine in sync with one task on the bridge."""

from __future__ import annotations

from collections.abc import Callable
import logging
import mimetypes
from pathlib import Path
import threading
from typing import TYPE_CHECKING

import requests

from ._exceptions import APIError, ChatlogError, ConflictError
from ._resources.tasks import MAX_ATTACHMENT_BYTES
from ._types import Attachment, Effect
from .engine import Outbound, TranscriptEngine
from .review import build_review_prompt
from .timers import ReconnectScheduler

if TYPE_CHECKING:
    from ._client import ChatLog
    from ._streaming import EventStream
    from .prompts import Selection

logger = logging.getLogger(__name__)

EffectCallback = Callable[[list[Effect]], None]


class LiveSession:
    """Follow a task's event stream and send user actions back.

    History is loaded as a batch on every (re)connect, then live events are
    ingested in arrival order. When the stream drops, a reconnect is
    scheduled with a fixed backoff; ``close()`` cancels it.

    Every engine mutation runs under one lock, so a follow loop on a
    background thread and user actions on the caller's thread are applied
    one at a time, each to completion. Network calls happen outside it.

    Usage:
        session = LiveSession(client, "task_1", on_effects=renderer.apply)
        thread = threading.Thread(target=session.run, daemon=True)
        thread.start()
        session.send("Fix the failing test")
        ...
        session.close()
    """

    def __init__(
        self,
        client: ChatLog,
        task_id: str,
        *,
        engine: TranscriptEngine | None = None,
        on_effects: EffectCallback | None = None,
        scheduler: ReconnectScheduler | None = None,
    ):
        self.client = client
        self.task_id = task_id
        self.engine = engine or TranscriptEngine()
        self.scheduler = scheduler or ReconnectScheduler()
        self.pending_attachments: list[Attachment] = []
        self._on_effects = on_effects
        self._lock = threading.RLock()
        self._review_pending = False
        self._stream: EventStream | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def review_pending(self) -> bool:
        return self._review_pending

    # ------------------------------------------------------------------
    # Inbound

    def load_history(self) -> list[Effect]:
        """Replace the transcript with the task's stored messages."""
        records = self.client.tasks.history(self.task_id)
        return self._apply(self.engine.load_batch, records)

    def run(self) -> None:
        """Load history and follow live events until the task ends or ``close()``."""
        while not self._closed:
            try:
                self.load_history()
                self._follow()
                return
            except (APIError, requests.RequestException) as e:
                if self._closed:
                    return
                logger.warning("Lost connection to task %s: %s", self.task_id, e)
                self._apply(self.engine.notify, "Connection lost, reconnecting...")
            except ChatlogError as e:
                logger.error("Cannot follow task %s: %s", self.task_id, e.message)
                self._apply(self.engine.notify, f"Cannot follow task: {e.message}")
                return

            self.scheduler.schedule()
            if not self.scheduler.wait():
                return

    def _follow(self) -> None:
        with self.client.tasks.events(self.task_id) as stream:
            self._stream = stream
            try:
                for event in stream:
                    if self._closed:
                        break
                    self._apply(self.engine.ingest, event)
            finally:
                self._stream = None

    def close(self) -> None:
        """Stop following: cancel any pending reconnect and close the stream."""
        self._closed = True
        self.scheduler.cancel()
        stream = self._stream
        if stream is not None:
            stream.close()

    # ------------------------------------------------------------------
    # Outbound

    def send(self, text: str) -> list[Effect]:
        """Send a user message with any pending attachments."""
        with self._lock:
            outbound = self.engine.add_user_message(text, self.pending_attachments)
            if outbound is None:
                return []
            self.pending_attachments = []
            self._emit(outbound.effects)
        return self._deliver(outbound, self.client.tasks.send, "send message")

    def respond_permission(self, request_id: str | None, response_id: str | None) -> list[Effect]:
        outbound = self._act(self.engine.respond_to_permission, request_id, response_id)
        if outbound is None:
            return []
        return self._deliver(
            outbound,
            lambda task_id, payload: self.client.tasks.respond_permission(
                task_id, request_id=payload["requestId"], response_id=payload["responseId"]
            ),
            "send permission response",
            already_answered="Permission request was already answered.",
        )

    def respond_user_input(
        self, request_id: str | None, selections: dict[str, Selection] | None = None
    ) -> list[Effect]:
        outbound = self._act(self.engine.respond_to_user_input, request_id, selections)
        if outbound is None:
            return []
        return self._deliver(
            outbound,
            lambda task_id, payload: self.client.tasks.respond_user_input(
                task_id, request_id=payload["requestId"], answers=payload["answers"]
            ),
            "send answers",
            already_answered="Input request was already answered.",
        )

    def answer_tool_question(
        self, index: int, selections: dict[str, Selection] | None = None
    ) -> list[Effect]:
        outbound = self._act(self.engine.answer_tool_question, index, selections)
        if outbound is None:
            return []
        return self._deliver(outbound, self.client.tasks.send, "send answers")

    def stop(self) -> list[Effect]:
        """Interrupt the agent and close the open stream locally."""
        effects = self._apply(self.engine.stop_generation)
        try:
            self.client.tasks.interrupt(self.task_id)
        except ChatlogError as e:
            logger.warning("Failed to interrupt task %s: %s", self.task_id, e.message)
            effects = effects + self._apply(self.engine.notify, f"Failed to stop generation: {e.message}")
        return effects

    def request_review(self, agent_id: str | None = None) -> str | None:
        """Gather the task's branch state and start a code review session.

        One review at a time: while one is being gathered, further calls
        return ``None`` straight away. A failure is reported once as a
        notification and not retried.

        Returns:
            The review task id, or ``None`` when nothing was started
        """
        with self._lock:
            if self._review_pending:
                return None
            self._review_pending = True
        try:
            context = self.client.tasks.review_context(self.task_id)
            return self.client.tasks.start_review(
                self.task_id, prompt=build_review_prompt(context), agent_id=agent_id
            )
        except ChatlogError as e:
            logger.warning("Failed to gather review context for %s: %s", self.task_id, e.message)
            self._apply(self.engine.notify, f"Failed to gather code review context: {e.message}")
            return None
        finally:
            with self._lock:
                self._review_pending = False

    # ------------------------------------------------------------------
    # Attachments

    def attach_image(self, path: str | Path) -> Attachment | None:
        """Upload an image for the next message.

        Non-image files are ignored; oversized images and upload failures
        surface as a notification.
        """
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        if not mime_type or not mime_type.startswith("image/"):
            logger.warning("Ignoring non-image attachment %s", path)
            return None

        data = path.read_bytes()
        if len(data) > MAX_ATTACHMENT_BYTES:
            self._apply(self.engine.notify, "Image exceeds 5MB size limit. Please use a smaller image.")
            return None

        try:
            attachment = self.client.tasks.upload_attachment(
                self.task_id, file_name=path.name, mime_type=mime_type, data=data
            )
        except ChatlogError as e:
            logger.warning("Failed to upload %s: %s", path, e.message)
            self._apply(self.engine.notify, f"Failed to save attachment: {e.message}")
            return None

        with self._lock:
            self.pending_attachments.append(attachment)
        return attachment

    def remove_attachment(self, attachment_id: str) -> None:
        with self._lock:
            self.pending_attachments = [a for a in self.pending_attachments if a.id != attachment_id]
        try:
            self.client.tasks.delete_attachment(self.task_id, attachment_id)
        except ChatlogError as e:
            logger.warning("Failed to delete attachment %s: %s", attachment_id, e.message)

    # ------------------------------------------------------------------

    def _apply(self, operation: Callable[..., list[Effect]], *args) -> list[Effect]:
        """Run one engine operation to completion and render its effects."""
        with self._lock:
            return self._emit(operation(*args))

    def _act(self, operation: Callable[..., Outbound | None], *args) -> Outbound | None:
        with self._lock:
            outbound = operation(*args)
            if outbound is not None:
                self._emit(outbound.effects)
            return outbound

    def _deliver(
        self,
        outbound: Outbound,
        send: Callable[[str, dict], None],
        action: str,
        already_answered: str | None = None,
    ) -> list[Effect]:
        effects = list(outbound.effects)
        try:
            send(self.task_id, outbound.payload)
        except ChatlogError as e:
            if already_answered and isinstance(e, ConflictError):
                logger.info("%s (%s)", already_answered, e.message)
                note = already_answered
            else:
                logger.warning("Failed to %s: %s", action, e.message)
                note = f"Failed to {action}: {e.message}"
            effects.extend(self._apply(self.engine.notify, note))
        return effects

    def _emit(self, effects: list[Effect]) -> list[Effect]:
        if effects and self._on_effects is not None:
            self._on_effects(effects)
        return effects
