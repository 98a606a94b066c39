"""Bridge client facade."""

from __future__ import annotations

import os

from ._http import HTTPClient
from ._resources import Tasks

DEFAULT_BRIDGE_URL = "http://127.0.0.1:8765"


class ChatLog:
    """Client for the local agent bridge.

    Usage:
        client = ChatLog()
        engine = TranscriptEngine()
        engine.load_batch(client.tasks.history("task_1"))
        with client.tasks.events("task_1") as stream:
            for event in stream:
                engine.ingest(event)
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: int = 60,
    ):
        base_url = base_url or os.environ.get("CHATLOG_BRIDGE_URL") or DEFAULT_BRIDGE_URL
        token = token or os.environ.get("CHATLOG_TOKEN")

        self._http = HTTPClient(base_url=base_url, token=token, timeout=timeout)
        self.tasks = Tasks(self._http)

    @property
    def base_url(self) -> str:
        return self._http.base_url

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> ChatLog:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
