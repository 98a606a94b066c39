"""
Transcript commands for the chatlog CLI.

Replay a recorded event log offline, or follow and drive a live task
through the bridge.
"""

from argparse import ArgumentParser, Namespace
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Optional

from ..._exceptions import AuthenticationError, ChatlogError
from ...engine import TranscriptEngine
from ...events import BridgeFrameAdapter
from ...session import LiveSession
from ...timers import ElapsedTimer
from ..base import Command, CommandGroup
from ..display import TranscriptDisplay, create_display

if TYPE_CHECKING:
    from ..._client import ChatLog

logger = logging.getLogger(__name__)

FORMATS = ("verbose", "compact", "json")


def _add_format_argument(parser: ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        choices=FORMATS,
        default="verbose",
        help="Output format (default: verbose)",
    )


def load_records(path: Path) -> tuple[list[dict[str, Any]], bool]:
    """
    Read a recorded event log.

    A JSON array is a history batch; anything else is read as JSON lines,
    one inbound event or bridge frame per line. Malformed lines are skipped.

    Returns:
        (inbound event dicts, whether the file was a batch)
    """
    text = path.read_text(encoding="utf-8")
    if text.lstrip().startswith("["):
        data = json.loads(text)
        return _normalize_all(data if isinstance(data, list) else []), True

    records: list[dict[str, Any]] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed line %d in %s", lineno, path)
            continue
        records.extend(_normalize_all([data]))
    return records, False


def _normalize_all(items: list[Any]) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for item in items:
        if isinstance(item, dict):
            records.extend(BridgeFrameAdapter.normalize(item))
    return records


def replay(records: list[dict[str, Any]], display: TranscriptDisplay, *, batch: bool) -> TranscriptEngine:
    """Feed ``records`` through a fresh engine, rendering as it goes."""
    engine = TranscriptEngine()
    display.start()
    if batch:
        display.on_effects(engine.load_batch(records))
    else:
        for record in records:
            display.on_effects(engine.ingest(record))
    display.on_effects(engine.finalize_stream())
    display.finish(engine)
    return engine


class TranscriptCommandGroup(CommandGroup):
    """Transcript command group."""

    name = "transcript"
    aliases: ClassVar[list[str]] = ["t"]
    description = "Replay, follow and drive agent transcripts"

    def __init__(self) -> None:
        super().__init__()
        self.add_subcommand(ReplayCommand())
        self.add_subcommand(FollowCommand())
        self.add_subcommand(SendCommand())
        self.add_subcommand(StopCommand())


class ReplayCommand(Command):
    """Render a recorded event log."""

    name = "replay"
    aliases: ClassVar[list[str]] = ["r"]
    description = "Replay a recorded event log (JSON array or JSON lines)"

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument("file", help="Path to the recorded events")
        _add_format_argument(parser)

    def execute(self, args: Namespace, client: Optional["ChatLog"] = None) -> int:
        try:
            records, batch = load_records(Path(args.file))
        except OSError as e:
            print(f"❌ Cannot read {args.file}: {e}")
            return 1
        except json.JSONDecodeError as e:
            print(f"❌ {args.file} is not valid JSON: {e}")
            return 1

        replay(records, create_display(args.format), batch=batch)
        return 0


class FollowCommand(Command):
    """Follow a live task."""

    name = "follow"
    aliases: ClassVar[list[str]] = ["f"]
    description = "Follow a live task through the bridge"
    requires_client = True

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument("task_id", help="Task to follow")
        _add_format_argument(parser)

    def execute(self, args: Namespace, client: Optional["ChatLog"] = None) -> int:
        if not client:
            print("❌ A bridge client is required")
            return 1

        display = create_display(args.format)
        session = LiveSession(
            client,
            args.task_id,
            engine=TranscriptEngine(timer=ElapsedTimer()),
            on_effects=display.on_effects,
        )
        display.start()
        try:
            session.run()
        finally:
            session.close()
            display.finish(session.engine)
        return 0


class SendCommand(Command):
    """Send one user message to a task."""

    name = "send"
    aliases: ClassVar[list[str]] = ["s"]
    description = "Send a message (optionally with images) to a task"
    requires_client = True

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument("task_id", help="Task to message")
        parser.add_argument("message", help="Message text")
        parser.add_argument(
            "--image", action="append", default=[], metavar="PATH", help="Attach an image (repeatable)"
        )

    def execute(self, args: Namespace, client: Optional["ChatLog"] = None) -> int:
        if not client:
            print("❌ A bridge client is required")
            return 1

        display = create_display("compact")
        session = LiveSession(client, args.task_id, on_effects=display.on_effects)
        try:
            for image in args.image:
                session.attach_image(image)
            session.send(args.message)
        except AuthenticationError as e:
            print(f"❌ Authentication failed: {e}")
            return 1
        except OSError as e:
            print(f"❌ Cannot read attachment: {e}")
            return 1
        return 0


class StopCommand(Command):
    """Interrupt a running task."""

    name = "stop"
    aliases: ClassVar[list[str]] = []
    description = "Stop the current generation of a task"
    requires_client = True

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument("task_id", help="Task to interrupt")

    def execute(self, args: Namespace, client: Optional["ChatLog"] = None) -> int:
        if not client:
            print("❌ A bridge client is required")
            return 1

        try:
            client.tasks.interrupt(args.task_id)
        except ChatlogError as e:
            print(f"❌ Error stopping task: {e}")
            return 1
        print(f"⏹ Stop requested for {args.task_id}")
        return 0
