"""
Terminal renderers for transcript effects.

- VerboseDisplay: rich panels, markdown, colored diff lines and live streaming
- CompactDisplay: the conversation text only
- JsonDisplay: one JSON object per effect, for scripting
"""

from abc import ABC, abstractmethod
import json
import re

from rich.console import Console, Group, RenderableType
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from .. import permissions
from .._types import (
    DiffDocument,
    DiffLineKind,
    Effect,
    EffectType,
    FileEdit,
    Message,
    MessageType,
    PermissionRequest,
    PlanContent,
    PlanState,
    Question,
    StreamingSession,
    StreamKind,
    ToolInvocation,
    UserInputRequest,
)
from ..engine import TranscriptEngine

_DIFF_STYLES = {
    DiffLineKind.ADD: "green",
    DiffLineKind.DEL: "red",
    DiffLineKind.HUNK: "cyan",
    DiffLineKind.META: "dim",
    DiffLineKind.CONTEXT: "",
}
_DIFF_SIGNS = {DiffLineKind.ADD: "+", DiffLineKind.DEL: "-", DiffLineKind.CONTEXT: " "}

_PLAN_ICONS = {"completed": "✅", "inProgress": "🔧", "pending": "🕒"}


class TranscriptDisplay(ABC):
    """Base class for effect renderers."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def start(self) -> None:
        """Called before the first effect."""

    @abstractmethod
    def on_effects(self, effects: list[Effect]) -> None:
        """Render the effects of one applied event."""

    def finish(self, engine: TranscriptEngine) -> None:
        """Called once the transcript is complete."""


class CompactDisplay(TranscriptDisplay):
    """
    Conversation text only.

    Assistant text streams as it arrives; user, error and notification lines
    print once. Tools, diffs and cards are left out.
    """

    def __init__(self, console: Console | None = None) -> None:
        super().__init__(console=console)
        self._streamed = 0

    def on_effects(self, effects: list[Effect]) -> None:
        finalized = _finalized_messages(effects)
        for effect in effects:
            if effect.type == EffectType.STREAM_UPDATED:
                session: StreamingSession = effect.payload
                if session.kind == StreamKind.ASSISTANT:
                    print(session.text[self._streamed :], end="", flush=True)
                    self._streamed = len(session.text)
            elif effect.type == EffectType.STREAM_FINALIZED:
                if self._streamed:
                    print()
                self._streamed = 0
            elif effect.type in (EffectType.MESSAGE_APPENDED, EffectType.MESSAGE_INSERTED):
                message = effect.message
                if message is None or id(message) in finalized:
                    continue
                if message.type == MessageType.USER:
                    print(f"> {message.text}")
                elif message.type == MessageType.ASSISTANT:
                    print(message.text)
                elif message.type == MessageType.ERROR:
                    self.console.print(Text(f"❌ Error: {message.text}", style="red"))
            elif effect.type == EffectType.NOTIFICATION:
                self.console.print(Text(f"⚠ {effect.payload}", style="yellow"))

    def finish(self, engine: TranscriptEngine) -> None:
        if self._streamed:
            print()
            self._streamed = 0


class VerboseDisplay(TranscriptDisplay):
    """
    Rich transcript view.

    Streamed text prints live in a muted style; every other message prints
    as a panel or styled line when it enters the transcript. Tool results
    print when their call completes.
    """

    def __init__(self, console: Console | None = None) -> None:
        super().__init__(console=console)
        self._streamed = 0
        self._stream_kind: StreamKind | None = None
        self._last_status: str | None = None

    def on_effects(self, effects: list[Effect]) -> None:
        finalized = _finalized_messages(effects)
        for effect in effects:
            if effect.type == EffectType.STREAM_UPDATED:
                self._render_stream(effect.payload)
            elif effect.type == EffectType.STREAM_FINALIZED:
                self._end_stream()
            elif effect.type in (EffectType.MESSAGE_APPENDED, EffectType.MESSAGE_INSERTED):
                message = effect.message
                if message is not None and id(message) not in finalized:
                    self.console.print(render_message(message))
            elif effect.type == EffectType.MESSAGE_UPDATED:
                self._render_update(effect.message)
            elif effect.type == EffectType.PLAN_UPDATED:
                self.console.print(render_plan(effect.payload))
            elif effect.type == EffectType.STATUS_CHANGED:
                self._render_status(effect.payload)
            elif effect.type == EffectType.NOTIFICATION:
                self.console.print(Text(f"⚠ {effect.payload}", style="yellow"))

    def finish(self, engine: TranscriptEngine) -> None:
        self._end_stream()
        tally = engine.tally
        if tally.has_changes:
            self.console.print(
                f"\n[bold]Changes:[/bold] [green]+{tally.additions}[/green] "
                f"[red]-{tally.deletions}[/red]"
            )

    def _render_stream(self, session: StreamingSession) -> None:
        if self._stream_kind != session.kind:
            self._end_stream()
            self._stream_kind = session.kind
            if session.kind == StreamKind.REASONING:
                self.console.print("\n[dim cyan]🧠 Thinking...[/dim cyan]")
        style = "dim italic cyan" if session.kind == StreamKind.REASONING else "white"
        segment = session.text[self._streamed :]
        if segment:
            self.console.print(segment, end="", style=style, markup=False, highlight=False)
            self._streamed = len(session.text)

    def _end_stream(self) -> None:
        if self._streamed:
            self.console.print()
        self._streamed = 0
        self._stream_kind = None

    def _render_update(self, message: Message | None) -> None:
        if message is None:
            return
        content = message.content
        if isinstance(content, ToolInvocation):
            if content.is_pending:
                return
            name = escape(content.name)
            self.console.print(f"[green]✅ Completed tool:[/green] [yellow]{name}[/yellow]")
            if content.result:
                self.console.print(
                    Panel(
                        Text(content.result),
                        title=f"[green]✓[/green] Tool Result: {escape(content.name)}",
                        border_style="green",
                        expand=False,
                    )
                )
        elif isinstance(content, PermissionRequest | UserInputRequest):
            self.console.print(f"[dim]↳ {content.state.value}[/dim]")

    def _render_status(self, status: dict) -> None:
        text = status.get("text")
        if not text or text == self._last_status:
            return
        self._last_status = text
        if status.get("state") == "running":
            return
        self._end_stream()
        self.console.print(Text(f"● {text}", style="dim"))


class JsonDisplay(TranscriptDisplay):
    """One JSON line per effect, then the final snapshot."""

    def on_effects(self, effects: list[Effect]) -> None:
        for effect in effects:
            print(json.dumps(effect.to_dict(), default=str), flush=True)

    def finish(self, engine: TranscriptEngine) -> None:
        print(json.dumps({"type": "snapshot", **engine.snapshot()}, default=str), flush=True)


def _finalized_messages(effects: list[Effect]) -> set[int]:
    """Messages produced by a stream finalize; their text was already shown live."""
    return {
        id(effect.message)
        for effect in effects
        if effect.type == EffectType.STREAM_FINALIZED and effect.message is not None
    }


# ----------------------------------------------------------------------
# Message renderables

_TASK_LIST_PATTERN = re.compile(r"^(\s*[-*]\s+)\[([ xX])\]\s+(.*)$", flags=re.MULTILINE)


def _normalize_markdown(text: str) -> str:
    """Turn GitHub task-list items into check glyphs, which Rich lacks."""

    def replace(match: re.Match[str]) -> str:
        prefix, state, content = match.groups()
        symbol = "☑" if state.lower() == "x" else "☐"
        return f"{prefix}{symbol} {content}"

    return _TASK_LIST_PATTERN.sub(replace, text)


def _markdown_panel(text: str, *, title: str, border_style: str = "cyan") -> Panel:
    return Panel(
        Markdown(_normalize_markdown(text), code_theme="monokai", justify="left"),
        title=title,
        title_align="left",
        border_style=border_style,
        expand=True,
    )


def render_diff(document: DiffDocument) -> Panel:
    body = Text()
    for line in document.lines:
        old = "" if line.old_line is None else str(line.old_line)
        new = "" if line.new_line is None else str(line.new_line)
        body.append(f"{old:>5} {new:>5} ", style="dim")
        sign = _DIFF_SIGNS.get(line.kind, "")
        body.append(sign + line.text + "\n", style=_DIFF_STYLES[line.kind])
    body.rstrip()
    title = (
        f"[bold]{escape(document.title)}[/bold] "
        f"[green]+{document.additions}[/green] [red]-{document.deletions}[/red]"
    )
    return Panel(body, title=title, title_align="left", border_style="blue", expand=True)


def render_permission(request: PermissionRequest) -> Panel:
    lines: list[RenderableType] = [Text(request.action_label, style="bold")]
    if request.command:
        lines.append(Text(request.command, style="yellow"))
    if request.reason:
        lines.append(Text(request.reason, style="dim"))
    if request.amendment:
        lines.append(Text(f"Proposed: {request.amendment}", style="magenta"))

    actions = permissions.build_actions(request.options)
    if actions.layout == "buttons":
        choices = [permissions.option_label(option) for option in actions.options]
    else:
        choices = [
            f"{permissions.option_label(actions.allow_default)} ▾ ({len(actions.allow)})",
            f"{permissions.option_label(actions.deny_default)} ▾ ({len(actions.deny)})",
        ]
    if choices:
        lines.append(Text("  ".join(f"[{choice}]" for choice in choices), style="cyan"))

    return Panel(
        Group(*lines),
        title=f"[yellow]🔐 Permission[/yellow] [dim]{request.state.value}[/dim]",
        title_align="left",
        border_style="yellow",
        expand=False,
    )


def _render_questions(questions: list[Question]) -> Group:
    lines: list[RenderableType] = []
    for question in questions:
        lines.append(Text(f"{question.header}: {question.question}", style="bold"))
        for option in question.options:
            marker = "☐" if question.multi_select else "○"
            label = f"  {marker} {option.label}"
            if option.description:
                label += f" ({option.description})"
            lines.append(Text(label))
        if question.is_freeform:
            lines.append(Text("  (free text answer)", style="dim"))
    return Group(*lines)


def render_plan(plan: PlanState) -> RenderableType:
    if not plan.steps:
        return Text("🗺️ Plan cleared", style="dim magenta")
    header = f"🗺️ Plan ({plan.completed}/{plan.total} completed)"
    lines: list[RenderableType] = [Text(header, style="bold magenta")]
    if plan.explanation:
        lines.append(Text(plan.explanation, style="dim"))
    for idx, step in enumerate(plan.steps, start=1):
        lines.append(Text(f"{idx}. {_PLAN_ICONS.get(step.status, '•')} {step.text}"))
    return Group(*lines)


def render_message(message: Message) -> RenderableType:
    """Rich renderable for one transcript entry."""
    content = message.content
    kind = message.type

    if kind == MessageType.USER:
        text = Text.assemble(("You: ", "bold green"), message.text)
        for attachment in message.attachments:
            text.append(f"\n📎 {attachment.file_name or attachment.id}", style="dim")
        return text
    if kind == MessageType.ASSISTANT:
        return _markdown_panel(message.text, title="[cyan]Assistant[/cyan]")
    if kind == MessageType.REASONING:
        return Group(
            Text("🧠 Thinking", style="dim cyan"), Text(message.text, style="dim italic cyan")
        )
    if kind == MessageType.TOOL_CALL and isinstance(content, ToolInvocation):
        if content.questions:
            state = "answered" if content.answered else "waiting"
            return Panel(
                _render_questions(content.questions),
                title=f"[cyan]❓ {escape(content.name)}[/cyan] [dim]{state}[/dim]",
                title_align="left",
                border_style="cyan",
                expand=False,
            )
        line = Text.assemble(("⚡ Calling tool: ", "bold cyan"), (content.name, "yellow"))
        if content.result:
            line.append(f"\n{content.result}", style="green")
        return line
    if kind == MessageType.TOOL_RETURN:
        return Panel(
            Text(message.text), title="Tool Result", title_align="left", border_style="green", expand=False
        )
    if kind == MessageType.DIFF and isinstance(content, DiffDocument):
        return render_diff(content)
    if kind == MessageType.PERMISSION_REQUEST and isinstance(content, PermissionRequest):
        return render_permission(content)
    if kind == MessageType.USER_INPUT_REQUEST and isinstance(content, UserInputRequest):
        return Panel(
            _render_questions(content.questions),
            title=f"[cyan]❓ Input requested[/cyan] [dim]{content.state.value}[/dim]",
            title_align="left",
            border_style="cyan",
            expand=False,
        )
    if kind == MessageType.PLAN_CONTENT and isinstance(content, PlanContent):
        title = "[magenta]🗺️ Plan[/magenta]"
        if content.file_path:
            title += f" [dim]{escape(content.file_path)}[/dim]"
        return _markdown_panel(content.text, title=title, border_style="magenta")
    if kind == MessageType.FILE_EDIT and isinstance(content, FileEdit):
        return Group(
            Text(f"📝 {content.file_path}", style="bold blue"), Text(content.preview, style="dim")
        )
    if kind == MessageType.ERROR:
        return Panel(Text(message.text, style="red"), title="[red]❌ Error[/red]", border_style="red")
    return Text(message.text, style="dim")


def create_display(format: str = "verbose", console: Console | None = None) -> TranscriptDisplay:
    """
    Build the display for an output format.

    Args:
        format: "verbose", "compact" or "json"

    Returns:
        TranscriptDisplay instance
    """
    if format == "compact":
        return CompactDisplay(console)
    if format == "json":
        return JsonDisplay(console)
    return VerboseDisplay(console)
