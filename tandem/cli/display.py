"""
CLI display components for the conversation timeline.

The reconciler calls ``TimelineDisplay.update`` after every timeline
mutation; only what has not been printed yet is written, so streamed text
appears as it arrives.
"""

import base64
import binascii
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .._types import (
    ContentPart,
    Message,
    Plan,
    Session,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from ..extract import PLAN_TOOL_NAME, extract_plan
from ..store import SessionGroups

GROUP_TITLES = (
    ("recent", "Recent"),
    ("last_week", "Last 30 days"),
    ("last_month", "Earlier this year"),
    ("previous", "Previous years"),
)


def _screenshot_size(payload: Any) -> str:
    if not isinstance(payload, str):
        return "unknown size"
    try:
        size = len(base64.b64decode(payload, validate=False))
    except (binascii.Error, ValueError):
        return "unreadable"
    return f"{size / 1024:.1f} KB"


def render_plan(plan: Plan) -> Table:
    """Plan steps as a table."""
    table = Table(title=f"Browser Automation Tasks ({len(plan.todos)})", show_lines=False)
    table.add_column("#", style="dim")
    table.add_column("Step")
    table.add_column("Action", style="cyan")
    table.add_column("Type", style="magenta")
    for todo in plan.todos:
        table.add_row(
            escape(todo.id), escape(todo.description), escape(todo.action), escape(todo.details.type)
        )
    return table


class TimelineDisplay:
    """Incremental rich renderer for a conversation timeline."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        # message id -> (index of first unfinished part, chars printed of it)
        self._progress: dict[str, tuple[int, int]] = {}
        self._active_id: str | None = None

    def update(self, timeline: list[Message] | tuple[Message, ...]) -> None:
        for message in timeline:
            self._render_message(message)

    def finish(self) -> None:
        if self._active_id is not None:
            self.console.print()
            self._active_id = None

    def _render_message(self, message: Message) -> None:
        if message.role in ("user", "system") or message.is_error:
            if message.id not in self._progress:
                self._progress[message.id] = (len(message.parts), 0)
                self._render_block(message)
            return

        index, chars = self._progress.get(message.id, (0, 0))
        parts = message.parts
        while index < len(parts):
            part = parts[index]
            is_last = index == len(parts) - 1
            if isinstance(part, TextPart):
                new_text = part.text[chars:]
                if new_text:
                    self._switch_to(message)
                    self.console.print(new_text, end="", style="white", markup=False)
                if is_last:
                    # Trailing text may still grow.
                    chars = len(part.text)
                    break
            else:
                self._switch_to(message)
                self._render_part(part)
            index += 1
            chars = 0
        self._progress[message.id] = (index, chars)

    def _switch_to(self, message: Message) -> None:
        if self._active_id == message.id:
            return
        if self._active_id is not None:
            self.console.print()
        self.console.print("\n[bold green]✦ assistant[/bold green]")
        self._active_id = message.id

    def _render_block(self, message: Message) -> None:
        if self._active_id is not None:
            self.console.print()
            self._active_id = None

        if message.is_error:
            payload = message.parts[0].payload
            text = payload.get("message", "") if isinstance(payload, dict) else str(payload)
            self.console.print(
                Panel(f"[red]{escape(text)}[/red]", title="[red]❌ Error[/red]", border_style="red")
            )
        elif message.role == "user":
            self.console.print(Panel(Text(message.content), title="You", border_style="blue"))
        else:
            self.console.print(
                Panel(
                    Markdown(message.content),
                    title="[dim]Follow-up evaluation request[/dim]",
                    border_style="dim",
                )
            )

    def _render_part(self, part: ContentPart) -> None:
        if isinstance(part, ToolCallPart):
            if part.name == PLAN_TOOL_NAME:
                plan = extract_plan([part])
                if isinstance(plan, Plan):
                    self.console.print()
                    if plan.enhancedPrompt:
                        self.console.print(f"[dim]{escape(plan.enhancedPrompt)}[/dim]")
                    self.console.print(render_plan(plan))
                    return
            action = part.payload.get("action") if isinstance(part.payload, dict) else None
            label = action or part.name or "tool"
            self.console.print(f"\n[bold cyan]⚡ {escape(str(label))}[/bold cyan]")
            return

        if isinstance(part, ToolResultPart):
            if part.name in ("initial_screenshot", "final_screenshot"):
                title = part.name.replace("_", " ")
                self.console.print(
                    f"\n[dim]🖼  {title} ({_screenshot_size(part.payload)})[/dim]"
                )
            elif part.name in ("summary", "final_payload"):
                summary = part.payload.get("summary", "") if isinstance(part.payload, dict) else ""
                self.console.print(
                    Panel(Text(summary), title="Agent summary", border_style="magenta")
                )
            else:
                self.console.print(f"\n[dim]↳ result from {escape(part.name or 'tool')}[/dim]")


def render_session_groups(
    groups: SessionGroups, console: Console, current_id: str | None = None
) -> int:
    """Print the grouped session listing; returns the number of sessions shown."""
    shown = 0
    for attr, title in GROUP_TITLES:
        sessions: list[Session] = getattr(groups, attr)
        if not sessions:
            continue
        table = Table(title=title, title_justify="left")
        table.add_column("", width=1)
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Messages", justify="right")
        table.add_column("Updated")
        for session in sessions:
            marker = "*" if session.id == current_id else ""
            table.add_row(
                marker,
                session.id,
                escape(session.title),
                str(len(session.messages)),
                session.updatedAt.astimezone().strftime("%Y-%m-%d %H:%M"),
            )
            shown += 1
        console.print(table)
    return shown
