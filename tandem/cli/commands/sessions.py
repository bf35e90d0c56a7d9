"""
Session management commands for the tandem CLI.
"""

from argparse import ArgumentParser, Namespace
from typing import TYPE_CHECKING, ClassVar

from rich.console import Console

from ..base import CommandGroup, StoreCommand
from ..display import TimelineDisplay, render_session_groups

if TYPE_CHECKING:
    from ...store import SessionStore


class SessionsCommandGroup(CommandGroup):
    """Session management command group."""

    name = "sessions"
    aliases: ClassVar[list[str]] = ["s"]
    description = "List, inspect and manage saved conversations"

    def __init__(self) -> None:
        super().__init__()
        self.add_subcommand(ListSessionsCommand())
        self.add_subcommand(ShowSessionCommand())
        self.add_subcommand(NewSessionCommand())
        self.add_subcommand(SelectSessionCommand())
        self.add_subcommand(DeleteSessionCommand())


class ListSessionsCommand(StoreCommand):
    """List saved sessions grouped by age."""

    name = "list"
    aliases: ClassVar[list[str]] = ["ls"]
    description = "List saved sessions"

    def add_arguments(self, parser: ArgumentParser) -> None:
        pass

    async def run(self, args: Namespace, store: "SessionStore") -> int:
        console = Console()
        if not render_session_groups(store.grouped_sessions(), console, store.current_id):
            console.print('No sessions yet. Start one with: tandem chat "..."')
        return 0


class ShowSessionCommand(StoreCommand):
    """Print one session's timeline."""

    name = "show"
    description = "Show a session's messages (defaults to the current session)"

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument("session_id", nargs="?", help="Session ID")

    async def run(self, args: Namespace, store: "SessionStore") -> int:
        session_id = args.session_id or store.current_id
        if session_id is None:
            print("❌ No current session")
            return 1
        session = store.get(session_id)

        console = Console()
        console.print(f"[bold]{session.title}[/bold] [dim]({session.id})[/dim]", markup=True)
        display = TimelineDisplay(console=console)
        display.update(session.messages)
        display.finish()
        return 0


class NewSessionCommand(StoreCommand):
    """Create an empty session and make it current."""

    name = "new"
    description = "Start a new session"

    def add_arguments(self, parser: ArgumentParser) -> None:
        pass

    async def run(self, args: Namespace, store: "SessionStore") -> int:
        session_id = await store.create_session()
        print(f"✅ Created session {session_id}")
        return 0


class SelectSessionCommand(StoreCommand):
    """Make a session current."""

    name = "select"
    aliases: ClassVar[list[str]] = ["use"]
    description = "Make a session the current one"

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument("session_id", help="Session ID")

    async def run(self, args: Namespace, store: "SessionStore") -> int:
        await store.select_session(args.session_id)
        print(f"✅ Current session: {args.session_id}")
        return 0


class DeleteSessionCommand(StoreCommand):
    """Delete a session."""

    name = "delete"
    aliases: ClassVar[list[str]] = ["rm"]
    description = "Delete a session"

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument("session_id", help="Session ID")

    async def run(self, args: Namespace, store: "SessionStore") -> int:
        await store.delete_session(args.session_id)
        print(f"🗑  Deleted session {args.session_id}")
        if store.current_id:
            print(f"   Current session is now {store.current_id}")
        return 0
