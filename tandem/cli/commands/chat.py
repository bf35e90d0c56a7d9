"""
Chat command: run one conversational turn against the configured endpoints.
"""

from argparse import ArgumentParser, Namespace
from typing import TYPE_CHECKING, ClassVar, Optional

from rich.console import Console

from ..._http import AgentTransport, ChatTransport, HTTPClient
from ...exceptions import NotFoundError, PersistenceError
from ...gate import PersistenceGate
from ...reconciler import EventReconciler, TurnOutcome
from ..base import Command
from ..display import TimelineDisplay
from ..util import run_interruptible

if TYPE_CHECKING:
    from ...store import SessionStore


class ChatCommand(Command):
    """Send a message; a URL in it also starts the browser agent."""

    name = "chat"
    aliases: ClassVar[list[str]] = ["c"]
    description = "Send a message in the current (or a new) session"
    standalone = True

    def add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument("message", help="Message to send")
        parser.add_argument("--session", help="Session ID to continue (default: current)")
        parser.add_argument("--new", action="store_true", help="Start a new session first")
        parser.add_argument(
            "--no-agent", action="store_true", help="Never start the browser agent"
        )

    def execute(self, args: Namespace, store: Optional["SessionStore"] = None) -> int:
        settings = args.settings
        console = Console()
        display = TimelineDisplay(console=console)
        http = HTTPClient(settings.base_url, api_key=settings.api_key, timeout=settings.timeout)

        reconciler = EventReconciler(
            store,
            PersistenceGate(store),
            primary=ChatTransport(http, settings.chat_path),
            agent=None if args.no_agent else AgentTransport(http, settings.agent_path),
            settings=settings,
            listener=display.update,
        )

        async def _turn() -> TurnOutcome:
            await store.load()
            if args.new:
                await store.create_session()
            await reconciler.open_session(args.session)
            return await reconciler.submit(args.message)

        try:
            outcome = run_interruptible(_turn(), reconciler.stop)
        except (NotFoundError, PersistenceError) as e:
            print(f"❌ {e}")
            return 1
        finally:
            display.finish()
            http.close()

        if not outcome.committed:
            console.print("[yellow]⚠️  Conversation was not saved; it will be retried next turn[/yellow]")
        console.print(f"[dim]Session {outcome.session_id}[/dim]")
        return 1 if outcome.errors else 0
