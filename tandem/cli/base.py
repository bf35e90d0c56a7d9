"""
Command base classes for the tandem CLI.

Every top-level command is either a ``CommandGroup`` (``tandem sessions
...``) or a command marked ``standalone`` (``tandem chat``). Commands that
only touch the session store subclass ``StoreCommand`` and implement an
async ``run``.
"""

from abc import ABC, abstractmethod
from argparse import ArgumentParser, Namespace
import asyncio
from typing import TYPE_CHECKING, ClassVar, Optional

from ..exceptions import NotFoundError, PersistenceError

if TYPE_CHECKING:
    from ..store import SessionStore


class Command(ABC):
    """A CLI command. Subclasses set ``name`` and ``description``."""

    name: str = ""
    aliases: ClassVar[list[str]] = []
    description: str = ""

    standalone: bool = False

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        if cls.__name__ in ("CommandGroup", "StoreCommand"):
            return
        for attr in ("name", "description"):
            if not getattr(cls, attr):
                raise ValueError(f"Command class {cls.__name__} must define a '{attr}' attribute")

    @abstractmethod
    def add_arguments(self, parser: ArgumentParser) -> None: ...

    @abstractmethod
    def execute(self, args: Namespace, store: Optional["SessionStore"] = None) -> int:
        """
        Run the command.

        Args:
            args: Parsed arguments; ``args.settings`` holds the Settings
            store: Session store, not loaded yet

        Returns:
            Process exit code
        """

    def get_all_names(self) -> list[str]:
        return [self.name, *self.aliases]


class StoreCommand(Command):
    """
    A command that loads the session store and runs one coroutine against it.

    Unknown session ids and failed writes are reported as ``❌`` lines with
    exit code 1.
    """

    @abstractmethod
    async def run(self, args: Namespace, store: "SessionStore") -> int: ...

    def execute(self, args: Namespace, store: Optional["SessionStore"] = None) -> int:
        async def _run() -> int:
            await store.load()
            return await self.run(args, store)

        try:
            return asyncio.run(_run())
        except (NotFoundError, PersistenceError) as e:
            print(f"❌ {e}")
            return 1


class CommandGroup(Command):
    """A command whose work is done by one of its subcommands."""

    def __init__(self) -> None:
        self.subcommands: list[Command] = []

    def add_subcommand(self, command: Command) -> None:
        self.subcommands.append(command)

    def get_subcommands(self) -> list[Command]:
        return self.subcommands.copy()

    @property
    def dest(self) -> str:
        """Namespace attribute holding the chosen subcommand name."""
        return f"{self.name}_command"

    def add_arguments(self, parser: ArgumentParser) -> None:
        if not self.subcommands:
            return
        subparsers = parser.add_subparsers(dest=self.dest, help=f"{self.description} commands")
        for command in self.subcommands:
            subparser = subparsers.add_parser(
                command.name, aliases=command.aliases, help=command.description
            )
            command.add_arguments(subparser)

    def find_subcommand(self, name: str | None) -> Command | None:
        for command in self.subcommands:
            if name in command.get_all_names():
                return command
        return None

    def execute(self, args: Namespace, store: Optional["SessionStore"] = None) -> int:
        chosen = getattr(args, self.dest, None)
        if not chosen:
            available = ", ".join(c.name for c in self.subcommands)
            print(f"Error: No subcommand specified for '{self.name}' (one of: {available})")
            return 1

        command = self.find_subcommand(chosen)
        if command is None:
            print(f"Error: Unknown subcommand '{chosen}' for '{self.name}'")
            return 1
        return command.execute(args, store)
