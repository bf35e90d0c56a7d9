"""
Command registry for automatic command discovery and registration.
"""

import importlib
import inspect

from .base import Command, CommandGroup

COMMAND_MODULES = ("sessions", "chat")


class CommandRegistry:
    """Registry for CLI commands, filled from the command modules."""

    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}

    def register_command(self, command: Command) -> None:
        """
        Register a single command instance under its name and aliases.

        Raises:
            TypeError: if ``command`` is not a Command
            ValueError: if a name is already taken
        """
        if not isinstance(command, Command):
            raise TypeError(f"Expected Command instance, got {type(command)}")

        for name in command.get_all_names():
            if name in self._commands:
                raise ValueError(f"Command '{name}' is already registered")
            self._commands[name] = command

    def discover_commands_from_module(self, module_name: str) -> None:
        """Register every top-level command class defined in a module."""
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise ImportError(f"Could not import module '{module_name}': {e}") from e

        for _name, obj in inspect.getmembers(module, inspect.isclass):
            if obj.__module__ != module.__name__ or inspect.isabstract(obj):
                continue
            # Subcommands are registered by their parent groups
            if issubclass(obj, CommandGroup) or (
                issubclass(obj, Command) and obj.standalone
            ):
                if obj.name not in self._commands:
                    self.register_command(obj())

    def auto_discover_commands(self, package_name: str = "tandem.cli.commands") -> None:
        for module in COMMAND_MODULES:
            self.discover_commands_from_module(f"{package_name}.{module}")

    def get_command(self, name: str) -> Command:
        """
        Get a registered command by name or alias.

        Raises:
            KeyError: If command is not found
        """
        if name not in self._commands:
            raise KeyError(f"Command '{name}' not found")
        return self._commands[name]

    def get_primary_commands(self) -> list[Command]:
        """Commands by their primary names (aliases excluded), in registration order."""
        return [command for name, command in self._commands.items() if name == command.name]

    def has_command(self, name: str) -> bool:
        return name in self._commands

    def clear(self) -> None:
        self._commands.clear()


# Global command registry instance
registry = CommandRegistry()
