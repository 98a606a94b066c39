"""
Command and command-group base classes.

Top-level commands are ``CommandGroup`` subclasses found by the registry;
each group owns its subcommands.
"""

from abc import ABC, abstractmethod
from argparse import ArgumentParser, Namespace
from typing import TYPE_CHECKING, ClassVar, Optional

if TYPE_CHECKING:
    from .._client import ChatLog


class Command(ABC):
    """A CLI command with a name, aliases and a one-line description."""

    name: str = ""
    aliases: ClassVar[list[str]] = []
    description: str = ""

    # Whether execute() needs a bridge client
    requires_client: bool = False

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        if cls.__name__ == "CommandGroup":
            return
        if not cls.name:
            raise ValueError(f"Command class {cls.__name__} must define a 'name' attribute")
        if not cls.description:
            raise ValueError(f"Command class {cls.__name__} must define a 'description' attribute")

    @abstractmethod
    def add_arguments(self, parser: ArgumentParser) -> None:
        """Register command-specific arguments on ``parser``."""

    @abstractmethod
    def execute(self, args: Namespace, client: Optional["ChatLog"] = None) -> int:
        """
        Run the command.

        Args:
            args: Parsed arguments
            client: Bridge client, or None for commands that work offline

        Returns:
            Exit code (0 for success)
        """

    def needs_client(self, args: Namespace) -> bool:
        """Whether these parsed arguments need a bridge client."""
        return self.requires_client

    def get_all_names(self) -> list[str]:
        return [self.name, *self.aliases]


class CommandGroup(Command):
    """A command whose work is done by one of its subcommands."""

    name: str = ""
    aliases: ClassVar[list[str]] = []
    description: str = ""

    def __init__(self) -> None:
        self.subcommands: list[Command] = []

    def add_subcommand(self, command: Command) -> None:
        self.subcommands.append(command)

    def get_subcommand(self, name: str | None) -> Command | None:
        for command in self.subcommands:
            if name in command.get_all_names():
                return command
        return None

    def needs_client(self, args: Namespace) -> bool:
        command = self.get_subcommand(getattr(args, f"{self.name}_command", None))
        return command is not None and command.needs_client(args)

    def add_arguments(self, parser: ArgumentParser) -> None:
        if not self.subcommands:
            return
        subparsers = parser.add_subparsers(
            dest=f"{self.name}_command", help=f"{self.description} commands"
        )
        for command in self.subcommands:
            subparser = subparsers.add_parser(
                command.name, aliases=command.aliases, help=command.description
            )
            command.add_arguments(subparser)

    def execute(self, args: Namespace, client: Optional["ChatLog"] = None) -> int:
        subcommand_name = getattr(args, f"{self.name}_command", None)
        if not subcommand_name:
            print(f"Error: No subcommand specified for '{self.name}'")
            print(f"Available subcommands: {', '.join(cmd.name for cmd in self.subcommands)}")
            return 1

        command = self.get_subcommand(subcommand_name)
        if command is None:
            print(f"Error: Unknown subcommand '{subcommand_name}' for '{self.name}'")
            return 1
        return command.execute(args, client)
