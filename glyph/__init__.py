"""
glyph - terminal-style note taking

This package provides a simulated command-line shell over a local note
store: a command registry with aliases and typo suggestions, a parser with
pipelines, a dispatcher producing typed output lines, a folder tree with a
current directory, and a SQLite-backed store.
"""

from .config import VERSION

__version__ = VERSION

from .output import (
    OutputKind,
    OutputLine,
    OutputAction,
    ActionKind,
    CommandResult,
    EditorRequest,
    PendingUndo,
)

from .registry import (
    Category,
    CommandDefinition,
    CommandRegistry,
    RegistryError,
)

from .command_parser import (
    CommandParser,
    ParsedCommand,
    Pipeline,
    ParseError,
    InputTooLongError,
)

from .store import (
    Note,
    Folder,
    DeletedNote,
    NoteStore,
    StoreError,
    open_store,
)

from .dispatcher import (
    CommandDispatcher,
    ShellContext,
)

from .terminal import (
    ShellSession,
    Terminal,
    TerminalConfig,
    CommandHistory,
)

__all__ = [
    # Output
    "OutputKind",
    "OutputLine",
    "OutputAction",
    "ActionKind",
    "CommandResult",
    "EditorRequest",
    "PendingUndo",

    # Commands
    "Category",
    "CommandDefinition",
    "CommandRegistry",
    "RegistryError",
    "CommandParser",
    "ParsedCommand",
    "Pipeline",
    "ParseError",
    "InputTooLongError",
    "CommandDispatcher",
    "ShellContext",

    # Store
    "Note",
    "Folder",
    "DeletedNote",
    "NoteStore",
    "StoreError",
    "open_store",

    # Terminal
    "ShellSession",
    "Terminal",
    "TerminalConfig",
    "CommandHistory",

    # Version info
    "__version__",
]
