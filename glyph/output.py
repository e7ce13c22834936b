"""
Structured output for the glyph shell.

Every command produces a list of OutputLine objects plus optional flags
that ask the presentation layer to do something (open the editor, clear
the screen, start an export). Nothing here knows how lines are drawn.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .store import Note


class OutputKind(Enum):
    """Kinds of output lines, mapped to styles by the renderer."""
    PROMPT = 'prompt'
    PLAIN = 'plain'
    ERROR = 'error'
    WARNING = 'warning'
    INFO = 'info'
    SUCCESS = 'success'
    DIM = 'dim'
    RICH_TEXT = 'rich_text'
    HIGHLIGHT = 'highlight'


class ActionKind(Enum):
    """What activating a line does."""
    OPEN = 'open'  # payload: note id
    CD = 'cd'      # payload: folder name
    RUN = 'run'    # payload: command line


@dataclass(frozen=True)
class OutputAction:
    """Makes a line activatable, e.g. selecting a listed note opens it."""
    kind: ActionKind
    payload: Any

    def as_command(self) -> str:
        """The command line that performs this action."""
        if self.kind == ActionKind.OPEN:
            return f"open {self.payload}"
        if self.kind == ActionKind.CD:
            return f'cd {self.payload}'
        return str(self.payload)


@dataclass(frozen=True)
class OutputLine:
    """A single line of shell output."""
    kind: OutputKind
    content: str
    timestamp: Optional[int] = None
    action: Optional[OutputAction] = None


@dataclass(frozen=True)
class EditorRequest:
    """Ask the presentation layer to open a note in the editor."""
    note: 'Note'
    is_new: bool = False


@dataclass(frozen=True)
class PendingUndo:
    """A delete the presentation layer may offer to undo."""
    note_id: int
    title: str


@dataclass
class CommandResult:
    """
    Result of dispatching one command.

    The flag fields are all optional; a plain result carries only lines.
    """
    lines: List[OutputLine] = field(default_factory=list)
    open_editor: Optional[EditorRequest] = None
    clear: bool = False
    export: bool = False
    import_: bool = False
    pending_undo: Optional[PendingUndo] = None

    @property
    def has_error(self) -> bool:
        """True if any line is an error. Errors stop a pipeline."""
        return any(line.kind == OutputKind.ERROR for line in self.lines)

    def text_lines(self) -> List[str]:
        """Line contents only, as piped to the next stage."""
        return [line.content for line in self.lines]

    def __str__(self) -> str:
        return '\n'.join(self.text_lines())


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


# Line constructors, kept short since handlers build a lot of lines.

def plain(content: str = '', action: Optional[OutputAction] = None) -> OutputLine:
    return OutputLine(OutputKind.PLAIN, content, action=action)


def error(content: str) -> OutputLine:
    return OutputLine(OutputKind.ERROR, content)


def warning(content: str) -> OutputLine:
    return OutputLine(OutputKind.WARNING, content)


def info(content: str, action: Optional[OutputAction] = None) -> OutputLine:
    return OutputLine(OutputKind.INFO, content, action=action)


def success(content: str) -> OutputLine:
    return OutputLine(OutputKind.SUCCESS, content)


def dim(content: str) -> OutputLine:
    return OutputLine(OutputKind.DIM, content)


def rich_text(content: str) -> OutputLine:
    return OutputLine(OutputKind.RICH_TEXT, content)


def prompt(content: str) -> OutputLine:
    return OutputLine(OutputKind.PROMPT, content, timestamp=now_ms())


def result(*lines: OutputLine, **flags) -> CommandResult:
    """Build a CommandResult from lines and keyword flags."""
    return CommandResult(lines=list(lines), **flags)
