#!/usr/bin/env python3
"""
Terminal front-end for glyph.

This module owns the shell session: the current directory, the command
history, pipeline execution and the visible output log. It also provides a
small ANSI renderer and the interactive REPL that reacts to result flags
(opening the editor, exporting, importing, clearing the screen).

Design Principles:
- All commands go through the dispatcher
- Clean separation between parsing and execution
- Stateful session management, one session per running shell
- Every failure ends up as an output line, never as a crash
"""

import logging
import re
import os
import shlex
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from . import config
from .command_parser import CommandParser, InputTooLongError
from .dispatcher import CommandDispatcher, ShellContext
from .navigation import ROOT_DISPLAY, path_display
from .output import (
    CommandResult, OutputAction, OutputKind, OutputLine, PendingUndo, dim, error,
    prompt, result
)
from .registry import CommandRegistry
from .store import Note, NoteStore, StoreError, open_store

logger = logging.getLogger(__name__)


@dataclass
class TerminalConfig:
    """Configuration for a terminal session."""
    db_path: Path = field(default_factory=lambda: config.DATABASE_PATH)
    history_size: int = field(default_factory=lambda: config.HISTORY_SIZE)
    enable_colors: bool = True
    editor: Optional[str] = field(default_factory=lambda: os.environ.get('EDITOR'))
    export_directory: Path = field(default_factory=Path.cwd)


class CommandHistory:
    """
    Bounded command history with up/down navigation.

    `cursor` is None while the user is not navigating; otherwise it is the
    index of the entry currently recalled.
    """

    def __init__(self, max_size: int = 100):
        """Initialize with maximum history size."""
        self.max_size = max_size
        self.history: List[str] = []
        self.cursor: Optional[int] = None

    def __len__(self) -> int:
        return len(self.history)

    def add(self, command: str):
        """Add a command to history and stop navigating."""
        if command and command.strip():
            self.history.append(command.strip())
            if len(self.history) > self.max_size:
                del self.history[:len(self.history) - self.max_size]
        self.cursor = None

    def previous(self) -> Optional[str]:
        """Step back to an older command, staying on the oldest."""
        if not self.history:
            return None
        if self.cursor is None:
            self.cursor = len(self.history) - 1
        elif self.cursor > 0:
            self.cursor -= 1
        return self.history[self.cursor]

    def next(self) -> str:
        """Step forward; past the newest entry navigation ends with ''."""
        if self.cursor is None:
            return ''
        if self.cursor < len(self.history) - 1:
            self.cursor += 1
            return self.history[self.cursor]
        self.cursor = None
        return ''

    def reset(self):
        self.cursor = None


class ShellSession:
    """
    A running glyph shell.

    The session is the only owner of mutable shell state. It is created once
    per shell and threaded through everything that needs it.
    """

    def __init__(self, store: NoteStore, registry: Optional[CommandRegistry] = None,
                 history_size: int = 100):
        """Initialize a session over a store."""
        self.store = store
        self.registry = registry or CommandRegistry.default()
        self.parser = CommandParser()
        self.dispatcher = CommandDispatcher(self.registry, store)
        self.history = CommandHistory(history_size)
        self.output: List[OutputLine] = []
        self.current_directory_id: Optional[int] = None
        self.path_display = ROOT_DISPLAY
        self.is_processing = False

    def execute(self, command_line: str) -> Optional[CommandResult]:
        """
        Execute a command line, running every pipeline stage in turn.

        Returns None for blank input, and for input submitted while another
        command line is still running.
        """
        if not command_line or not command_line.strip():
            return None
        if self.is_processing:
            logger.warning("Ignoring %r: a command is already running", command_line)
            return None

        self.is_processing = True
        try:
            self.output.append(prompt(f"{self.path_display} $ {command_line}"))
            self.history.add(command_line)
            final = self._run_pipeline(command_line)
        except Exception as e:
            logger.exception("Command failed: %s", command_line)
            final = result(error(f"Shell error: {e}"))
        finally:
            self.is_processing = False

        if final.clear:
            self.output.clear()
        else:
            self.output.extend(final.lines)
        return final

    def _run_pipeline(self, command_line: str) -> CommandResult:
        try:
            self.parser.check_length(command_line)
        except InputTooLongError as e:
            return result(error(str(e)))

        stages = self.parser.split_pipeline(command_line).stages
        stdin: Optional[List[str]] = None
        final = result()

        for index, stage in enumerate(stages):
            context = ShellContext(
                current_directory_id=self.current_directory_id,
                stdin=stdin if index > 0 else None,
                path_display=self.path_display,
            )
            final = self.dispatcher.execute_stage(stage, context)

            if context.current_directory_id != self.current_directory_id:
                self.change_directory(context.current_directory_id)

            if final.has_error:
                break
            stdin = final.text_lines()

        return final

    def change_directory(self, folder_id: Optional[int]):
        """Move to a folder (None for the root) and refresh the path display."""
        self.current_directory_id = folder_id
        self.path_display = path_display(self.store, folder_id)

    def history_previous(self) -> Optional[str]:
        return self.history.previous()

    def history_next(self) -> str:
        return self.history.next()

    def list_titles(self) -> List[Tuple[int, str]]:
        """(id, title) of every live note, for callers keeping a title cache."""
        return self.store.list_titles()

    def clear_output(self):
        self.output.clear()


# ANSI styles per output kind
STYLES = {
    OutputKind.PROMPT: '\033[1;32m',
    OutputKind.PLAIN: '',
    OutputKind.ERROR: '\033[31m',
    OutputKind.WARNING: '\033[33m',
    OutputKind.INFO: '\033[36m',
    OutputKind.SUCCESS: '\033[32m',
    OutputKind.DIM: '\033[2m',
    OutputKind.RICH_TEXT: '',
    OutputKind.HIGHLIGHT: '\033[1;35m',
}
RESET = '\033[0m'
CLEAR_SCREEN = '\033[2J\033[H'

# Header line of the file handed to $EDITOR
TAGS_HEADER = 'Tags:'
# ":3" activates the third selectable line of the last output
SELECT_PATTERN = re.compile(r'^:(\d+)$')
UNDO_COMMAND = 'undo'


def render_line(line: OutputLine, colors: bool = True) -> str:
    """Render one output line for a terminal."""
    style = STYLES[line.kind] if colors else ''
    if not style:
        return line.content
    return f"{style}{line.content}{RESET}"


def editor_text(note: Note) -> str:
    """The text handed to the editor: a tags header, a blank line, the body."""
    return f"{TAGS_HEADER} {', '.join(note.tags)}\n\n{note.body}"


def parse_editor_text(text: str) -> Tuple[str, Optional[List[str]]]:
    """
    Split edited text back into body and tags.

    If the tags header was removed, tags come back as None and the whole
    text is the body.
    """
    first, _, rest = text.partition('\n')
    if not first.startswith(TAGS_HEADER):
        return text, None

    tags = [tag.strip() for tag in first[len(TAGS_HEADER):].split(',') if tag.strip()]
    if rest.startswith('\n'):
        rest = rest[1:]
    return rest, tags


class Terminal:
    """
    Interactive front-end around a ShellSession.

    Handles the presentation side of result flags: editing in $EDITOR,
    writing and reading export files, clearing the screen, offering undo
    after a delete. Lines carrying an action are numbered and can be
    activated with ":N".
    """

    def __init__(self, session: ShellSession, config: Optional[TerminalConfig] = None,
                 write: Callable[[str], None] = print,
                 read: Callable[[str], str] = input):
        self.session = session
        self.config = config or TerminalConfig()
        self.write = write
        self.read = read
        self.actions: List[OutputAction] = []
        self.pending_undo: Optional[PendingUndo] = None

    def get_prompt(self) -> str:
        """Generate the command prompt."""
        if self.config.enable_colors:
            return f"\033[34m{self.session.path_display}\033[0m $ "
        return f"{self.session.path_display} $ "

    def show(self, lines: List[OutputLine], selectable: bool = False):
        """Write lines; with selectable, number the ones that carry an action."""
        if selectable:
            self.actions = []
        for line in lines:
            rendered = render_line(line, self.config.enable_colors)
            if selectable and line.action is not None:
                self.actions.append(line.action)
                rendered = f"[{len(self.actions)}] {rendered}"
            self.write(rendered)

    def select(self, index: int) -> Optional[OutputAction]:
        """Action of the index-th numbered line (1-based), if there is one."""
        if 1 <= index <= len(self.actions):
            return self.actions[index - 1]
        return None

    def expand(self, command_line: str) -> Optional[str]:
        """
        Rewrite terminal shortcuts into shell commands.

        ":N" becomes the command of the N-th numbered line and a bare
        "undo" restores the last deleted note. Returns None when a
        shortcut cannot be honoured.
        """
        stripped = command_line.strip()
        selection = SELECT_PATTERN.match(stripped)
        if selection:
            action = self.select(int(selection.group(1)))
            if action is None:
                self.show([error(f"Nothing to select at {stripped}")])
                return None
            return action.as_command()

        if stripped.lower() == UNDO_COMMAND and self.pending_undo is not None:
            note_id = self.pending_undo.note_id
            self.pending_undo = None
            return f"restore {note_id}"
        return command_line

    def run_command(self, command_line: str) -> Optional[CommandResult]:
        """Execute a line, display its output and act on its flags."""
        command_line = self.expand(command_line)
        if command_line is None:
            return None

        outcome = self.session.execute(command_line)
        if outcome is None:
            return None

        if outcome.clear:
            self.actions = []
            self.write(CLEAR_SCREEN)
        else:
            self.show(outcome.lines, selectable=True)

        if outcome.pending_undo:
            self.pending_undo = outcome.pending_undo
            self.show([dim(f'  Or type "{UNDO_COMMAND}" to bring back "{outcome.pending_undo.title}"')])
        if outcome.open_editor:
            self.edit_note(outcome.open_editor.note.id)
        if outcome.export:
            self.export_notes()
        if outcome.import_:
            self.import_notes()
        return outcome

    def edit_note(self, note_id: int):
        """Edit a note's tags and body in the external editor."""
        note = self.session.store.get_note(note_id)
        if note is None:
            return
        if not self.config.editor:
            self.show([error("No editor configured"), dim("Set $EDITOR to edit notes")])
            return

        with tempfile.NamedTemporaryFile('w+', suffix='.md', delete=False, encoding='utf-8') as f:
            f.write(editor_text(note))
            temp_path = f.name
        try:
            status = subprocess.call(shlex.split(self.config.editor) + [temp_path])
            with open(temp_path, encoding='utf-8') as f:
                text = f.read()
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("Editor %r failed: %s", self.config.editor, e)
            self.show([error(f"Editor failed: {e}"), dim("Check $EDITOR")])
            return
        finally:
            os.unlink(temp_path)

        if status != 0:
            self.show([error(f"Editor exited with status {status}, changes discarded")])
            return

        body, tags = parse_editor_text(text)
        # Most editors add a final newline
        if body.endswith('\n') and not note.body.endswith('\n'):
            body = body[:-1]
        if tags == note.tags:
            tags = None

        if body != note.body or tags is not None:
            self.session.store.update_note(note_id, body=body, tags=tags)
            self.show([OutputLine(OutputKind.SUCCESS, f"✓ Saved #{note_id}")])

    def export_notes(self) -> Optional[Path]:
        """Write every note to a dated JSON file in the export directory."""
        filename = f"glyph-export-{date.today().isoformat()}.json"
        target = Path(self.config.export_directory) / filename
        try:
            target.write_text(self.session.store.export_json(), encoding='utf-8')
        except OSError as e:
            logger.warning("Export to %s failed: %s", target, e)
            self.show([error(f"Export failed: {e}")])
            return None
        self.show([OutputLine(OutputKind.SUCCESS, f"✓ Exported to {target}")])
        return target

    def import_notes(self):
        """Ask for a JSON file and import it."""
        path = self.read('Import file: ').strip()
        if not path:
            self.show([dim('Import cancelled')])
            return

        try:
            data = Path(path).expanduser().read_text(encoding='utf-8')
            summary = self.session.store.import_json(data)
        except (OSError, StoreError) as e:
            self.show([error(f"Import failed: {e}")])
            return

        lines = [OutputLine(OutputKind.SUCCESS, f"✓ Imported {summary.imported} notes")]
        if summary.duplicates:
            lines.append(dim(f"  {summary.duplicates} renamed (duplicate titles)"))
        if summary.skipped:
            lines.append(OutputLine(OutputKind.WARNING, f"  {summary.skipped} skipped (invalid)"))
        self.show(lines)

    def run_interactive(self):
        """Run the interactive REPL loop."""
        self.write("Welcome to glyph")
        self.write("Type 'help' for help, 'exit' to quit, ':N' to open a numbered line")
        self.write('')

        while True:
            try:
                command_line = self.read(self.get_prompt())
            except KeyboardInterrupt:
                self.write("^C")
                continue
            except EOFError:
                self.write('')
                break

            if command_line.strip() in ('exit', 'quit'):
                break
            self.run_command(command_line)

        self.write("Goodbye!")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the glyph shell."""
    import argparse

    parser = argparse.ArgumentParser(description='glyph - terminal note-taking')
    parser.add_argument('-c', '--command', help='Execute command and exit')
    parser.add_argument('--db', help='Path to the notes database', default=None)
    parser.add_argument('--no-color', action='store_true', help='Disable ANSI colors')
    args = parser.parse_args(argv)

    config.setup_logging()

    terminal_config = TerminalConfig(enable_colors=not args.no_color and sys.stdout.isatty())
    if args.db:
        terminal_config.db_path = Path(args.db)

    store = open_store(terminal_config.db_path)
    purged = store.purge_old_deleted()
    if purged:
        logger.info("Purged %d notes deleted more than a week ago", purged)
    session = ShellSession(store, history_size=terminal_config.history_size)
    terminal = Terminal(session, terminal_config)

    try:
        if args.command:
            outcome = terminal.run_command(args.command)
            return 1 if outcome is not None and outcome.has_error else 0

        from .completion import install_completion
        install_completion(session)
        terminal.run_interactive()
        return 0
    finally:
        store.close()


if __name__ == '__main__':
    sys.exit(main())
