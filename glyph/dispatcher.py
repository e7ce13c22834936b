#!/usr/bin/env python3
"""
Command dispatcher for the glyph shell.

The dispatcher turns one parsed command into a CommandResult. It validates
arguments, calls the note store, and formats what came back as typed output
lines. Nothing is kept between calls: each dispatch depends only on the
command, its argument text, the shell context and the store.

Expected failures (bad arguments, unknown ids, state conflicts) come back
as error or warning lines. Anything unexpected is left to propagate to the
session, which owns the catch-all.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from .command_parser import (
    CommandParser, ParseError, parse_note_id, parse_title, strip_quotes
)
from .config import (
    AVAILABLE_THEMES, VERSION, canonical_config_key, validate_config_value
)
from .navigation import NoSuchDirectory, ROOT_DISPLAY, resolve_path
from .output import (
    ActionKind, CommandResult, EditorRequest, OutputAction, PendingUndo,
    dim, error, info, plain, result, rich_text, success, warning
)
from .registry import CATEGORY_TITLES, CommandRegistry
from .store import Note, NoteStore, StoreError

logger = logging.getLogger(__name__)

Handler = Callable[[str, 'ShellContext'], CommandResult]

MAX_AMBIGUOUS_MATCHES = 5
TITLE_WIDTH = 40
DAY_MS = 24 * 60 * 60 * 1000
HIGHLIGHT_OPEN = '\u00bb'
HIGHLIGHT_CLOSE = '\u00ab'
PIN_MARKER = '\U0001f4cc '

_RENAME_PATTERN = re.compile(r'^(\d+)\s+(?:"([^"]+)"|\'([^\']+)\'|(.+))$', re.DOTALL)

BANNER = (
    "  ________    __  ______  __  __",
    " / ____/ /   \\ \\/ / __ \\/ / / /",
    "/ / __/ /     \\  / /_/ / /_/ /",
    "/ /_/ / /___   / / ____/ __  /",
    "\\____/_____/  /_/_/   /_/ /_/",
)


@dataclass
class ShellContext:
    """
    Per-stage execution context.

    Built fresh for every pipeline stage. `cd` writes the new directory
    back into current_directory_id; the session picks it up afterwards.
    """
    current_directory_id: Optional[int] = None
    stdin: Optional[List[str]] = None
    path_display: str = ROOT_DISPLAY


def format_date(timestamp_ms: int) -> str:
    """Short local date such as 'Oct 18, 09:04 PM'."""
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime('%b %d, %I:%M %p')


def highlight(text: str, query: str) -> str:
    """Wrap the first case-insensitive occurrence of query in markers."""
    index = text.lower().find(query.lower())
    if not query or index == -1:
        return text
    end = index + len(query)
    return f"{text[:index]}{HIGHLIGHT_OPEN}{text[index:end]}{HIGHLIGHT_CLOSE}{text[end:]}"


def format_note_row(note: Note, highlight_query: Optional[str] = None) -> str:
    """One-line note summary: pin marker, id, padded title, tags."""
    note_id = str(note.id).rjust(4)
    if len(note.title) > TITLE_WIDTH:
        title = note.title[:TITLE_WIDTH - 3] + '...'
    else:
        title = note.title.ljust(TITLE_WIDTH)

    if highlight_query:
        title = highlight(title, highlight_query)

    tags = f"[{', '.join(note.tags)}]" if note.tags else ''
    pinned = PIN_MARKER if note.pinned else ''
    return f"{pinned}#{note_id}  {title}  {tags}".rstrip()


def usage_error(message: str, *hints: str) -> CommandResult:
    """An error line followed by dim usage hints."""
    return result(error(message), *(dim(hint) for hint in hints))


def open_action(note_id: int) -> OutputAction:
    return OutputAction(ActionKind.OPEN, note_id)


class CommandDispatcher:
    """
    Executes commands against the note store.

    Handlers are looked up by canonical name, so every alias the registry
    knows reaches the same handler.
    """

    def __init__(self, registry: CommandRegistry, store: NoteStore,
                 clock: Optional[Callable[[], int]] = None):
        """Initialize with a registry and a store."""
        self.registry = registry
        self.store = store
        self.clock = clock or store.clock
        self.parser = CommandParser()
        self._handlers: Dict[str, Handler] = {
            'help': self._cmd_help,
            'new': self._cmd_new,
            'grep': self._cmd_grep,
            'mkdir': self._cmd_mkdir,
            'cd': self._cmd_cd,
            'pwd': self._cmd_pwd,
            'list': self._cmd_list,
            'open': self._cmd_open,
            'edit': self._cmd_edit,
            'delete': self._cmd_delete,
            'restore': self._cmd_restore,
            'trash': self._cmd_trash,
            'rename': self._cmd_rename,
            'purge': self._cmd_purge,
            'search': self._cmd_search,
            'tags': self._cmd_tags,
            'today': self._cmd_today,
            'export': self._cmd_export,
            'import': self._cmd_import,
            'config': self._cmd_config,
            'clear': self._cmd_clear,
            'pin': self._cmd_pin,
            'unpin': self._cmd_unpin,
            'version': self._cmd_version,
            'stats': self._cmd_stats,
        }

    def execute_stage(self, stage: str, context: ShellContext) -> CommandResult:
        """Parse one pipeline stage and dispatch it."""
        try:
            command = self.parser.parse_line(stage)
        except ParseError as e:
            return result(error(str(e)))

        if command is None:
            return result()
        return self.dispatch(command.name, command.args_text, context)

    def dispatch(self, command: str, args_text: str, context: ShellContext) -> CommandResult:
        """Run a command by name (canonical, alias or unknown)."""
        name = self.registry.resolve(command.lower())
        handler = self._handlers.get(name)
        if handler is None:
            return self._unknown_command(command)

        logger.debug("Dispatching %s %r", name, args_text)
        return handler(args_text, context)

    def _unknown_command(self, command: str) -> CommandResult:
        lines = [error(f"Unknown command: `{command}`")]
        suggestion = self.registry.suggest(command)
        if suggestion:
            lines.append(info(f"Did you mean: `{suggestion}`?"))
        lines.append(dim('Type "help" for available commands'))
        return CommandResult(lines=lines)

    def _live_note(self, note_id: int) -> Optional[Note]:
        note = self.store.get_note(note_id)
        if note is None or note.deleted:
            return None
        return note

    def _today(self) -> date:
        return datetime.fromtimestamp(self.clock() / 1000).date()

    # Help

    def _cmd_help(self, args_text: str, context: ShellContext) -> CommandResult:
        """Show help for all commands or for one."""
        topic = args_text.strip()
        if topic:
            return self._command_help(topic)

        lines = [
            info('╭' + '─' * 47 + '╮'),
            info(f"│{f'GLYPH v{VERSION} - COMMANDS':^47}│"),
            info('╰' + '─' * 47 + '╯'),
            plain(),
        ]
        for category, definitions in self.registry.by_category().items():
            if not definitions:
                continue
            lines.append(success(CATEGORY_TITLES[category]))
            for definition in definitions:
                aliases = f" ({', '.join(definition.aliases)})" if definition.aliases else ''
                lines.append(plain(f"  {definition.usage:<22} {definition.description}{aliases}"))
            lines.append(plain())

        lines.append(dim('Tip: Use "help <command>" for detailed help on a command'))
        lines.append(dim('Example: help search'))
        return CommandResult(lines=lines)

    def _command_help(self, topic: str) -> CommandResult:
        definition = self.registry.get(topic.lower())
        if definition is None:
            return usage_error(f"Unknown command: {topic}", 'Type "help" to see all commands')

        lines = [
            info(f"─── Help: {definition.name} ───"),
            plain(),
            success('Usage:'),
            plain(f"  {definition.usage}"),
            plain(),
            success('Description:'),
            plain(f"  {definition.description}"),
            plain(),
            success('Examples:'),
        ]
        lines.extend(dim(f"  $ {example}") for example in definition.examples)
        if definition.aliases:
            lines.append(plain())
            lines.append(success('Aliases:'))
            lines.append(dim(f"  {', '.join(definition.aliases)}"))
        return CommandResult(lines=lines)

    # Navigation

    def _cmd_mkdir(self, args_text: str, context: ShellContext) -> CommandResult:
        name = parse_title(args_text)
        if not name:
            return usage_error('Missing directory name', 'Usage: mkdir <name>',
                               'Example: mkdir projects')

        try:
            folder = self.store.create_folder(name, context.current_directory_id)
        except StoreError as e:
            return result(error(f"Failed to create directory: {e}"))
        return result(success(f'✓ Directory "{folder.name}" created'))

    def _cmd_cd(self, args_text: str, context: ShellContext) -> CommandResult:
        path = strip_quotes(args_text)
        try:
            target = resolve_path(self.store, context.current_directory_id, path)
        except NoSuchDirectory:
            return result(error(f"cd: {path}: No such directory"))

        context.current_directory_id = target
        return result()

    def _cmd_pwd(self, args_text: str, context: ShellContext) -> CommandResult:
        return result(info(context.path_display))

    def _cmd_list(self, args_text: str, context: ShellContext) -> CommandResult:
        contents = self.store.folder_contents(context.current_directory_id)
        if not contents.notes and not contents.folders:
            return result(dim('(empty)'))

        lines = [
            info(f"{folder.name}/", action=OutputAction(ActionKind.CD, folder.name))
            for folder in contents.folders
        ]
        notes = sorted(contents.notes, key=lambda n: (not n.pinned, -n.updated_at))
        lines.extend(plain(format_note_row(note), action=open_action(note.id)) for note in notes)
        lines.append(dim(f"Total: {len(contents.folders) + len(notes)} item(s)"))
        return CommandResult(lines=lines)

    # Notes

    def _cmd_new(self, args_text: str, context: ShellContext) -> CommandResult:
        title = parse_title(args_text) if args_text.strip() else 'Untitled'
        if not title:
            return usage_error('Missing title', 'Usage: new "My Note Title"',
                               'Example: new "Project Ideas"')

        try:
            note = self.store.create_note(title, '', [], context.current_directory_id)
        except StoreError as e:
            return result(error(f"Failed to create note: {e}"))

        return result(
            success(f"✓ Note created (id: {note.id})"),
            dim('  Opening editor...'),
            open_editor=EditorRequest(note=note, is_new=True),
        )

    def _cmd_open(self, args_text: str, context: ShellContext) -> CommandResult:
        note_id = parse_note_id(args_text)
        if note_id is not None:
            note = self._live_note(note_id)
            if note is None:
                return result(error(f"Note #{note_id} not found"))
            return self._show_note(note)

        query = strip_quotes(args_text)
        if not query:
            return usage_error('Missing note ID or title', 'Usage: open <id> or open "title"',
                               'Example: open 1')

        matches = [(i, t) for i, t in self.store.list_titles() if query.lower() in t.lower()]
        if not matches:
            return result(error(f'No note found matching "{query}"'))

        if len(matches) == 1:
            note = self._live_note(matches[0][0])
            if note:
                return self._show_note(note)

        lines = [warning(f'Multiple notes match "{query}":'), plain()]
        lines.extend(
            plain(f"  #{match_id}  {title}", action=open_action(match_id))
            for match_id, title in matches[:MAX_AMBIGUOUS_MATCHES]
        )
        lines.extend([plain(), dim('Use the note ID to open: open <id>')])
        return CommandResult(lines=lines)

    def _show_note(self, note: Note) -> CommandResult:
        lines = [info(f"╭─── #{note.id}: {note.title} ───╮"), plain()]
        if note.body:
            lines.extend(rich_text(line) for line in note.body.split('\n'))
        else:
            lines.append(dim('(empty note)'))
        lines.extend([
            plain(),
            dim(f"Created: {format_date(note.created_at)}"),
            dim(f"Updated: {format_date(note.updated_at)}"),
        ])
        if note.tags:
            lines.append(dim(f"Tags: {', '.join(note.tags)}"))
        return CommandResult(lines=lines)

    def _cmd_edit(self, args_text: str, context: ShellContext) -> CommandResult:
        note_id = parse_note_id(args_text)
        if note_id is None:
            return usage_error('Missing note ID', 'Usage: edit <id>', 'Example: edit 1')

        note = self._live_note(note_id)
        if note is None:
            return result(error(f"Note #{note_id} not found"))

        return result(
            info(f"Opening editor for #{note_id}: {note.title}..."),
            open_editor=EditorRequest(note=note, is_new=False),
        )

    def _cmd_rename(self, args_text: str, context: ShellContext) -> CommandResult:
        match = _RENAME_PATTERN.match(args_text.strip())
        if not match:
            return usage_error('Invalid format', 'Usage: rename <id> "new title"',
                               'Example: rename 1 "Better Title"')

        note_id = int(match.group(1))
        new_title = (match.group(2) or match.group(3) or match.group(4)).strip()
        if not new_title:
            return usage_error('Title cannot be empty', 'Usage: rename <id> "new title"')

        note = self._live_note(note_id)
        if note is None:
            return result(error(f"Note #{note_id} not found"))

        try:
            renamed = self.store.update_note(note_id, title=new_title)
        except StoreError as e:
            return result(error(f"Failed to rename note: {e}"))

        return result(
            success(f"✓ Note #{note_id} renamed"),
            dim(f'  "{note.title}" → "{renamed.title}"'),
        )

    def _cmd_pin(self, args_text: str, context: ShellContext) -> CommandResult:
        return self._set_pinned(args_text, pinned=True)

    def _cmd_unpin(self, args_text: str, context: ShellContext) -> CommandResult:
        return self._set_pinned(args_text, pinned=False)

    def _set_pinned(self, args_text: str, pinned: bool) -> CommandResult:
        verb = 'pin' if pinned else 'unpin'
        note_id = parse_note_id(args_text)
        if note_id is None:
            return usage_error('Invalid note ID', f"Usage: {verb} <id>")

        note = self._live_note(note_id)
        if note is None:
            return result(error(f"Note #{note_id} not found"))

        if note.pinned == pinned:
            state = 'already pinned' if pinned else 'not pinned'
            return result(warning(f"Note #{note_id} is {state}"))

        self.store.set_pinned(note_id, pinned)
        done = 'Pinned' if pinned else 'Unpinned'
        return result(success(f"✓ {done} note #{note_id}"))

    # Trash

    def _cmd_delete(self, args_text: str, context: ShellContext) -> CommandResult:
        note_id = parse_note_id(args_text)
        if note_id is None:
            return usage_error('Missing note ID', 'Usage: delete <id>', 'Example: delete 1')

        outcome = self.store.delete_note(note_id)
        if not outcome.success:
            return result(error(f"Note #{note_id} not found or already deleted"))

        title = outcome.deleted_note.title if outcome.deleted_note else ''
        return result(
            warning(f'✓ Note #{note_id} "{title}" deleted'),
            info(f'  Type "restore {note_id}" to undo'),
            pending_undo=PendingUndo(note_id=note_id, title=title),
        )

    def _cmd_restore(self, args_text: str, context: ShellContext) -> CommandResult:
        note_id = parse_note_id(args_text)
        if note_id is None:
            return usage_error('Missing note ID', 'Usage: restore <id>',
                               'Tip: Use "trash" to see deleted notes')

        if not self.store.restore_note(note_id):
            return result(error(f"Note #{note_id} not found in trash"))
        return result(success(f"✓ Note #{note_id} restored"))

    def _cmd_trash(self, args_text: str, context: ShellContext) -> CommandResult:
        deleted = self.store.list_deleted()
        if not deleted:
            return result(dim('Trash is empty.'))

        lines = [info(f"─── Trash ({len(deleted)} notes) ───"), plain()]
        lines.extend(
            warning(f"  #{note.note_id}  {note.title}  [deleted {format_date(note.deleted_at)}]")
            for note in deleted
        )
        lines.extend([plain(), dim('Use "restore <id>" to recover a note')])
        return CommandResult(lines=lines)

    def _cmd_purge(self, args_text: str, context: ShellContext) -> CommandResult:
        note_id = parse_note_id(args_text)
        if note_id is None:
            return usage_error('Missing note ID', 'Usage: purge <id>',
                               'Tip: Use "trash" to see deleted notes')

        note = self.store.get_note(note_id)
        if note is None:
            return result(error(f"Note #{note_id} not found"))

        if not note.deleted:
            return result(
                warning(f"Note #{note_id} is not in trash"),
                dim('Delete it first with: delete <id>'),
            )

        self.store.purge_note(note_id)
        return result(
            warning(f'✓ Note #{note_id} "{note.title}" permanently deleted'),
            dim('  This cannot be undone'),
        )

    # Search

    def _cmd_search(self, args_text: str, context: ShellContext) -> CommandResult:
        query = strip_quotes(args_text)
        if not query:
            return usage_error('Missing search query', 'Usage: search <query>',
                               'Example: search javascript')

        notes = self.store.search_notes(query)
        if not notes:
            return result(
                dim(f'No results for "{query}"'),
                plain(),
                dim('Search looks in titles, body, and tags'),
            )

        lines = [
            info(f'─── Search: "{query}" ({len(notes)} results) ───'),
            plain(),
        ]
        lines.extend(plain(format_note_row(note, query), action=open_action(note.id)) for note in notes)
        lines.extend([plain(), dim(f"Matches marked with {HIGHLIGHT_OPEN} {HIGHLIGHT_CLOSE}")])
        return CommandResult(lines=lines)

    def _cmd_grep(self, args_text: str, context: ShellContext) -> CommandResult:
        """Filter piped lines by a case-insensitive pattern."""
        pattern = strip_quotes(args_text)
        if not pattern:
            return usage_error('Missing pattern', 'Usage: grep <pattern>',
                               'Example: list | grep "work"')

        if not context.stdin:
            return usage_error('grep: no input provided (pipe only)',
                               'Example: list | grep "work"')

        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error:
            # Not a valid regular expression, match it literally
            regex = re.compile(re.escape(pattern), re.IGNORECASE)

        return CommandResult(lines=[plain(line) for line in context.stdin if regex.search(line)])

    def _cmd_tags(self, args_text: str, context: ShellContext) -> CommandResult:
        tag = args_text.strip()
        if tag:
            notes = self.store.notes_by_tag(tag)
            if not notes:
                return result(dim(f'No notes with tag "{tag}"'))
            lines = [info(f"─── Tag: {tag} ({len(notes)} notes) ───"), plain()]
            lines.extend(plain(format_note_row(note), action=open_action(note.id)) for note in notes)
            return CommandResult(lines=lines)

        tags = self.store.list_tags()
        if not tags:
            return result(dim('No tags yet.'), dim('Add tags when editing notes'))

        lines = [info('─── All Tags ───'), plain()]
        lines.extend(plain(f"  {name} ({count})") for name, count in tags)
        lines.extend([plain(), dim('Use "tags <name>" to filter by tag')])
        return CommandResult(lines=lines)

    # Daily

    def _cmd_today(self, args_text: str, context: ShellContext) -> CommandResult:
        note = self.store.get_or_create_today_note(self._today())
        return result(
            info(f"Opening today's note (#{note.id})..."),
            open_editor=EditorRequest(note=note, is_new=False),
        )

    # Data

    def _cmd_export(self, args_text: str, context: ShellContext) -> CommandResult:
        return result(success('Initiating export...'), export=True)

    def _cmd_import(self, args_text: str, context: ShellContext) -> CommandResult:
        return result(
            info('Select a JSON file to import...'),
            dim('Note: Duplicate titles will be renamed automatically'),
            import_=True,
        )

    # Config

    def _cmd_config(self, args_text: str, context: ShellContext) -> CommandResult:
        parts = args_text.split()
        key = parts[0] if parts else ''
        value = ' '.join(parts[1:])

        if not key or key == 'list':
            lines = [info('─── Configuration ───'), plain()]
            lines.extend(plain(f"  {k:<15} = {v}") for k, v in self.store.all_config().items())
            lines.extend([
                plain(),
                dim('Usage: config <key> <value>'),
                dim('Example: config theme dracula'),
                plain(),
                success(f"Available themes: {', '.join(AVAILABLE_THEMES)}"),
            ])
            return CommandResult(lines=lines)

        if not value:
            current = self.store.get_config(canonical_config_key(key) or key)
            return result(plain(f"{key} = {current or '(not set)'}"))

        valid, messages = validate_config_value(key, value)
        if not valid:
            return usage_error(*messages)

        key = canonical_config_key(key)
        self.store.set_config(key, value)
        lines = [success(f"✓ {key} = {value}")]
        if key == 'theme':
            lines.append(dim('Theme updated. Changes apply immediately.'))
        return CommandResult(lines=lines)

    # Other

    def _cmd_clear(self, args_text: str, context: ShellContext) -> CommandResult:
        return result(clear=True)

    def _cmd_version(self, args_text: str, context: ShellContext) -> CommandResult:
        lines = [info(line) for line in BANNER]
        lines.extend([
            info(f"v{VERSION}"),
            dim('Terminal-style note-taking • Local-first • Offline'),
        ])
        return CommandResult(lines=lines)

    def _cmd_stats(self, args_text: str, context: ShellContext) -> CommandResult:
        notes = self.store.list_notes()
        deleted = self.store.list_deleted()
        tags = self.store.list_tags()
        now = self.clock()

        total_words = sum(len(note.body.split()) for note in notes)
        total_chars = sum(len(note.body) for note in notes)
        oldest = min((note.created_at for note in notes), default=now)
        days_active = math.ceil((now - oldest) / DAY_MS) if notes else 0
        most_recent = max(notes, key=lambda n: n.updated_at, default=None)

        lines = [
            info('╭' + '─' * 47 + '╮'),
            info(f"│{'GLYPH STATISTICS':^47}│"),
            info('╰' + '─' * 47 + '╯'),
            plain(),
            success('NOTES'),
            plain(f"  Total notes      {len(notes)}"),
            plain(f"  In trash         {len(deleted)}"),
            plain(f"  Total tags       {len(tags)}"),
            plain(),
            success('CONTENT'),
            plain(f"  Total words      {total_words:,}"),
            plain(f"  Total characters {total_chars:,}"),
            plain(),
            success('ACTIVITY'),
            plain(f"  Days active      {days_active}"),
        ]
        if most_recent:
            lines.append(plain(f"  Last edited      {format_date(most_recent.updated_at)}"))
        if tags:
            lines.extend([plain(), success('TOP TAGS')])
            for name, count in tags[:5]:
                lines.append(plain(f"  {name:<20} {count} note{'s' if count != 1 else ''}"))
        return CommandResult(lines=lines)
