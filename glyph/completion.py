#!/usr/bin/env python3
"""
Readline tab completion for the glyph shell.

Completes command names (including aliases) at the start of a stage,
folder names after `cd`, and note titles after `open`.
"""

from typing import List, Optional

from .command_parser import PIPE
from .store import NoteStore


class TabCompleter:
    """
    Provides tab completion for commands, folders and note titles.

    The completion logic is plain Python; only `complete` and `install`
    touch readline.
    """

    FOLDER_COMMANDS = ('cd',)
    TITLE_COMMANDS = ('open',)

    def __init__(self, session):
        """Initialize tab completer for a shell session."""
        self.session = session
        self._command_cache = sorted(session.registry.all_names())
        self._matches: List[str] = []

    @property
    def store(self) -> NoteStore:
        return self.session.store

    def candidates(self, line: str, text: str) -> List[str]:
        """Completions for `text`, the word being typed at the end of `line`."""
        stage = line.split(PIPE)[-1].lstrip()
        words = stage.split()

        # Completing the command name itself
        if not words or (len(words) == 1 and not stage.endswith(' ')):
            return self._complete_command(text)

        command = self.session.registry.resolve(words[0].lower())
        if command in self.FOLDER_COMMANDS:
            return self._complete_folder(text)
        if command in self.TITLE_COMMANDS:
            return self._complete_title(text)
        return []

    def _complete_command(self, text: str) -> List[str]:
        """Complete command names."""
        if not text:
            return list(self._command_cache)
        return [cmd for cmd in self._command_cache if cmd.startswith(text.lower())]

    def _complete_folder(self, text: str) -> List[str]:
        """Complete child folders of the current directory."""
        folders = self.store.list_folders(self.session.current_directory_id)
        names = [folder.name for folder in folders] + ['..']
        return sorted(name for name in names if name.lower().startswith(text.lower()))

    def _complete_title(self, text: str) -> List[str]:
        """Complete note titles, quoted when they contain spaces."""
        matches = []
        for _, title in self.session.list_titles():
            if title.lower().startswith(text.lstrip('"').lower()):
                matches.append(f'"{title}"' if ' ' in title else title)
        return sorted(matches)

    def complete(self, text: str, state: int) -> Optional[str]:
        """
        Readline completion function.

        Called by readline to get completions.
        """
        import readline

        if state == 0:
            self._matches = self.candidates(readline.get_line_buffer(), text)
        try:
            return self._matches[state]
        except IndexError:
            return None


def install_completion(session) -> Optional[TabCompleter]:
    """Hook a completer into readline, if readline is available."""
    try:
        import readline
    except ImportError:
        return None

    completer = TabCompleter(session)
    readline.set_completer(completer.complete)
    readline.set_completer_delims(' \t\n|')
    readline.parse_and_bind('tab: complete')
    return completer
