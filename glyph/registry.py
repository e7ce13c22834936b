#!/usr/bin/env python3
"""
Command registry for the glyph shell.

The registry is an ordered, immutable table of command definitions. It
answers two questions: which canonical command does a typed token mean,
and, when the token means nothing, which command was probably intended.

Design Principles:
- Pure data: definitions are frozen and the table never changes after
  construction
- Explicit: the shell is handed a registry, there is no global table
- Deterministic: iteration order is definition order, so suggestions are
  stable
"""

from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class Category(Enum):
    """Help groupings for commands."""
    NOTES = 'notes'
    ITEM = 'item'
    SEARCH = 'search'
    DAILY = 'daily'
    DATA = 'data'
    CONFIG = 'config'
    OTHER = 'other'


# Help section titles, in display order.
CATEGORY_TITLES = OrderedDict([
    (Category.NOTES, 'NOTES'),
    (Category.ITEM, 'FILES & NAVIGATION'),
    (Category.SEARCH, 'SEARCH'),
    (Category.DAILY, 'DAILY'),
    (Category.DATA, 'DATA'),
    (Category.CONFIG, 'CONFIG'),
    (Category.OTHER, 'OTHER'),
])

# Suggestions further away than this are not offered.
MAX_SUGGESTION_DISTANCE = 2


class RegistryError(ValueError):
    """Raised when a command table violates its invariants."""


@dataclass(frozen=True)
class CommandDefinition:
    """Help and resolution data for one command."""
    name: str
    usage: str
    description: str
    examples: Tuple[str, ...] = ()
    category: Category = Category.OTHER
    aliases: Tuple[str, ...] = ()


class CommandRegistry:
    """
    Ordered table of command definitions.

    Canonical names must be unique, and no alias may be shared between
    commands or shadow a canonical name.
    """

    def __init__(self, definitions: Iterable[CommandDefinition]):
        self._definitions: 'OrderedDict[str, CommandDefinition]' = OrderedDict()
        self._aliases: Dict[str, str] = {}

        for definition in definitions:
            if definition.name in self._definitions:
                raise RegistryError(f"Duplicate command name: {definition.name}")
            self._definitions[definition.name] = definition

        for definition in self._definitions.values():
            for alias in definition.aliases:
                if alias in self._definitions:
                    raise RegistryError(
                        f"Alias '{alias}' of {definition.name} shadows a command")
                if alias in self._aliases:
                    raise RegistryError(
                        f"Alias '{alias}' is registered for both "
                        f"{self._aliases[alias]} and {definition.name}")
                self._aliases[alias] = definition.name

    @classmethod
    def default(cls) -> 'CommandRegistry':
        """Build the registry with the standard glyph commands."""
        return cls(DEFAULT_COMMANDS)

    def __contains__(self, name: str) -> bool:
        return name in self._definitions

    def __iter__(self):
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def get(self, name: str) -> Optional[CommandDefinition]:
        """Look up a definition by canonical name or alias."""
        return self._definitions.get(self.resolve(name))

    def names(self) -> List[str]:
        """Canonical names in registry order."""
        return list(self._definitions)

    def all_names(self) -> List[str]:
        """Canonical names and aliases, de-duplicated, in registry order."""
        names = []
        for definition in self._definitions.values():
            names.append(definition.name)
            names.extend(definition.aliases)
        return list(OrderedDict.fromkeys(names))

    def by_category(self) -> 'OrderedDict[Category, List[CommandDefinition]]':
        """Definitions grouped by category, in help display order."""
        groups = OrderedDict((category, []) for category in CATEGORY_TITLES)
        for definition in self._definitions.values():
            groups[definition.category].append(definition)
        return groups

    def resolve(self, token: str) -> str:
        """
        Map a typed token to its canonical command name.

        Unknown tokens come back unchanged so the dispatcher can report them.
        """
        if token in self._definitions:
            return token
        return self._aliases.get(token, token)

    def suggest(self, token: str) -> Optional[str]:
        """
        Propose a command for a token that did not resolve.

        Matching is approximate: an alias hit wins, then the first command
        where one name is a prefix of the other, then the closest command
        by positional mismatches plus length difference. This is not an
        edit distance, so a transposition costs two.
        """
        lowered = token.lower()
        if lowered in self._aliases:
            return self._aliases[lowered]

        best_match = None
        best_score = None
        for name in self._definitions:
            if name.startswith(lowered) or lowered.startswith(name):
                return name

            distance = positional_distance(name, lowered)
            if distance <= MAX_SUGGESTION_DISTANCE and (best_score is None or distance < best_score):
                best_score = distance
                best_match = name

        return best_match


def positional_distance(a: str, b: str) -> int:
    """Mismatched characters over the shared length, plus the length difference."""
    shared = min(len(a), len(b))
    mismatches = sum(1 for i in range(shared) if a[i] != b[i])
    return mismatches + abs(len(a) - len(b))


DEFAULT_COMMANDS = (
    # Notes
    CommandDefinition(
        name='new',
        usage='new "title"',
        description='Create a new note',
        examples=('new "My Ideas"', 'new project-notes'),
        category=Category.NOTES,
        aliases=('create', 'add', 'touch'),
    ),
    CommandDefinition(
        name='mkdir',
        usage='mkdir <name>',
        description='Create a new directory',
        examples=('mkdir projects', 'mkdir "my stuff"'),
        category=Category.ITEM,
        aliases=('md',),
    ),
    CommandDefinition(
        name='cd',
        usage='cd <path>',
        description='Change directory',
        examples=('cd projects', 'cd ..', 'cd ~'),
        category=Category.ITEM,
        aliases=('chdir',),
    ),
    CommandDefinition(
        name='pwd',
        usage='pwd',
        description='Print working directory',
        examples=('pwd',),
        category=Category.ITEM,
    ),
    CommandDefinition(
        name='list',
        usage='list',
        description='List directory contents',
        examples=('list', 'ls'),
        category=Category.ITEM,
        aliases=('ls', 'dir', 'll'),
    ),
    CommandDefinition(
        name='open',
        usage='open <id|title>',
        description='View a note',
        examples=('open 1', 'open "My Ideas"'),
        category=Category.NOTES,
        aliases=('view', 'show'),
    ),
    CommandDefinition(
        name='edit',
        usage='edit <id>',
        description='Edit a note',
        examples=('edit 1',),
        category=Category.NOTES,
        aliases=('e',),
    ),
    CommandDefinition(
        name='delete',
        usage='delete <id>',
        description='Delete a note (with undo)',
        examples=('delete 1',),
        category=Category.NOTES,
        aliases=('rm', 'remove'),
    ),
    CommandDefinition(
        name='restore',
        usage='restore <id>',
        description='Restore a deleted note',
        examples=('restore 1',),
        category=Category.NOTES,
        aliases=('undo', 'undelete'),
    ),
    CommandDefinition(
        name='trash',
        usage='trash',
        description='List recently deleted notes',
        examples=('trash',),
        category=Category.NOTES,
        aliases=('deleted',),
    ),
    CommandDefinition(
        name='pin',
        usage='pin <id>',
        description='Pin a note to the top',
        examples=('pin 1',),
        category=Category.NOTES,
        aliases=('star', 'favorite'),
    ),
    CommandDefinition(
        name='unpin',
        usage='unpin <id>',
        description='Unpin a note',
        examples=('unpin 1',),
        category=Category.NOTES,
        aliases=('unstar',),
    ),
    CommandDefinition(
        name='rename',
        usage='rename <id> "new title"',
        description='Rename a note',
        examples=('rename 1 "New Title"',),
        category=Category.NOTES,
        aliases=('mv',),
    ),
    CommandDefinition(
        name='purge',
        usage='purge <id>',
        description='Permanently delete from trash',
        examples=('purge 1',),
        category=Category.NOTES,
    ),

    # Search
    CommandDefinition(
        name='search',
        usage='search <query>',
        description='Search notes',
        examples=('search javascript', 'search "my idea"'),
        category=Category.SEARCH,
        aliases=('find',),
    ),
    CommandDefinition(
        name='grep',
        usage='grep <pattern>',
        description='Filter piped output',
        examples=('list | grep "work"', 'list | grep #1'),
        category=Category.ITEM,
        aliases=('filter',),
    ),
    CommandDefinition(
        name='tags',
        usage='tags [name]',
        description='List tags or filter by tag',
        examples=('tags', 'tags work'),
        category=Category.SEARCH,
    ),

    # Daily
    CommandDefinition(
        name='today',
        usage='today',
        description="Open today's daily note",
        examples=('today',),
        category=Category.DAILY,
        aliases=('daily',),
    ),

    # Data
    CommandDefinition(
        name='export',
        usage='export',
        description='Save notes as JSON',
        examples=('export',),
        category=Category.DATA,
        aliases=('backup',),
    ),
    CommandDefinition(
        name='import',
        usage='import',
        description='Import notes from JSON',
        examples=('import',),
        category=Category.DATA,
    ),

    # Config
    CommandDefinition(
        name='config',
        usage='config [key] [value]',
        description='View or set configuration',
        examples=('config', 'config theme amber', 'config scanlines false'),
        category=Category.CONFIG,
        aliases=('set', 'settings'),
    ),

    # Other
    CommandDefinition(
        name='clear',
        usage='clear',
        description='Clear terminal',
        examples=('clear',),
        category=Category.OTHER,
        aliases=('cls',),
    ),
    CommandDefinition(
        name='version',
        usage='version',
        description='Show version info',
        examples=('version',),
        category=Category.OTHER,
        aliases=('v',),
    ),
    CommandDefinition(
        name='stats',
        usage='stats',
        description='Show note statistics',
        examples=('stats',),
        category=Category.OTHER,
        aliases=('info',),
    ),
    CommandDefinition(
        name='help',
        usage='help [command]',
        description='Show help',
        examples=('help', 'help edit', 'help search'),
        category=Category.OTHER,
        aliases=('?', 'h'),
    ),
)
