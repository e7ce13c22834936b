#!/usr/bin/env python3
"""
Command parser for the glyph shell.

This module translates raw input lines into structured commands. It does
not resolve aliases or execute anything; that is the dispatcher's job.

Design Principles:
- Single responsibility: Parse commands, don't execute them
- Composable: Pipeline splitting and per-stage parsing are independent
- Testable: Pure functions with predictable outputs

Known limitation: pipelines are split on every '|' character, including
one inside quotes. There is no escaping.
"""

import re
from dataclasses import dataclass
from typing import List, Optional


# Lines longer than this are rejected before tokenizing.
MAX_INPUT_LENGTH = 1000

PIPE = '|'


class ParseError(ValueError):
    """Raised when an input line cannot be parsed."""


class InputTooLongError(ParseError):
    """Raised when an input line exceeds MAX_INPUT_LENGTH."""

    def __init__(self, length: int):
        super().__init__(f"Input too long (max {MAX_INPUT_LENGTH} characters)")
        self.length = length


@dataclass(frozen=True)
class ParsedCommand:
    """
    A command name and its unparsed argument text.

    Arguments stay a single string because commands disagree on how to
    split them: titles keep their spaces, note bodies keep newlines.
    """
    name: str
    args_text: str = ''

    def __str__(self) -> str:
        if self.args_text:
            return f"{self.name} {self.args_text}"
        return self.name


@dataclass(frozen=True)
class Pipeline:
    """Stages of a command line, executed left to right."""
    stages: List[str]

    def __len__(self) -> int:
        return len(self.stages)

    def __str__(self) -> str:
        return ' | '.join(self.stages)


class CommandParser:
    """
    Parser for glyph command lines.

    This parser handles:
    - Command names made of word characters and hyphens
    - Free-form argument text after the first run of whitespace
    - Pipes (|)
    - Quoted titles ("..." or '...')
    """

    def __init__(self, max_length: int = MAX_INPUT_LENGTH):
        """Initialize the parser."""
        self.max_length = max_length
        self.command_pattern = re.compile(r'^([\w-]+)(?:\s+(.*))?$', re.DOTALL)

    def check_length(self, command_line: str):
        """Raise InputTooLongError if the trimmed line is over the limit."""
        length = len(command_line.strip())
        if length > self.max_length:
            raise InputTooLongError(length)

    def parse_line(self, command_line: str) -> Optional[ParsedCommand]:
        """
        Parse a single stage into a command and argument text.

        Returns None for blank input.
        """
        trimmed = command_line.strip()
        if not trimmed:
            return None

        self.check_length(trimmed)

        match = self.command_pattern.match(trimmed)
        if not match:
            raise ParseError(f"Invalid command format: {trimmed}")

        name, args_text = match.groups()
        return ParsedCommand(name=name, args_text=args_text or '')

    def split_pipeline(self, command_line: str) -> Pipeline:
        """Split a command line on pipes into trimmed stages."""
        return Pipeline(stages=[part.strip() for part in command_line.split(PIPE)])

    def parse(self, command_line: str) -> List[ParsedCommand]:
        """
        Parse a complete command line into its pipeline stages.

        Blank stages are dropped. Convenience method for testing and tools
        such as completion; the session parses stage by stage instead so a
        bad stage only fails once it is reached.
        """
        self.check_length(command_line)
        commands = []
        for stage in self.split_pipeline(command_line).stages:
            command = self.parse_line(stage)
            if command:
                commands.append(command)
        return commands


_TITLE_PATTERN = re.compile(r'^"([^"]+)"$|^\'([^\']+)\'$|^(.+)$', re.DOTALL)
_NOTE_ID_PATTERN = re.compile(r'^\s*(-?\d+)')


def parse_title(args_text: str) -> str:
    """
    Extract a title from argument text.

    Accepts "double quoted", 'single quoted', or a bare remainder, in that
    order. Returns the trimmed title, which may be empty.
    """
    match = _TITLE_PATTERN.match(args_text.strip())
    if not match:
        return ''
    title = match.group(1) or match.group(2) or match.group(3) or ''
    return title.strip()


def parse_note_id(args_text: str) -> Optional[int]:
    """Parse a leading integer note id, or None if there is none."""
    match = _NOTE_ID_PATTERN.match(args_text)
    if not match:
        return None
    return int(match.group(1))


def strip_quotes(text: str) -> str:
    """Remove one leading and one trailing quote character, then trim."""
    return re.sub(r'^["\']|["\']$', '', text.strip()).strip()
