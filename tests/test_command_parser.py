#!/usr/bin/env python3
"""
Tests for the glyph command parser.
"""

import unittest

from glyph.command_parser import (
    CommandParser, InputTooLongError, MAX_INPUT_LENGTH, ParsedCommand,
    ParseError, parse_note_id, parse_title, strip_quotes
)


class TestParseLine(unittest.TestCase):
    """Test parsing a single stage."""

    def setUp(self):
        self.parser = CommandParser()

    def test_bare_command(self):
        self.assertEqual(self.parser.parse_line('  list  '), ParsedCommand('list', ''))

    def test_command_with_arguments(self):
        command = self.parser.parse_line('new "My Ideas"')
        self.assertEqual(command.name, 'new')
        self.assertEqual(command.args_text, '"My Ideas"')

    def test_hyphenated_name(self):
        command = self.parser.parse_line('new-note x')
        self.assertEqual(command.name, 'new-note')

    def test_internal_whitespace_is_kept(self):
        command = self.parser.parse_line('new first line\nsecond   line')
        self.assertEqual(command.args_text, 'first line\nsecond   line')

    def test_blank_input(self):
        self.assertIsNone(self.parser.parse_line(''))
        self.assertIsNone(self.parser.parse_line('   \t '))

    def test_invalid_command_name(self):
        with self.assertRaises(ParseError):
            self.parser.parse_line('!!! boom')

    def test_too_long(self):
        with self.assertRaises(InputTooLongError) as ctx:
            self.parser.parse_line('x' * (MAX_INPUT_LENGTH + 1))
        self.assertIn('max 1000', str(ctx.exception))
        self.assertEqual(ctx.exception.length, MAX_INPUT_LENGTH + 1)

    def test_length_is_measured_after_trim(self):
        line = '  ' + 'x' * MAX_INPUT_LENGTH + '  '
        self.assertEqual(self.parser.parse_line(line).name, 'x' * MAX_INPUT_LENGTH)

    def test_str(self):
        self.assertEqual(str(ParsedCommand('open', '1')), 'open 1')
        self.assertEqual(str(ParsedCommand('list')), 'list')


class TestPipelines(unittest.TestCase):
    """Test splitting command lines on pipes."""

    def setUp(self):
        self.parser = CommandParser()

    def test_split(self):
        pipeline = self.parser.split_pipeline('list | grep work')
        self.assertEqual(pipeline.stages, ['list', 'grep work'])
        self.assertEqual(len(pipeline), 2)
        self.assertEqual(str(pipeline), 'list | grep work')

    def test_no_pipe(self):
        self.assertEqual(self.parser.split_pipeline('list').stages, ['list'])

    def test_pipe_inside_quotes_still_splits(self):
        stages = self.parser.split_pipeline('grep "a|b"').stages
        self.assertEqual(stages, ['grep "a', 'b"'])

    def test_parse_drops_blank_stages(self):
        commands = self.parser.parse('list |  | grep x')
        self.assertEqual([c.name for c in commands], ['list', 'grep'])
        self.assertEqual(commands[1].args_text, 'x')

    def test_parse_checks_whole_line_length(self):
        with self.assertRaises(InputTooLongError):
            self.parser.parse('list | grep ' + 'x' * MAX_INPUT_LENGTH)


class TestArgumentHelpers(unittest.TestCase):
    """Test title, id and quote helpers."""

    def test_parse_title(self):
        self.assertEqual(parse_title('"My Ideas"'), 'My Ideas')
        self.assertEqual(parse_title("'Single quoted'"), 'Single quoted')
        self.assertEqual(parse_title('  bare words  '), 'bare words')
        self.assertEqual(parse_title('" padded "'), 'padded')

    def test_parse_title_empty(self):
        self.assertEqual(parse_title(''), '')
        self.assertEqual(parse_title('   '), '')

    def test_parse_note_id(self):
        self.assertEqual(parse_note_id('12'), 12)
        self.assertEqual(parse_note_id('  7 "rest"'), 7)
        self.assertEqual(parse_note_id('-3'), -3)
        self.assertIsNone(parse_note_id('abc'))
        self.assertIsNone(parse_note_id(''))

    def test_strip_quotes(self):
        self.assertEqual(strip_quotes('"work"'), 'work')
        self.assertEqual(strip_quotes("'work'"), 'work')
        self.assertEqual(strip_quotes('  plain  '), 'plain')


if __name__ == '__main__':
    unittest.main()
