#!/usr/bin/env python3
"""
Tests for tab completion candidates.

Only the pure candidate logic is exercised; readline itself is not touched.
"""

import pytest

from glyph.completion import TabCompleter
from glyph.terminal import ShellSession


class TestTabCompleter:
    """Test completion of commands, folders and titles."""

    @pytest.fixture(autouse=True)
    def setup(self, store):
        self.store = store
        self.session = ShellSession(store)
        self.completer = TabCompleter(self.session)

    def test_all_commands_for_empty_line(self):
        candidates = self.completer.candidates('', '')
        assert 'list' in candidates
        assert 'rm' in candidates
        assert candidates == sorted(candidates)

    def test_command_prefix(self):
        assert self.completer.candidates('pu', 'pu') == ['purge']
        assert self.completer.candidates('l', 'l') == ['list', 'll', 'ls']

    def test_command_after_pipe(self):
        assert self.completer.candidates('list | gr', 'gr') == ['grep']

    def test_folders_after_cd(self):
        self.store.create_folder('projects')
        self.store.create_folder('personal')
        self.store.create_folder('work')
        assert self.completer.candidates('cd p', 'p') == ['personal', 'projects']
        assert '..' in self.completer.candidates('cd ', '')

    def test_folders_follow_current_directory(self):
        projects = self.store.create_folder('projects')
        self.store.create_folder('2024', projects.id)
        self.session.change_directory(projects.id)
        assert self.completer.candidates('chdir ', '') == ['..', '2024']

    def test_titles_after_open(self):
        self.store.create_note('My Ideas')
        self.store.create_note('Groceries')
        assert self.completer.candidates('open My', 'My') == ['"My Ideas"']
        assert self.completer.candidates('view gro', 'gro') == ['Groceries']

    def test_no_completion_for_other_arguments(self):
        assert self.completer.candidates('pwd x', 'x') == []
