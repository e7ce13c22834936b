#!/usr/bin/env python3
"""
Tests for the SQLite note store.
"""

import json
from datetime import date

import pytest

from glyph.store import (
    DAILY_TAG, EXPORT_VERSION, MAX_TITLE_LENGTH, StoreError, connect, open_store,
    sanitize_text
)


class TestNotes:
    """Create, read and update notes."""

    @pytest.fixture(autouse=True)
    def setup(self, store):
        self.store = store

    def test_create_and_get(self):
        note = self.store.create_note('My Ideas', 'body text', ['work', 'ideas'])
        fetched = self.store.get_note(note.id)
        assert fetched.title == 'My Ideas'
        assert fetched.body == 'body text'
        assert fetched.tags == ['work', 'ideas']
        assert fetched.created_at == fetched.updated_at
        assert not fetched.deleted
        assert not fetched.pinned

    def test_title_is_sanitized_and_truncated(self):
        note = self.store.create_note('  bell\x07 title  ')
        assert note.title == 'bell title'
        long_note = self.store.create_note('x' * (MAX_TITLE_LENGTH + 50))
        assert len(long_note.title) == MAX_TITLE_LENGTH

    def test_blank_title_rejected(self):
        with pytest.raises(StoreError):
            self.store.create_note('   ')

    def test_tags_are_cleaned(self):
        note = self.store.create_note('Tagged', tags=['ok', '  ', 42, ' spaced '])
        assert note.tags == ['ok', 'spaced']

    def test_update_bumps_timestamp(self):
        note = self.store.create_note('Before')
        updated = self.store.update_note(note.id, title='After', body='new body')
        assert updated.title == 'After'
        assert updated.body == 'new body'
        assert updated.updated_at > note.updated_at

    def test_update_missing_note(self):
        assert self.store.update_note(999, title='Nope') is None

    def test_set_pinned(self):
        note = self.store.create_note('Pin me')
        assert self.store.set_pinned(note.id, True)
        assert self.store.get_note(note.id).pinned
        assert self.store.set_pinned(note.id, False)
        assert not self.store.get_note(note.id).pinned
        assert not self.store.set_pinned(999, True)

    def test_sanitize_keeps_newlines_and_tabs(self):
        assert sanitize_text('a\tb\nc\x1b[31m') == 'a\tb\nc[31m'


class TestTrash:
    """Soft delete, restore and purge."""

    @pytest.fixture(autouse=True)
    def setup(self, store):
        self.store = store

    def test_delete_then_restore_round_trip(self):
        note = self.store.create_note('Keep', 'body', ['a', 'b'])
        outcome = self.store.delete_note(note.id)
        assert outcome.success
        assert outcome.deleted_note.title == 'Keep'
        assert self.store.get_note(note.id).deleted
        assert [n.id for n in self.store.list_notes()] == []
        assert [d.note_id for d in self.store.list_deleted()] == [note.id]

        assert self.store.restore_note(note.id)
        restored = self.store.get_note(note.id)
        assert not restored.deleted
        assert restored.deleted_at is None
        assert (restored.title, restored.body, restored.tags) == ('Keep', 'body', ['a', 'b'])
        assert self.store.list_deleted() == []

    def test_delete_twice(self):
        note = self.store.create_note('Once')
        assert self.store.delete_note(note.id).success
        assert not self.store.delete_note(note.id).success
        assert not self.store.delete_note(999).success

    def test_restore_live_note_fails(self):
        note = self.store.create_note('Alive')
        assert not self.store.restore_note(note.id)

    def test_trash_is_newest_first(self):
        first = self.store.create_note('First')
        second = self.store.create_note('Second')
        self.store.delete_note(first.id)
        self.store.delete_note(second.id)
        assert [d.note_id for d in self.store.list_deleted()] == [second.id, first.id]

    def test_purge(self):
        note = self.store.create_note('Gone')
        self.store.delete_note(note.id)
        assert self.store.purge_note(note.id)
        assert self.store.get_note(note.id) is None
        assert self.store.list_deleted() == []

    def test_purge_old_deleted(self, clock):
        old = self.store.create_note('Old')
        self.store.delete_note(old.id)
        clock.now += 8 * 24 * 60 * 60 * 1000
        fresh = self.store.create_note('Fresh')
        self.store.delete_note(fresh.id)

        assert self.store.purge_old_deleted() == 1
        assert self.store.get_note(old.id) is None
        assert self.store.get_note(fresh.id).deleted


class TestFolders:
    """Folder tree queries."""

    @pytest.fixture(autouse=True)
    def setup(self, store):
        self.store = store

    def test_root_contents_only_have_no_parent(self):
        projects = self.store.create_folder('projects')
        self.store.create_folder('nested', projects.id)
        self.store.create_note('At root')
        self.store.create_note('Inside', parent_id=projects.id)

        root = self.store.folder_contents(None)
        assert [f.name for f in root.folders] == ['projects']
        assert [n.title for n in root.notes] == ['At root']

        inside = self.store.folder_contents(projects.id)
        assert [f.name for f in inside.folders] == ['nested']
        assert [n.title for n in inside.notes] == ['Inside']

    def test_deleted_notes_are_not_listed(self):
        note = self.store.create_note('Hidden')
        self.store.delete_note(note.id)
        assert self.store.folder_contents(None).notes == []

    def test_missing_parent(self):
        with pytest.raises(StoreError):
            self.store.create_folder('orphan', 42)

    def test_blank_name(self):
        with pytest.raises(StoreError):
            self.store.create_folder('  ')


class TestQueries:
    """Search, tags, titles and the daily note."""

    @pytest.fixture(autouse=True)
    def setup(self, store):
        self.store = store
        self.work = store.create_note('Work plan', 'quarterly GOALS', ['work', 'planning'])
        self.home = store.create_note('Groceries', 'milk', ['home', 'work'])

    def test_search_matches_title_body_and_tags(self):
        assert [n.id for n in self.store.search_notes('PLAN')] == [self.work.id]
        assert [n.id for n in self.store.search_notes('goals')] == [self.work.id]
        assert [n.id for n in self.store.search_notes('home')] == [self.home.id]
        assert self.store.search_notes('nothing') == []

    def test_notes_by_tag(self):
        assert [n.id for n in self.store.notes_by_tag('work')] == [self.work.id, self.home.id]
        assert self.store.notes_by_tag('missing') == []

    def test_list_tags_most_used_first(self):
        tags = self.store.list_tags()
        assert tags[0] == ('work', 2)
        assert set(tags[1:]) == {('planning', 1), ('home', 1)}

    def test_list_titles(self):
        self.store.delete_note(self.home.id)
        assert self.store.list_titles() == [(self.work.id, 'Work plan')]

    def test_today_note_is_reused(self):
        day = date(2024, 3, 5)
        first = self.store.get_or_create_today_note(day)
        second = self.store.get_or_create_today_note(day)
        assert first.id == second.id
        assert first.title == 'Daily: 2024-03-05'
        assert first.tags == [DAILY_TAG]


class TestConfig:
    """Shell preferences."""

    def test_defaults(self, store):
        assert store.get_config('theme') == 'crt'
        assert store.get_config('unknown') == ''

    def test_set_overrides(self, store):
        store.set_config('theme', 'dracula')
        store.set_config('theme', 'nord')
        assert store.get_config('theme') == 'nord'
        assert store.all_config()['theme'] == 'nord'
        assert store.all_config()['scanlines'] == 'true'


class TestImportExport:
    """JSON export and import."""

    @pytest.fixture(autouse=True)
    def setup(self, store):
        self.store = store

    def test_export_shape(self):
        self.store.create_note('Alpha', 'a', ['x'])
        deleted = self.store.create_note('Beta')
        self.store.delete_note(deleted.id)

        data = json.loads(self.store.export_json())
        assert data['version'] == EXPORT_VERSION
        assert [n['title'] for n in data['notes']] == ['Alpha', 'Beta']
        assert data['notes'][0]['createdAt'] > 0
        assert data['notes'][1]['deleted'] is True
        assert data['config']['theme'] == 'crt'

    def test_import_renames_duplicates(self):
        self.store.create_note('Alpha')
        payload = json.dumps({'notes': [
            {'title': 'alpha', 'body': 'from file'},
            {'title': 'Gamma', 'tags': ['t'], 'createdAt': 123},
        ]})
        summary = self.store.import_json(payload, today=date(2024, 3, 5))

        assert (summary.imported, summary.duplicates, summary.skipped) == (2, 1, 0)
        titles = [n.title for n in self.store.list_notes()]
        assert 'alpha (imported 2024-03-05)' in titles
        gamma = [n for n in self.store.list_notes() if n.title == 'Gamma'][0]
        assert gamma.created_at == 123
        assert gamma.tags == ['t']

    def test_import_bare_array_skips_invalid(self):
        payload = json.dumps([
            {'title': 'Good'},
            {'title': ''},
            {'body': 'no title'},
            {'title': 'Bad body', 'body': 5},
            {'title': 'Sneaky', '__proto__': {}},
            'not an object',
        ])
        summary = self.store.import_json(payload)
        assert summary.imported == 1
        assert summary.skipped == 5

    def test_import_rejects_bad_payloads(self):
        with pytest.raises(StoreError):
            self.store.import_json('{not json')
        with pytest.raises(StoreError):
            self.store.import_json('{"notes": []}')
        with pytest.raises(StoreError):
            self.store.import_json('"just a string"')

    def test_export_then_import_into_fresh_store(self, clock):
        self.store.create_note('Carry', 'over', ['t'])
        other = open_store(':memory:', clock=clock)
        try:
            summary = other.import_json(self.store.export_json())
            assert summary.imported == 1
            note = other.list_notes()[0]
            assert (note.title, note.body, note.tags) == ('Carry', 'over', ['t'])
        finally:
            other.close()


class TestMigrations:
    """Schema setup on disk."""

    def test_migrations_apply_once(self, tmp_path):
        db_path = tmp_path / 'nested' / 'notes.db'
        connect(db_path).close()
        conn = connect(db_path)
        try:
            rows = conn.execute('SELECT name FROM _migrations').fetchall()
            assert [row['name'] for row in rows] == ['001_initial.sql']
        finally:
            conn.close()
