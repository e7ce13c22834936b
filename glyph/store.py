"""SQLite note store - notes, folders, trash and shell preferences."""

import json
import logging
import re
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable, Iterable

from glyph.config import DATABASE_PATH, DEFAULT_CONFIG
from glyph.output import now_ms

logger = logging.getLogger(__name__)

# Migrations directory
MIGRATIONS_DIR = Path(__file__).parent / "migrations"

MAX_TITLE_LENGTH = 500
MAX_FOLDER_NAME_LENGTH = 100
MAX_TAG_LENGTH = 100
MAX_TAGS = 50
MAX_IMPORT_BYTES = 50 * 1024 * 1024
MAX_IMPORT_NOTES = 10_000
EXPORT_VERSION = "1.1"
DAILY_TAG = "daily"

# C0 controls except tab and newline, DEL, and C1 controls
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")
_FORBIDDEN_IMPORT_KEYS = {"__proto__", "constructor", "prototype"}


class StoreError(ValueError):
    """Raised when data is rejected at the store boundary."""


@dataclass
class Note:
    """A user-authored note."""

    id: int
    title: str
    body: str = ""
    tags: list[str] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0
    deleted: bool = False
    deleted_at: int | None = None
    pinned: bool = False
    parent_id: int | None = None


@dataclass
class Folder:
    """A named container in the note tree."""

    id: int
    name: str
    parent_id: int | None = None
    created_at: int = 0


@dataclass
class DeletedNote:
    """Snapshot of a note taken when it was moved to the trash."""

    note_id: int
    title: str
    body: str
    tags: list[str]
    created_at: int
    updated_at: int
    deleted_at: int


@dataclass
class DeleteOutcome:
    success: bool
    deleted_note: DeletedNote | None = None


@dataclass
class FolderContents:
    notes: list[Note]
    folders: list[Folder]


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    duplicates: int = 0


def sanitize_text(text: str) -> str:
    """Strip control characters that would reach the terminal raw."""
    return _CONTROL_CHARS.sub("", text)


def _clean_tags(tags: Iterable[Any]) -> list[str]:
    cleaned = [
        sanitize_text(tag[:MAX_TAG_LENGTH]).strip()
        for tag in tags
        if isinstance(tag, str)
    ]
    return [tag for tag in cleaned if tag][:MAX_TAGS]


def _clean_title(title: str) -> str:
    if not isinstance(title, str):
        raise StoreError("Invalid title")
    safe = sanitize_text(title.strip()[:MAX_TITLE_LENGTH]).strip()
    if not safe:
        raise StoreError("Invalid title")
    return safe


def _run_migrations(conn: sqlite3.Connection) -> None:
    """Run pending database migrations."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS _migrations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            applied_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """)

    applied = {
        row[0] for row in conn.execute("SELECT name FROM _migrations").fetchall()
    }

    for migration_file in sorted(MIGRATIONS_DIR.glob("*.sql")):
        if migration_file.name in applied:
            continue

        logger.info("Applying migration: %s", migration_file.name)
        conn.executescript(migration_file.read_text())
        conn.execute(
            "INSERT INTO _migrations (name) VALUES (?)",
            (migration_file.name,),
        )
        conn.commit()


def connect(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Open a database connection with row factory and schema applied.

    Args:
        db_path: Path to SQLite database (defaults to DATABASE_PATH),
            or ":memory:" for a throwaway database

    Returns:
        SQLite connection with row factory enabled
    """
    path = str(db_path) if db_path else str(DATABASE_PATH)
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    if path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    _run_migrations(conn)
    return conn


def open_store(
    db_path: Path | str | None = None,
    clock: Callable[[], int] | None = None,
) -> "NoteStore":
    """Connect to a database and wrap it in a NoteStore."""
    return NoteStore(connect(db_path), clock=clock)


class NoteStore:
    """
    Data access for notes, folders, trash and configuration.

    Every write commits immediately; the shell never batches operations.
    """

    def __init__(self, conn: sqlite3.Connection, clock: Callable[[], int] | None = None):
        """
        Initialize the store.

        Args:
            conn: SQLite connection with row_factory set and schema applied
            clock: Returns the current time in epoch milliseconds
        """
        self.conn = conn
        self.clock = clock or now_ms

    def close(self) -> None:
        self.conn.close()

    # Row mapping

    @staticmethod
    def _note(row: sqlite3.Row) -> Note:
        return Note(
            id=row["id"],
            title=row["title"],
            body=row["body"],
            tags=json.loads(row["tags"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted=bool(row["deleted"]),
            deleted_at=row["deleted_at"],
            pinned=bool(row["pinned"]),
            parent_id=row["parent_id"],
        )

    @staticmethod
    def _folder(row: sqlite3.Row) -> Folder:
        return Folder(
            id=row["id"],
            name=row["name"],
            parent_id=row["parent_id"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _deleted(row: sqlite3.Row) -> DeletedNote:
        return DeletedNote(
            note_id=row["note_id"],
            title=row["title"],
            body=row["body"],
            tags=json.loads(row["tags"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    # Configuration

    def get_config(self, key: str) -> str:
        """Get a preference, falling back to its default, or ""."""
        row = self.conn.execute(
            "SELECT value FROM config WHERE key = ?", (key,)
        ).fetchone()
        if row:
            return row["value"]
        return DEFAULT_CONFIG.get(key, "")

    def set_config(self, key: str, value: str) -> None:
        self.conn.execute(
            """
            INSERT INTO config (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
        self.conn.commit()

    def all_config(self) -> dict[str, str]:
        """Defaults overlaid with stored preferences."""
        result = dict(DEFAULT_CONFIG)
        for row in self.conn.execute("SELECT key, value FROM config ORDER BY key"):
            result[row["key"]] = row["value"]
        return result

    # Folders

    def create_folder(self, name: str, parent_id: int | None = None) -> Folder:
        safe_name = sanitize_text(name.strip()[:MAX_FOLDER_NAME_LENGTH]).strip()
        if not safe_name:
            raise StoreError("Invalid folder name")
        if parent_id is not None and self.get_folder(parent_id) is None:
            raise StoreError(f"Parent folder {parent_id} does not exist")

        cursor = self.conn.execute(
            "INSERT INTO folders (name, parent_id, created_at) VALUES (?, ?, ?)",
            (safe_name, parent_id, self.clock()),
        )
        self.conn.commit()
        logger.debug("Created folder %s (%s)", cursor.lastrowid, safe_name)
        return self.get_folder(cursor.lastrowid)

    def get_folder(self, folder_id: int) -> Folder | None:
        row = self.conn.execute(
            "SELECT * FROM folders WHERE id = ?", (folder_id,)
        ).fetchone()
        return self._folder(row) if row else None

    def list_folders(self, parent_id: int | None = None) -> list[Folder]:
        """Direct child folders; root folders have no parent."""
        if parent_id is None:
            rows = self.conn.execute(
                "SELECT * FROM folders WHERE parent_id IS NULL ORDER BY id"
            )
        else:
            rows = self.conn.execute(
                "SELECT * FROM folders WHERE parent_id = ? ORDER BY id", (parent_id,)
            )
        return [self._folder(row) for row in rows]

    def folder_contents(self, parent_id: int | None = None) -> FolderContents:
        """Non-deleted notes and folders directly inside a folder (or root)."""
        if parent_id is None:
            rows = self.conn.execute(
                "SELECT * FROM notes WHERE deleted = 0 AND parent_id IS NULL ORDER BY id"
            )
        else:
            rows = self.conn.execute(
                "SELECT * FROM notes WHERE deleted = 0 AND parent_id = ? ORDER BY id",
                (parent_id,),
            )
        notes = [self._note(row) for row in rows]
        return FolderContents(notes=notes, folders=self.list_folders(parent_id))

    # Notes

    def create_note(
        self,
        title: str,
        body: str = "",
        tags: Iterable[str] = (),
        parent_id: int | None = None,
    ) -> Note:
        safe_title = _clean_title(title)
        now = self.clock()
        cursor = self.conn.execute(
            """
            INSERT INTO notes (title, body, tags, created_at, updated_at, parent_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (safe_title, sanitize_text(body), json.dumps(_clean_tags(tags)), now, now, parent_id),
        )
        self.conn.commit()
        logger.debug("Created note %s", cursor.lastrowid)
        return self.get_note(cursor.lastrowid)

    def get_note(self, note_id: int) -> Note | None:
        row = self.conn.execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
        return self._note(row) if row else None

    def list_notes(self, include_deleted: bool = False) -> list[Note]:
        if include_deleted:
            rows = self.conn.execute("SELECT * FROM notes ORDER BY id")
        else:
            rows = self.conn.execute("SELECT * FROM notes WHERE deleted = 0 ORDER BY id")
        return [self._note(row) for row in rows]

    def update_note(
        self,
        note_id: int,
        title: str | None = None,
        body: str | None = None,
        tags: Iterable[str] | None = None,
        parent_id: int | None = None,
    ) -> Note | None:
        """Update the given fields and bump updated_at. None leaves a field alone."""
        if self.get_note(note_id) is None:
            return None

        fields: dict[str, Any] = {}
        if title is not None:
            fields["title"] = _clean_title(title)
        if body is not None:
            fields["body"] = sanitize_text(body)
        if tags is not None:
            fields["tags"] = json.dumps(_clean_tags(tags))
        if parent_id is not None:
            fields["parent_id"] = parent_id
        fields["updated_at"] = self.clock()

        assignments = ", ".join(f"{column} = ?" for column in fields)
        self.conn.execute(
            f"UPDATE notes SET {assignments} WHERE id = ?",
            (*fields.values(), note_id),
        )
        self.conn.commit()
        return self.get_note(note_id)

    def set_pinned(self, note_id: int, pinned: bool) -> bool:
        """Set the pinned flag. Returns False if the note does not exist."""
        cursor = self.conn.execute(
            "UPDATE notes SET pinned = ? WHERE id = ?", (1 if pinned else 0, note_id)
        )
        self.conn.commit()
        return cursor.rowcount > 0

    # Trash

    def delete_note(self, note_id: int) -> DeleteOutcome:
        """Soft delete a note, keeping a snapshot in the trash."""
        note = self.get_note(note_id)
        if note is None or note.deleted:
            return DeleteOutcome(success=False)

        now = self.clock()
        snapshot = DeletedNote(
            note_id=note_id,
            title=note.title,
            body=note.body,
            tags=list(note.tags),
            created_at=note.created_at,
            updated_at=note.updated_at,
            deleted_at=now,
        )
        self.conn.execute(
            """
            INSERT INTO recently_deleted
                (note_id, title, body, tags, created_at, updated_at, deleted_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.note_id,
                snapshot.title,
                snapshot.body,
                json.dumps(snapshot.tags),
                snapshot.created_at,
                snapshot.updated_at,
                snapshot.deleted_at,
            ),
        )
        self.conn.execute(
            "UPDATE notes SET deleted = 1, deleted_at = ?, updated_at = ? WHERE id = ?",
            (now, now, note_id),
        )
        self.conn.commit()
        logger.debug("Moved note %s to trash", note_id)
        return DeleteOutcome(success=True, deleted_note=snapshot)

    def restore_note(self, note_id: int) -> bool:
        """Bring a note back from the trash. False if it is not there."""
        note = self.get_note(note_id)
        if note is None or not note.deleted:
            return False

        self.conn.execute("DELETE FROM recently_deleted WHERE note_id = ?", (note_id,))
        self.conn.execute(
            "UPDATE notes SET deleted = 0, deleted_at = NULL, updated_at = ? WHERE id = ?",
            (self.clock(), note_id),
        )
        self.conn.commit()
        return True

    def list_deleted(self) -> list[DeletedNote]:
        """Trash snapshots, most recently deleted first."""
        rows = self.conn.execute(
            "SELECT * FROM recently_deleted ORDER BY deleted_at DESC, id DESC"
        )
        return [self._deleted(row) for row in rows]

    def purge_note(self, note_id: int) -> bool:
        """Permanently remove a note and its trash snapshot."""
        self.conn.execute("DELETE FROM recently_deleted WHERE note_id = ?", (note_id,))
        cursor = self.conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
        self.conn.commit()
        logger.debug("Purged note %s", note_id)
        return cursor.rowcount > 0

    def purge_old_deleted(self, older_than_ms: int = 7 * 24 * 60 * 60 * 1000) -> int:
        """Purge trash entries deleted longer ago than the cutoff."""
        cutoff = self.clock() - older_than_ms
        rows = self.conn.execute(
            "SELECT note_id FROM recently_deleted WHERE deleted_at < ?", (cutoff,)
        ).fetchall()
        for row in rows:
            self.purge_note(row["note_id"])
        return len(rows)

    # Queries

    def search_notes(self, query: str) -> list[Note]:
        """Case-insensitive substring match over title, body and tags."""
        needle = query.lower()
        return [
            note
            for note in self.list_notes()
            if needle in note.title.lower()
            or needle in note.body.lower()
            or any(needle in tag.lower() for tag in note.tags)
        ]

    def notes_by_tag(self, tag: str) -> list[Note]:
        return [note for note in self.list_notes() if tag in note.tags]

    def list_tags(self) -> list[tuple[str, int]]:
        """(tag, count) pairs over non-deleted notes, most used first."""
        counts: dict[str, int] = {}
        for note in self.list_notes():
            for tag in note.tags:
                counts[tag] = counts.get(tag, 0) + 1
        return sorted(counts.items(), key=lambda item: item[1], reverse=True)

    def list_titles(self) -> list[tuple[int, str]]:
        """(id, title) pairs of non-deleted notes."""
        rows = self.conn.execute("SELECT id, title FROM notes WHERE deleted = 0 ORDER BY id")
        return [(row["id"], row["title"]) for row in rows]

    def get_or_create_today_note(self, today: date | None = None) -> Note:
        """Return the daily note for today, creating it if needed."""
        title = f"Daily: {(today or date.today()).isoformat()}"
        row = self.conn.execute(
            "SELECT * FROM notes WHERE deleted = 0 AND title = ? ORDER BY id LIMIT 1",
            (title,),
        ).fetchone()
        if row:
            return self._note(row)
        return self.create_note(title, "", [DAILY_TAG])

    # Import / export

    def export_json(self) -> str:
        """Serialize every note and the preferences to JSON."""
        notes = [
            {
                "id": note.id,
                "title": note.title,
                "body": note.body,
                "tags": note.tags,
                "createdAt": note.created_at,
                "updatedAt": note.updated_at,
                "deleted": note.deleted,
                "deletedAt": note.deleted_at,
                "pinned": note.pinned,
                "parentId": note.parent_id,
            }
            for note in self.list_notes(include_deleted=True)
        ]
        return json.dumps(
            {
                "notes": notes,
                "config": self.all_config(),
                "exportedAt": self.clock(),
                "version": EXPORT_VERSION,
            },
            indent=2,
        )

    def import_json(self, json_data: str, today: date | None = None) -> ImportSummary:
        """
        Import notes from an export.

        Accepts either a bare array of notes or an object with a "notes"
        array. Invalid entries are skipped; titles that collide with an
        existing one (case-insensitively) get an "(imported DATE)" suffix.

        Raises:
            StoreError: if the payload is too large or malformed
        """
        if len(json_data) > MAX_IMPORT_BYTES:
            raise StoreError("Import file too large (max 50MB)")

        try:
            data = json.loads(json_data)
        except json.JSONDecodeError as e:
            raise StoreError("Invalid JSON format") from e

        if isinstance(data, list):
            raw_notes = data
        elif isinstance(data, dict):
            raw_notes = data.get("notes") if isinstance(data.get("notes"), list) else []
        else:
            raise StoreError("Invalid import format: expected an object or array")

        if not raw_notes:
            raise StoreError("No valid notes found in import data")
        if len(raw_notes) > MAX_IMPORT_NOTES:
            raise StoreError(f"Import exceeds maximum of {MAX_IMPORT_NOTES:,} notes")

        summary = ImportSummary()
        existing_titles = {note.title.lower() for note in self.list_notes(include_deleted=True)}
        suffix_date = (today or date.today()).isoformat()

        for raw in raw_notes:
            if not _valid_note_shape(raw):
                summary.skipped += 1
                continue

            try:
                title = _clean_title(raw["title"])
            except StoreError:
                summary.skipped += 1
                continue

            if title.lower() in existing_titles:
                title = f"{title} (imported {suffix_date})"
                summary.duplicates += 1
            existing_titles.add(title.lower())

            now = self.clock()
            created_at = raw.get("createdAt")
            if not isinstance(created_at, int) or isinstance(created_at, bool):
                created_at = now
            self.conn.execute(
                """
                INSERT INTO notes (title, body, tags, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    title,
                    sanitize_text(raw.get("body") or ""),
                    json.dumps(_clean_tags(raw.get("tags") or [])),
                    created_at,
                    now,
                ),
            )
            summary.imported += 1

        self.conn.commit()
        logger.info(
            "Imported %d notes (%d skipped, %d renamed)",
            summary.imported, summary.skipped, summary.duplicates,
        )
        return summary


def _valid_note_shape(raw: Any) -> bool:
    if not isinstance(raw, dict):
        return False
    if _FORBIDDEN_IMPORT_KEYS & set(raw):
        return False
    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        return False
    if "body" in raw and raw["body"] is not None and not isinstance(raw["body"], str):
        return False
    if "tags" in raw and raw["tags"] is not None and not isinstance(raw["tags"], list):
        return False
    return True
