"""
Directory navigation over the note store's folder tree.

The current directory is a folder id, or None for the root. Paths are
resolved one segment at a time against folder names, ignoring case.
"""

from typing import List, Optional

from .store import Folder, NoteStore

ROOT_DISPLAY = '~'
ROOT_ALIASES = ('', '~', '/')
PARENT = '..'
CURRENT = '.'


class NoSuchDirectory(LookupError):
    """Raised when a path segment names no child folder."""

    def __init__(self, path: str):
        super().__init__(f"{path}: No such directory")
        self.path = path


def find_child(store: NoteStore, parent_id: Optional[int], name: str) -> Optional[Folder]:
    """First child folder whose name matches, case-insensitively."""
    lowered = name.lower()
    for folder in store.list_folders(parent_id):
        if folder.name.lower() == lowered:
            return folder
    return None


def parent_of(store: NoteStore, folder_id: Optional[int]) -> Optional[int]:
    """Parent folder id. The root is its own parent."""
    if folder_id is None:
        return None
    folder = store.get_folder(folder_id)
    return folder.parent_id if folder else None


def resolve_path(store: NoteStore, current_id: Optional[int], path: str) -> Optional[int]:
    """
    Resolve a path to a folder id.

    '', '~' and '/' are the root, '..' is the parent, anything else names a
    child. A child whose whole name matches wins, so folder names may
    contain '/'. Otherwise paths may have several segments ('a/b', '../c');
    a leading '/' or '~/' starts from the root.

    Raises:
        NoSuchDirectory: if a segment does not exist
    """
    path = path.strip()
    if path in ROOT_ALIASES:
        return None

    child = find_child(store, current_id, path)
    if child is not None:
        return child.id

    target = current_id
    if path.startswith('/'):
        target = None
    elif path.startswith('~/'):
        target = None
        path = path[2:]

    for segment in path.split('/'):
        if segment in ('', CURRENT):
            continue
        if segment == PARENT:
            target = parent_of(store, target)
            continue
        folder = find_child(store, target, segment)
        if folder is None:
            raise NoSuchDirectory(path)
        target = folder.id

    return target


def folder_chain(store: NoteStore, folder_id: Optional[int]) -> List[Folder]:
    """Folders from the root down to folder_id."""
    chain = []
    seen = set()
    while folder_id is not None and folder_id not in seen:
        seen.add(folder_id)
        folder = store.get_folder(folder_id)
        if folder is None:
            break
        chain.append(folder)
        folder_id = folder.parent_id
    chain.reverse()
    return chain


def path_display(store: NoteStore, folder_id: Optional[int]) -> str:
    """Display path such as '~/projects/2024'."""
    if folder_id is None:
        return ROOT_DISPLAY
    chain = folder_chain(store, folder_id)
    if not chain:
        return '?'
    return '/'.join([ROOT_DISPLAY] + [folder.name for folder in chain])
