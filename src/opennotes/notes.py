"""Provides :class:`NoteService`, which searches and counts the markdown notes under one notebook root.

Notes are scanned from disk and loaded into the ``notes`` table of the shared :class:`opennotes.db.Db` before each
query, so results always reflect the files as they are at call time. The table has these columns:

* ``filepath`` - absolute path
* ``relative`` - path relative to the notebook root
* ``title`` - the ``title`` metadata, if any
* ``content`` - body text without the metadata header
* ``metadata`` - the metadata header as a JSON object
"""

from __future__ import annotations
import json
import logging
import os
import os.path
import re
import sqlite3
from typing import Any, Dict, List, Optional, Tuple, Iterator, TYPE_CHECKING

import yaml

from opennotes.db import Db
from opennotes.models import Note

if TYPE_CHECKING:
    from opennotes.models import NotebookConfig

logger = logging.getLogger(__name__)

YAML_META_RE = re.compile(r'(?ms)(\A---\n(.*?)\n(---|\.\.\.)\s*\r?\n)?(.*)')

_DANGEROUS_KEYWORDS = {'DROP', 'DELETE', 'UPDATE', 'INSERT', 'ALTER', 'CREATE', 'TRUNCATE', 'REPLACE', 'ATTACH',
                       'DETACH', 'PRAGMA'}
_SQL_TOKEN_SPLIT_RE = re.compile(r'[\s(),;=<>]+')

_READ_ONLY_ACTIONS = {sqlite3.SQLITE_SELECT, sqlite3.SQLITE_READ, sqlite3.SQLITE_FUNCTION,
                      getattr(sqlite3, 'SQLITE_RECURSIVE', 33)}


class QueryError(Exception):
    """Raised when a query is rejected or fails to run."""


def _extract_meta(doc: str) -> Tuple[Dict[str, Any], str]:
    meta = {}
    match = YAML_META_RE.match(doc)
    if match.groups()[1]:
        meta = yaml.safe_load(match.groups()[1])
    body = match.groups()[3]
    return meta, body


def parse_note(text: str) -> Tuple[Dict[str, Any], str]:
    """Splits note text into its YAML metadata (``{}`` if absent or unparseable) and its body."""
    try:
        meta, body = _extract_meta(text)
    except (yaml.YAMLError, RecursionError) as ex:
        logger.debug('unparseable metadata header: %s', ex)
        return {}, text
    if not isinstance(meta, dict):
        return {}, body
    return meta, body


def validate_sql(query: str) -> None:
    """Raises :exc:`QueryError` unless the query is a single read-only ``SELECT`` or ``WITH`` statement.

    This is a coarse keyword check; :meth:`NoteService.execute_sql` additionally runs the statement under an
    authorizer that rejects anything other than reads.
    """
    normalized = query.strip().upper()
    if not normalized:
        raise QueryError('query cannot be empty')
    if not (normalized.startswith('SELECT') or normalized.startswith('WITH')):
        raise QueryError('only SELECT queries are allowed')
    for token in _SQL_TOKEN_SPLIT_RE.split(normalized):
        if token in _DANGEROUS_KEYWORDS:
            raise QueryError(f"keyword '{token}' is not allowed")


def _read_only_authorizer(action, arg1, arg2, dbname, source) -> int:
    if action in _READ_ONLY_ACTIONS:
        return sqlite3.SQLITE_OK
    return sqlite3.SQLITE_DENY


class NoteService:
    """Query access to the markdown notes of one notebook.

    .. attribute:: root
       :type: str

       The notebook's resolved notes directory.
    """
    def __init__(self, db: Db, root: str, config: Optional[NotebookConfig] = None):
        self.db = db
        self.root = root
        self.config = config

    def _paths(self) -> Iterator[str]:
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith('.'))
            for filename in sorted(filenames):
                if filename.endswith('.md') and not filename.startswith('.'):
                    yield os.path.join(dirpath, filename)

    def _groups_for(self, relative: str) -> Tuple[str, ...]:
        if not self.config:
            return ()
        return tuple(g.name for g in self.config.groups if g.matches(relative))

    def _load(self, path: str) -> Note:
        with open(path, 'r') as file:
            text = file.read()
        meta, body = parse_note(text)
        relative = os.path.relpath(path, self.root).replace(os.sep, '/')
        return Note(filepath=path, relative=relative, content=body, metadata=meta,
                    groups=self._groups_for(relative))

    def _scan(self) -> Dict[str, Note]:
        notes = {}
        for path in self._paths():
            try:
                notes[path] = self._load(path)
            except (OSError, UnicodeDecodeError) as ex:
                logger.debug('skipping unreadable note %s: %s', path, ex)
        return notes

    def _refresh(self) -> Dict[str, Note]:
        notes = self._scan()
        rows = [(n.filepath, n.relative,
                 n.metadata.get('title') if isinstance(n.metadata.get('title'), str) else None,
                 n.content, json.dumps(n.metadata, default=str))
                for n in notes.values()]
        with self.db.lock:
            self.db.execute('DELETE FROM notes')
            self.db.executemany('INSERT INTO notes (filepath, relative, title, content, metadata)'
                                ' VALUES (?, ?, ?, ?, ?)', rows)
        return notes

    def search(self, query: str = '') -> List[Note]:
        """Returns notes whose body or path contains ``query`` (case-insensitive), ordered by relative path.

        An empty query returns every note.
        """
        logger.debug('search: root=%s query=%r', self.root, query)
        with self.db.lock:
            notes = self._refresh()
            rows = self.db.query('SELECT filepath FROM notes'
                                 ' WHERE ? = \'\' OR instr(lower(content), ?) > 0 OR instr(lower(filepath), ?) > 0'
                                 ' ORDER BY relative',
                                 (query, query.lower(), query.lower()))
        result = [notes[r['filepath']] for r in rows]
        logger.debug('search: %d notes found', len(result))
        return result

    def count(self) -> int:
        """Returns the number of markdown notes under the root."""
        with self.db.lock:
            self._refresh()
            return self.db.query('SELECT COUNT(*) AS count FROM notes')[0]['count']

    def read(self, relative: str) -> Optional[Note]:
        """Returns the note at the given path relative to the root, or None if it does not exist."""
        path = os.path.join(self.root, relative)
        if not os.path.isfile(path):
            return None
        return self._load(path)

    def execute_sql(self, query: str) -> List[Dict[str, Any]]:
        """Runs a user-supplied read-only query against the ``notes`` table.

        Raises :exc:`QueryError` if the query is rejected by :func:`validate_sql`, tries to do anything other than
        read, or fails.
        """
        validate_sql(query)
        logger.debug('execute_sql: %s', query)
        with self.db.lock:
            self._refresh()
            try:
                return self.db.query(query, authorizer=_read_only_authorizer)
            except sqlite3.Error as ex:
                logger.debug('execute_sql failed: %s', ex)
                raise QueryError(f'query execution failed: {ex}') from ex
