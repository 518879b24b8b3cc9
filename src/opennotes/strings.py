"""Small string and path helpers shared by the notebook and note modules."""

import os.path
import re
from io import StringIO
from typing import Mapping, Any

import yaml


_NOTEBOOK_NAME_RE = re.compile(r'^[a-zA-Z0-9\s\-_]+$')


def slugify(text: str) -> str:
    """Converts text to a lowercase, hyphen-separated slug.

    Newlines become spaces, characters other than ``a-z``, ``0-9``, whitespace and ``-`` are dropped, runs of
    whitespace become a single dash, and leading/trailing dashes are removed.

    For example, ``"Meeting Notes: Q3!"`` becomes ``"meeting-notes-q3"``.
    """
    text = text.lower().replace('\n', ' ')
    text = re.sub(r'[^a-z0-9\s-]', '', text)
    text = re.sub(r'\s+', '-', text)
    return text.strip('-')


def glob_to_regex(pattern: str) -> re.Pattern:
    """Compiles a group glob such as ``**/*.md`` into a regex matching paths relative to a notebook root.

    * ``**/`` matches zero or more whole directories
    * ``**`` elsewhere matches anything, including ``/``
    * ``*`` matches anything within a single path segment
    * ``?`` matches a single character within a segment
    """
    i = 0
    out = []
    while i < len(pattern):
        if pattern.startswith('**/', i):
            out.append('(?:.*/)?')
            i += 3
        elif pattern.startswith('**', i):
            out.append('.*')
            i += 2
        elif pattern[i] == '*':
            out.append('[^/]*')
            i += 1
        elif pattern[i] == '?':
            out.append('[^/]')
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile(''.join(out) + r'\Z')


def glob_match(pattern: str, relative_path: str) -> bool:
    return bool(glob_to_regex(pattern).match(relative_path.replace('\\', '/')))


def validate_notebook_name(name: str) -> None:
    """Raises :exc:`ValueError` unless the name is 1-100 letters, digits, spaces, hyphens or underscores."""
    if not name:
        raise ValueError('notebook name is required')
    if len(name) > 100:
        raise ValueError('notebook name must be between 1 and 100 characters')
    if not _NOTEBOOK_NAME_RE.match(name):
        raise ValueError('notebook name can only contain letters, numbers, spaces, hyphens, and underscores')


def validate_note_name(name: str) -> None:
    """Raises :exc:`ValueError` for empty, overlong, absolute or path-traversing note filenames."""
    if not name:
        raise ValueError('note name is required')
    if os.path.isabs(name) or name.startswith(('/', '\\')):
        raise ValueError('note name must be relative to the notebook root')
    stem = name[:-3] if name.endswith('.md') else name
    if len(stem) > 255:
        raise ValueError('note name is too long (max 255 characters)')
    if '..' in stem:
        raise ValueError('note name cannot contain path traversal (..)')


def to_frontmatter(meta: Mapping[str, Any]) -> str:
    """Returns a YAML metadata block, including the ``---`` delimiters, for the start of a markdown note."""
    sio = StringIO()
    yaml.safe_dump(dict(meta), sio, sort_keys=False, allow_unicode=True)
    return f'---\n{sio.getvalue()}---\n'
