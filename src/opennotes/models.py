"""Defines the values passed around by the resolver and the note accessor.

The most important classes are :class:`NotebookConfig`, :class:`Notebook` and :class:`Note`.
All of them are immutable; changing a notebook means producing a new value with :func:`dataclasses.replace`.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import os.path
from typing import Dict, Mapping, Optional, Tuple, Union, Any, List, TYPE_CHECKING

from opennotes.strings import glob_match, slugify

if TYPE_CHECKING:
    from opennotes.notes import NoteService


NOTEBOOK_CONFIG_FILE = '.opennotes.json'
"""Name of the marker file that identifies a notebook directory."""

MetadataValue = Union[str, int, float, bool]


@dataclass(frozen=True)
class NotebookGroup:
    """A named, glob-driven classification of notes within a notebook.

    Groups are tags rather than partitions: a note belongs to every group that has a glob matching its path.
    """

    name: str

    globs: Tuple[str, ...] = ()
    """Patterns relative to the notebook root, such as ``**/*.md`` or ``journal/*.md``."""

    metadata: Mapping[str, MetadataValue] = field(default_factory=dict, hash=False)
    """Default metadata for notes in the group."""

    template: Optional[str] = None
    """Name of a template from :attr:`NotebookConfig.templates` used for new notes in the group."""

    def matches(self, relative_path: str) -> bool:
        return any(glob_match(g, relative_path) for g in self.globs)


@dataclass(frozen=True)
class NotebookConfig:
    """Validated, resolved contents of a notebook's ``.opennotes.json`` file.

    Configs compare by value. Two configs with the same :attr:`config_path` describe the same notebook, which is
    how :class:`Notebook` compares.
    """

    config_path: str
    """Absolute path to the marker file."""

    name: str

    root: str
    """Absolute path of the directory holding the notes. It existed when the config was loaded."""

    contexts: Tuple[str, ...] = ()
    """Absolute path prefixes; working anywhere under one of them selects this notebook."""

    templates: Mapping[str, str] = field(default_factory=dict, hash=False)
    """Template name to file path. Relative paths are relative to the notebook directory."""

    groups: Tuple[NotebookGroup, ...] = ()

    @property
    def path(self) -> str:
        """The notebook directory, which contains the marker file."""
        return os.path.dirname(self.config_path)


@dataclass(frozen=True, eq=False)
class Notebook:
    """A notebook configuration bound to a :class:`opennotes.notes.NoteService` for its root.

    Instances are produced by the functions in :mod:`opennotes.resolver`. Two notebooks are equal when they have the
    same :attr:`NotebookConfig.config_path`, even if one of them has since gained a context; compare
    :attr:`config` to tell versions apart.
    """

    config: NotebookConfig
    notes: NoteService = field(repr=False)

    def __eq__(self, other):
        if not isinstance(other, Notebook):
            return NotImplemented
        return self.config.config_path == other.config.config_path

    def __hash__(self):
        return hash(self.config.config_path)

    @property
    def path(self) -> str:
        return self.config.path

    def match_context(self, path: str) -> Optional[str]:
        """Returns the first context that is a prefix of ``path``, or None.

        This is a plain string comparison, so a context of ``/foo/ba`` matches ``/foo/bar``.
        """
        for context in self.config.contexts:
            if path.startswith(context):
                return context
        return None

    def groups_for(self, relative_path: str) -> List[NotebookGroup]:
        """Returns every group whose globs match the given path (relative to the notes root)."""
        return [g for g in self.config.groups if g.matches(relative_path)]

    def as_json(self) -> dict:
        config = self.config
        return {
            'name': config.name,
            'path': config.path,
            'configPath': config.config_path,
            'root': config.root,
            'contexts': list(config.contexts),
            'templates': dict(config.templates),
            'groups': [{'name': g.name, 'globs': list(g.globs)} for g in config.groups],
        }


@dataclass(frozen=True)
class Note:
    """A markdown note found under a notebook root."""

    filepath: str
    """Absolute path of the note file."""

    relative: str
    """Path relative to the notebook root, using ``/`` as separator."""

    content: str = ''
    """The note body, without the YAML metadata header."""

    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    groups: Tuple[str, ...] = ()
    """Names of the notebook groups the note belongs to."""

    @property
    def display_name(self) -> str:
        """The ``title`` from the metadata if there is one, otherwise the slugified filename."""
        title = self.metadata.get('title')
        if isinstance(title, str) and title:
            return title
        stem = os.path.basename(self.relative)
        if stem.endswith('.md'):
            stem = stem[:-3]
        return slugify(stem)

    def as_json(self) -> Dict[str, Any]:
        return {
            'filepath': self.filepath,
            'relative': self.relative,
            'title': self.display_name,
            'metadata': {k: str(v) if not isinstance(v, (str, int, float, bool)) else v
                         for k, v in self.metadata.items()},
            'groups': list(self.groups),
        }
