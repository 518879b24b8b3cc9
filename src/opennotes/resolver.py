"""Finds, loads, creates and updates notebooks.

A notebook is a directory containing a ``.opennotes.json`` marker file (see :mod:`opennotes.schema`). Every function
here takes a :class:`Context` holding the process-wide handles, and none of them keep state of their own.

The notebook that applies to a working directory is chosen by :func:`infer`:

1. the notebook declared by ``notebookPath`` in the global config (or ``$OPENNOTES_NOTEBOOK_PATH``), if it loads;
2. otherwise the first notebook from :func:`list_notebooks` having a context that is a prefix of the directory;
3. otherwise none.

Broken or stale marker files never raise here: they are logged and treated as "not a notebook". Writes, on the
other hand, always propagate their errors.

Example:

.. code-block:: python

   from opennotes.resolver import Context, infer
   with Context.create() as ctx:
       notebook = infer(ctx)
       if notebook:
           for note in notebook.notes.search('todo'):
               print(note.relative)
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
import json
import logging
import os
import os.path
from typing import List, Optional

from opennotes.conf import GlobalConfigStore
from opennotes.db import Db
from opennotes.display import Display
from opennotes.models import NOTEBOOK_CONFIG_FILE, Notebook, NotebookConfig, NotebookGroup
from opennotes.notes import NoteService
from opennotes.schema import InvalidConfigError, migrate, to_stored, validate_notebook_config
from opennotes.strings import validate_notebook_name

logger = logging.getLogger(__name__)


@dataclass
class Context:
    """The handles every resolver operation needs. Build one at startup and pass it around."""

    store: GlobalConfigStore
    db: Db = field(default_factory=Db)
    display: Display = field(default_factory=Display)

    @classmethod
    def create(cls, config_path: Optional[str] = None) -> Context:
        """Loads the global config (see :meth:`opennotes.conf.GlobalConfigStore.load`) and opens nothing else yet.

        The database connection is only established when a note query first needs it.
        """
        return cls(store=GlobalConfigStore.load(config_path))

    def close(self) -> None:
        self.db.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def config_file_path(path: str) -> str:
    return os.path.join(path, NOTEBOOK_CONFIG_FILE)


def has_notebook(path: Optional[str]) -> bool:
    """True if ``path`` directly contains a marker file. Does not look at parents or children."""
    if not path:
        return False
    return os.path.exists(config_file_path(path))


def load_config(ctx: Context, path: str) -> Optional[NotebookConfig]:
    """Reads and validates the marker file in directory ``path``.

    Returns None, never raising, if the file is missing, unreadable, not JSON, fails validation, or names a notes
    root that does not exist.
    """
    config_path = config_file_path(os.path.abspath(path))
    try:
        with open(config_path, 'r') as file:
            raw = json.load(file)
        return validate_notebook_config(migrate(raw), config_path)
    except InvalidConfigError as ex:
        logger.debug('load_config: INVALID_CONFIG path=%s\n%s', config_path, ex.pretty())
    except (OSError, ValueError, RecursionError) as ex:
        logger.debug('load_config: ERROR path=%s error=%s', config_path, ex)
    return None


def _bind(ctx: Context, config: NotebookConfig) -> Notebook:
    return Notebook(config=config, notes=NoteService(ctx.db, config.root, config))


def load(ctx: Context, path: str) -> Optional[Notebook]:
    """Loads the notebook in directory ``path``, or returns None if it isn't a usable notebook."""
    config = load_config(ctx, path)
    if not config:
        return None
    return _bind(ctx, config)


def open_notebook(ctx: Context, path: str) -> Optional[Notebook]:
    """Loads an explicitly requested notebook. Same as :func:`load`; named for the CLI's ``--notebook`` option."""
    return load(ctx, path)


def save_config(ctx: Context, notebook: Notebook, register: bool = False) -> None:
    """Writes the notebook's marker file, creating its directory if needed.

    If ``register`` is True, the notebook directory is also appended to the global config's ``notebooks`` (unless
    already present) and the global config file is rewritten.

    IO errors propagate.
    """
    config = notebook.config
    logger.debug('save_config: path=%s register=%s', config.config_path, register)
    os.makedirs(os.path.dirname(config.config_path), exist_ok=True)
    with open(config.config_path, 'w') as file:
        json.dump(to_stored(config), file, indent=2)
    if register:
        if ctx.store.register(config.path):
            logger.debug('save_config: registered %s', config.path)
        else:
            logger.debug('save_config: %s already registered', config.path)


def create(ctx: Context, name: str, base_path: Optional[str] = None, register: bool = False) -> Notebook:
    """Creates a notebook in ``base_path`` (default: the working directory) and returns it.

    The new notebook keeps its notes next to the marker file, has ``base_path`` as its only context, and has a
    single ``Default`` group covering ``**/*.md``. Raises :exc:`ValueError` for an invalid name; IO errors
    propagate.
    """
    validate_notebook_name(name)
    base_path = os.path.abspath(base_path or os.getcwd())
    os.makedirs(base_path, exist_ok=True)
    config = NotebookConfig(
        config_path=config_file_path(base_path),
        name=name,
        root=base_path,
        contexts=(base_path,),
        templates={},
        groups=(NotebookGroup(name='Default', globs=('**/*.md',), metadata={}),))
    notebook = _bind(ctx, config)
    save_config(ctx, notebook, register=register)
    logger.debug('create: created notebook %r at %s', name, base_path)
    ctx.display.show('notebook_created', name=name, path=base_path)
    return notebook


def _ancestors(path: str):
    current = os.path.abspath(path)
    while True:
        yield current
        parent = os.path.dirname(current)
        if parent == current:
            return
        current = parent


def list_notebooks(ctx: Context, cwd: Optional[str] = None) -> List[Notebook]:
    """Returns the registered notebooks followed by notebooks found in ``cwd`` and its ancestors.

    Registered notebooks come in registration order, then ancestors from nearest (``cwd`` itself) to the filesystem
    root. Entries that are missing or invalid are skipped silently. A notebook that is both registered and an
    ancestor is returned twice.
    """
    cwd = cwd or os.getcwd()
    output = []

    for path in ctx.store.notebooks:
        if not has_notebook(path):
            logger.debug('list_notebooks: SKIP_MISSING registered path=%s', path)
            continue
        notebook = load(ctx, path)
        if notebook:
            output.append(notebook)

    for path in _ancestors(cwd):
        if not has_notebook(path):
            continue
        notebook = load(ctx, path)
        if notebook:
            output.append(notebook)

    return output


def infer(ctx: Context, cwd: Optional[str] = None) -> Optional[Notebook]:
    """Picks the notebook for ``cwd`` (default: the working directory). See the module docs for the rules."""
    cwd = cwd or os.getcwd()

    declared = ctx.store.notebook_path
    if declared and has_notebook(declared):
        notebook = load(ctx, declared)
        if notebook:
            logger.debug('infer: USE_DECLARED_PATH %s', declared)
            return notebook

    for notebook in list_notebooks(ctx, cwd):
        if notebook.match_context(cwd) is not None:
            logger.debug('infer: MATCHED_LISTED_NOTEBOOK %s', notebook.path)
            return notebook

    logger.debug('infer: NO_NOTEBOOK_FOUND cwd=%s', cwd)
    return None


def add_context(ctx: Context, notebook: Notebook, context_path: Optional[str] = None) -> Notebook:
    """Associates ``context_path`` (default: the working directory) with the notebook.

    Returns the updated notebook, which has already been saved. If the path was already a context, nothing is
    written and the given notebook is returned; a notice is shown either way.
    """
    context_path = context_path or os.getcwd()
    if context_path in notebook.config.contexts:
        ctx.display.show('context_exists', context_path=context_path, notebook_path=notebook.path)
        return notebook

    config = replace(notebook.config, contexts=notebook.config.contexts + (context_path,))
    updated = replace(notebook, config=config)
    save_config(ctx, updated)
    ctx.display.show('context_added', context_path=context_path, notebook_path=notebook.path)
    return updated


def load_template(ctx: Context, notebook: Notebook, name: str) -> Optional[str]:
    """Returns the text of the notebook's template called ``name``, or None.

    Unknown names return None quietly. A template that is configured but can't be read is reported to the user and
    also yields None.
    """
    template_path = notebook.config.templates.get(name)
    if not template_path:
        return None
    template_path = os.path.join(notebook.path, os.path.expanduser(template_path))
    try:
        with open(template_path, 'r') as file:
            return file.read()
    except (OSError, UnicodeDecodeError) as ex:
        logger.debug('load_template: ERROR_LOADING_TEMPLATE path=%s error=%s', template_path, ex)
        ctx.display.show('template_load_error', stderr=True, template_path=template_path, error=str(ex))
    return None
