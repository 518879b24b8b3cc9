"""Loads and writes the user's global configuration.

The global config is a JSON file, by default ``~/.config/opennotes/config.json``::

    {
      "notebooks": ["/home/me/notes", "/home/me/work/notes"],
      "notebookPath": "/home/me/notes"
    }

``notebooks`` lists registered notebook directories. ``notebookPath``, if set, is used ahead of any discovery.
"""

from __future__ import annotations

import json
import logging
import os
import os.path
from typing import List, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictStr

from opennotes.schema import InvalidConfigError, ValidationError

logger = logging.getLogger(__name__)

CONFIG_ENV = 'OPENNOTES_CONFIG'
"""Environment variable overriding the location of the global config file."""

NOTEBOOK_PATH_ENV = 'OPENNOTES_NOTEBOOK_PATH'
"""Environment variable overriding :attr:`GlobalConfig.notebook_path`."""


def default_config_path() -> str:
    """Returns ``$OPENNOTES_CONFIG`` if set, else ``config.json`` in the ``opennotes`` user config directory."""
    path = os.environ.get(CONFIG_ENV)
    if path:
        return os.path.abspath(os.path.expanduser(path))
    base = os.environ.get('XDG_CONFIG_HOME') or os.path.join(os.path.expanduser('~'), '.config')
    return os.path.join(base, 'opennotes', 'config.json')


class GlobalConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notebooks: List[StrictStr] = Field(default_factory=list)
    """Registered notebook directories, in registration order."""

    notebook_path: Optional[StrictStr] = Field(default=None, alias='notebookPath')
    """If set, this notebook is selected regardless of the working directory."""

    @classmethod
    def parse(cls, raw, source: Optional[str] = None) -> GlobalConfig:
        """Builds an instance from parsed JSON. Raises :exc:`opennotes.schema.InvalidConfigError` on bad shapes."""
        try:
            return cls.model_validate(raw)
        except pydantic.ValidationError as ex:
            raise InvalidConfigError.from_pydantic(ex, source) from ex

    def as_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class GlobalConfigStore:
    """Holds the loaded :class:`GlobalConfig` and knows where to write it back.

    Construct one per process (see :meth:`opennotes.resolver.Context.create`) rather than reading the file
    repeatedly. Writes replace the whole file; there is no locking against other processes.

    .. attribute:: config
       :type: GlobalConfig

       The config as last loaded or written. The environment override is kept separately; see :attr:`notebook_path`.
    """
    def __init__(self, path: str, config: Optional[GlobalConfig] = None):
        self.path = path
        self.config = config if config is not None else GlobalConfig()
        self.notebook_path_override: Optional[str] = None

    @classmethod
    def load(cls, path: Optional[str] = None) -> GlobalConfigStore:
        """Reads the config file at ``path`` (default: :func:`default_config_path`).

        A missing file yields an empty config. Malformed JSON or wrong types raise
        :exc:`opennotes.schema.InvalidConfigError`. ``$OPENNOTES_NOTEBOOK_PATH`` takes precedence over the
        file's ``notebookPath``.
        """
        path = path or default_config_path()
        if os.path.isfile(path):
            logger.debug('loading global config from %s', path)
            with open(path, 'r') as file:
                text = file.read()
            try:
                raw = json.loads(text)
            except (ValueError, RecursionError) as ex:
                raise InvalidConfigError([ValidationError('', f'invalid JSON: {ex}')], path) from ex
            config = GlobalConfig.parse(raw, path)
        else:
            logger.debug('no global config at %s, using defaults', path)
            config = GlobalConfig()
        store = cls(path, config)
        store.notebook_path_override = os.environ.get(NOTEBOOK_PATH_ENV) or None
        return store

    @property
    def notebooks(self) -> List[str]:
        return self.config.notebooks

    @property
    def notebook_path(self) -> Optional[str]:
        """The override notebook: ``$OPENNOTES_NOTEBOOK_PATH`` if it was set at load time, else the file's value."""
        return self.notebook_path_override or self.config.notebook_path

    def write(self, config: Optional[GlobalConfig] = None) -> None:
        """Writes ``config`` (default: the current one) to :attr:`path` and makes it current.

        IO errors propagate to the caller.
        """
        if config is not None:
            self.config = config
        logger.debug('writing global config to %s', self.path)
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        with open(self.path, 'w') as file:
            json.dump(self.config.as_json(), file, indent=2)
        logger.debug('global config written')

    def register(self, notebook_path: str) -> bool:
        """Appends a notebook directory to ``notebooks`` and writes the file.

        Returns False without writing if it was already registered.
        """
        if notebook_path in self.config.notebooks:
            return False
        self.write(self.config.model_copy(update={'notebooks': self.config.notebooks + [notebook_path]}))
        return True
