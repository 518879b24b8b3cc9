"""Validation, migration and serialization of notebook marker files (``.opennotes.json``).

The persisted shape is::

    {
      "name": "Work",
      "root": ".",
      "contexts": ["/home/me/projects/work"],
      "templates": {"meeting": "templates/meeting.md"},
      "groups": [
        {"name": "Default", "globs": ["**/*.md"], "metadata": {}, "template": "meeting"}
      ]
    }

The shape is declared by the pydantic models :class:`NotebookSchema` and :class:`NotebookGroupSchema`.
:func:`validate_notebook_config` turns parsed JSON into a :class:`opennotes.models.NotebookConfig`, reporting every
problem pydantic finds rather than stopping at the first one. :func:`to_stored` does the reverse.
"""

from __future__ import annotations
from dataclasses import dataclass
import logging
import os
import os.path
from typing import Annotated, Any, Dict, List, Optional

import pydantic
from pydantic import AfterValidator, BaseModel, Field, StrictStr, ValidationInfo, field_validator

from opennotes.models import NotebookConfig, NotebookGroup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationError:
    """One problem found in a config. ``path`` is dotted, e.g. ``groups.0.globs``; empty means the whole document."""

    path: str
    message: str

    def __str__(self):
        return f'{self.path}: {self.message}' if self.path else self.message


def _message(error: Dict[str, Any]) -> str:
    if error['type'] == 'value_error':
        cause = error.get('ctx', {}).get('error')
        if cause is not None:
            return str(cause)
    return error['msg']


class InvalidConfigError(Exception):
    """Raised when a notebook or global config does not match its schema.

    .. attribute:: errors
       :type: List[ValidationError]
    """
    def __init__(self, errors: List[ValidationError], source: Optional[str] = None):
        self.errors = list(errors)
        self.source = source
        super().__init__(self._summary())

    @classmethod
    def from_pydantic(cls, ex: pydantic.ValidationError, source: Optional[str] = None) -> InvalidConfigError:
        """Converts every error of a pydantic failure, using its ``loc`` as the dotted path."""
        return cls([ValidationError('.'.join(str(p) for p in e['loc']), _message(e)) for e in ex.errors()], source)

    def _summary(self) -> str:
        prefix = f'Invalid config {self.source}' if self.source else 'Invalid config'
        if len(self.errors) == 1:
            return f'{prefix}: {self.errors[0]}'
        return f'{prefix}:\n' + '\n'.join(f'- {e}' for e in self.errors)

    def pretty(self) -> str:
        """Formats the errors grouped by field path, in the order the paths were first seen.

        Example::

            - groups.0.globs
              - Input should be a valid list
            - (root)
              - Input should be a valid dictionary
        """
        grouped: Dict[str, List[str]] = {}
        for error in self.errors:
            grouped.setdefault(error.path or '(root)', []).append(error.message)
        lines = []
        for path, messages in grouped.items():
            lines.append(f'- {path}')
            lines.extend(f'  - {m}' for m in messages)
        return '\n'.join(lines)


def _scalar(value: Any) -> Any:
    if value is None or not isinstance(value, (str, bool, int, float)):
        raise ValueError('must be a string, number or boolean')
    return value


MetadataValue = Annotated[Any, AfterValidator(_scalar)]


class NotebookGroupSchema(BaseModel):
    name: StrictStr
    globs: List[StrictStr]
    metadata: Dict[str, MetadataValue]
    template: Optional[StrictStr] = None


class NotebookSchema(BaseModel):
    """Marker file contents. Unknown keys are ignored.

    Validate with ``context={'base_dir': <marker directory>}`` so that ``root`` can be resolved; the validated
    ``root`` is absolute.
    """

    name: StrictStr
    root: StrictStr
    contexts: List[StrictStr] = Field(default_factory=list)
    templates: Dict[str, StrictStr] = Field(default_factory=dict)
    groups: List[NotebookGroupSchema] = Field(default_factory=list)

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError('must not be empty')
        return value

    @field_validator('root')
    @classmethod
    def resolve_root(cls, value: str, info: ValidationInfo) -> str:
        base_dir = (info.context or {}).get('base_dir') or os.getcwd()
        resolved = os.path.normpath(os.path.join(base_dir, value))
        if not os.path.isdir(resolved):
            raise ValueError(f'notes directory does not exist: {resolved}')
        return resolved


def migrate(raw: Any) -> Any:
    """Upgrades marker files written by older releases to the current shape.

    * A missing ``root`` becomes ``"."`` (older files always kept notes next to the marker).
    * A group ``description`` moves into that group's ``metadata`` unless the metadata already has one.

    Anything that isn't shaped enough to migrate is returned unchanged for the validator to report.
    """
    if not isinstance(raw, dict):
        return raw
    migrated = dict(raw)
    if 'root' not in migrated:
        logger.debug('migrate: adding root="." to legacy notebook config')
        migrated['root'] = '.'
    groups = migrated.get('groups')
    if isinstance(groups, list):
        new_groups = []
        for group in groups:
            if isinstance(group, dict) and 'description' in group:
                group = dict(group)
                description = group.pop('description')
                metadata = group.get('metadata')
                if isinstance(metadata, dict) and isinstance(description, str):
                    metadata = dict(metadata)
                    metadata.setdefault('description', description)
                    group['metadata'] = metadata
            new_groups.append(group)
        migrated['groups'] = new_groups
    return migrated


def validate_notebook_config(raw: Any, config_path: str) -> NotebookConfig:
    """Checks parsed JSON against :class:`NotebookSchema` and resolves its root directory.

    ``config_path`` is the absolute path of the marker file; ``root`` is resolved relative to its directory and
    must exist. A missing root is reported on the ``root`` field like any other schema violation.

    Raises :exc:`InvalidConfigError` listing every violation.
    """
    try:
        model = NotebookSchema.model_validate(raw, context={'base_dir': os.path.dirname(config_path)})
    except pydantic.ValidationError as ex:
        raise InvalidConfigError.from_pydantic(ex, config_path) from ex

    return NotebookConfig(
        config_path=config_path,
        name=model.name,
        root=model.root,
        contexts=tuple(model.contexts),
        templates=dict(model.templates),
        groups=tuple(NotebookGroup(name=g.name, globs=tuple(g.globs), metadata=dict(g.metadata), template=g.template)
                     for g in model.groups))


def _stored_group(group: NotebookGroup) -> dict:
    result = {'name': group.name, 'globs': list(group.globs), 'metadata': dict(group.metadata)}
    if group.template:
        result['template'] = group.template
    return result


def to_stored(config: NotebookConfig) -> dict:
    """Returns the JSON-ready dict for writing ``config`` to its marker file.

    ``root`` is written relative to the marker file's directory, so a notebook keeps working if the whole
    directory tree is moved.
    """
    root = os.path.relpath(config.root, os.path.dirname(config.config_path))
    return {
        'name': config.name,
        'root': root,
        'contexts': list(config.contexts),
        'templates': dict(config.templates),
        'groups': [_stored_group(g) for g in config.groups],
    }
