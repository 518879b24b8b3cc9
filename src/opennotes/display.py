"""Renders user-facing notices and listings.

Notices are Mako templates producing markdown, which :class:`Display` prints to the terminal with ``rich``.
Tabular query results are drawn with ``terminaltables``.

Note that in Mako, lines beginning with ``%`` are control lines and lines beginning with ``##`` are comments, so the
templates below only use single-``#`` headings.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from mako.template import Template
from rich.console import Console
from rich.markdown import Markdown
from terminaltables import AsciiTable

logger = logging.getLogger(__name__)


_TEMPLATE_SOURCES = {
    'notebook_created': """\
# Notebook Created

Your new notebook has been successfully created!

- **Name**: ${name}
- **Path**: ${path}

You can start adding notes to your notebook right away.
""",

    'context_exists': """\
# Context Already Exists

The context path is already associated with this notebook.

- **Context**: ${context_path}
- **Notebook**: ${notebook_path}

No changes were made.
""",

    'context_added': """\
# Context Added

The context path has been successfully added to your notebook.

- **Context**: ${context_path}
- **Notebook**: ${notebook_path}

This notebook will now be available when working in that directory.
""",

    'template_load_error': """\
# Template Load Error

Failed to load a template for your notebook. This may cause some features to be unavailable.

- **Template Path**: ${template_path}
- **Error**: ${error}

You may need to check the template file and try again.
""",

    'no_notebook': """\
# No Notebook Found

No notebook is associated with this directory.

Create one with `opennotes notebook create --name "My Notebook"`, or register an existing one with
`opennotes notebook register <path>`.
""",

    'notebook_info': """\
# ${notebook.config.name}

- **Config**: ${notebook.config.config_path}
- **Root**: ${notebook.config.root}
% if notebook.config.contexts:

**Contexts**

% for context_path in notebook.config.contexts:
- ${context_path}
% endfor
% endif
% if notebook.config.groups:

**Groups**

% for group in notebook.config.groups:
- **${group.name}** (${', '.join('`%s`' % g for g in group.globs)})
% endfor
% endif
""",

    'notebook_list': """\
% if not notebooks:
No notebooks found.

Create one with `opennotes notebook create --name "My Notebook"`.
% else:
# Notebooks (${len(notebooks)})
% for nb in notebooks:

**${nb.config.name}**

- **Path**: ${nb.config.config_path}
- **Root**: ${nb.config.root}
% if nb.config.contexts:
- **Contexts**: ${', '.join(nb.config.contexts)}
% endif
% endfor
% endif
""",

    'note_list': """\
% if not notes:
No notes found.
% else:
# Notes (${len(notes)})

% for note in notes:
- ${note.relative}
% endfor
% endif
""",
}

TEMPLATES: Dict[str, Template] = {name: Template(source) for name, source in _TEMPLATE_SOURCES.items()}


class Display:
    """Formats and prints output for the command-line interface.

    .. attribute:: console
       :type: rich.console.Console

    .. attribute:: err_console
       :type: rich.console.Console
    """
    def __init__(self, console: Optional[Console] = None, err_console: Optional[Console] = None):
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def render(self, template_name: str, **variables: Any) -> str:
        """Renders the named template to markdown text."""
        return TEMPLATES[template_name].render(**variables)

    def show(self, template_name: str, stderr: bool = False, **variables: Any) -> str:
        """Renders the named template and prints it. Returns the markdown that was printed."""
        text = self.render(template_name, **variables)
        (self.err_console if stderr else self.console).print(Markdown(text))
        return text

    def table(self, rows: List[Dict[str, Any]]) -> str:
        """Formats query result rows as an ASCII table with alphabetically sorted columns and a row count."""
        if not rows:
            return 'No results'
        columns = sorted(rows[0].keys())
        data: List[Sequence[str]] = [columns]
        data.extend([_cell(row.get(c)) for c in columns] for row in rows)
        summary = f'{len(rows)} row' + ('' if len(rows) == 1 else 's')
        return f'{AsciiTable(data).table}\n\n{summary}'


def _cell(value: Any) -> str:
    return '' if value is None else str(value)
