"""Command-line interface for opennotes."""

import argparse
from datetime import datetime
import json
import logging
import os
import os.path
import sys
from typing import Optional

from mako.exceptions import MakoException
from mako.template import Template

from opennotes import resolver
from opennotes.models import Notebook
from opennotes.notes import QueryError
from opennotes.resolver import Context
from opennotes.schema import InvalidConfigError
from opennotes.strings import slugify, to_frontmatter, validate_note_name

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Configures logging from ``$LOG_LEVEL`` (default WARNING). Setting ``$DEBUG`` to anything forces DEBUG."""
    level = os.environ.get('LOG_LEVEL', 'WARNING').upper()
    if os.environ.get('DEBUG'):
        level = 'DEBUG'
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=getattr(logging, level, logging.WARNING),
    )


def _require_notebook(args, ctx: Context) -> Optional[Notebook]:
    if args.notebook:
        notebook = resolver.open_notebook(ctx, args.notebook)
        if not notebook:
            print(f'No notebook found at {args.notebook}', file=sys.stderr)
        return notebook
    notebook = resolver.infer(ctx)
    if not notebook:
        ctx.display.show('no_notebook', stderr=True)
    return notebook


def _init(args, ctx: Context) -> int:
    ctx.store.write()
    print(f'OpenNotes initialized at {ctx.store.path}')
    return 0


def _notebook(args, ctx: Context) -> int:
    notebook = _require_notebook(args, ctx)
    if not notebook:
        return 1 if args.notebook else 0
    if args.json:
        print(json.dumps(notebook.as_json()))
    else:
        ctx.display.show('notebook_info', notebook=notebook)
    return 0


def _notebook_create(args, ctx: Context) -> int:
    resolver.create(ctx, args.name, args.path, register=args.register)
    if args.register:
        print('Registered globally')
    return 0


def _notebook_register(args, ctx: Context) -> int:
    path = os.path.abspath(args.path or os.getcwd())
    if not resolver.has_notebook(path):
        print(f'No notebook found at {path}', file=sys.stderr)
        return 1
    notebook = resolver.load(ctx, path)
    if not notebook:
        print(f'Notebook config at {path} is invalid', file=sys.stderr)
        return 1
    resolver.save_config(ctx, notebook, register=True)
    if args.add_context:
        resolver.add_context(ctx, notebook, os.getcwd())
    print(f"Registered notebook '{notebook.config.name}' at {path}")
    return 0


def _notebook_list(args, ctx: Context) -> int:
    notebooks = resolver.list_notebooks(ctx)
    if args.json:
        print(json.dumps([nb.as_json() for nb in notebooks]))
    else:
        ctx.display.show('notebook_list', notebooks=notebooks)
    return 0


def _notebook_add_context(args, ctx: Context) -> int:
    notebook = _require_notebook(args, ctx)
    if not notebook:
        return 1 if args.notebook else 0
    resolver.add_context(ctx, notebook, os.path.abspath(args.path) if args.path else os.getcwd())
    return 0


def _notes_list(args, ctx: Context) -> int:
    notebook = _require_notebook(args, ctx)
    if not notebook:
        return 1 if args.notebook else 0
    notes = notebook.notes.search()
    if args.json:
        print(json.dumps([n.as_json() for n in notes]))
    else:
        ctx.display.show('note_list', notes=notes)
    return 0


def _notes_search(args, ctx: Context) -> int:
    if not (args.sql or args.query):
        print('A query argument is required (or use --sql)', file=sys.stderr)
        return 1
    notebook = _require_notebook(args, ctx)
    if not notebook:
        return 1 if args.notebook else 0
    if args.sql:
        rows = notebook.notes.execute_sql(args.sql)
        if args.json:
            print(json.dumps(rows, default=str))
        else:
            print(ctx.display.table(rows))
        return 0
    notes = notebook.notes.search(args.query)
    if args.json:
        print(json.dumps([n.as_json() for n in notes]))
    elif not notes:
        print(f"No notes found matching '{args.query}'")
    else:
        print(f"Found {len(notes)} note(s) matching '{args.query}':")
        ctx.display.show('note_list', notes=notes)
    return 0


def _note_content(ctx: Context, notebook: Notebook, relative: str, title: Optional[str],
                  template_name: Optional[str]) -> str:
    groups = notebook.groups_for(relative)
    if not template_name:
        template_name = next((g.template for g in groups if g.template), None)
    if template_name:
        text = resolver.load_template(ctx, notebook, template_name)
        if text is not None:
            try:
                return Template(text).render(title=title or '', notebook=notebook, relative=relative)
            except (MakoException, NameError) as ex:
                logger.debug('failed to render template %s: %s', template_name, ex)
                print(f'Template {template_name} could not be rendered: {ex}', file=sys.stderr)

    meta = {}
    if title:
        meta['title'] = title
    meta['created'] = datetime.now().replace(microsecond=0)
    for group in groups:
        for key, value in group.metadata.items():
            meta.setdefault(key, value)
    content = to_frontmatter(meta) + '\n'
    if title:
        content += f'# {title}\n\n'
    return content


def _note_path(notebook: Notebook, filename: str) -> str:
    validate_note_name(filename)
    root = os.path.realpath(notebook.config.root).rstrip(os.sep) + os.sep
    path = os.path.join(notebook.config.root, filename)
    if not os.path.realpath(path).startswith(root):
        raise ValueError(f'note path is outside the notebook root: {filename}')
    return path


def _notes_add(args, ctx: Context) -> int:
    notebook = _require_notebook(args, ctx)
    if not notebook:
        return 1 if args.notebook else 0
    if args.name:
        filename = args.name
    elif args.title:
        filename = slugify(args.title)
    else:
        filename = datetime.now().strftime('%Y-%m-%d-%H%M%S')
    if not filename.endswith('.md'):
        filename += '.md'
    path = _note_path(notebook, filename)
    if os.path.exists(path):
        raise FileExistsError(f'note already exists: {path}')
    os.makedirs(os.path.dirname(path), exist_ok=True)
    relative = os.path.relpath(path, notebook.config.root).replace(os.sep, '/')
    content = _note_content(ctx, notebook, relative, args.title, args.template)
    with open(path, 'w') as file:
        file.write(content)
    print(f'Created note: {path}')
    return 0


def _notes_remove(args, ctx: Context) -> int:
    notebook = _require_notebook(args, ctx)
    if not notebook:
        return 1 if args.notebook else 0
    name = args.name if args.name.endswith('.md') else f'{args.name}.md'
    path = _note_path(notebook, name)
    if not os.path.isfile(path):
        raise FileNotFoundError(f'note not found: {path}')
    if not args.force:
        response = input(f"Remove note '{name}'? [y/N]: ").strip().lower()
        if response not in ('y', 'yes'):
            print('Cancelled.')
            return 0
    os.remove(path)
    print(f'Removed note: {path}')
    return 0


def argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='opennotes',
        description='Manage markdown notes organized in notebooks. A notebook is a directory containing a '
                    '.opennotes.json file; the notebook for the current directory is chosen automatically.',
        epilog='Environment: OPENNOTES_CONFIG (global config file), OPENNOTES_NOTEBOOK_PATH (notebook to always '
               'use), LOG_LEVEL (debug, info, warning, error), DEBUG (enable debug logging).')
    parser.set_defaults(func=None)
    parser.add_argument('--notebook', help='Path of the notebook to use instead of inferring one.')
    parser.add_argument('--config', help='Path of the global config file.')

    subs = parser.add_subparsers(title='Commands')

    p_init = subs.add_parser('init', help='Create the global config file.')
    p_init.set_defaults(func=_init)

    p_nb = subs.add_parser('notebook', aliases=['nb'],
                           help='Manage notebooks. Without a subcommand, shows the current notebook.')
    p_nb.add_argument('-j', '--json', action='store_true', help='Output as JSON.')
    p_nb.set_defaults(func=_notebook)
    nb_subs = p_nb.add_subparsers(title='Notebook commands')

    p_create = nb_subs.add_parser('create', help='Create a notebook in the given directory (default: current).')
    p_create.add_argument('path', nargs='?', help='Directory for the notebook.')
    p_create.add_argument('-n', '--name', required=True, help='Notebook name.')
    p_create.add_argument('-g', '--global', '-r', '--register', dest='register', action='store_true',
                          help='Also register the notebook in the global config.')
    p_create.set_defaults(func=_notebook_create)

    p_register = nb_subs.add_parser('register', help='Register an existing notebook in the global config.')
    p_register.add_argument('path', nargs='?', help='Notebook directory (default: current).')
    p_register.add_argument('-c', '--add-context', '--addContext', dest='add_context', action='store_true',
                            help='Also add the current directory as a context of the notebook.')
    p_register.set_defaults(func=_notebook_register)

    p_list = nb_subs.add_parser('list', help='List registered notebooks and notebooks in ancestor directories.')
    p_list.add_argument('-j', '--json', action='store_true', help='Output as JSON.')
    p_list.set_defaults(func=_notebook_list)

    p_ctx = nb_subs.add_parser('add-context',
                               help='Add a directory (default: current) as a context of the current notebook. '
                                    'Working in that directory or below will then select the notebook.')
    p_ctx.add_argument('path', nargs='?')
    p_ctx.set_defaults(func=_notebook_add_context)

    p_notes = subs.add_parser('notes', help='Work with the notes in the current notebook.')
    p_notes.set_defaults(func=_notes_list, json=False)
    notes_subs = p_notes.add_subparsers(title='Note commands')

    p_nlist = notes_subs.add_parser('list', aliases=['ls'], help='List all notes in the notebook.')
    p_nlist.add_argument('-j', '--json', action='store_true', help='Output as JSON.')
    p_nlist.set_defaults(func=_notes_list)

    p_search = notes_subs.add_parser('search', help='Search notes by content or path.')
    p_search.add_argument('query', nargs='?', help='Text to look for (case-insensitive).')
    p_search.add_argument('--sql',
                          help='Run a read-only SQL query against the "notes" table instead. Columns: filepath, '
                               'relative, title, content, metadata (JSON).')
    p_search.add_argument('-j', '--json', action='store_true', help='Output as JSON.')
    p_search.set_defaults(func=_notes_search)

    p_add = notes_subs.add_parser('add', help='Create a new note.')
    p_add.add_argument('name', nargs='?',
                       help='Filename, relative to the notebook root. Defaults to the slugified title, or a '
                            'timestamp if there is no title.')
    p_add.add_argument('--title', help='Note title.')
    p_add.add_argument('-t', '--template', help='Name of a template from the notebook config.')
    p_add.set_defaults(func=_notes_add)

    p_remove = notes_subs.add_parser('remove', aliases=['rm'], help='Delete a note.')
    p_remove.add_argument('name', help='Note filename; the .md extension is optional.')
    p_remove.add_argument('-f', '--force', action='store_true', help='Do not ask for confirmation.')
    p_remove.set_defaults(func=_notes_remove)

    return parser


def main(args=None) -> int:
    """Runs the tool and returns its exit code.

    args may be an array of string command-line arguments; if absent,
    the process's arguments are used.
    """
    setup_logging()
    parser = argparser()
    args = parser.parse_args(args)
    if not args.func:
        parser.print_help()
        return 1
    try:
        with Context.create(args.config) as ctx:
            return args.func(args, ctx)
    except InvalidConfigError as ex:
        print(f'Error: {ex}', file=sys.stderr)
        return 1
    except (QueryError, ValueError, FileExistsError, FileNotFoundError) as ex:
        print(f'Error: {ex}', file=sys.stderr)
        return 1
