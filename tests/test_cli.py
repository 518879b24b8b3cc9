import json
from pathlib import Path

from freezegun import freeze_time
import pytest

from opennotes import cli


@pytest.fixture
def on_setup(fs, monkeypatch):
    monkeypatch.setenv('OPENNOTES_CONFIG', '/conf/config.json')
    monkeypatch.delenv('OPENNOTES_NOTEBOOK_PATH', raising=False)
    fs.create_dir('/cwd')
    fs.cwd = '/cwd'
    return fs


def make_notebook(path='/nb', **extra):
    raw = {'name': 'Work', 'root': '.', 'contexts': [path],
           'groups': [{'name': 'Default', 'globs': ['**/*.md'], 'metadata': {}}]}
    raw.update(extra)
    Path(path).mkdir(parents=True, exist_ok=True)
    Path(path, '.opennotes.json').write_text(json.dumps(raw))


def test_no_command(on_setup, capsys):
    assert cli.main([]) == 1
    out, err = capsys.readouterr()
    assert 'usage: opennotes' in out


def test_init(on_setup, capsys):
    assert cli.main(['init']) == 0
    out, err = capsys.readouterr()
    assert out == 'OpenNotes initialized at /conf/config.json\n'
    assert json.loads(Path('/conf/config.json').read_text()) == {'notebooks': []}


def test_invalid_global_config(on_setup, capsys):
    on_setup.create_file('/conf/config.json', contents='{"notebooks": ')
    assert cli.main(['notebook', 'list']) == 1
    out, err = capsys.readouterr()
    assert err.startswith('Error: Invalid config /conf/config.json: invalid JSON')


def test_config_option(on_setup, capsys):
    assert cli.main(['--config', '/other/config.json', 'init']) == 0
    assert Path('/other/config.json').exists()


def test_notebook_create(on_setup, capsys):
    assert cli.main(['notebook', 'create', '/nb', '--name', 'Work', '--global']) == 0
    out, err = capsys.readouterr()
    assert 'Notebook Created' in out
    assert 'Registered globally' in out
    assert json.loads(Path('/conf/config.json').read_text()) == {'notebooks': ['/nb']}
    assert json.loads(Path('/nb/.opennotes.json').read_text())['contexts'] == ['/nb']


def test_notebook_create_in_cwd(on_setup, capsys):
    assert cli.main(['nb', 'create', '-n', 'Here']) == 0
    assert Path('/cwd/.opennotes.json').exists()
    assert not Path('/conf/config.json').exists()


def test_notebook_create_invalid_name(on_setup, capsys):
    assert cli.main(['notebook', 'create', '/nb', '--name', 'no/slashes']) == 1
    out, err = capsys.readouterr()
    assert err.startswith('Error: notebook name can only contain')
    assert not Path('/nb').exists()


def test_notebook_show(on_setup, capsys):
    make_notebook('/nb', contexts=['/cwd'])
    Path('/conf').mkdir()
    Path('/conf/config.json').write_text(json.dumps({'notebooks': ['/nb']}))
    assert cli.main(['notebook']) == 0
    out, err = capsys.readouterr()
    assert 'Work' in out
    assert '/nb/.opennotes.json' in out

    assert cli.main(['notebook', '-j']) == 0
    out, err = capsys.readouterr()
    assert json.loads(out)['name'] == 'Work'
    assert json.loads(out)['contexts'] == ['/cwd']


def test_notebook_show_none(on_setup, capsys):
    assert cli.main(['notebook']) == 0
    out, err = capsys.readouterr()
    assert out == ''
    assert 'No Notebook Found' in err


def test_explicit_notebook_missing(on_setup, capsys):
    assert cli.main(['--notebook', '/nope', 'notebook']) == 1
    out, err = capsys.readouterr()
    assert err == 'No notebook found at /nope\n'


def test_notebook_from_env(on_setup, capsys, monkeypatch):
    make_notebook('/nb', contexts=[])
    monkeypatch.setenv('OPENNOTES_NOTEBOOK_PATH', '/nb')
    assert cli.main(['notebook', '--json']) == 0
    out, err = capsys.readouterr()
    assert json.loads(out)['path'] == '/nb'


def test_notebook_register(on_setup, capsys):
    make_notebook('/nb')
    assert cli.main(['notebook', 'register', '/nb', '--add-context']) == 0
    out, err = capsys.readouterr()
    assert "Registered notebook 'Work' at /nb" in out
    assert 'Context Added' in out
    assert json.loads(Path('/conf/config.json').read_text()) == {'notebooks': ['/nb']}
    assert json.loads(Path('/nb/.opennotes.json').read_text())['contexts'] == ['/nb', '/cwd']

    assert cli.main(['notebook', 'register', '/nb']) == 0
    assert json.loads(Path('/conf/config.json').read_text()) == {'notebooks': ['/nb']}


def test_notebook_register_missing(on_setup, capsys):
    assert cli.main(['notebook', 'register', '/nowhere']) == 1
    out, err = capsys.readouterr()
    assert err == 'No notebook found at /nowhere\n'

    make_notebook('/broken', root='missing-dir')
    assert cli.main(['notebook', 'register', '/broken']) == 1
    out, err = capsys.readouterr()
    assert err == 'Notebook config at /broken is invalid\n'


def test_notebook_list(on_setup, capsys):
    make_notebook('/nb')
    make_notebook('/cwd', name='Local')
    Path('/conf').mkdir()
    Path('/conf/config.json').write_text(json.dumps({'notebooks': ['/nb', '/deleted']}))
    assert cli.main(['notebook', 'list']) == 0
    out, err = capsys.readouterr()
    assert 'Notebooks (2)' in out
    assert 'Work' in out
    assert 'Local' in out

    assert cli.main(['notebook', 'list', '--json']) == 0
    out, err = capsys.readouterr()
    assert [nb['path'] for nb in json.loads(out)] == ['/nb', '/cwd']


def test_notebook_list_empty(on_setup, capsys):
    assert cli.main(['notebook', 'list']) == 0
    out, err = capsys.readouterr()
    assert 'No notebooks found.' in out


def test_notebook_add_context(on_setup, capsys):
    make_notebook('/nb')
    assert cli.main(['--notebook', '/nb', 'notebook', 'add-context']) == 0
    out, err = capsys.readouterr()
    assert 'Context Added' in out
    assert cli.main(['--notebook', '/nb', 'notebook', 'add-context', '/cwd']) == 0
    out, err = capsys.readouterr()
    assert 'Context Already Exists' in out
    assert json.loads(Path('/nb/.opennotes.json').read_text())['contexts'] == ['/nb', '/cwd']


def test_notes_list(on_setup, capsys):
    make_notebook('/cwd')
    on_setup.create_file('/cwd/b.md', contents='bee')
    on_setup.create_file('/cwd/sub/a.md', contents='---\ntitle: Eh\n---\nay')
    assert cli.main(['notes']) == 0
    out, err = capsys.readouterr()
    assert 'Notes (2)' in out
    assert out.index('b.md') < out.index('sub/a.md')

    assert cli.main(['notes', 'ls', '-j']) == 0
    out, err = capsys.readouterr()
    assert [(n['relative'], n['title'], n['groups']) for n in json.loads(out)] == [
        ('b.md', 'b', ['Default']),
        ('sub/a.md', 'Eh', ['Default']),
    ]


def test_notes_list_no_notebook(on_setup, capsys):
    assert cli.main(['notes', 'list']) == 0
    out, err = capsys.readouterr()
    assert 'No Notebook Found' in err


def test_notes_search(on_setup, capsys):
    make_notebook('/cwd')
    on_setup.create_file('/cwd/one.md', contents='Talking about Python')
    on_setup.create_file('/cwd/two.md', contents='Nothing')
    assert cli.main(['notes', 'search', 'python']) == 0
    out, err = capsys.readouterr()
    assert "Found 1 note(s) matching 'python':" in out
    assert 'one.md' in out
    assert 'two.md' not in out

    assert cli.main(['notes', 'search', 'zebra']) == 0
    out, err = capsys.readouterr()
    assert out == "No notes found matching 'zebra'\n"


def test_notes_search_requires_query(on_setup, capsys):
    make_notebook('/cwd')
    assert cli.main(['notes', 'search']) == 1
    out, err = capsys.readouterr()
    assert 'query argument is required' in err


def test_notes_search_sql(on_setup, capsys):
    make_notebook('/cwd')
    on_setup.create_file('/cwd/one.md', contents='---\ntitle: First\n---\nx')
    assert cli.main(['notes', 'search', '--sql', 'SELECT relative, title FROM notes']) == 0
    out, err = capsys.readouterr()
    assert out == """+----------+-------+
| relative | title |
+----------+-------+
| one.md   | First |
+----------+-------+

1 row
"""

    assert cli.main(['notes', 'search', '--sql', 'SELECT relative FROM notes', '-j']) == 0
    out, err = capsys.readouterr()
    assert json.loads(out) == [{'relative': 'one.md'}]


def test_notes_search_sql_rejected(on_setup, capsys):
    make_notebook('/cwd')
    on_setup.create_file('/cwd/one.md', contents='x')
    assert cli.main(['notes', 'search', '--sql', 'DELETE FROM notes']) == 1
    out, err = capsys.readouterr()
    assert err == 'Error: only SELECT queries are allowed\n'
    assert Path('/cwd/one.md').exists()


@freeze_time('2012-01-02 03:04:05')
def test_notes_add(on_setup, capsys):
    make_notebook('/cwd')
    assert cli.main(['notes', 'add', '--title', 'Standup Notes']) == 0
    out, err = capsys.readouterr()
    assert out == 'Created note: /cwd/standup-notes.md\n'
    assert Path('/cwd/standup-notes.md').read_text() == """---
title: Standup Notes
created: 2012-01-02 03:04:05
---

# Standup Notes

"""

    assert cli.main(['notes', 'add']) == 0
    assert Path('/cwd/2012-01-02-030405.md').read_text() == '---\ncreated: 2012-01-02 03:04:05\n---\n\n'

    assert cli.main(['notes', 'add', 'deep/dir/named']) == 0
    assert Path('/cwd/deep/dir/named.md').exists()


@freeze_time('2012-01-02 03:04:05')
def test_notes_add_group_metadata(on_setup, capsys):
    make_notebook('/cwd', groups=[
        {'name': 'Default', 'globs': ['**/*.md'], 'metadata': {}},
        {'name': 'Journal', 'globs': ['journal/*.md'], 'metadata': {'type': 'journal', 'private': True}},
    ])
    assert cli.main(['notes', 'add', 'journal/today.md']) == 0
    assert Path('/cwd/journal/today.md').read_text() == """---
created: 2012-01-02 03:04:05
type: journal
private: true
---

"""


def test_notes_add_existing(on_setup, capsys):
    make_notebook('/cwd')
    on_setup.create_file('/cwd/taken.md', contents='original')
    assert cli.main(['notes', 'add', 'taken']) == 1
    out, err = capsys.readouterr()
    assert err == 'Error: note already exists: /cwd/taken.md\n'
    assert Path('/cwd/taken.md').read_text() == 'original'


def test_notes_add_invalid_name(on_setup, capsys):
    make_notebook('/cwd')
    assert cli.main(['notes', 'add', '../escape']) == 1
    out, err = capsys.readouterr()
    assert 'path traversal' in err
    assert not Path('/escape.md').exists()


def test_notes_add_template(on_setup, capsys):
    make_notebook('/cwd', templates={'meeting': 'templates/meeting.mako'})
    on_setup.create_file('/cwd/templates/meeting.mako', contents='# ${title}\n\nIn ${notebook.config.name}\n')
    assert cli.main(['notes', 'add', 'sync', '--title', 'Weekly Sync', '--template', 'meeting']) == 0
    assert Path('/cwd/sync.md').read_text() == '# Weekly Sync\n\nIn Work\n'


def test_notes_add_group_template(on_setup, capsys):
    make_notebook('/cwd', templates={'meeting': 'templates/meeting.mako'}, groups=[
        {'name': 'Default', 'globs': ['**/*.md'], 'metadata': {}},
        {'name': 'Meetings', 'globs': ['meetings/*.md'], 'metadata': {}, 'template': 'meeting'},
    ])
    on_setup.create_file('/cwd/templates/meeting.mako', contents='Meeting: ${title} (${relative})\n')
    assert cli.main(['notes', 'add', 'meetings/kickoff', '--title', 'Kickoff']) == 0
    assert Path('/cwd/meetings/kickoff.md').read_text() == 'Meeting: Kickoff (meetings/kickoff.md)\n'


@freeze_time('2012-01-02 03:04:05')
def test_notes_add_missing_template(on_setup, capsys):
    make_notebook('/cwd', templates={'meeting': 'templates/gone.mako'})
    assert cli.main(['notes', 'add', 'x', '--title', 'X', '--template', 'meeting']) == 0
    out, err = capsys.readouterr()
    assert 'Template Load Error' in err
    assert Path('/cwd/x.md').read_text().startswith('---\ntitle: X\n')


def test_notes_remove(on_setup, capsys, monkeypatch):
    make_notebook('/cwd')
    on_setup.create_file('/cwd/one.md')
    monkeypatch.setattr('builtins.input', lambda prompt: 'n')
    assert cli.main(['notes', 'remove', 'one']) == 0
    out, err = capsys.readouterr()
    assert out == 'Cancelled.\n'
    assert Path('/cwd/one.md').exists()

    monkeypatch.setattr('builtins.input', lambda prompt: 'yes')
    assert cli.main(['notes', 'rm', 'one.md']) == 0
    out, err = capsys.readouterr()
    assert out == 'Removed note: /cwd/one.md\n'
    assert not Path('/cwd/one.md').exists()


def test_notes_remove_force_and_missing(on_setup, capsys):
    make_notebook('/cwd')
    on_setup.create_file('/cwd/one.md')
    assert cli.main(['notes', 'remove', 'one', '--force']) == 0
    assert not Path('/cwd/one.md').exists()
    assert cli.main(['notes', 'remove', 'one', '-f']) == 1
    out, err = capsys.readouterr()
    assert err == 'Error: note not found: /cwd/one.md\n'


def test_notes_add_absolute_name(on_setup, capsys):
    make_notebook('/cwd')
    assert cli.main(['notes', 'add', '/outside/evil']) == 1
    out, err = capsys.readouterr()
    assert 'must be relative' in err
    assert not Path('/outside/evil.md').exists()


def test_notes_remove_absolute_name(on_setup, capsys):
    make_notebook('/cwd')
    on_setup.create_file('/home/me/important.md', contents='keep me')
    assert cli.main(['notes', 'remove', '/home/me/important', '--force']) == 1
    out, err = capsys.readouterr()
    assert 'must be relative' in err
    assert Path('/home/me/important.md').read_text() == 'keep me'


def test_notes_remove_through_symlink(on_setup, capsys):
    make_notebook('/cwd')
    on_setup.create_file('/elsewhere/secret.md', contents='keep me')
    on_setup.create_symlink('/cwd/link', '/elsewhere')
    assert cli.main(['notes', 'remove', 'link/secret', '--force']) == 1
    out, err = capsys.readouterr()
    assert 'outside the notebook root' in err
    assert Path('/elsewhere/secret.md').exists()
