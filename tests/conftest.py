'''Shared fixtures for the Defapps tests.'''

import collections
import os
import textwrap

import pytest
import xdg.BaseDirectory

import Defapps


XdgTree = collections.namedtuple(
  'XdgTree',
  ('config_home', 'system_config', 'data_home', 'system_data')
)

FakeApp = collections.namedtuple('FakeApp', ('filename', 'name'))



@pytest.fixture
def xdg_tree(tmp_path, monkeypatch):
  '''Relocate the XDG base directories to a temporary tree.'''
  tree = XdgTree(
    config_home=str(tmp_path / 'home' / 'config'),
    system_config=str(tmp_path / 'etc' / 'xdg'),
    data_home=str(tmp_path / 'home' / 'data'),
    system_data=str(tmp_path / 'usr' / 'share'),
  )
  for d in tree:
    os.makedirs(d)
  for d in (tree.data_home, tree.system_data):
    os.makedirs(os.path.join(d, Defapps.APP_DIR))

  monkeypatch.setattr(xdg.BaseDirectory, 'xdg_config_home', tree.config_home)
  monkeypatch.setattr(xdg.BaseDirectory, 'xdg_config_dirs', [tree.config_home, tree.system_config])
  monkeypatch.setattr(xdg.BaseDirectory, 'xdg_data_home', tree.data_home)
  monkeypatch.setattr(xdg.BaseDirectory, 'xdg_data_dirs', [tree.data_home, tree.system_data])
  monkeypatch.delenv(Defapps.XDG_CURRENT_DESKTOP, raising=False)
  return tree



@pytest.fixture
def make_desktop(xdg_tree):
  '''Return a function that writes a desktop file and returns its path.'''
  def make(filename, name=None, exec_field='true %f', system=False, extra=''):
    base = xdg_tree.system_data if system else xdg_tree.data_home
    path = os.path.join(base, Defapps.APP_DIR, filename)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w') as f:
      f.write(textwrap.dedent('''\
        [Desktop Entry]
        Type=Application
        Name={}
        Exec={}
        ''').format(name or filename, exec_field))
      f.write(textwrap.dedent(extra))
    return path
  return make



@pytest.fixture
def write_mimeapps(xdg_tree):
  '''Return a function that writes a mimeapps.list-style file.'''
  def write(text, directory=None, filename=Defapps.MIMEAPPS_LIST_FILE):
    path = os.path.join(directory or xdg_tree.config_home, filename)
    with open(path, 'w') as f:
      f.write(textwrap.dedent(text))
    return path
  return write



class FakeStore(object):
  '''In-memory desktop store recording every call.'''
  def __init__(self):
    self.apps = dict()
    self.defaults = dict()
    self.candidates = dict()
    self.failing_keys = set()
    self.launch_ok = True
    self.mimetypes = dict()
    self.calls = list()

  def add_app(self, filename, name=None):
    app = FakeApp('/usr/share/applications/{}'.format(filename), name or filename)
    self.apps[filename] = app
    return app

  def find_default_application(self, key):
    self.calls.append(('find', key))
    return self.defaults.get(key)

  def set_default_application(self, key, app):
    self.calls.append(('set', key))
    if key in self.failing_keys:
      return False
    self.defaults[key] = app
    return True

  def find_default_terminal(self):
    self.calls.append(('find-terminal',))
    return self.defaults.get(Defapps.TERMINAL_KEY)

  def set_default_terminal(self, app):
    self.calls.append(('set-terminal',))
    if Defapps.TERMINAL_KEY in self.failing_keys:
      return False
    self.defaults[Defapps.TERMINAL_KEY] = app
    return True

  def list_available_applications(self, category):
    self.calls.append(('list', category))
    return list(self.candidates.get(category, ()))

  def load_application_by_name(self, name):
    self.calls.append(('load', name))
    return self.apps.get(name)

  def launch_detached(self, app, target):
    self.calls.append(('launch', os.path.basename(app.filename), target))
    return self.launch_ok

  def mimetype_for_file(self, path):
    self.calls.append(('mimetype', path))
    return self.mimetypes.get(os.path.basename(path), 'text/plain')

  def application_identifier(self, app):
    return os.path.basename(app.filename)

  def application_file_name(self, app):
    return os.path.basename(app.filename)

  def application_display_name(self, app):
    return app.name



@pytest.fixture
def fake_store():
  return FakeStore()
