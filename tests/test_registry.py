'''Tests for the command registry and the process entry point.'''

import pytest

import Defapps


COMMAND_ORDER = [
  'default-app',
  'open',
  'mimetype',
  'default-web-browser',
  'default-email-client',
  'default-file-manager',
  'default-terminal',
]



class TestCommandRegistry:
  def test_registration_order(self, fake_store):
    registry = Defapps.build_registry(fake_store)
    assert list(registry.commands) == COMMAND_ORDER

  def test_duplicate_name(self, fake_store):
    registry = Defapps.CommandRegistry()
    registry.register(Defapps.OpenCommand(fake_store))
    with pytest.raises(ValueError, match='already registered'):
      registry.register(Defapps.OpenCommand(fake_store))

  def test_missing_store(self):
    with pytest.raises(ValueError):
      Defapps.OpenCommand(None)

  def test_describe_all(self, fake_store):
    text = Defapps.build_registry(fake_store).describe_all()
    lines = text.splitlines()
    assert [l.split()[0] for l in lines] == COMMAND_ORDER
    assert lines[0] == '  default-app           Get/Set the default application for a mimetype'
    assert lines[1].endswith('Open files with the default application')

  def test_describe_nothing(self):
    assert Defapps.CommandRegistry().describe_all() == ''

  def test_dispatch_is_case_sensitive(self, fake_store):
    registry = Defapps.build_registry(fake_store)
    assert 'Open' not in registry
    with pytest.raises(KeyError):
      registry.dispatch('Open', ['Open', 'a.txt'])

  def test_dispatch_returns_exit_code(self, fake_store, capsys):
    registry = Defapps.build_registry(fake_store)
    assert registry.dispatch('open', ['open', 'http://example.com']) == 0
    assert 'No default application' in capsys.readouterr().out



class TestMain:
  def test_no_command(self, fake_store, capsys):
    assert Defapps.main([], store=fake_store) == 1
    out = capsys.readouterr().out
    assert out.startswith('usage: defapps')
    assert 'Available commands:\n' in out
    assert out.index('default-app') < out.index('default-terminal')

  def test_unknown_command(self, fake_store, capsys):
    assert Defapps.main(['frobnicate', 'x'], store=fake_store) == 1
    assert 'Available commands:' in capsys.readouterr().out

  @pytest.mark.parametrize('flag', ['-h', '--help', '--help-all'])
  def test_global_help(self, fake_store, capsys, flag):
    assert Defapps.main([flag], store=fake_store) == 0
    assert 'Available commands:' in capsys.readouterr().out

  @pytest.mark.parametrize('flag', ['-V', '--version'])
  def test_global_version(self, fake_store, capsys, flag):
    assert Defapps.main([flag], store=fake_store) == 0
    assert capsys.readouterr().out == 'Defapps {}\n'.format(Defapps.VERSION)

  def test_global_unknown_option(self, fake_store, capsys):
    assert Defapps.main(['--bogus'], store=fake_store) == 1
    assert 'Available commands:' in capsys.readouterr().out

  def test_debug_before_command(self, fake_store, capsys):
    assert Defapps.main(['--debug', 'default-app', 'text/plain'], store=fake_store) == 0
    assert fake_store.calls == [('find', 'text/plain')]

  def test_version_before_command_reaches_command(self, fake_store, capsys):
    assert Defapps.main(['--version', 'open'], store=fake_store) == 0
    assert capsys.readouterr().out == 'Defapps {}\n'.format(Defapps.VERSION)

  def test_command_help(self, fake_store, capsys):
    assert Defapps.main(['default-terminal', '--help'], store=fake_store) == 0
    out = capsys.readouterr().out
    assert out.startswith('usage: defapps default-terminal')
    assert '--list-available' in out

  def test_argument_error_prints_help_to_stderr(self, fake_store, capsys):
    assert Defapps.main(['default-app'], store=fake_store) == 1
    captured = capsys.readouterr()
    assert captured.out == ''
    assert captured.err.startswith('MimeType missing\n\nusage: defapps default-app')
    assert fake_store.calls == []
