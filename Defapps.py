#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# Copyright (C) 2009-2016  Xyne
#
# This program is free software; you can redistribute it and/or
# modify it under the terms of the GNU General Public License
# (version 2) as published by the Free Software Foundation.
#
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program; if not, write to the Free Software
# Foundation, Inc., 51 Franklin Street, Fifth Floor, Boston, MA  02110-1301, USA.

'''
Defapps queries and sets the default applications of the current user and
opens files and URLs with them. It follows the freedesktop.org
specifications:

    http://standards.freedesktop.org/mime-apps-spec/mime-apps-spec-latest.html
    http://standards.freedesktop.org/shared-mime-info-spec/shared-mime-info-spec-latest.html
    http://standards.freedesktop.org/basedir-spec/basedir-spec-latest.html
    http://standards.freedesktop.org/desktop-entry-spec/desktop-entry-spec-latest.html

Desktop entries, base directories and the shared MIME-info database are
handled by pyxdg:

    http://pyxdg.readthedocs.org/en/latest/index.html

The default terminal is not a MIME-type. It is stored in the Defapps settings
file in $XDG_CONFIG_HOME.
'''

import argparse
import collections
import glob
import itertools
import logging
import mimetypes
import os
import shlex
import socket
import stat
import subprocess
import sys
import urllib.parse

import xdg.BaseDirectory
import xdg.DesktopEntry
import xdg.Exceptions
import xdg.Mime



################################### Globals ####################################

NAME = 'Defapps'
VERSION = '2026.10.18'

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Files and paths
MIMEAPPS_LIST_FILE = 'mimeapps.list'
MIMEINFO_CACHE_FILE = 'mimeinfo.cache'
APP_DIR = 'applications'
DESKTOP_EXTENSION = '.desktop'
SETTINGS_FILE = 'defapps.conf'

# Name of current desktop for desktop-specific configuration.
XDG_CURRENT_DESKTOP = 'XDG_CURRENT_DESKTOP'

# File sections
ADDED_ASSOCIATIONS_SECTION = 'Added Associations'
REMOVED_ASSOCIATIONS_SECTION = 'Removed Associations'
DEFAULT_APPLICATIONS_SECTION = 'Default Applications'
MIME_CACHE_SECTION = 'MIME Cache'
SETTINGS_SECTION = 'General'

# The default terminal is not a MIME-type. It is kept in the settings file.
TERMINAL_KEY = 'terminal'
TERMINAL_SETTING = 'TerminalEmulator'
TERMINAL_COMMAND_SETTING = 'TerminalCommand'

# The command-line utility, for another way to determine MIME-types.
EXE_FILE = 'file'

# URL scheme
SCHEME_FILE = 'file'

# MIME-types
MIMETYPE_SCHEME_FMT = 'x-scheme-handler/{}'
MIMETYPE_FALLBACK = 'application/octet-stream'

# http://standards.freedesktop.org/shared-mime-info-spec/shared-mime-info-spec-latest.html#idm140625828597376
MIMETYPE_BLOCKDEVICE= 'inode/blockdevice'
MIMETYPE_CHARDEVICE = 'inode/chardevice'
MIMETYPE_DIRECTORY = 'inode/directory'
MIMETYPE_FIFO = 'inode/fifo'
MIMETYPE_SOCKET = 'inode/socket'

TERM_COMMAND_PLACEHOLDER = '%s'
TERM_EXECUTE_OPTION = '-e'

# Command modes
MODE_GET = 'get'
MODE_SET = 'set'
MODE_LIST = 'list'

# Parse outcomes
PARSE_OK = 'ok'
PARSE_ERROR = 'error'
PARSE_VERSION = 'version'
PARSE_HELP = 'help'

LIST_AVAILABLE_ERROR = "list-available can't be used with other options and doesn't take arguments"



################################## Debugging ###################################

def logging_debug_and_yield(msg, lst):
  '''
  Pretty-print a debugging message followed by a list of arguments. This is an
  iterator so that it can be used to log lists with "yield from" without
  building an intermediate list or tuple.
  '''
  for item in lst:
    logging.debug('{}: {}'.format(msg, item))
    yield item



############################## Generic Functions ###############################

def quote_cmd(cmd):
  '''
  Quote a command for shell parsing (used for command-line output).
  '''
  return ' '.join(shlex.quote(w) for w in cmd)



def run_cmd(cmd):
  '''
  Start a command in its own session without waiting for it to finish. OSError
  is raised if the command cannot be started.
  '''
  logging.debug(quote_cmd(cmd))
  subprocess.Popen(
    cmd,
    stdin=subprocess.DEVNULL,
    close_fds=True,
    start_new_session=True
  )



def interpolate_term_cmd(term_cmd, app_cmd):
  '''
  Interpolate a terminal command, given as a single string, with the given
  application command. The application command is appended if the terminal
  command lacks a placeholder.
  '''
  seen = False
  app_cmd_word = ' '.join(shlex.quote(w) for w in app_cmd)
  for word in shlex.split(term_cmd):
    if word == TERM_COMMAND_PLACEHOLDER:
      seen = True
      yield from app_cmd
    elif word == '\'{}\''.format(TERM_COMMAND_PLACEHOLDER):
      seen = True
      yield app_cmd_word
    else:
      iword = ''
      escaped = False
      for c in word:
        if escaped:
          if c == TERM_COMMAND_PLACEHOLDER[1]:
            seen = True
            iword += app_cmd_word
          else:
            iword += c
          escaped = False
        elif c == TERM_COMMAND_PLACEHOLDER[0]:
          escaped = True
          continue
        else:
          iword += c
      yield iword
  if not seen:
    yield from app_cmd



def unique_items(f):
  '''
  Function decorator to remove duplicates from iterable functions.
  '''
  def g(*args, **kwargs):
    seen = set()
    for x in f(*args, **kwargs):
      if x in seen:
        continue
      else:
        yield x
        seen.add(x)
  return g



def ensure_url(arg):
  '''
  Ensure that the argument is a URL. If not, it is assumed to be a file path and
  adapted to a file:// URL.
  '''
  parsed_url = urllib.parse.urlparse(arg)
  if parsed_url.scheme:
    return parsed_url.geturl()
  else:
    return urllib.parse.urlunsplit((
      SCHEME_FILE,
      None,
      urllib.parse.quote(os.path.abspath(arg)),
      None,
      None
    ))



def ensure_path(arg):
  '''
  Ensure that the argument is a path. If it is a URL, only the path part will
  be returned. None is returned for non-local URLs.
  '''
  parsed_url = urllib.parse.urlparse(arg)
  # Not a URL. Return the argument directly.
  if not (parsed_url.scheme or parsed_url.netloc):
    return arg

  if parsed_url.scheme == SCHEME_FILE:
    hostname = parsed_url.hostname
    if not hostname or hostname == 'localhost':
      return urllib.parse.unquote(parsed_url.path)
    # Keep this here to avoid getfqdn calls for non-"file" URLs, which have been
    # reported to be slow on some systems.
    localhost = socket.getfqdn(socket.gethostname())
    if socket.getfqdn(hostname) == localhost:
      return urllib.parse.unquote(parsed_url.path)

  return None



def ensure_desktop_id(name):
  '''
  Turn a relative desktop file name into a desktop file ID: subdirectories are
  joined with "-" and the desktop extension is added if it is missing.
  '''
  name = name.strip('/').replace('/', '-')
  return name if name.endswith(DESKTOP_EXTENSION) else name + DESKTOP_EXTENSION



################################## MIME-types ##################################

def parse_mimetype(mimetype):
  '''
  Parse a MIME-type string into the following components, returned as a tuple:

  * top-level type name
  * tree or None
  * subtype name
  * suffix or None
  * parameters or None
  '''
  type_name, rest = mimetype.split('/', 1)
  try:
    rest, parameters = rest.split(';', 1)
  except ValueError:
    parameters = None
  try:
    tree, rest = rest.split('.', 1)
  except ValueError:
    tree = None
  try:
    subtype_name, suffix = rest.split('+', 1)
  except ValueError:
    subtype_name = rest
    suffix = None
  return type_name, tree, subtype_name, suffix, parameters



def strip_mimetype(mimetype):
  '''
  Strip the suffix and parameters of a MIME-type. The tree is part of the
  subtype and is kept. Strings that are not MIME-types are returned unchanged.
  '''
  try:
    type_name, tree, subtype_name, _, _ = parse_mimetype(mimetype)
  except ValueError:
    return mimetype
  if tree:
    subtype_name = '{}.{}'.format(tree, subtype_name)
  return '{}/{}'.format(type_name, subtype_name)



@unique_items
def mimetypes_from_path(arg):
  '''
  Attempt to determine the MIME-type of the argument. Symlinks are followed.
  '''
  try:
    st = os.stat(arg)
  except PermissionError as e:
    logging.error('mimetypes_from_path: [{}]'.format(e))
    mimetype = file_mimetype_by_name(arg)
    if mimetype:
      yield mimetype
  else:
    mode = st.st_mode
    if stat.S_ISBLK(mode):
      yield MIMETYPE_BLOCKDEVICE
    elif stat.S_ISCHR(mode):
      yield MIMETYPE_CHARDEVICE
    elif stat.S_ISDIR(mode):
      yield MIMETYPE_DIRECTORY
    elif stat.S_ISFIFO(mode):
      yield MIMETYPE_FIFO
    elif stat.S_ISSOCK(mode):
      yield MIMETYPE_SOCKET
    elif stat.S_ISREG(mode):
      yield from file_mimetype(arg)
    else:
      logging.error('mimetypes_from_path: unsupported mode [{}]'.format(mode))



def file_mimetype(path):
  '''
  Attempt to determine the MIME-type of a regular (existing) file, first by
  name and then by content.
  '''
  for f in (file_mimetype_by_name, file_mimetype_by_content):
    try:
      mimetype = f(path)
    except FileNotFoundError:
      logging.warning('file not found: {}'.format(path))
    else:
      if mimetype:
        yield mimetype



def file_mimetype_by_content(path):
  '''
  Attempt to determine the MIME-type of a regular (existing) file by content.
  '''
  mimetype = None
  mt = xdg.Mime.get_type_by_contents(path)
  if mt:
    mimetype = '{}/{}'.format(mt.media, mt.subtype)
  if not mimetype:
    cmd = [EXE_FILE, '--brief', '--mime-type', path]
    logging.debug(quote_cmd(cmd))
    try:
      cp = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
      logging.debug('{} failed: {}'.format(EXE_FILE, e))
    else:
      mimetype = cp.stdout.strip().decode()
  return mimetype



def file_mimetype_by_name(path):
  '''
  Attempt to determine the MIME-type of a regular (existing) file by name.
  '''
  mimetype = None
  mt = xdg.Mime.get_type_by_name(path)
  if mt:
    mimetype = '{}/{}'.format(mt.media, mt.subtype)
  if not mimetype:
    mimetype = mimetypes.guess_type(path)[0]
  return mimetype



################################ Path Functions ################################

def desktop_mimeapps_filenames():
  '''
  Iterate over the desktop-specific association file names of the desktops in
  XDG_CURRENT_DESKTOP.
  '''
  desktop = os.getenv(XDG_CURRENT_DESKTOP)
  if desktop:
    for d in desktop.split(':'):
      if d:
        yield '{}-{}'.format(d.lower(), MIMEAPPS_LIST_FILE)



def mimeapps_directories():
  '''
  Iterate over association file directories in order of precedence:

      http://standards.freedesktop.org/mime-apps-spec/mime-apps-spec-latest.html#file

  '''
  config_home = xdg.BaseDirectory.xdg_config_home
  data_home = xdg.BaseDirectory.xdg_data_home
  yield from logging_debug_and_yield(
    'mimeapps_directories',
    itertools.chain(
      (config_home,),
      (d for d in xdg.BaseDirectory.xdg_config_dirs if d != config_home),
      (
        os.path.join(d, APP_DIR)
        for d in xdg.BaseDirectory.xdg_data_dirs
        if d != data_home
      )
    )
  )



def desktop_directories():
  '''
  Iterate over desktop entry directories, the user's first:

      https://specifications.freedesktop.org/menu-spec/menu-spec-latest.html#adding-items

  '''
  data_home = xdg.BaseDirectory.xdg_data_home
  yield os.path.join(data_home, APP_DIR)
  for d in xdg.BaseDirectory.xdg_data_dirs:
    if d != data_home:
      yield os.path.join(d, APP_DIR)



def mimeapps_list_paths():
  '''
  Find all association files and iterate over them in their order of
  precedence. Desktop-specific files precede the generic file in each
  directory.
  '''
  dmals = list(desktop_mimeapps_filenames())
  for d in mimeapps_directories():
    for dmal in dmals:
      yield os.path.join(d, dmal)
    yield os.path.join(d, MIMEAPPS_LIST_FILE)



def user_mimeapps_path():
  '''
  Get the user's association file.
  '''
  return os.path.join(xdg.BaseDirectory.xdg_config_home, MIMEAPPS_LIST_FILE)



def settings_path():
  '''
  Get the path to the Defapps settings file.
  '''
  return os.path.join(
    xdg.BaseDirectory.xdg_config_home,
    NAME.lower(),
    SETTINGS_FILE
  )



def desktop_files(dpath):
  '''
  Iterate over (desktop file ID, path) pairs of all desktop files below an
  applications directory, including those in subdirectories.
  '''
  pattern = os.path.join(glob.escape(dpath), '**', '*' + DESKTOP_EXTENSION)
  for path in sorted(glob.glob(pattern, recursive=True)):
    yield os.path.relpath(path, dpath).replace(os.sep, '-'), path



def desktop_index():
  '''
  Map desktop file IDs to paths. An ID found in an earlier directory shadows
  the same ID in later ones.
  '''
  index = collections.OrderedDict()
  for dpath in desktop_directories():
    for did, path in desktop_files(dpath):
      index.setdefault(did, path)
  return index



def desktop_id(path):
  '''
  Get the desktop file ID of a desktop file path: the path relative to its
  applications directory with "/" replaced by "-". Paths outside of the
  applications directories are reduced to their file name.
  '''
  for dpath in desktop_directories():
    prefix = os.path.join(dpath, '')
    if path.startswith(prefix):
      return path[len(prefix):].replace(os.sep, '-')
  return os.path.basename(path)



############################ mimeapps.list parsing #############################

def parse_associations(lines):
  '''
  Parse lines of an association file.
  '''
  section = None
  associations = collections.OrderedDict()
  for line in lines:
    line = line.strip()
    if not line or line[0] == '#':
      continue
    elif line[0] == '[' and line[-1] == ']':
      section = line[1:-1]
    else:
      try:
        mimetype, desktops = line.split('=',1)
      except ValueError:
        logging.warning('failed to parse line [{}]'.format(line))
      else:
        mimetype = mimetype.rstrip()
        # The standard only supports desktop file names. Strip directory
        # components from the path to ensure that joined paths point to the
        # "right" directory.
        desktops = list(os.path.basename(d.strip()) for d in desktops.split(';') if d.strip())
        if desktops:
          try:
            associations[section][mimetype] = desktops
          except KeyError:
            associations[section] = collections.OrderedDict(((mimetype, desktops),))
  return associations



def remove_empty_associations(assocs):
  '''
  Remove empty entries and sections.
  '''
  empty_sections = set()
  for section, entries in assocs.items():
    empty_keys = set()
    for key, values in entries.items():
      if not values:
        empty_keys.add(key)
    for k in empty_keys:
      del entries[k]
    if not entries:
      empty_sections.add(section)
  for s in empty_sections:
    del assocs[s]
  return assocs



def load_associations(path):
  '''
  Load association file.
  '''
  try:
    with open(path, 'r') as f:
      logging.debug('loading {}'.format(path))
      return parse_associations(f)
  except FileNotFoundError:
    return collections.OrderedDict()



def save_associations(path, assocs):
  '''
  Save associations to a file. OSError is raised if the file cannot be
  written.
  '''
  assocs = remove_empty_associations(assocs)
  if assocs:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    n = len(assocs)
    logging.debug('saving {}'.format(path))
    with open(path, 'w') as f:
      for section, entries in assocs.items():
        f.write('[{}]\n'.format(section))
        for key, values in sorted(entries.items()):
          f.write('{}={};\n'.format(key, ';'.join(values)))
        # Add newlines after each section if it is not the last.
        if n > 1:
          f.write('\n')
          n -= 1
  else:
    try:
      os.remove(path)
    except FileNotFoundError:
      pass



def iterate_associations(assocs, section, key):
  '''
  Iterate over associations in a file.

  assocs:
    Same type as that returend by parse_associations().
  '''
  try:
    yield from assocs[section][key]
  except (TypeError, KeyError):
    pass



def add_association(assocs, section, key, value):
  '''
  Add an association.
  '''
  if section and key and value:
    try:
      # Move it to the front of the list.
      assocs[section][key] = [value] + [x for x in assocs[section][key] if x != value]
    except KeyError:
      try:
        assocs[section][key] = [value]
      except KeyError:
        assocs[section] = collections.OrderedDict(((key, [value]),))
  return assocs



################################ Settings file #################################

def parse_settings(lines):
  '''
  Parse lines of the settings file. Values are kept verbatim.
  '''
  section = None
  settings = collections.OrderedDict()
  for line in lines:
    line = line.strip()
    if not line or line[0] in '#;':
      continue
    elif line[0] == '[' and line[-1] == ']':
      section = line[1:-1]
      settings.setdefault(section, collections.OrderedDict())
    else:
      try:
        key, value = line.split('=', 1)
      except ValueError:
        logging.warning('failed to parse line [{}]'.format(line))
      else:
        settings.setdefault(section, collections.OrderedDict())[key.strip()] = value.strip()
  return settings



def load_settings(path):
  '''
  Load the settings file.
  '''
  try:
    with open(path, 'r') as f:
      logging.debug('loading {}'.format(path))
      return parse_settings(f)
  except FileNotFoundError:
    return collections.OrderedDict()



def save_settings(path, settings):
  '''
  Save the settings file. OSError is raised if the file cannot be written.
  '''
  os.makedirs(os.path.dirname(path), exist_ok=True)
  logging.debug('saving {}'.format(path))
  with open(path, 'w') as f:
    f.write('\n'.join(
      '[{}]\n{}'.format(
        section,
        ''.join('{}={}\n'.format(k, v) for k, v in entries.items())
      )
      for section, entries in settings.items()
      if section is not None
    ))



################################ Desktop files #################################

def desktop_entry(path, none_if_error=False):
  '''
  Load a desktop entry. Some minor corrections are applied to the desktop entry
  here so use this function whenever a desktop entry is needed.
  '''
  de = xdg.DesktopEntry.DesktopEntry()
  # This is necessary because the filename attribute is only set in the "new"
  # method for some reason.
  de.filename = path

  logging.debug('parsing {}'.format(path))
  if none_if_error:
    try:
      # This will raise ParsingError if the file is not found.
      de.parse(path)
    except xdg.Exceptions.ParsingError as e:
      logging.debug('error loading {}: {}'.format(path, e))
      return None
  else:
    de.parse(path)
  return de



def parse_unexpandable_field_codes(word, field_codes):
  '''
  Interpolate field codes within an unexpandable command word.
  '''
  field_code = False
  for c in word:
    if field_code:
      field_code = False
      try:
        yield field_codes[c]
      except KeyError:
        pass
    elif c == '%':
      field_code = True
    else:
      yield c



def parse_field_codes(word, name, args=None, icon=None, path=None):
  '''
  Interpolate field codes within a single command word.
  '''
  if not args:
    args = tuple()
  if word == '%i':
    if icon:
      yield '--icon'
      yield icon
  elif word == '%F':
    for a in args:
      p = ensure_path(a)
      if p:
        yield p
  elif word == '%U':
    for a in args:
      yield ensure_url(a)
  elif word in ('%f', '%u') and not args:
    pass
  else:
    field_codes = {
      '%' : '%',
      'c' : name,
      'k' : path if path else '',
      'f' : '',
      'u' : ''
    }
    # Use first (and only) value if there is one.
    for arg in args:
      p = ensure_path(arg)
      field_codes['f'] = p if p else ''
      field_codes['u'] = ensure_url(arg)
      break
    yield ''.join(parse_unexpandable_field_codes(word, field_codes))



def desktop_entry_to_cmds(de, args=None, term_cmd=None):
  '''
  Interpolate the Exec entry of the desktop file and iterate over the resulting
  commands.
  '''
  exe = de.getExec()
  icon = de.getIcon()
  name = de.getName()
  is_term = de.getTerminal()
  path = de.filename

  return exec_field_to_cmds(
    exe, args, name, icon=icon, path=path, is_term=is_term, term_cmd=term_cmd
  )



def exec_field_to_cmds(exe, args, name, icon=None, path=None, is_term=False, term_cmd=None):
  '''
  Interpolate a Desktop Entry Exec field and maybe insert it into a terminal command.
  '''
  for app_cmd in exec_field_to_cmds_without_term(exe, args, name, icon=icon, path=path):
    if is_term and term_cmd:
      yield list(interpolate_term_cmd(term_cmd, app_cmd))
    else:
      yield app_cmd



def exec_field_to_cmds_without_term(exe, args, name, icon=None, path=None):
  '''
  Interpolate a Desktop Entry Exec field. ValueError is raised for Exec fields
  that cannot be interpolated.
  '''
  if not exe:
    return
  test_exe = exe.replace('%%', '')
  single = False
  codes = set()
  for c in 'fuFU':
    if ('%' + c) in test_exe:
      codes.add(c)
      if c in 'fu':
        single = True
  if len(codes) > 1:
    raise ValueError(
      'command should only contain at most one of the following: {}'.format(
        ' '.join(('%'+x) for x in sorted(codes))
      )
    )

  words = shlex.split(exe)
  if not args:
    argss = tuple((tuple(),))
  elif single:
    argss = ((a,) for a in args)
  else:
    argss = (args,)
  for aa in argss:
    yield list(itertools.chain.from_iterable(
      parse_field_codes(w, name, icon=icon, path=path, args=aa)
      for w in words
    ))



################################# DesktopStore #################################

class DesktopStore(object):
  '''
  Default application associations of the current user: lookups and updates of
  mimeapps.list files, desktop entries, MIME-type detection and detached
  launching.
  '''
  def __init__(self):
    self.associations = dict()
    self.index = None
    self.reset()



  def reset(self):
    '''
    Clear cached data.
    '''
    self.associations.clear()
    self.index = None
    mimetypes.init([os.path.expanduser('~/.mime.types')] + mimetypes.knownfiles)



  def get_associations(self, path):
    '''
    Get possibly cached associations from the given path.
    '''
    try:
      return self.associations[path]
    except KeyError:
      assocs = load_associations(path)
      self.associations[path] = assocs
      return assocs



  def desktop_index(self):
    '''
    Get the cached map of desktop file IDs to paths.
    '''
    if self.index is None:
      self.index = desktop_index()
    return self.index



  def find_desktop_path(self, name):
    '''
    Return the path of the desktop file with the given ID or relative name, or
    None.
    '''
    did = ensure_desktop_id(name)
    path = self.desktop_index().get(did)
    if path is None:
      logging.debug('{} not found in desktop directories'.format(did))
    return path



  def default_desktop_filenames(self, mimetype):
    '''
    Iterate over default desktop filenames.
    '''
    for path in mimeapps_list_paths():
      assocs = self.get_associations(path)
      yield from iterate_associations(assocs, DEFAULT_APPLICATIONS_SECTION, mimetype)



  def associated_desktop_filenames(self, mimetype):
    '''
    Iterate over the desktop filenames associated with a given MIME-type: added
    associations in order of preference, then those of the mimeinfo caches.
    Removed associations are skipped.
    '''
    added = list()
    blacklist = set()
    for path in mimeapps_list_paths():
      assocs = self.get_associations(path)
      blacklist.update(iterate_associations(assocs, REMOVED_ASSOCIATIONS_SECTION, mimetype))
      added.extend(
        a for a in iterate_associations(assocs, ADDED_ASSOCIATIONS_SECTION, mimetype)
        if a not in blacklist and a not in added
      )
    yield from added

    for dpath in desktop_directories():
      cache = self.get_associations(os.path.join(dpath, MIMEINFO_CACHE_FILE))
      for d in iterate_associations(cache, MIME_CACHE_SECTION, mimetype):
        if d not in blacklist and d not in added:
          yield d



  @unique_items
  def mimetype_to_desktop_filepaths(self, mimetype):
    '''
    Iterate over existing default desktop paths then over associated desktop
    paths.
    '''
    stripped_mimetype = strip_mimetype(mimetype)
    if stripped_mimetype != mimetype:
      mimetypes = (mimetype, stripped_mimetype)
    else:
      mimetypes = (mimetype,)
    for m in mimetypes:
      for d in itertools.chain(
        self.default_desktop_filenames(m),
        self.associated_desktop_filenames(m)
      ):
        fpath = self.find_desktop_path(d)
        if fpath:
          yield fpath



  def setting(self, key):
    '''
    Get a value from the settings file.
    '''
    settings = load_settings(settings_path())
    try:
      return settings[SETTINGS_SECTION][key] or None
    except KeyError:
      return None



  def set_setting(self, key, value):
    '''
    Set a value in the settings file. OSError is raised if the file cannot be
    written.
    '''
    path = settings_path()
    settings = load_settings(path)
    settings.setdefault(SETTINGS_SECTION, collections.OrderedDict())[key] = value
    save_settings(path, settings)



  def terminal_command(self):
    '''
    Get the terminal command used for desktop entries with "Terminal=true".
    ValueError is raised if the terminal's Exec field cannot be interpolated.
    '''
    term_cmd = self.setting(TERMINAL_COMMAND_SETTING)
    if term_cmd:
      return term_cmd
    terminal = self.find_default_terminal()
    if terminal is None:
      return None
    for cmd in exec_field_to_cmds_without_term(terminal.getExec(), None, terminal.getName()):
      return '{} {} {}'.format(quote_cmd(cmd), TERM_EXECUTE_OPTION, TERM_COMMAND_PLACEHOLDER)
    return None



  def find_default_application(self, mimetype):
    '''
    Return the desktop entry of the default application for a MIME-type, or
    None.
    '''
    for fpath in self.mimetype_to_desktop_filepaths(mimetype):
      de = desktop_entry(fpath, none_if_error=True)
      if de is not None:
        return de
    logging.debug('no default application for {}'.format(mimetype))
    return None



  def set_default_application(self, mimetype, app):
    '''
    Make the application the default for a MIME-type. Returns False if the
    association could not be saved.
    '''
    did = self.application_identifier(app)
    path = user_mimeapps_path()
    assocs = self.get_associations(path)
    for section in (DEFAULT_APPLICATIONS_SECTION, ADDED_ASSOCIATIONS_SECTION):
      assocs = add_association(assocs, section, mimetype, did)
    try:
      save_associations(path, assocs)
    except OSError as e:
      logging.debug('failed to save {}: {}'.format(path, e))
      del self.associations[path]
      return False
    return True



  def find_default_terminal(self):
    '''
    Return the desktop entry of the default terminal, or None.
    '''
    name = self.setting(TERMINAL_SETTING)
    if not name:
      return None
    if os.path.isabs(name):
      path = name if os.path.exists(name) else None
    else:
      path = self.find_desktop_path(name)
    return desktop_entry(path, none_if_error=True) if path else None



  def set_default_terminal(self, app):
    '''
    Make the application the default terminal. It is saved by desktop file ID,
    or by path if it is not in the desktop directories. Returns False if the
    settings file could not be saved.
    '''
    name = desktop_id(app.filename)
    if self.find_desktop_path(name) != app.filename:
      name = os.path.abspath(app.filename)
    try:
      self.set_setting(TERMINAL_SETTING, name)
    except OSError as e:
      logging.debug('failed to save {}: {}'.format(settings_path(), e))
      return False
    return True



  def list_available_applications(self, category):
    '''
    Return the desktop entries in the given desktop category, ordered by their
    desktop file IDs. User entries shadow system entries with the same ID.
    '''
    apps = list()
    for did, path in sorted(self.desktop_index().items()):
      de = desktop_entry(path, none_if_error=True)
      if de is None or de.getHidden():
        continue
      if category in de.getCategories():
        apps.append(de)
    return apps



  def load_application_by_name(self, name):
    '''
    Load an application from a desktop file path, a desktop file ID or an ID
    without its extension. Returns None if it cannot be loaded.
    '''
    if not name:
      return None
    if os.path.isabs(name):
      path = name if os.path.isfile(name) else None
    else:
      path = self.find_desktop_path(name)
    if path is None:
      return None
    return desktop_entry(path, none_if_error=True)



  def launch_detached(self, app, target):
    '''
    Start the application for the target without waiting for it. Returns False
    if no command could be started.
    '''
    try:
      term_cmd = self.terminal_command() if app.getTerminal() else None
      cmds = list(desktop_entry_to_cmds(app, args=(target,), term_cmd=term_cmd))
    except ValueError as e:
      logging.debug('invalid Exec field for {}: {}'.format(app.filename, e))
      return False
    if not cmds:
      logging.debug('no command for {}'.format(app.filename))
      return False
    for cmd in cmds:
      try:
        run_cmd(cmd)
      except OSError as e:
        logging.debug('failed to run {}: {}'.format(quote_cmd(cmd), e))
        return False
    return True



  def mimetype_for_file(self, path):
    '''
    Return the MIME-type of a file.
    '''
    for m in mimetypes_from_path(path):
      return m
    return MIMETYPE_FALLBACK



  def application_identifier(self, app):
    return desktop_id(app.filename)



  def application_file_name(self, app):
    return os.path.basename(app.filename)



  def application_display_name(self, app):
    return app.getName() or self.application_identifier(app)



############################### Argument parsing ###############################

ParsedArguments = collections.namedtuple(
  'ParsedArguments',
  ('mode', 'target_name', 'mimetypes')
)

OpenArguments = collections.namedtuple('OpenArguments', ('targets',))

ParseOutcome = collections.namedtuple(
  'ParseOutcome',
  ('status', 'arguments', 'message')
)



def parse_ok(arguments):
  return ParseOutcome(PARSE_OK, arguments, None)



def parse_error(message):
  return ParseOutcome(PARSE_ERROR, None, message)



class ArgumentParserError(Exception):
  pass



class CommandArgumentParser(argparse.ArgumentParser):
  '''
  ArgumentParser that raises ArgumentParserError instead of exiting.
  '''
  def error(self, message):
    raise ArgumentParserError(message)



def add_common_arguments(parser):
  '''
  Add the options shared by the global parser and every command.
  '''
  parser.add_argument(
    '-h', '--help', action='store_true',
    help='Display help on command-line options.'
  )

  parser.add_argument(
    '--help-all', action='store_true',
    help='Display help including all options.'
  )

  parser.add_argument(
    '-V', '--version', action='store_true',
    help='Display version information.'
  )

  parser.add_argument(
    '--debug', action='store_true',
    help='Enable debugging messages.'
  )



def print_version():
  print('{} {}'.format(NAME, VERSION))



################################### Commands ###################################

class Command(object):
  '''
  A subcommand. The first positional argument is always the name of the
  command itself.
  '''
  name = None
  description = None
  usage_args = ''

  def __init__(self, store):
    if store is None:
      raise ValueError('{}: missing desktop store'.format(type(self).__name__))
    self.store = store



  def get_argparser(self):
    parser = CommandArgumentParser(
      prog='{} {}'.format(NAME.lower(), self.name),
      description=self.description,
      usage='%(prog)s [options] {}'.format(self.usage_args).rstrip(),
      add_help=False,
      allow_abbrev=False,
    )
    add_common_arguments(parser)
    self.add_arguments(parser)
    parser.add_argument('args', nargs='*', help=argparse.SUPPRESS)
    return parser



  def add_arguments(self, parser):
    pass



  def parse(self, args):
    '''
    Parse the arguments and return a ParseOutcome.
    '''
    try:
      pargs = self.get_argparser().parse_intermixed_args(args)
    except ArgumentParserError as e:
      return parse_error(str(e))
    if pargs.version:
      return ParseOutcome(PARSE_VERSION, None, None)
    if pargs.help or pargs.help_all:
      return ParseOutcome(PARSE_HELP, None, None)
    return self.validate(pargs, pargs.args[1:])



  def validate(self, pargs, positionals):
    raise NotImplementedError



  def execute(self, arguments):
    raise NotImplementedError



  def run(self, args):
    '''
    Parse the arguments and run the command. Returns the exit code.
    '''
    outcome = self.parse(args)
    if outcome.status == PARSE_ERROR:
      sys.stderr.write('{}\n\n'.format(outcome.message))
      sys.stderr.write(self.get_argparser().format_help())
      return EXIT_FAILURE
    elif outcome.status == PARSE_VERSION:
      print_version()
      return EXIT_SUCCESS
    elif outcome.status == PARSE_HELP:
      sys.stdout.write(self.get_argparser().format_help())
      return EXIT_SUCCESS
    logging.debug('{}: {}'.format(self.name, outcome.arguments))
    return self.execute(outcome.arguments)



Category = collections.namedtuple(
  'Category',
  (
    'command',
    'description',
    'noun',
    'keys',
    'list_category',
    'terminal',
    'set_help',
    'list_help',
  )
)

DEFAULT_APP_CATEGORY = Category(
  command='default-app',
  description='Get/Set the default application for a mimetype',
  noun='application',
  keys=None,
  list_category=None,
  terminal=False,
  set_help='Application to be set as default',
  list_help=None,
)

NAMED_CATEGORIES = (
  Category(
    command='default-web-browser',
    description='Get/Set the default web browser',
    noun='browser',
    keys=(MIMETYPE_SCHEME_FMT.format('http'), MIMETYPE_SCHEME_FMT.format('https')),
    list_category='WebBrowser',
    terminal=False,
    set_help='Web browser to be set as default',
    list_help='List available web browsers',
  ),
  Category(
    command='default-email-client',
    description='Get/Set the default email client',
    noun='email client',
    keys=(MIMETYPE_SCHEME_FMT.format('mailto'),),
    list_category='Email',
    terminal=False,
    set_help='Email client to be set as default',
    list_help='List available email clients',
  ),
  Category(
    command='default-file-manager',
    description='Get/Set the default file manager',
    noun='file manager',
    keys=(MIMETYPE_DIRECTORY,),
    list_category='FileManager',
    terminal=False,
    set_help='File manager to be set as default',
    list_help='List available file managers',
  ),
  Category(
    command='default-terminal',
    description='Get/Set the default terminal',
    noun='terminal',
    keys=(TERMINAL_KEY,),
    list_category='TerminalEmulator',
    terminal=True,
    set_help='Terminal to be set as default',
    list_help='List available terminals',
  ),
)



class DefaultAppCommand(Command):
  '''
  Get, set or list the default application of a category. A category without
  keys takes its MIME-types from the command line.
  '''
  def __init__(self, store, category):
    super().__init__(store)
    self.category = category
    self.name = category.command
    self.description = category.description
    if category.keys is None:
      self.usage_args = '<mimetype> [<mimetype> ...]'



  def add_arguments(self, parser):
    parser.add_argument(
      '-s', '--set', metavar='<app name>',
      help=self.category.set_help
    )
    if self.category.list_category:
      parser.add_argument(
        '-l', '--list-available', action='store_true',
        help=self.category.list_help
      )



  def identifier(self, app):
    if self.category.terminal:
      return self.store.application_file_name(app)
    return self.store.application_identifier(app)



  def find(self, key):
    if self.category.terminal:
      return self.store.find_default_terminal()
    return self.store.find_default_application(key)



  def store_default(self, key, app):
    if self.category.terminal:
      return self.store.set_default_terminal(app)
    return self.store.set_default_application(key, app)



  def validate(self, pargs, positionals):
    list_available = getattr(pargs, 'list_available', False)
    is_set = pargs.set is not None

    if list_available and (is_set or positionals):
      return parse_error(LIST_AVAILABLE_ERROR)

    if is_set and not pargs.set:
      return parse_error('No application name')

    if self.category.keys is None:
      if not is_set and len(positionals) > 1:
        return parse_error('Only one mimeType, please')
      if not positionals:
        return parse_error('MimeType missing')
      keys = list(positionals)
    else:
      if positionals and is_set:
        return parse_error('Extra arguments given: {}'.format(','.join(positionals)))
      if positionals:
        return parse_error(
          'To set the default {} use the -s/--set option'.format(self.category.noun)
        )
      keys = list(self.category.keys)

    if is_set:
      mode = MODE_SET
    elif list_available:
      mode = MODE_LIST
    else:
      mode = MODE_GET
    return parse_ok(ParsedArguments(mode, pargs.set if is_set else None, keys))



  def execute(self, arguments):
    if arguments.mode == MODE_LIST:
      return self.list_available()
    elif arguments.mode == MODE_SET:
      return self.set_default(arguments.target_name, arguments.mimetypes)
    else:
      return self.get_default(arguments.mimetypes[0])



  def get_default(self, key):
    '''
    Print the identifier of the current default. Nothing is printed if there is
    none.
    '''
    app = self.find(key)
    if app is not None:
      print(self.identifier(app))
    return EXIT_SUCCESS



  def set_default(self, name, keys):
    '''
    Set the named application as the default for every key. All keys are
    attempted even if some fail.
    '''
    app = self.store.load_application_by_name(name)
    if app is None:
      print("Could not find '{}'".format(name), file=sys.stderr)
      return EXIT_FAILURE

    success = True
    app_id = self.identifier(app)
    for key in keys:
      if self.store_default(key, app):
        print("Set '{}' as default for '{}'".format(app_id, key))
      else:
        print("Could not set '{}' as default for '{}'".format(app_id, key), file=sys.stderr)
        success = False
    return EXIT_SUCCESS if success else EXIT_FAILURE



  def list_available(self):
    for app in self.store.list_available_applications(self.category.list_category):
      print(self.identifier(app))
    return EXIT_SUCCESS



class OpenResolver(object):
  '''
  Resolve files and URLs to their default applications and launch them.
  '''
  def __init__(self, store):
    if store is None:
      raise ValueError('OpenResolver: missing desktop store')
    self.store = store



  def open_all(self, targets):
    '''
    Open each target with its default application. A missing local file stops
    the processing of all remaining targets.
    '''
    success = True
    for target in targets:
      scheme = urllib.parse.urlparse(target).scheme
      if not scheme or scheme == SCHEME_FILE:
        path = ensure_path(target)
        if not path or not os.path.exists(path):
          print('Cannot access {}: No such file or directory'.format(target), file=sys.stderr)
          success = False
          break
        key = self.store.mimetype_for_file(path)
        launch_arg = path
      else:
        key = MIMETYPE_SCHEME_FMT.format(scheme)
        launch_arg = target
      logging.debug('{}: {}'.format(target, key))

      app = self.store.find_default_application(key)
      if app is None:
        print("No default application for '{}'".format(target))
        continue

      if not self.store.launch_detached(app, launch_arg):
        print(
          'Error while running the default application ({}) for {}'.format(
            self.store.application_display_name(app),
            target
          ),
          file=sys.stderr
        )
        success = False
    return EXIT_SUCCESS if success else EXIT_FAILURE



class OpenCommand(Command):
  name = 'open'
  description = 'Open files with the default application'
  usage_args = '<file | URL> [<file | URL> ...]'

  def __init__(self, store):
    super().__init__(store)
    self.resolver = OpenResolver(store)



  def validate(self, pargs, positionals):
    if not positionals:
      return parse_error('No file or URL given')
    return parse_ok(OpenArguments(list(positionals)))



  def execute(self, arguments):
    return self.resolver.open_all(arguments.targets)



class MimetypeCommand(Command):
  name = 'mimetype'
  description = 'Determine a file (mime)type'
  usage_args = '<file>'

  def validate(self, pargs, positionals):
    if not positionals:
      return parse_error('File missing')
    if len(positionals) > 1:
      return parse_error('Only one file, please')
    return parse_ok(OpenArguments(list(positionals)))



  def execute(self, arguments):
    target = arguments.targets[0]
    path = ensure_path(target)
    if not path or not os.path.exists(path):
      print('Cannot access {}: No such file or directory'.format(target), file=sys.stderr)
      return EXIT_FAILURE
    print(self.store.mimetype_for_file(path))
    return EXIT_SUCCESS



############################### Command registry ###############################

class CommandRegistry(object):
  '''
  Ordered collection of commands.
  '''
  def __init__(self):
    self.commands = collections.OrderedDict()



  def __contains__(self, name):
    return name in self.commands



  def register(self, command):
    if command.name in self.commands:
      raise ValueError('command already registered: {}'.format(command.name))
    self.commands[command.name] = command



  def dispatch(self, name, args):
    '''
    Run the named command with the full argument vector, starting with the
    command name. KeyError is raised for unknown commands.
    '''
    command = self.commands[name]
    logging.debug('dispatching {}'.format(quote_cmd(args)))
    return command.run(args)



  def describe_all(self):
    '''
    Describe all commands in registration order.
    '''
    if not self.commands:
      return ''
    width = max(len(n) for n in self.commands)
    return ''.join(
      '  {}  {}\n'.format(name.ljust(width), command.description)
      for name, command in self.commands.items()
    )



def build_registry(store=None):
  if store is None:
    store = DesktopStore()
  registry = CommandRegistry()
  registry.register(DefaultAppCommand(store, DEFAULT_APP_CATEGORY))
  registry.register(OpenCommand(store))
  registry.register(MimetypeCommand(store))
  for category in NAMED_CATEGORIES:
    registry.register(DefaultAppCommand(store, category))
  return registry



##################################### Main #####################################

def get_argparser():
  parser = CommandArgumentParser(
    prog=NAME.lower(),
    description='Query and set default applications and open files with them.',
    usage='%(prog)s [options] <command> [command options] [<arg> ...]',
    add_help=False,
    allow_abbrev=False,
  )
  add_common_arguments(parser)
  return parser



def show_help(registry):
  sys.stdout.write(get_argparser().format_help())
  sys.stdout.write('\nAvailable commands:\n')
  sys.stdout.write(registry.describe_all())



def split_command(args):
  '''
  Split the arguments at the first positional argument, which is the command.
  '''
  for i, a in enumerate(args):
    if not a.startswith('-'):
      return args[:i], args[i:]
  return list(args), []



def main(args=None, store=None):
  if args is None:
    args = sys.argv[1:]
  registry = build_registry(store)
  global_args, command_args = split_command(list(args))

  # Commands parse every argument, starting with their own name.
  if command_args and command_args[0] in registry:
    return registry.dispatch(command_args[0], command_args[:1] + global_args + command_args[1:])

  if not command_args:
    try:
      pargs = get_argparser().parse_args(global_args)
    except ArgumentParserError as e:
      logging.debug(e)
    else:
      if pargs.version:
        print_version()
        return EXIT_SUCCESS
      if pargs.help or pargs.help_all:
        show_help(registry)
        return EXIT_SUCCESS
  else:
    logging.debug('unknown command: {}'.format(command_args[0]))

  show_help(registry)
  return EXIT_FAILURE



def run_main():
  logging.basicConfig(
    format='%(levelname)s: %(message)s',
    level=logging.DEBUG if ('--debug' in sys.argv[1:]) else logging.WARNING
  )
  try:
    sys.exit(main())
  except (KeyboardInterrupt, BrokenPipeError):
    pass



if __name__ == '__main__':
  run_main()
