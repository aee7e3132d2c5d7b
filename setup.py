#!/usr/bin/env python3

from setuptools import setup

setup(
  name='''Defapps''',
  version='''2026.10.18''',
  description='''Query and set default applications and open files with them.''',
  author='''Xyne''',
  author_email='''ac xunilhcra enyx, backwards''',
  py_modules=['''Defapps'''],
  python_requires='''>=3.7''',
  install_requires=['''pyxdg'''],
  extras_require={
    'test' : ['''pytest'''],
  },
  entry_points={
    'console_scripts' : ['''defapps=Defapps:run_main'''],
  },
)
