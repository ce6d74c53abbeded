#!/usr/bin/env python3
from __future__ import annotations

import setuptools
import pathlib
import sys
import toml

__minver__ = '3.8'
__author__ = 'Jesko Huettenhain'
__slogan__ = 'A static deobfuscator and emulator for Windows command lines.'
__topics__ = [
    'Development Status :: 3 - Alpha',
    'Operating System :: OS Independent',
    'Programming Language :: Python :: 3 :: Only',
    'Topic :: Security',
    'Topic :: Text Processing',
]


def get_config():
    here = pathlib.Path(__file__).parent.absolute()
    sys.path.insert(0, str(here))

    import cmdrefinery

    def get_setup_readme(filename: str | pathlib.Path | None = None):
        if filename is None:
            filename = here.joinpath('README.md')
        with open(filename, 'r', encoding='UTF8') as README:
            return README.read()

    ppcfg: dict[str, dict[str, list[str]]] = toml.load(str(here.joinpath('pyproject.toml')))
    requirements = [r for r in ppcfg['build-system']['requires'] if r not in ('setuptools', 'wheel', 'toml')]

    return dict(
        name=cmdrefinery.__distribution__,
        version=cmdrefinery.__version__,
        long_description=get_setup_readme(),
        long_description_content_type='text/markdown',
        author=__author__,
        description=__slogan__,
        python_requires=F'>={__minver__}',
        classifiers=__topics__ + ['Topic :: Utilities'],
        packages=setuptools.find_packages(include=('cmdrefinery*',)),
        install_requires=requirements,
        extras_require={'test': ['flake8']},
        entry_points={'console_scripts': ['decmd=cmdrefinery.console:deobfuscator']},
    )


if __name__ == '__main__':
    setuptools.setup(**get_config())
