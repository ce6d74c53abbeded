R"""
    ------------------------------------------------------------
          ____ __  __ ___        __
         / ___|  \/  |   \  ___ / _|_ _ ___  _ _  _ _   ___
        | |__ | |\/| | |) |/ -_)  _| | ' \ || | '_|| || |
         \____|_|  |_|___/ \___|_| |_|_||_\_,_|_|   \_, |
    ===================================================|__/==
          command line refinery for cmd.exe obfuscation

This is the command refinery package documentation. The package turns obfuscated command lines for
the Windows command interpreter into clean, canonical sub-commands. The processing is split into the
following stages, each of which is available as a library module:

1. `cmdrefinery.lib.batch.expander`: percent and delayed variable expansion,
2. `cmdrefinery.lib.batch.lexer`: conversion of a command line into typed tokens,
3. `cmdrefinery.lib.batch.filters`: normalization of token sequences,
4. `cmdrefinery.lib.batch.parser`: command splitting and identification,
5. `cmdrefinery.lib.batch.emulator`: the interpreter that tracks variable scopes across nested
   `cmd` and `CALL` invocations.

The most convenient entry points are re-exported here:

    >>> from cmdrefinery import interpret
    >>> list(interpret('cmd /c "set x=calc&& call %x%"').commands())
    ['cmd /c "set x=calc&& call %x%"', 'set x=calc', 'call %x%', 'calc']
"""
from __future__ import annotations

__version__ = '0.3.1'
__distribution__ = 'command-refinery'

from cmdrefinery.lib.batch import (
    ContextStack,
    InterpreterOptions,
    Token,
    TokenKind,
    deobfuscate,
    expand_variables,
    identify_command,
    interpret,
    split_command,
    tokenize,
)

__all__ = [
    'ContextStack',
    'InterpreterOptions',
    'Token',
    'TokenKind',
    'deobfuscate',
    'expand_variables',
    'identify_command',
    'interpret',
    'split_command',
    'tokenize',
]
