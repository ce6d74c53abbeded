"""
Interpretation of command lines for the Windows command processor.

## Scopes

Every invocation of `cmd` and every `call` opens a new frame. A frame has two variable tables:

- `thisframe` holds the variables that percent expansion can read in this frame.
- `nextframe` holds the variables that were assigned in this frame.

A `cmd` frame starts with the variables that were assigned in its parent, but it does not see
the ones that its parent could only read. A `call` frame swaps the two tables of its parent.
Delayed expansion reads from both tables, and the assigned values take precedence.

## Set Statement

There are two kinds of set statement:
The quoted and the unquoted set.
A quoted set looks like this:

    set "name=var" (...)

It is interpreted as follows:

- Everything between the first and the last quote in the command is extracted.
- The resulting string is split at the first equals symbol.
- The LHS is the variable name.
- The RHS becomes the variable content.

Note how anything after the last quote is discarded. The unquoted set looks like this:

    set name=var

It is parsed as follows:

- The set expression starts with the first non-whitespace character after the set keyword.
- This expression is split at the first equals symbol.
- The LHS is the variable name.
- The RHS, including trailing whitespace, becomes the variable content.

An empty value removes the variable.
"""
from __future__ import annotations

from .emulator import CommandInterpreter, interpret
from .expander import expand_variables
from .filters import filter_pipeline, fold_strings
from .lexer import CommandLexer
from .model import (
    DeobfuscationError,
    DepthExceeded,
    IdentifiedCommand,
    InterpreterOptions,
    InvalidOptions,
    Token,
    TokenKind,
    UnhandledToken,
)
from .parser import (
    deobfuscate,
    identify_command,
    split_blocks,
    split_command,
    tokenize,
)
from .state import ContextStack

__all__ = [
    'CommandInterpreter',
    'CommandLexer',
    'ContextStack',
    'DeobfuscationError',
    'DepthExceeded',
    'IdentifiedCommand',
    'InterpreterOptions',
    'InvalidOptions',
    'Token',
    'TokenKind',
    'UnhandledToken',
    'deobfuscate',
    'expand_variables',
    'filter_pipeline',
    'fold_strings',
    'identify_command',
    'interpret',
    'split_blocks',
    'split_command',
    'tokenize',
]
