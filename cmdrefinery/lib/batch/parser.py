"""
Splitting of command lines into sub-commands and identification of the command that a sequence
of tokens executes.
"""
from __future__ import annotations

import ntpath
import re

from typing import Sequence

from cmdrefinery.lib.batch.filters import filter_pipeline, fold_strings
from cmdrefinery.lib.batch.lexer import CommandLexer
from cmdrefinery.lib.batch.model import (
    SPLIT_OPERATORS,
    IdentifiedCommand,
    InterpreterOptions,
    Token,
    TokenKind,
    stringify,
)
from cmdrefinery.lib.batch.util import unquote

SWITCH_NAMES = {
    'c': 'run_then_terminate',
    'k': 'run_then_remain',
    'v': 'delayed_expansion',
    'e': 'cmd_extensions',
    'f': 'path_autocomplete',
}

_TOGGLES = 'vef'

_SWITCH = re.compile(r'\s*/([a-z?])(?::([^\s"/]*))?(?=[\s/"]|$)', flags=re.IGNORECASE)

_PATH = re.compile(
    r'^[a-z]:|^\.{1,2}[\\/]|^[\\/]|[\\/][\w\-$#@~]+(?:\.\w+)?$',
    flags=re.IGNORECASE)

_GLUED_SWITCH = re.compile(r'^([^\\/:"]+)(/[a-z?](?::\S*)?)$', flags=re.IGNORECASE)

_EXECUTABLE_SUFFIX = re.compile(r'\.(?:exe|com)$', flags=re.IGNORECASE)


def tokenize(
    text: str,
    filter: bool = True,
    fold: bool = False,
    options: InterpreterOptions | None = None,
    group: int = 0,
) -> list[Token]:
    """
    Convert the text into tokens. Unless `filter` is disabled, the standard filter pipeline is
    applied to the result. With `fold` enabled, complete double-quoted strings are returned as
    single tokens. The `group` argument is passed on to `CommandLexer`.
    """
    tokens = []
    for token in CommandLexer(text, group).tokens():
        if token.kind is TokenKind.EOF:
            break
        tokens.append(token)
    if filter:
        tokens = filter_pipeline(tokens, options)
    if fold:
        tokens = fold_strings(tokens)
    return tokens


def deobfuscate(text: str, options: InterpreterOptions | None = None) -> str:
    """
    Normalize a single command line without interpreting it.
    """
    return stringify(tokenize(text, options=options))


def split_groups(text: str, strip: bool = True) -> list[tuple[str, int]]:
    """
    Works like `split_command`, but each command is paired with the number of parentheses that
    are open where it begins.
    """
    commands: list[tuple[str, int]] = []
    current: list[Token] = []
    lexer = CommandLexer(text)
    group = 0
    for token in lexer.tokens():
        if token.kind is TokenKind.EOF:
            break
        if token.kind in SPLIT_OPERATORS:
            commands.append((stringify(current), group))
            current.clear()
            group = lexer.group
        else:
            current.append(token)
    commands.append((stringify(current), group))
    return [(command.strip() if strip else command, group) for command, group in commands if command.strip()]


def split_command(text: str, strip: bool = True) -> list[str]:
    """
    Split a command line at every unquoted and unescaped `&` and `&&` operator. Empty commands
    are discarded. Unless `strip` is disabled, the remaining ones are stripped of surrounding
    whitespace.
    """
    return [command for command, _ in split_groups(text, strip)]


def split_blocks(tokens: Sequence[Token]) -> list[list[Token]]:
    """
    Split a token sequence at every chain operator, including `||`. Blocks that contain nothing
    but delimiters are discarded.
    """
    blocks: list[list[Token]] = []
    block: list[Token] = []
    for token in (*tokens, None):
        if token is not None and not token.is_chain:
            block.append(token)
            continue
        if not all(t.is_delimiter for t in block):
            blocks.append(block)
        block = []
    return blocks


def strip_group(tokens: Sequence[Token]) -> list[Token]:
    """
    Remove the parentheses of an enclosing group from a block: opening parentheses and
    delimiters at the start, and closing parentheses without a matching opening one at the end,
    along with delimiters between them.
    """
    start = 0
    while start < len(tokens) and tokens[start].kind in (TokenKind.LPAREN, TokenKind.DELIMITER):
        start += 1
    tokens = list(tokens[start:])
    unmatched = set()
    depth = 0
    for index, token in enumerate(tokens):
        if token.kind is TokenKind.LPAREN:
            depth += 1
        elif token.kind is TokenKind.RPAREN:
            if depth > 0:
                depth -= 1
            else:
                unmatched.add(index)
    end = len(tokens)
    while end > 0 and (end - 1 in unmatched or tokens[end - 1].is_delimiter):
        end -= 1
    return tokens[:end]


def parse_switches(text: str) -> tuple[dict[str, str | bool], str]:
    """
    Parse the leading switches from the argument string of a `cmd` invocation. Returns a dictionary
    of switches and the remaining command line. Parsing stops after `/C` or `/K` because all that
    follows is the command to be executed.
    """
    switches: dict[str, str | bool] = {}
    offset = 0
    while match := _SWITCH.match(text, offset):
        letter = match[1].lower()
        value = match[2]
        offset = match.end()
        name = SWITCH_NAMES.get(letter, letter)
        if letter in _TOGGLES:
            switches[name] = (value or '').lower() != 'off'
        elif value is None:
            switches[name] = True
        else:
            switches[name] = value
        if letter in 'ck':
            break
    return switches, text[offset:].strip()


def command_name(head: str, quoted: bool = False) -> str:
    """
    Normalize the head of a command to the name of the executed command. Paths are reduced to
    their base name, the name is converted to lower case, and executable extensions are removed.
    """
    if not quoted:
        head = head.lstrip('@')
    if _PATH.search(head):
        name = ntpath.basename(head)
    else:
        name, _, _ = head.strip().partition(' ')
    return _EXECUTABLE_SUFFIX.sub('', name.lower())


def identify_command(tokens: Sequence[Token]) -> IdentifiedCommand:
    """
    Identify the command that is executed by the given tokens. The offset of the result points to
    the first token after the command; the tokens from there are available as its `rest`. If the
    command cannot be identified, the command name is empty and the offset is -1.
    """
    tokens = list(tokens)
    count = len(tokens)
    start = 0

    while start < count and (tokens[start].kind in (
        TokenKind.LPAREN, TokenKind.DELIMITER) or tokens[start].is_chain
    ):
        start += 1
    if start >= count:
        return IdentifiedCommand('', -1, tokens)

    lead = tokens[start]

    if lead.kind is TokenKind.SET:
        return IdentifiedCommand('set', start + 1, tokens[start + 1:])

    quoted = lead.kind in (TokenKind.STRING_DQUOTE_BEGIN, TokenKind.STRING_DQUOTE)

    if lead.kind is TokenKind.STRING_DQUOTE_BEGIN and not any(
        t.kind is TokenKind.STRING_DQUOTE_END for t in tokens[start:]
    ):
        return IdentifiedCommand('', -1, tokens)

    end = start
    while end < count and not tokens[end].is_delimiter and not tokens[end].is_chain:
        end += 1

    head = tokens[start:end]
    while head and head[-1].kind is TokenKind.RPAREN:
        head.pop()

    offset = end + 1 if end < count and tokens[end].is_delimiter else end
    rest = tokens[offset:]
    text = unquote(stringify(head)).replace('"', '')

    if not quoted and (glued := _GLUED_SWITCH.match(text)):
        text, switch = glued.groups()
        offset = end
        rest = [Token(TokenKind.LITERAL, switch, head[-1].position), *tokens[end:]]

    if not (name := command_name(text, quoted)):
        return IdentifiedCommand('', -1, tokens)

    identified = IdentifiedCommand(name, offset, rest)
    if name == 'cmd':
        identified.switches, _ = parse_switches(identified.line)
    return identified
