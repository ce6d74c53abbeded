"""
Rendering of tokens and interpretation results as plain or ANSI-colored text.
"""
from __future__ import annotations

import io
import json

from typing import Iterable, Iterator

from colorama import Fore as FG
from colorama import Style

from cmdrefinery.lib.batch.model import (
    COMPARISON_WORDS,
    REDIRECTS,
    RESERVED_WORDS,
    Token,
    TokenKind,
    UnhandledToken,
)
from cmdrefinery.lib.batch.parser import tokenize
from cmdrefinery.lib.batch.state import ContextStack
from cmdrefinery.lib.environment import logger

_STRINGS = frozenset({
    TokenKind.STRING_DQUOTE,
    TokenKind.STRING_DQUOTE_BEGIN,
    TokenKind.STRING_DQUOTE_CHAR,
    TokenKind.STRING_DQUOTE_END,
    TokenKind.STRING_SQUOTE_BEGIN,
    TokenKind.STRING_SQUOTE_CHAR,
    TokenKind.STRING_SQUOTE_END,
    TokenKind.SET_DQUOTE_BEGIN,
    TokenKind.SET_DQUOTE_CHAR,
    TokenKind.SET_DQUOTE_END,
})

_OPERATORS = frozenset({
    TokenKind.COND_ALWAYS,
    TokenKind.COND_SUCCESS,
    TokenKind.COND_OR,
    TokenKind.LPAREN,
    TokenKind.RPAREN,
    TokenKind.DOUBLE_EQUALS,
    TokenKind.SET_ASSIGNMENT,
    *REDIRECTS,
})

_KEYWORDS = frozenset({
    *RESERVED_WORDS.values(),
    *COMPARISON_WORDS.values(),
})

INDENT = '\x20' * 4


def token_color(token: Token) -> str:
    """
    Return the ANSI color sequence for the given token. Tokens that have no textual
    representation raise an `UnhandledToken` exception.
    """
    kind = token.kind
    if kind in _STRINGS:
        return FG.LIGHTGREEN_EX
    if kind in _OPERATORS:
        return FG.LIGHTCYAN_EX
    if kind in _KEYWORDS:
        return FG.LIGHTWHITE_EX
    if kind in (TokenKind.ESCAPE, TokenKind.ESCAPED_LITERAL):
        return FG.LIGHTRED_EX
    if kind in (TokenKind.LITERAL, TokenKind.DELIMITER):
        return FG.RESET
    raise UnhandledToken(token)


def render_tokens(tokens: Iterable[Token], colorize: bool = False) -> str:
    """
    Join the texts of the given tokens. With `colorize` enabled, each token is wrapped in the
    color sequence that corresponds to its kind; tokens without a color are emitted as plain
    text.
    """
    log = logger(__name__)
    with io.StringIO() as out:
        for token in tokens:
            if not colorize:
                out.write(token.text)
                continue
            try:
                color = token_color(token)
            except UnhandledToken as error:
                log.debug(str(error))
                out.write(token.text)
            else:
                out.write(F'{color}{token.text}{FG.RESET}')
        if colorize:
            out.write(Style.RESET_ALL)
        return out.getvalue()


def render_command(text: str, colorize: bool = False) -> str:
    if not colorize:
        return text
    return render_tokens(tokenize(text, filter=False), colorize=True)


def render_trace(stack: ContextStack, colorize: bool = False) -> Iterator[str]:
    """
    Generate one line for each recorded command in the order of execution, indented according
    to the nesting depth of the frame that recorded it.
    """
    for record in stack.trace():
        yield F'{INDENT * record.depth}{render_command(record.text, colorize)}'
    for error in stack.errors:
        message = F'error: {error!s}'
        if colorize:
            message = F'{FG.LIGHTRED_EX}{message}{Style.RESET_ALL}'
        yield message


def render_json(stack: ContextStack, indent: int | None = 4) -> str:
    return json.dumps(stack.asdict(), indent=indent)
