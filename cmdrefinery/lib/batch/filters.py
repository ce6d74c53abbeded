"""
Pure transformations of token sequences. Each filter receives a sequence of tokens and returns a
new list; the input is never modified. The standard pipeline applies them in this order:

1. `apply_escapes`
2. `strip_empty_strings`
3. `merge_literals`
4. `widen_strings`
5. `strip_excessive_whitespace`
6. `strip_commas` (optional)

The pipeline is idempotent: running it on its own output does not change the output.
"""
from __future__ import annotations

import re

from typing import Iterable, Sequence

from cmdrefinery.lib.batch.model import InterpreterOptions, Token, TokenKind

_WHITESPACE_RUN = re.compile('[ \\t\\n\\x0b\\x0c\\xff]+')
_COMMA_RUN = re.compile('[ \\t\\n\\x0b\\x0c\\xff,;]*[,;][ \\t\\n\\x0b\\x0c\\xff,;]*')

_STRING_PIECES = frozenset({
    TokenKind.LITERAL,
    TokenKind.STRING_DQUOTE,
    TokenKind.STRING_DQUOTE_BEGIN,
    TokenKind.STRING_DQUOTE_CHAR,
    TokenKind.STRING_DQUOTE_END,
})


def _span(tokens: Sequence[Token]):
    position = tokens[0].position
    for token in tokens[1:]:
        position = position.merge(token.position)
    return position


def apply_escapes(tokens: Iterable[Token]) -> list[Token]:
    """
    Remove all escape markers and turn the escaped characters into ordinary literals.
    """
    return [
        token.like(TokenKind.LITERAL) if token.kind is TokenKind.ESCAPED_LITERAL else token
        for token in tokens if token.kind is not TokenKind.ESCAPE
    ]


def strip_empty_strings(tokens: Iterable[Token]) -> list[Token]:
    """
    Remove double-quoted strings without content, i.e. every `""` that is not part of a longer
    string.
    """
    output: list[Token] = []
    for token in tokens:
        if token.kind is TokenKind.STRING_DQUOTE and token.text == '""':
            continue
        if token.kind is TokenKind.STRING_DQUOTE_END and output and output[-1].kind is TokenKind.STRING_DQUOTE_BEGIN:
            output.pop()
            continue
        output.append(token)
    return output


def merge_literals(tokens: Iterable[Token]) -> list[Token]:
    """
    Join adjacent literal tokens into one.
    """
    output: list[Token] = []
    for token in tokens:
        if token.kind is TokenKind.LITERAL and output and output[-1].kind is TokenKind.LITERAL:
            last = output[-1]
            output[-1] = Token(TokenKind.LITERAL, last.text + token.text, last.position.merge(token.position))
            continue
        output.append(token)
    return output


def _widen(word: list[Token]) -> list[Token]:
    content: list[str] = []
    strings = 0
    literals = 0
    opened = False
    for token in word:
        kind = token.kind
        if kind is TokenKind.STRING_DQUOTE_BEGIN:
            opened = True
            strings += 1
        elif kind is TokenKind.STRING_DQUOTE_END:
            opened = False
        elif kind is TokenKind.STRING_DQUOTE:
            strings += 1
            content.append(token.text[1:-1])
        else:
            if kind is TokenKind.LITERAL:
                literals += 1
            content.append(token.text)
    if opened or not strings or strings == 1 and not literals:
        return word
    position = _span(word)
    widened = [Token(TokenKind.STRING_DQUOTE_BEGIN, '"', position)]
    if text := ''.join(content):
        widened.append(Token(TokenKind.STRING_DQUOTE_CHAR, text, position))
    widened.append(Token(TokenKind.STRING_DQUOTE_END, '"', position))
    return widened


def widen_strings(tokens: Iterable[Token]) -> list[Token]:
    """
    A run of literals and double-quoted strings that are not separated by anything else becomes a
    single double-quoted string. For example, the tokens of `c"al"c.exe` are turned into those of
    the string `"calc.exe"`. The command interpreter only uses quotes to decide where arguments
    begin and end, so this does not change the meaning of the command line.
    """
    output: list[Token] = []
    word: list[Token] = []
    for token in tokens:
        if token.kind in _STRING_PIECES:
            word.append(token)
            continue
        if word:
            output.extend(_widen(word))
            word = []
        output.append(token)
    if word:
        output.extend(_widen(word))
    return output


def fold_strings(tokens: Iterable[Token]) -> list[Token]:
    """
    Collapse each complete sequence of string begin, content and end tokens into a single token of
    kind `STRING_DQUOTE`. Unterminated strings are left as they are.
    """
    output: list[Token] = []
    begin = -1
    for token in tokens:
        kind = token.kind
        if kind is TokenKind.STRING_DQUOTE_BEGIN:
            begin = len(output)
        elif kind is TokenKind.STRING_DQUOTE_END and begin >= 0:
            parts = output[begin:]
            parts.append(token)
            del output[begin:]
            output.append(Token(TokenKind.STRING_DQUOTE, ''.join(t.text for t in parts), _span(parts)))
            begin = -1
            continue
        elif kind is not TokenKind.STRING_DQUOTE_CHAR:
            begin = -1
        output.append(token)
    return output


def strip_excessive_whitespace(tokens: Iterable[Token]) -> list[Token]:
    """
    Adjacent delimiters are merged, delimiters that consist only of whitespace are reduced to a
    single space, and delimiters at the beginning and the end are removed.
    """
    output: list[Token] = []
    for token in tokens:
        if token.kind is TokenKind.DELIMITER:
            if not output:
                continue
            if (last := output[-1]).kind is TokenKind.DELIMITER:
                token = Token(TokenKind.DELIMITER, last.text + token.text, last.position.merge(token.position))
                output.pop()
            if _WHITESPACE_RUN.fullmatch(token.text):
                token = token.like(text=' ')
        output.append(token)
    while output and output[-1].kind is TokenKind.DELIMITER:
        output.pop()
    return output


def strip_commas(tokens: Iterable[Token]) -> list[Token]:
    """
    Delimiters that consist of whitespace, commas and semicolons are equivalent to a single space
    when they separate arguments.
    """
    return [
        token.like(text=' ')
        if token.kind is TokenKind.DELIMITER and _COMMA_RUN.fullmatch(token.text) else token
        for token in tokens
    ]


def filter_pipeline(tokens: Iterable[Token], options: InterpreterOptions | None = None) -> list[Token]:
    """
    Apply the standard filter pipeline. The optional stages are enabled or disabled according to
    the given options.
    """
    if options is None:
        options = InterpreterOptions()
    tokens = list(tokens)
    if options.strip_escapes:
        tokens = apply_escapes(tokens)
    if options.strip_empty_strings:
        tokens = strip_empty_strings(tokens)
    if options.merge_contiguous_literals:
        tokens = merge_literals(tokens)
    if options.merge_contiguous_strings:
        tokens = widen_strings(tokens)
    tokens = strip_excessive_whitespace(tokens)
    if options.strip_commas:
        tokens = strip_commas(tokens)
    return tokens
