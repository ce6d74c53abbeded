"""
The lexer converts a single command line into a flat sequence of typed tokens. It does not expand
variables and it does not interpret anything; the only context it keeps is what is required to
classify characters correctly:

- A caret escapes the following character, except inside a double-quoted string.
- Single-quoted strings still recognize caret escapes.
- Runs of delimiter characters become a single `DELIMITER` token.
- The `SET` keyword switches to a mode where the variable name region up to the first equals sign
  is tokenized separately from the value.

Every character of the input is part of exactly one token, so joining the texts of all tokens
yields the input again.
"""
from __future__ import annotations

import bisect
import enum
import re

from typing import Callable, ClassVar, Generator

from cmdrefinery.lib.batch.model import (
    CHAIN_OPERATORS,
    COMPARISON_WORDS,
    REDIRECTS,
    RESERVED_WORDS,
    Position,
    Token,
    TokenKind,
)

DELIMITERS = ',;= \t\n\x0b\x0c\xff'
WHITESPACE = ' \t\x0b\x0c\xff'
OPERATORS = '^"&|()<>'

_SQUOTE_STRING = re.compile('\'[^\'&|"\\n]*\'')

_COMMAND_STARTERS = CHAIN_OPERATORS | {
    TokenKind.REDIRECT_PIPE,
    TokenKind.LPAREN,
    TokenKind.CALL,
    TokenKind.DO,
    TokenKind.ELSE,
}

_NEUTRAL_TOKENS = REDIRECTS | {
    TokenKind.DELIMITER,
    TokenKind.ESCAPE,
    TokenKind.EOF,
}


class Mode(enum.IntEnum):
    Text = 0
    Quote = enum.auto()
    SingleQuote = enum.auto()
    SetStarted = enum.auto()
    SetName = enum.auto()
    SetValue = enum.auto()


class CommandLexer:
    """
    A lexer for a single command line. The lexer keeps its scanning state only for the duration
    of a call to `CommandLexer.tokens`. The `group` argument is the number of parentheses that
    are open where the text begins; it decides whether a closing parenthesis ends a SET value.
    """

    text: str
    offset: int
    modes: list[Mode]

    class _register:
        # A handler is given the current mode and char. It returns a boolean indicating
        # whether or not the character was processed and may be consumed.
        handlers: ClassVar[dict[Mode, Callable[
            [CommandLexer, Mode, str], Generator[Token, None, bool]
        ]]] = {}

        def __init__(self, *modes: Mode):
            self.modes = modes

        def __call__(self, handler):
            for mode in self.modes:
                self.handlers[mode] = handler
            return handler

    def __init__(self, text: str, group: int = 0):
        self.text = text
        self.nesting = group
        self.lines = [0, *(m.end() for m in re.finditer('\n', text))]
        self.reset()

    def reset(self):
        self.offset = 0
        self.modes = [Mode.Text]
        self.run_kind = TokenKind.LITERAL
        self.run_start = -1
        self.last = TokenKind.EOF
        self.group = self.nesting
        self.command_position = True
        self.compound = False
        self.conditional = False

    @property
    def mode(self):
        return self.modes[-1]

    @mode.setter
    def mode(self, value: Mode):
        self.modes[-1] = value

    def mode_switch(self, mode: Mode):
        self.modes.append(mode)

    def mode_finish(self):
        if len(self.modes) <= 1:
            raise RuntimeError('Trying to exit base mode.')
        self.modes.pop()

    def position(self, start: int, end: int) -> Position:
        line = bisect.bisect_right(self.lines, start) - 1
        base = self.lines[line]
        return Position(line + 1, start - base, end - base)

    def peek(self, delta: int = 1) -> str:
        try:
            return self.text[self.offset + delta]
        except IndexError:
            return ''

    def token(self, kind: TokenKind, start: int, end: int) -> Token:
        token = Token(kind, self.text[start:end], self.position(start, end))
        self.last = kind
        if kind in CHAIN_OPERATORS:
            self.compound = False
            self.conditional = False
        if kind is TokenKind.LPAREN:
            self.group += 1
        elif kind is TokenKind.RPAREN and self.group > 0:
            self.group -= 1
        if kind in _COMMAND_STARTERS:
            self.command_position = True
        elif kind in (TokenKind.IF, TokenKind.FOR):
            self.command_position = False
            self.compound = True
            self.conditional = self.conditional or kind is TokenKind.IF
        elif kind not in _NEUTRAL_TOKENS:
            self.command_position = False
        return token

    def emit(self, kind: TokenKind, length: int) -> Token:
        start = self.offset
        self.offset = end = start + length
        return self.token(kind, start, end)

    def classify(self, start: int) -> TokenKind:
        """
        Decide whether the literal run starting at the given offset and ending at the current
        offset is a reserved word.
        """
        if self.last in (
            TokenKind.ESCAPED_LITERAL,
            TokenKind.STRING_DQUOTE_END,
            TokenKind.STRING_SQUOTE_END,
        ):
            return TokenKind.LITERAL
        if self.peek(0) == '^':
            return TokenKind.LITERAL
        word = self.text[start:self.offset].upper()
        if self.conditional and word in COMPARISON_WORDS:
            return COMPARISON_WORDS[word]
        try:
            kind = RESERVED_WORDS[word]
        except KeyError:
            return TokenKind.LITERAL
        if kind is TokenKind.SET and not self.command_position and not self.compound:
            return TokenKind.LITERAL
        return kind

    def flush(self) -> Generator[Token]:
        if (start := self.run_start) < 0:
            return
        self.run_start = -1
        if start >= self.offset:
            return
        kind = self.run_kind
        if kind is TokenKind.LITERAL and self.mode is Mode.Text:
            kind = self.classify(start)
        yield self.token(kind, start, self.offset)
        if kind is TokenKind.SET:
            self.mode_switch(Mode.SetStarted)

    def extend(self, kind: TokenKind) -> Generator[Token]:
        if self.run_start >= 0 and self.run_kind is not kind:
            yield from self.flush()
        if self.run_start < 0:
            self.run_start = self.offset
            self.run_kind = kind

    def escape(self) -> Generator[Token]:
        yield self.emit(TokenKind.ESCAPE, 1)
        if self.offset < len(self.text):
            yield self.emit(TokenKind.ESCAPED_LITERAL, 1)

    def tokens(self) -> Generator[Token]:
        self.reset()
        handlers = self._register.handlers
        text = self.text
        size = len(text)

        while self.offset < size:
            m = self.mode
            h = handlers[m]
            if (yield from h(self, m, text[self.offset])):
                self.offset += 1

        yield from self.flush()
        yield self.token(TokenKind.EOF, size, size)

    def is_special(self, char: str) -> bool:
        if char in OPERATORS or char in DELIMITERS:
            return True
        if char == '\'':
            return _SQUOTE_STRING.match(self.text, self.offset) is not None
        if char.isdigit():
            return self.run_start < 0 and self.peek() == '>'
        return False

    @_register(Mode.Text)
    def gobble_text(self, mode: Mode, char: str) -> Generator[Token, None, bool]:
        if not self.is_special(char):
            yield from self.extend(TokenKind.LITERAL)
            return True
        yield from self.flush()
        if self.mode is not mode:
            return False
        if char == '^':
            yield from self.escape()
        elif char == '"':
            yield self.emit(TokenKind.STRING_DQUOTE_BEGIN, 1)
            self.mode_switch(Mode.Quote)
        elif char == '\'':
            yield self.emit(TokenKind.STRING_SQUOTE_BEGIN, 1)
            self.mode_switch(Mode.SingleQuote)
        elif char in DELIMITERS:
            yield from self.gobble_delimiters()
        elif char == '&':
            if self.peek() == '&':
                yield self.emit(TokenKind.COND_SUCCESS, 2)
            elif self.last in REDIRECTS and self.last is not TokenKind.REDIRECT_PIPE and self.peek().isdigit():
                yield self.emit(TokenKind.REDIRECT_STDERR_STDOUT, 2)
            else:
                yield self.emit(TokenKind.COND_ALWAYS, 1)
        elif char == '|':
            if self.peek() == '|':
                yield self.emit(TokenKind.COND_OR, 2)
            else:
                yield self.emit(TokenKind.REDIRECT_PIPE, 1)
        elif char == '(':
            yield self.emit(TokenKind.LPAREN, 1)
        elif char == ')':
            yield self.emit(TokenKind.RPAREN, 1)
        elif char == '<':
            yield self.emit(TokenKind.REDIRECT_IN, 1)
        elif char == '>':
            if self.peek() == '>':
                yield self.emit(TokenKind.REDIRECT_OUT_APPEND, 2)
            else:
                yield self.emit(TokenKind.REDIRECT_OUT, 1)
        elif char.isdigit():
            yield self.emit(TokenKind.REDIRECT_OUT_TO, 3 if self.peek(2) == '>' else 2)
        else:
            raise RuntimeError(F'Unexpected special character {char!r}.')
        return False

    def gobble_delimiters(self) -> Generator[Token]:
        text = self.text
        if text.startswith('==', self.offset):
            yield self.emit(TokenKind.DOUBLE_EQUALS, 2)
            return
        end = self.offset
        while end < len(text) and text[end] in DELIMITERS and not text.startswith('==', end):
            end += 1
        yield self.emit(TokenKind.DELIMITER, end - self.offset)

    @_register(Mode.Quote)
    def gobble_quote(self, mode: Mode, char: str) -> Generator[Token, None, bool]:
        if char == '"':
            yield from self.flush()
            yield self.emit(TokenKind.STRING_DQUOTE_END, 1)
            self.mode_finish()
            return False
        if char == '\n':
            yield from self.flush()
            self.mode_finish()
            return False
        yield from self.extend(TokenKind.STRING_DQUOTE_CHAR)
        return True

    @_register(Mode.SingleQuote)
    def gobble_single_quote(self, mode: Mode, char: str) -> Generator[Token, None, bool]:
        if char == '\'':
            yield from self.flush()
            yield self.emit(TokenKind.STRING_SQUOTE_END, 1)
            self.mode_finish()
            return False
        if char == '^':
            yield from self.flush()
            yield from self.escape()
            return False
        yield from self.extend(TokenKind.STRING_SQUOTE_CHAR)
        return True

    def set_terminated(self, char: str) -> bool:
        return char in '&|\n' or char == ')' and self.group > 0

    @_register(Mode.SetStarted)
    def gobble_set(self, mode: Mode, char: str) -> Generator[Token, None, bool]:
        if char in WHITESPACE:
            yield from self.extend(TokenKind.DELIMITER)
            return True
        yield from self.flush()
        if char == '/':
            end = self.offset + 1
            while end < len(self.text) and self.text[end] not in WHITESPACE and not self.set_terminated(self.text[end]):
                end += 1
            yield self.emit(TokenKind.LITERAL, end - self.offset)
        elif char == '"':
            yield from self.gobble_quoted_set()
            self.mode_finish()
        elif self.set_terminated(char):
            self.mode_finish()
        else:
            self.mode = Mode.SetName
        return False

    @_register(Mode.SetName)
    def gobble_set_name(self, mode: Mode, char: str) -> Generator[Token, None, bool]:
        if char == '^':
            yield from self.flush()
            yield from self.escape()
            return False
        if char == '=':
            yield from self.flush()
            yield self.emit(TokenKind.SET_ASSIGNMENT, 1)
            self.mode = Mode.SetValue
            return False
        if self.set_terminated(char):
            yield from self.flush()
            self.mode_finish()
            return False
        yield from self.extend(TokenKind.LITERAL)
        return True

    @_register(Mode.SetValue)
    def gobble_set_value(self, mode: Mode, char: str) -> Generator[Token, None, bool]:
        if char == '^':
            yield from self.flush()
            yield from self.escape()
            return False
        if char == '"':
            yield from self.flush()
            yield self.emit(TokenKind.STRING_DQUOTE_BEGIN, 1)
            self.mode_switch(Mode.Quote)
            return False
        if self.set_terminated(char):
            yield from self.flush()
            self.mode_finish()
            return False
        yield from self.extend(TokenKind.LITERAL)
        return True

    def gobble_quoted_set(self) -> Generator[Token]:
        """
        A quoted set extends from the opening quote to the last quote before the end of the
        command. Everything between the last quote and the end of the command is left to the
        regular text mode.
        """
        text = self.text
        size = len(text)
        closing = -1
        caret = False
        cursor = self.offset + 1
        while cursor < size:
            char = text[cursor]
            if char == '\n':
                break
            if caret:
                caret = False
            elif char == '"':
                closing = cursor
            elif closing < 0:
                pass
            elif char == '^':
                caret = True
            elif char in '&|':
                break
            cursor += 1
        end = cursor if closing < 0 else closing
        yield self.emit(TokenKind.SET_DQUOTE_BEGIN, 1)
        assignment = text.find('=', self.offset, end)
        if assignment < 0:
            if end > self.offset:
                yield self.emit(TokenKind.SET_DQUOTE_CHAR, end - self.offset)
        else:
            if assignment > self.offset:
                yield self.emit(TokenKind.SET_DQUOTE_CHAR, assignment - self.offset)
            yield self.emit(TokenKind.SET_ASSIGNMENT, 1)
            while self.offset < end:
                if text[self.offset] == '^' and self.offset + 1 < end:
                    yield from self.escape()
                    continue
                stop = text.find('^', self.offset + 1, end - 1)
                if stop < 0:
                    stop = end
                yield self.emit(TokenKind.SET_DQUOTE_CHAR, stop - self.offset)
        if closing >= 0:
            yield self.emit(TokenKind.SET_DQUOTE_END, 1)

    if set(_register.handlers) != set(Mode):
        raise NotImplementedError('Not all lexer modes are handled.')
