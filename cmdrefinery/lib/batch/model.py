from __future__ import annotations

import enum

from dataclasses import dataclass, field, fields
from typing import Any, Iterable

from cmdrefinery.lib.batch.util import assign
from cmdrefinery.lib.environment import environment

DEFAULT_MAX_DEPTH = 32


class DeobfuscationError(Exception):
    pass


class InvalidOptions(DeobfuscationError, ValueError):
    pass


class UnhandledToken(DeobfuscationError):
    def __init__(self, token: Token, msg: str | None = None):
        self.token = token
        if msg is None:
            msg = F'No handler for token {token.kind.name} with text {token.text!r}.'
        super().__init__(msg)


class DepthExceeded(DeobfuscationError):
    def __init__(self, depth: int, line: str):
        self.depth = depth
        self.line = line
        super().__init__(F'Nesting depth {depth} exceeded while interpreting: {line}')


class TokenKind(str, enum.Enum):
    LITERAL                 = 'LITERAL'                 # noqa
    ESCAPE                  = 'ESCAPE'                  # noqa
    ESCAPED_LITERAL         = 'ESCAPED_LITERAL'         # noqa
    STRING_DQUOTE           = 'STRING_DQUOTE'           # noqa
    STRING_DQUOTE_BEGIN     = 'STRING_DQUOTE_BEGIN'     # noqa
    STRING_DQUOTE_CHAR      = 'STRING_DQUOTE_CHAR'      # noqa
    STRING_DQUOTE_END       = 'STRING_DQUOTE_END'       # noqa
    STRING_SQUOTE_BEGIN     = 'STRING_SQUOTE_BEGIN'     # noqa
    STRING_SQUOTE_CHAR      = 'STRING_SQUOTE_CHAR'      # noqa
    STRING_SQUOTE_END       = 'STRING_SQUOTE_END'       # noqa
    SET                     = 'SET'                     # noqa
    SET_ASSIGNMENT          = 'SET_ASSIGNMENT'          # noqa
    SET_DQUOTE_BEGIN        = 'SET_DQUOTE_BEGIN'        # noqa
    SET_DQUOTE_CHAR         = 'SET_DQUOTE_CHAR'         # noqa
    SET_DQUOTE_END          = 'SET_DQUOTE_END'          # noqa
    DELIMITER               = 'DELIMITER'               # noqa
    CALL                    = 'CALL'                    # noqa
    COND_ALWAYS             = 'COND_ALWAYS'             # noqa
    COND_SUCCESS            = 'COND_SUCCESS'            # noqa
    COND_OR                 = 'COND_OR'                 # noqa
    LPAREN                  = 'LPAREN'                  # noqa
    RPAREN                  = 'RPAREN'                  # noqa
    IF                      = 'IF'                      # noqa
    ELSE                    = 'ELSE'                    # noqa
    NOT                     = 'NOT'                     # noqa
    DEFINED                 = 'DEFINED'                 # noqa
    EXIST                   = 'EXIST'                   # noqa
    FOR                     = 'FOR'                     # noqa
    IN                      = 'IN'                      # noqa
    DO                      = 'DO'                      # noqa
    DOUBLE_EQUALS           = 'DOUBLE_EQUALS'           # noqa
    IF_EQU                  = 'IF_EQU'                  # noqa
    IF_NEQ                  = 'IF_NEQ'                  # noqa
    IF_LSS                  = 'IF_LSS'                  # noqa
    IF_LEQ                  = 'IF_LEQ'                  # noqa
    IF_GTR                  = 'IF_GTR'                  # noqa
    IF_GEQ                  = 'IF_GEQ'                  # noqa
    REDIRECT_IN             = 'REDIRECT_IN'             # noqa
    REDIRECT_OUT            = 'REDIRECT_OUT'            # noqa
    REDIRECT_OUT_APPEND     = 'REDIRECT_OUT_APPEND'     # noqa
    REDIRECT_OUT_TO         = 'REDIRECT_OUT_TO'         # noqa
    REDIRECT_STDERR_STDOUT  = 'REDIRECT_STDERR_STDOUT'  # noqa
    REDIRECT_PIPE           = 'REDIRECT_PIPE'           # noqa
    EOF                     = 'EOF'                     # noqa

    # aliases; commas and semicolons are part of delimiter runs
    COMMA                   = 'DELIMITER'               # noqa
    SEMICOLON               = 'DELIMITER'               # noqa
    COND_CALL               = 'COND_SUCCESS'            # noqa

    def __str__(self):
        return self.value


RESERVED_WORDS = {
    'CALL'    : TokenKind.CALL,
    'DEFINED' : TokenKind.DEFINED,
    'DO'      : TokenKind.DO,
    'ELSE'    : TokenKind.ELSE,
    'EXIST'   : TokenKind.EXIST,
    'FOR'     : TokenKind.FOR,
    'IF'      : TokenKind.IF,
    'IN'      : TokenKind.IN,
    'NOT'     : TokenKind.NOT,
    'SET'     : TokenKind.SET,
}

COMPARISON_WORDS = {
    'EQU': TokenKind.IF_EQU,
    'NEQ': TokenKind.IF_NEQ,
    'LSS': TokenKind.IF_LSS,
    'LEQ': TokenKind.IF_LEQ,
    'GTR': TokenKind.IF_GTR,
    'GEQ': TokenKind.IF_GEQ,
}

CHAIN_OPERATORS = frozenset({
    TokenKind.COND_ALWAYS,
    TokenKind.COND_SUCCESS,
    TokenKind.COND_OR,
})

SPLIT_OPERATORS = frozenset({
    TokenKind.COND_ALWAYS,
    TokenKind.COND_SUCCESS,
})

REDIRECTS = frozenset({
    TokenKind.REDIRECT_IN,
    TokenKind.REDIRECT_OUT,
    TokenKind.REDIRECT_OUT_APPEND,
    TokenKind.REDIRECT_OUT_TO,
    TokenKind.REDIRECT_STDERR_STDOUT,
    TokenKind.REDIRECT_PIPE,
})


@dataclass(frozen=True)
class Position:
    line: int = 1
    col_start: int = 0
    col_end: int = 0

    def merge(self, other: Position) -> Position:
        if other.line != self.line:
            return self
        return Position(self.line, min(self.col_start, other.col_start), max(self.col_end, other.col_end))


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    position: Position = Position()

    def __str__(self):
        return self.text

    def like(self, kind: TokenKind | None = None, text: str | None = None) -> Token:
        """
        Create a copy of this token at the same position with a different kind or text.
        """
        if kind is None:
            kind = self.kind
        if text is None:
            text = self.text
        return Token(kind, text, self.position)

    @property
    def is_delimiter(self):
        return self.kind is TokenKind.DELIMITER

    @property
    def is_chain(self):
        return self.kind in CHAIN_OPERATORS


def stringify(tokens: Iterable[Token]) -> str:
    return ''.join(token.text for token in tokens)


@dataclass
class IdentifiedCommand:
    command: str
    offset: int
    rest: list[Token] = field(default_factory=list)
    switches: dict[str, str | bool] = field(default_factory=dict)

    @property
    def identified(self) -> bool:
        return self.offset >= 0

    @property
    def line(self) -> str:
        return stringify(self.rest).strip()


@dataclass
class Command:
    name: str
    line: str


@dataclass
class CommandRecord:
    command: Command
    text: str
    options: dict[str, str | bool] = field(default_factory=dict)
    sequence: int = 0
    depth: int = 0

    def asdict(self) -> dict[str, Any]:
        return {
            'command': {'name': self.command.name, 'line': self.command.line},
            'options': dict(self.options),
        }


@dataclass
class FrameVariables:
    thisframe: dict[str, str] = field(default_factory=dict)
    nextframe: dict[str, str] = field(default_factory=dict)

    def visible(self) -> dict[str, str]:
        """
        The variables that delayed expansion can read: those readable in this frame, overridden
        by those assigned in it.
        """
        merged = dict(self.thisframe)
        for name, value in self.nextframe.items():
            assign(merged, name, value)
        return merged


@dataclass
class Frame:
    vars: FrameVariables = field(default_factory=FrameVariables)
    options: dict[str, str | bool] = field(default_factory=dict)
    commands: list[CommandRecord] = field(default_factory=list)
    depth: int = 0
    delayed_expansion: bool = False
    extensions: bool = True

    def asdict(self) -> dict[str, Any]:
        return {
            'vars': {
                'thisframe': dict(self.vars.thisframe),
                'nextframe': dict(self.vars.nextframe),
            },
            'options': dict(self.options),
            'commands': [record.asdict() for record in self.commands],
        }


@dataclass
class InterpreterOptions:
    """
    Options for the interpretation of a command line. The filter options correspond to the stages
    of the filter pipeline in `cmdrefinery.lib.batch.filters`.
    """
    strip_escapes: bool = True
    merge_contiguous_literals: bool = True
    merge_contiguous_strings: bool = True
    strip_empty_strings: bool = True
    strip_commas: bool = False
    delayed_expansion: bool = False
    enable_extensions: bool = True
    vars: dict[str, str] = field(default_factory=dict)
    max_depth: int = 0

    def __post_init__(self):
        for option in fields(self):
            value = getattr(self, option.name)
            if option.name == 'vars':
                if not isinstance(value, dict) or not all(
                    isinstance(k, str) and isinstance(v, str) for k, v in value.items()
                ):
                    raise InvalidOptions('The vars option must map strings to strings.')
            elif option.name == 'max_depth':
                if isinstance(value, bool) or not isinstance(value, int):
                    raise InvalidOptions(F'The max_depth option must be an integer, got {value!r}.')
            elif not isinstance(value, bool):
                raise InvalidOptions(F'The {option.name} option must be a boolean, got {value!r}.')
        if self.max_depth < 0:
            raise InvalidOptions(F'The maximum depth must be positive, got {self.max_depth}.')
        if self.max_depth == 0:
            depth = environment.max_depth.value
            self.max_depth = depth if depth > 0 else DEFAULT_MAX_DEPTH
