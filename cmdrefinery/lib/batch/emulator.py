"""
The interpreter walks a command line the way the command processor would, without executing
anything. Every command that would run is recorded in the trace of the frame that runs it, and
the handlers of a few commands update the interpreter state:

- `cmd` opens a new frame and interprets its argument inside of it,
- `call` opens a new frame and expands its argument once more,
- `set` assigns variables, and
- `setlocal` toggles delayed expansion and command extensions.

All other commands are only recorded.
"""
from __future__ import annotations

import re

from typing import Callable, ClassVar

from cmdrefinery.lib.batch.expander import expand_variables
from cmdrefinery.lib.batch.filters import apply_escapes, filter_pipeline
from cmdrefinery.lib.batch.model import (
    Command,
    CommandRecord,
    DepthExceeded,
    Frame,
    FrameVariables,
    IdentifiedCommand,
    InterpreterOptions,
    InvalidOptions,
    Token,
    stringify,
)
from cmdrefinery.lib.batch.parser import (
    identify_command,
    parse_switches,
    split_blocks,
    split_groups,
    strip_group,
    tokenize,
)
from cmdrefinery.lib.batch.state import ContextStack
from cmdrefinery.lib.batch.util import assign, batchint, lookup_name, strip_outer_quotes
from cmdrefinery.lib.deobfuscation import ExpressionParsingFailure, IntegerDivision, cautious_eval
from cmdrefinery.lib.environment import logger

_SET_SWITCH = re.compile(r'\s*/([ap])(?=\s|"|$)', flags=re.IGNORECASE)
_SET_ARITHMETIC = re.compile(r'\s*([^=*/%+\-&^|<>()\s]+)\s*(<<|>>|[-+*/%&^|])?=(?!=)(.*)$', flags=re.DOTALL)
_SET_OPERAND_NAME = re.compile(r'(?<![\w.$#@])([a-z_$#@][\w.$#@]*)', flags=re.IGNORECASE)
_SET_OPERAND_NUMBER = re.compile(r'\b(0x[0-9a-f]+|\d+)\b', flags=re.IGNORECASE)

_SETLOCAL_OPTIONS = {
    'ENABLEDELAYEDEXPANSION'  : ('delayed_expansion', True),
    'DISABLEDELAYEDEXPANSION' : ('delayed_expansion', False),
    'ENABLEEXTENSIONS'        : ('extensions', True),
    'DISABLEEXTENSIONS'       : ('extensions', False),
}


def _int32(value: int) -> int:
    return (value + 0x80000000) % 0x100000000 - 0x80000000


class CommandInterpreter:
    """
    Interprets command lines with the given options. An interpreter can be used for any number
    of calls to `CommandInterpreter.interpret`; each call returns a new `ContextStack`.
    """

    class _command:
        handlers: ClassVar[dict[str, Callable[[
            CommandInterpreter,
            ContextStack,
            Frame,
            IdentifiedCommand,
            list[Token],
        ], None]]] = {}

        def __init__(self, *keys: str):
            self.keys = keys

        def __call__(self, handler):
            for key in self.keys:
                self.handlers[key] = handler
            return handler

    def __init__(self, options: InterpreterOptions | None = None):
        self.options = options or InterpreterOptions()
        self.log = logger(__name__)

    def interpret(self, text: str) -> ContextStack:
        options = self.options
        stack = ContextStack()
        stack.push(
            None,
            FrameVariables(dict(options.vars), {}),
            delayed_expansion=options.delayed_expansion,
            extensions=options.enable_extensions,
        )
        self.run(stack, stack.root, text)
        self.log.info(F'interpretation finished with {len(stack)} frames and {len(stack.errors)} errors')
        return stack

    def run(self, stack: ContextStack, frame: Frame, text: str):
        """
        Expand percent variables in the given command line and execute all of its commands in
        the given frame.
        """
        text = expand_variables(text, frame.vars.thisframe, '%', frame.extensions)
        for command, group in split_groups(text, strip=False):
            self.execute(stack, frame, command, group)

    def execute(self, stack: ContextStack, frame: Frame, command: str, group: int = 0):
        if frame.delayed_expansion:
            command = expand_variables(command, frame.vars.visible(), '!', frame.extensions)
        for block in split_blocks(tokenize(command, filter=False, group=group)):
            block = strip_group(block)
            if not block:
                continue
            tokens = filter_pipeline(block, self.options)
            ident = identify_command(tokens)
            try:
                handler = self._command.handlers[ident.command]
            except KeyError:
                handler = CommandInterpreter.execute_default
            self.log.debug(F'depth {frame.depth}: dispatching {ident.command or "unidentified command"}')
            handler(self, stack, frame, ident, block)

    def record(self, stack: ContextStack, frame: Frame, ident: IdentifiedCommand, text: str):
        stack.record(frame, CommandRecord(
            Command(ident.command, ident.line),
            text=text,
            options=dict(ident.switches),
        ))

    def enter(self, stack: ContextStack, frame: Frame, line: str) -> bool:
        """
        Check whether a new frame may be opened below the given one. Otherwise, the branch is
        recorded as an error in the stack.
        """
        if frame.depth < self.options.max_depth:
            return True
        error = DepthExceeded(self.options.max_depth, line)
        self.log.warning(str(error))
        stack.errors.append(error)
        return False

    def execute_default(self, stack: ContextStack, frame: Frame, ident: IdentifiedCommand, block: list[Token]):
        self.record(stack, frame, ident, self.text(block))

    def text(self, block: list[Token]) -> str:
        return stringify(filter_pipeline(block, self.options)).strip()

    @_command('cmd')
    def execute_cmd(self, stack: ContextStack, frame: Frame, ident: IdentifiedCommand, block: list[Token]):
        switches, remainder = parse_switches(ident.line)
        self.record(stack, frame, ident, self.text(block))
        remainder = strip_outer_quotes(remainder).strip()
        if not self.enter(stack, frame, remainder):
            return
        child = stack.push(
            frame,
            FrameVariables(dict(frame.vars.nextframe), {}),
            options=switches,
            delayed_expansion=bool(switches.get('delayed_expansion', False)),
            extensions=bool(switches.get('cmd_extensions', True)),
        )
        self.log.debug(F'depth {child.depth}: entering cmd frame with switches {switches}')
        if not remainder:
            return
        nested = identify_command(tokenize(remainder, options=self.options))
        if nested.command == 'cmd' and not nested.line:
            self.log.debug('not following self-referential cmd invocation')
            return
        self.run(stack, child, remainder)

    @_command('call')
    def execute_call(self, stack: ContextStack, frame: Frame, ident: IdentifiedCommand, block: list[Token]):
        self.record(stack, frame, ident, self.text(block))
        if not (line := ident.line) or not self.enter(stack, frame, line):
            return
        child = stack.push(
            frame,
            FrameVariables(dict(frame.vars.nextframe), dict(frame.vars.thisframe)),
            delayed_expansion=frame.delayed_expansion,
            extensions=frame.extensions,
        )
        self.log.debug(F'depth {child.depth}: entering call frame')
        self.run(stack, child, line)

    @_command('setlocal')
    def execute_setlocal(self, stack: ContextStack, frame: Frame, ident: IdentifiedCommand, block: list[Token]):
        self.record(stack, frame, ident, self.text(block))
        for setting in ident.line.upper().split():
            try:
                attribute, value = _SETLOCAL_OPTIONS[setting]
            except KeyError:
                continue
            setattr(frame, attribute, value)

    @_command('set')
    def execute_set(self, stack: ContextStack, frame: Frame, ident: IdentifiedCommand, block: list[Token]):
        self.record(stack, frame, ident, self.text(block))

        arithmetic = False
        prompt = False

        tokens = apply_escapes(block)
        argument = stringify(identify_command(tokens).rest)

        while match := _SET_SWITCH.match(argument):
            if match[1].upper() == 'A':
                arithmetic = True
            else:
                prompt = True
            argument = argument[match.end():]

        argument = argument.lstrip()

        if arithmetic:
            try:
                self.arithmetic(frame, argument)
            except (ExpressionParsingFailure, ZeroDivisionError) as error:
                self.log.info(F'unable to evaluate arithmetic expression {argument!r}: {error!s}')
            return

        if argument.startswith('"'):
            assignment, quote, unquoted = argument[1:].rpartition('"')
            if not quote:
                assignment = unquoted
        else:
            assignment = argument

        name, equals, content = assignment.partition('=')
        if not equals or not name or prompt:
            return
        assign(frame.vars.nextframe, name, content)

    def arithmetic(self, frame: Frame, expression: str):
        """
        Evaluate the argument of `SET /A`. The argument is a comma-separated list of expressions
        and assignments; variables that occur in an expression are read as integers, and variables
        that are undefined or not numeric count as zero.
        """
        scope = frame.vars.visible()

        def operand(match: re.Match[str]):
            if (key := lookup_name(scope, match[1])) is None:
                return '0'
            return F'({batchint(scope[key], 0)})'

        def number(match: re.Match[str]):
            return str(batchint(match[1], 0))

        for part in expression.split(','):
            if not part.strip():
                continue
            if match := _SET_ARITHMETIC.match(part):
                name, operator, definition = match.groups()
                if operator:
                    definition = F'{name}{operator}({definition})'
            else:
                name, definition = None, part
            definition = _SET_OPERAND_NAME.sub(operand, definition)
            definition = _SET_OPERAND_NUMBER.sub(number, definition)
            value = _int32(cautious_eval(definition, walker=IntegerDivision()))
            if name is not None:
                assign(scope, name, str(value))
                assign(frame.vars.nextframe, name, str(value))


def interpret(text: str, options: InterpreterOptions | None = None, **kwargs) -> ContextStack:
    """
    Interpret the given command line and return the resulting stack of frames. The options can
    be given either as an `InterpreterOptions` object or as keyword arguments, but not both.
    """
    if options is not None and kwargs:
        raise InvalidOptions('Options must be given either as an object or as keyword arguments.')
    if options is None:
        try:
            options = InterpreterOptions(**kwargs)
        except TypeError as error:
            raise InvalidOptions(str(error)) from error
    elif not isinstance(options, InterpreterOptions):
        raise InvalidOptions(F'Expected interpreter options, got {type(options).__name__}.')
    return CommandInterpreter(options).interpret(text)
