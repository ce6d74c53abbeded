"""
A commandline script to deobfuscate command lines for the Windows command processor.
"""
from __future__ import annotations

import argparse
import sys

import cmdrefinery

from cmdrefinery.lib.batch import (
    InterpreterOptions,
    InvalidOptions,
    deobfuscate,
    interpret,
)
from cmdrefinery.lib.batch.synth import render_command, render_json, render_trace
from cmdrefinery.lib.environment import LogLevel, environment


def variable_definition(definition: str):
    name, equals, value = definition.partition('=')
    if not equals or not name:
        raise argparse.ArgumentTypeError(F'invalid variable definition {definition!r}, expected NAME=VALUE')
    return name, value


def deobfuscator(argv: list[str] | None = None):
    """
    Main routine of the command line deobfuscator.
    """
    headline = (
        'decmd ({ver}): command refinery for cmd.exe\n'
        'Deobfuscates command lines for the Windows command processor.'
    ).format(ver=cmdrefinery.__version__)

    argp = argparse.ArgumentParser(
        prog='decmd',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=headline)

    argp.add_argument(
        'lines',
        metavar='command',
        nargs='*',
        help='Command lines to be deobfuscated. If none are given, they are read from standard '
             'input, one per line.'
    )
    output = argp.add_mutually_exclusive_group()
    output.add_argument(
        '-c', '--commands',
        dest='output',
        action='store_const',
        const='commands',
        default='trace',
        help='Only print the cleaned sub-commands, one per line.'
    )
    output.add_argument(
        '-t', '--tokens',
        dest='output',
        action='store_const',
        const='tokens',
        help='Only normalize the command line without interpreting it.'
    )
    output.add_argument(
        '-j', '--json',
        dest='output',
        action='store_const',
        const='json',
        help='Print the complete interpretation result as JSON.'
    )
    argp.add_argument(
        '-d', '--delayed-expansion',
        action='store_true',
        help='Enable delayed variable expansion in the outermost scope.'
    )
    argp.add_argument(
        '-x', '--disable-extensions',
        dest='extensions',
        action='store_false',
        help='Disable command extensions in the outermost scope.'
    )
    argp.add_argument(
        '-D', '--define',
        metavar='NAME=VALUE',
        type=variable_definition,
        action='append',
        default=[],
        help='Define a variable for the outermost scope. Can be given multiple times.'
    )
    argp.add_argument(
        '-m', '--max-depth',
        metavar='N',
        type=int,
        default=0,
        help='Maximum nesting depth of cmd and call invocations.'
    )
    argp.add_argument(
        '-k', '--keep-escapes',
        action='store_true',
        help='Do not remove caret escapes from the output.'
    )
    argp.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase the log verbosity; can be given twice.'
    )
    argp.add_argument(
        '-V', '--version',
        action='store_true',
        help='Only show the currently installed version of command refinery and exit.'
    )

    args = argp.parse_args(argv)

    if args.version:
        print(cmdrefinery.__version__)
        return

    if args.verbose or environment.verbosity.value is None:
        environment.verbosity.value = LogLevel.FromVerbosity(args.verbose)

    try:
        options = InterpreterOptions(
            strip_escapes=not args.keep_escapes,
            delayed_expansion=args.delayed_expansion,
            enable_extensions=args.extensions,
            vars=dict(args.define),
            max_depth=args.max_depth,
        )
    except InvalidOptions as error:
        argp.error(str(error))

    colorize = not environment.colorless.value and sys.stdout.isatty()

    if colorize:
        import colorama
        colorama.init()

    lines = args.lines or (line.rstrip('\r\n') for line in sys.stdin)

    for line in lines:
        if not line.strip():
            continue
        if args.output == 'tokens':
            print(render_command(deobfuscate(line, options), colorize))
            continue
        stack = interpret(line, options)
        if args.output == 'json':
            print(render_json(stack))
        elif args.output == 'commands':
            for command in stack.commands():
                print(command)
        else:
            for entry in render_trace(stack, colorize):
                print(entry)


if __name__ == '__main__':
    deobfuscator()
