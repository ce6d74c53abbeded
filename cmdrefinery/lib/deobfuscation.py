"""
Contains functions to aid in deobfuscation.
"""
from __future__ import annotations

import ast
import re

from typing import Any


class ExpressionParsingFailure(ValueError):
    pass


_ALLOWED_NODE_TYPES = frozenset({
    ast.Add,
    ast.BinOp,
    ast.BitAnd,
    ast.BitOr,
    ast.BitXor,
    ast.Constant,
    ast.FloorDiv,
    ast.Invert,
    ast.LShift,
    ast.Mod,
    ast.Mult,
    ast.RShift,
    ast.Sub,
    ast.UAdd,
    ast.UnaryOp,
    ast.USub
})


class IntegerDivision(ast.NodeTransformer):
    """
    Replaces true division by floor division so that expressions stay integral.
    """
    def visit_Div(self, node: ast.Div):
        return ast.FloorDiv()


def cautious_eval(
    definition: str,
    size_limit: int | None = None,
    walker: ast.NodeTransformer | None = None,
) -> Any:
    """
    Very, very, very, very, very carefully evaluate a Python expression. Only numeric constants
    and arithmetic operators are permitted.
    """
    definition = re.sub(R'\s+', '', definition)

    class Abort(ExpressionParsingFailure):
        def __init__(self, msg):
            super().__init__(F'{msg}: {definition}')

    if size_limit and len(definition) > size_limit:
        raise Abort(F'Size limit {size_limit} was exceeded while parsing')

    if any(x not in '^%|&~<>()-+/*0123456789xabcdefABCDEF' for x in definition):
        raise Abort('Unknown characters in expression')
    try:
        expression = ast.parse(definition, mode='eval')
    except Exception:
        raise Abort('Python AST parser failed')

    if walker is not None:
        expression = ast.fix_missing_locations(walker.visit(expression))

    nodes = list(ast.walk(expression.body))
    types = {type(node) for node in nodes}

    if not types <= _ALLOWED_NODE_TYPES:
        problematic = types - _ALLOWED_NODE_TYPES
        raise Abort('Expression contains operations that are not allowed: {}'.format(
            ', '.join(p.__name__ for p in problematic)))
    if any(isinstance(node, ast.Constant) and type(node.value) is not int for node in nodes):
        raise Abort('Expression contains constants that are not integers')

    code = compile(expression, filename='[ast]', mode='eval')
    return eval(code, {'__builtins__': {}}, {})
