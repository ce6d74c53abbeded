from __future__ import annotations

import re


def batchint(expr: str, default: int | None = None):
    """
    Parse an integer the way the command interpreter does: An optional sign is followed by a
    hexadecimal number with `0x` prefix, an octal number with a leading zero, or a decimal.
    """
    expr = expr.strip()
    m = int(expr.startswith(('-', '+')))
    if expr[m:m + 2] in ('0x', '0X'):
        base = 16
    elif expr[m:m + 1] == '0' and len(expr) > m + 1:
        base = 8
    else:
        base = 10
    try:
        return int(expr, base)
    except ValueError:
        if default is None:
            raise
        return default


def unquote(token: str) -> str:
    return re.sub('"(.*?)"', '\\1', token)


def strip_outer_quotes(text: str) -> str:
    """
    Remove the first and the last double quote from a command line that begins with a quote. This
    is how the command interpreter treats the argument of its `/C` and `/K` switches.
    """
    if not text.startswith('"'):
        return text
    body, quote, tail = text[1:].rpartition('"')
    if not quote:
        return tail
    return body + tail


def fold_name(name: str) -> str:
    """
    Variable names are compared case-insensitively: two names are the same variable if this
    function maps them to the same string. Names are lower-cased rather than case-folded so that
    this agrees with matching under `re.IGNORECASE`; for example, `straße` and `STRASSE` are
    different variables.
    """
    return name.lower()


def lookup_name(mapping: dict[str, str], name: str) -> str | None:
    """
    Find the key of `mapping` that matches `name` case-insensitively.
    """
    if name in mapping:
        return name
    folded = fold_name(name)
    for key in mapping:
        if fold_name(key) == folded:
            return key
    return None


def assign(mapping: dict[str, str], name: str, value: str | None):
    """
    Assign a variable, replacing any existing binding whose name differs only in case. The name
    is stored as given. An empty or missing value removes the variable.
    """
    if (key := lookup_name(mapping, name)) is not None:
        del mapping[key]
    if value:
        mapping[name] = value
