"""
Expansion of environment variables in a command line. The expansion works on raw text; caret
escapes are not understood at this stage, which is why an obfuscated reference like
`%c^o^m^s^p^e^c%` is not expanded.

The following forms are supported, where the percent sign can be replaced by an exclamation mark
for delayed expansion:

    %name%              value of the variable
    %name:find=repl%    value with every occurrence of find replaced by repl
    %name:*find=repl%   value with everything up to and including the first find replaced
    %name:~start%       value starting at the given offset
    %name:~start,len%   substring of the value

Offsets and lengths may be negative and may be given in hexadecimal or octal notation.
"""
from __future__ import annotations

import re

from cmdrefinery.lib.batch.state import DEFAULT_VARIABLES
from cmdrefinery.lib.batch.util import batchint, fold_name


def _lookup_table(variables: dict[str, str] | None) -> dict[str, str]:
    table = {fold_name(name): value for name, value in DEFAULT_VARIABLES.items()}
    if variables:
        for name, value in variables.items():
            table[fold_name(name)] = value
    return table


def substring(value: str, start: int, length: int | None = None) -> str:
    """
    Compute the substring of a variable value the way `%name:~start,length%` does. Indices that
    are out of range are clamped.
    """
    size = len(value)
    if length is None:
        if start < 0:
            return value[max(0, size + start):]
        return value[start:]
    if start < 0 and length < 0:
        lower, upper = sorted((-start, -length))
        return value[max(0, size - upper):max(0, size - lower)]
    if start < 0:
        start = max(0, size + start)
    if length < 0:
        return value[start:max(start, size + length)]
    return value[start:start + length]


def replace(value: str, find: str, repl: str) -> str:
    """
    Replace all occurrences of `find` in the variable value by `repl`. The search is not case
    sensitive. When `find` starts with an asterisk, everything up to and including the first match
    of the remaining pattern is replaced.
    """
    if find.startswith('*'):
        find = find[1:]
        if not find:
            return value
        if not (match := re.search(re.escape(find), value, flags=re.IGNORECASE)):
            return value
        return repl + value[match.end():]
    if not find:
        return value
    return re.sub(re.escape(find), lambda _: repl, value, flags=re.IGNORECASE)


def expand_variables(
    text: str,
    variables: dict[str, str] | None = None,
    sigil: str = '%',
    enable_extensions: bool = True,
) -> str:
    """
    Expand all variable references in the given text. The names of `variables` are matched case
    insensitively, and the default variables are available unless overridden. References to
    undefined variables are left as they are.
    """
    if len(sigil) != 1:
        raise ValueError(F'Invalid variable sigil: {sigil!r}')

    table = _lookup_table(variables)
    s = re.escape(sigil)

    def direct(match: re.Match[str]):
        return table.get(fold_name(match[1]), match[0])

    names = [
        name for name in table if name and (
            not enable_extensions or not re.fullmatch('.+:.+', name, flags=re.DOTALL))
    ]
    if names:
        names.sort(key=len, reverse=True)
        pattern = '|'.join(re.escape(name) for name in names)
        text = re.sub(F'{s}({pattern}){s}', direct, text, flags=re.IGNORECASE)

    if not enable_extensions:
        return text

    def find_and_replace(match: re.Match[str]):
        name, find, repl = match.groups()
        try:
            value = table[fold_name(name)]
        except KeyError:
            return match[0]
        return replace(value, find, repl)

    text = re.sub(
        F'{s}([^:\\n{s}]+):(?!~)([^=\\n{s}]+)=([^\\n{s}]*){s}',
        find_and_replace, text)

    def substring_expansion(match: re.Match[str]):
        name, start, length = match.groups()
        try:
            value = table[fold_name(name)]
        except KeyError:
            return match[0]
        start = batchint(start, 0)
        if length is not None:
            length = batchint(length, 0)
        return substring(value, start, length)

    text = re.sub(
        F'{s}([^:\\n{s}]+):~\\s*([-+]?[^,\\s{s}]+)\\s*(?:,\\s*([-+]?[^,\\s{s}]+)\\s*)?{s}',
        substring_expansion, text)

    return text
