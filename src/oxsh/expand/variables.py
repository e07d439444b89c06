from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from ..token_types import Span, Tk, WdFlags
from ..types import InvalidSyntax, ShellState
from .common import escape_literal, find_unescaped

logger = logging.getLogger(__name__)

# Substitutions allowed beyond one per `$` in the original word
MAX_EXPANSION_DEPTH = 64

SPECIAL_PARAMS = '-*?$@#!'

_INDEX_RE = re.compile(r'(\w+)\[(\d+)\]')
_SUBSCRIPT_RE = re.compile(r'\[\d+\]')


def read_var_name(text: str, idx: int) -> Tuple[str, int]:
    """Name of the parameter starting at idx (just after `$`) and where it ends."""
    if idx >= len(text):
        return '', idx

    ch = text[idx]
    if ch == '{':
        close = text.find('}', idx + 1)
        if close == -1:
            return '', idx
        return text[idx + 1:close], close + 1
    if ch in SPECIAL_PARAMS or ch.isdigit():
        return ch, idx + 1

    end = idx
    while end < len(text) and (text[end].isalnum() or text[end] == '_'):
        end += 1

    name = text[idx:end]
    if name:
        m = _SUBSCRIPT_RE.match(text, end)
        if m is not None:
            name += m.group(0)
            end = m.end()
    return name, end


def lookup(name: str, shell: ShellState) -> str:
    m = _INDEX_RE.fullmatch(name)
    if m is not None:
        return shell.get_array_element(m.group(1), int(m.group(2)))
    return shell.get_variable(name)


def expand_var(text: str, shell: ShellState, span: Optional[Span] = None, quoted: bool = False) -> str:
    """Substitute every unescaped `$NAME` until none remain.

    Substituted values are scanned again, so a value that itself refers to a
    variable resolves through it. A `$` with no name after it stays literal.
    With quoted=True values are escaped so glob, brace and backslash
    characters in them stay literal; only their `$` references remain live.
    """
    budget = MAX_EXPANSION_DEPTH + text.count('$')

    while (idx := find_unescaped(text, '$')) != -1:
        name, end = read_var_name(text, idx + 1)
        if not name:
            text = text[:idx] + '\\$' + text[idx + 1:]
            continue

        budget -= 1
        if budget < 0:
            raise InvalidSyntax(f"Expansion of `${name}` did not settle; is it self-referencing?", span)

        value = lookup(name, shell)
        logger.debug("expand $%s -> %r", name, value)
        if quoted:
            value = escape_literal(value, active='$')
        text = text[:idx] + value + text[end:]

    return text


def expand_params(tk: Tk, shell: ShellState) -> List[Tk]:
    """Split a token at its first `$@` into prefix, one token per positional parameter, and suffix."""
    idx = find_unescaped(tk.text, '$@')
    if idx == -1:
        return [tk]

    left, right = tk.text[:idx], tk.text[idx + 2:]
    params = shell.get_positional_params()

    out: List[Tk] = []
    if left:
        out.append(tk.clone(text=left))
    for param in params.split(' ') if params else []:
        if param:
            out.append(tk.clone(text=escape_literal(param), flags=tk.flags | WdFlags.FROM_VAR))
    if right:
        out.append(tk.clone(text=right))
    return out
