"""Brace expansion: `pre{a,b}post`, `{1..5}`, `{a..e}`, nested and adjacent groups."""
from __future__ import annotations

import re
from typing import List, Optional, Tuple

from .common import is_escaped

_NUM_RANGE_RE = re.compile(r'(-?\d+)\.\.(-?\d+)')
_ALPHA_RANGE_RE = re.compile(r'([A-Za-z])\.\.([A-Za-z])')


def matching_brace(text: str, open_idx: int) -> int:
    depth = 0
    i = open_idx
    while i < len(text):
        ch = text[i]
        if ch == '\\':
            i += 2
            continue
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def split_alternatives(inner: str) -> List[str]:
    """Split on commas that are unescaped and not inside a nested group."""
    parts: List[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(inner):
        ch = inner[i]
        if ch == '\\':
            i += 2
            continue
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
        elif ch == ',' and depth == 0:
            parts.append(inner[start:i])
            start = i + 1
        i += 1
    parts.append(inner[start:])
    return parts


def expand_range(inner: str) -> Optional[List[str]]:
    m = _NUM_RANGE_RE.fullmatch(inner)
    if m is not None:
        lo, hi = int(m.group(1)), int(m.group(2))
        step = 1 if hi >= lo else -1
        return [str(n) for n in range(lo, hi + step, step)]

    m = _ALPHA_RANGE_RE.fullmatch(inner)
    if m is not None:
        first, last = m.group(1), m.group(2)
        if first.isupper() != last.isupper() or first > last:
            return None
        return [chr(c) for c in range(ord(first), ord(last) + 1)]

    return None


def expand_amble(inner: str) -> List[str]:
    """Alternatives listed between one pair of braces."""
    rng = expand_range(inner)
    if rng is not None:
        return rng
    return split_alternatives(inner)


def is_expandable(inner: str) -> bool:
    return bool(inner) and (expand_range(inner) is not None or len(split_alternatives(inner)) > 1)


def find_brace_group(text: str) -> Optional[Tuple[int, int]]:
    """Leftmost `{...}` that expands; `${...}` parameter braces are skipped."""
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '\\':
            i += 2
            continue
        if ch == '{' and not (i > 0 and text[i - 1] == '$' and not is_escaped(text, i - 1)):
            close = matching_brace(text, i)
            if close != -1 and is_expandable(text[i + 1:close]):
                return i, close
        i += 1
    return None


def is_brace_expansion(text: str) -> bool:
    return find_brace_group(text) is not None


def expand_braces(word: str) -> List[str]:
    """Expand every brace group in word, left to right.

    Each alternative is spliced between the preamble and the postamble and the
    result is expanded again, which handles nested and adjacent groups.
    Malformed groups are left as literal text.
    """
    group = find_brace_group(word)
    if group is None:
        return [word]

    open_idx, close_idx = group
    preamble = word[:open_idx]
    postamble = word[close_idx + 1:]

    out: List[str] = []
    for alt in expand_amble(word[open_idx + 1:close_idx]):
        out.extend(expand_braces(preamble + alt + postamble))
    return out
