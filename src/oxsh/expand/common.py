"""Scanning helpers shared by the expansion steps.

Word text uses backslash escapes as its only quoting: a character preceded by
an unescaped backslash is literal. The tokenizer folds shell quotes into this
form, so everything here only has to track escapes.
"""
from __future__ import annotations

import glob
from typing import List, Optional

# Characters neutralised by escape_literal
LITERAL_SPECIALS = frozenset('\\\'"$`*?[]{},~')
WHITESPACE = frozenset(' \t\n')


def is_escaped(text: str, idx: int) -> bool:
    """True if text[idx] is preceded by an odd run of backslashes."""
    count = 0
    idx -= 1
    while idx >= 0 and text[idx] == '\\':
        count += 1
        idx -= 1
    return count % 2 == 1


def find_unescaped(text: str, needle: str, start: int = 0) -> int:
    i = start
    while i < len(text):
        if text[i] == '\\':
            i += 2
            continue
        if text.startswith(needle, i):
            return i
        i += 1
    return -1


def has_unescaped(text: str, needle: str) -> bool:
    return find_unescaped(text, needle) != -1


def consume_escapes(text: str) -> str:
    """Drop escape markers, keeping the escaped characters literally."""
    if '\\' not in text:
        return text

    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '\\' and i + 1 < len(text):
            out.append(text[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def escape_literal(text: str, whitespace: bool = True, active: str = '') -> str:
    """Make text inert for every later expansion step.

    With whitespace=False blanks stay active so field splitting still applies.
    Characters listed in active are left unescaped.
    """
    out: List[str] = []
    for ch in text:
        if ch not in active and (ch in LITERAL_SPECIALS or (whitespace and ch in WHITESPACE)):
            out.append('\\')
        out.append(ch)
    return ''.join(out)


def split_outside_quotes(text: str) -> List[str]:
    """Split on unescaped blanks that are not inside quotes.

    Quote characters that reach this point came out of variable values or
    aliases; they group words and are removed. Escapes are left in place.
    """
    fields: List[str] = []
    current: List[str] = []
    started = False
    quote: Optional[str] = None
    i = 0

    while i < len(text):
        ch = text[i]

        if ch == '\\' and quote != "'":
            current.append(text[i:i + 2])
            started = True
            i += 2
            continue

        if quote is not None:
            if ch == quote:
                quote = None
            elif ch == '\\':
                current.append('\\\\')
            else:
                current.append(ch)
        elif ch in ('"', "'"):
            quote = ch
            started = True
        elif ch in WHITESPACE:
            if started:
                fields.append(''.join(current))
                current = []
                started = False
        else:
            current.append(ch)
            started = True
        i += 1

    if started:
        fields.append(''.join(current))
    return fields


def check_globs(text: str) -> bool:
    """True if text holds an unescaped `*`, `?` or a `[...]` class."""
    if has_unescaped(text, '*') or has_unescaped(text, '?'):
        return True
    open_idx = find_unescaped(text, '[')
    return open_idx != -1 and find_unescaped(text, ']', open_idx + 2) != -1


def glob_pattern(text: str) -> str:
    """Translate escaped word text into a pattern for the glob module."""
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '\\' and i + 1 < len(text):
            out.append(glob.escape(text[i + 1]))
            i += 2
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def check_home_expansion(text: str) -> bool:
    return find_tildes(text) != []


def find_tildes(text: str) -> List[int]:
    """Unescaped `~` that start the word or follow `/`, `:` or `=` and end a path component."""
    found: List[int] = []
    idx = find_unescaped(text, '~')
    while idx != -1:
        before_ok = idx == 0 or (text[idx - 1] in '/:=' and not is_escaped(text, idx - 1))
        after_ok = idx + 1 == len(text) or text[idx + 1] in '/:'
        if before_ok and after_ok:
            found.append(idx)
        idx = find_unescaped(text, '~', idx + 1)
    return found


def expand_home(text: str, home: str) -> str:
    if not home:
        return text
    for idx in reversed(find_tildes(text)):
        text = text[:idx] + escape_literal(home) + text[idx + 1:]
    return text
