"""prompt_toolkit lexer for live oxsh syntax highlighting in the REPL."""

from __future__ import annotations

from typing import Callable

from prompt_toolkit.document import Document
from prompt_toolkit.formatted_text import StyleAndTextTuples
from prompt_toolkit.lexers import Lexer

from .lexer_rd import LexError, tokenize
from .token_types import KEYWORDS, Tk, TkType, WdFlags

# Highlight group => prompt_toolkit style.
GROUP_STYLE = {
    "keyword": "bold ansibrightblue",
    "builtin": "bold ansiblue",
    "command": "bold",
    "string": "ansibrightgreen",
    "variable": "ansimagenta",
    "substitution": "ansiyellow",
    "assignment": "ansimagenta",
    "function": "bold ansibrightyellow",
    "redirection": "ansired",
    "operator": "bold",
    "comment": "ansibrightblack",
    "identifier": "",
}

_TK_GROUP = {kind: "keyword" for kind in KEYWORDS.values()}
_TK_GROUP.update({
    TkType.IN: "keyword",
    TkType.STRING: "string",
    TkType.MATCH_ARM: "string",
    TkType.VARIABLE_SUB: "variable",
    TkType.COMMAND_SUB: "substitution",
    TkType.SUBSHELL: "substitution",
    TkType.ASSIGNMENT: "assignment",
    TkType.FUNC_DEF: "function",
    TkType.REDIRECTION: "redirection",
    TkType.PIPE: "operator",
    TkType.PIPE_BOTH: "operator",
    TkType.LOGIC_AND: "operator",
    TkType.LOGIC_OR: "operator",
    TkType.BACKGROUND: "operator",
    TkType.CMDSEP: "operator",
    TkType.IDENT: "identifier",
})


def token_group(tk: Tk) -> str:
    if tk.kind is TkType.IDENT and not tk.has(WdFlags.IS_ARG):
        return "builtin" if tk.has(WdFlags.BUILTIN) else "command"
    return _TK_GROUP.get(tk.kind, "")


def _gap(text: str) -> StyleAndTextTuples:
    """Unstyled text between tokens; only comments get a style."""
    hash_idx = text.find('#')
    if hash_idx < 0:
        return [("", text)]
    return [("", text[:hash_idx]), (GROUP_STYLE["comment"], text[hash_idx:])]


def _highlight_line(text: str) -> StyleAndTextTuples:
    """Style one line of input; unlexable text is left plain."""
    if not text:
        return [("", "")]

    try:
        tokens = tokenize(text)
    except LexError:
        return [("", text)]

    fragments: StyleAndTextTuples = []
    cursor = 0

    for tk in tokens:
        if tk.kind in (TkType.SOI, TkType.EOI) or tk.span.width() == 0:
            continue

        start, end = tk.span.start, tk.span.end
        if start > cursor:
            fragments.extend(_gap(text[cursor:start]))

        style = GROUP_STYLE.get(token_group(tk), "")
        fragments.append((style, text[start:end]))
        cursor = end

    if cursor < len(text):
        fragments.extend(_gap(text[cursor:]))

    return fragments or [("", text)]


class OxshLexer(Lexer):
    """prompt_toolkit Lexer that highlights shell input using the oxsh tokenizer."""

    def lex_document(self, document: Document) -> Callable[[int], StyleAndTextTuples]:
        styled: dict[int, StyleAndTextTuples] = {}
        lines = document.lines

        def line_fragments(idx: int) -> StyleAndTextTuples:
            if idx >= len(lines):
                return [("", "")]
            if idx not in styled:
                styled[idx] = _highlight_line(lines[idx])
            return styled[idx]

        return line_fragments
