"""
Hand-written tokenizer for oxsh

Turns shell source into the token stream consumed by the parser:
- Words keep their backslash escapes; quoting is folded into escaping, so
  a character that was quoted arrives escaped and inert
- Keywords are only recognised in command position
- Assignments, function definitions, subshells, command substitutions,
  redirections and match arms are emitted as single structured tokens
"""

from __future__ import annotations

import re
from typing import List, Tuple

from .token_types import (
    BUILTINS,
    KEYWORDS,
    AssignmentParts,
    AssOp,
    FuncParts,
    MatchArm,
    Redir,
    RedirOp,
    Span,
    Tk,
    TkPayload,
    TkType,
    WdFlags,
)
from .types import InvalidSyntax

# Characters that end an unquoted word
METACHARS = frozenset(' \t\n;&|<>()')

# Characters escaped when they appear inside quotes
QUOTE_ESCAPE = frozenset(' \t\n*?[]{}~,\'"\\|&;<>()$`#!')

_REDIR_RE = re.compile(r'&>>|&>|(\d*)(>>|>&|<&|>|<)')
_ASSIGN_RE = re.compile(r'([A-Za-z_][A-Za-z0-9_]*(?:\[\d+\])?)([+\-*/]?=)')
_VARSUB_RE = re.compile(r'\$(?:[A-Za-z_][A-Za-z0-9_]*|\d|[@*#?$!-]|\{[^{}]+\})')
_FUNC_NAME_RE = re.compile(r'[A-Za-z_][A-Za-z0-9_.-]*')

_ASS_OPS = {op.value: op for op in AssOp}


def escape_quoted(text: str) -> str:
    """Escape every character that would otherwise be active in a word."""
    return ''.join('\\' + ch if ch in QUOTE_ESCAPE else ch for ch in text)


class Lexer:
    """
    oxsh tokenizer.

    Tracks just enough context to classify words:
    - cmd_pos: the next word is a command name (keywords, assignments and
      function definitions are only recognised there)
    - expect_in: a for/select/match header is waiting for its `in`
    - want_target: the previous token was a redirection operator
    """

    KEYWORDS = KEYWORDS

    OPERATORS = [
        ('&&', TkType.LOGIC_AND),
        ('||', TkType.LOGIC_OR),
        ('|&', TkType.PIPE_BOTH),
        ('|', TkType.PIPE),
        (';', TkType.CMDSEP),
        ('&', TkType.BACKGROUND),
    ]

    # Newlines directly after these continue the statement
    CONTINUATION = frozenset({
        TkType.PIPE,
        TkType.PIPE_BOTH,
        TkType.LOGIC_AND,
        TkType.LOGIC_OR,
    })

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.start = 0
        self.tokens: List[Tk] = []

        self.cmd_pos = True
        self.expect_in = False
        self.want_target = False
        self.match_header = False
        self.in_match_arms = False

    # ========================================================================
    # Main Tokenization
    # ========================================================================

    def tokenize(self) -> List[Tk]:
        """Tokenize entire source, return token list framed by SOI/EOI"""
        self.tokens.append(Tk(TkType.SOI, '', Span(0, 0)))

        while self.pos < len(self.source):
            self.start = self.pos
            if self.in_match_arms:
                self.scan_match_arm()
            else:
                self.scan_token()

        end = len(self.source)
        self.tokens.append(Tk(TkType.EOI, '', Span(end, end)))
        return self.tokens

    def scan_token(self):
        """Scan next token"""
        if self.skip_whitespace():
            return

        ch = self.peek()

        if ch == '\\' and self.peek(1) == '\n':
            self.advance(2)
            return

        if ch == '#':
            self.skip_comment()
            return

        if ch == '\n':
            self.scan_newline()
            return

        if self.scan_redirection():
            return

        if self.scan_operator():
            return

        if ch == '(':
            if not self.cmd_pos:
                raise LexError("Unexpected '(' in argument position", Span(self.pos, self.pos + 1))
            self.scan_subshell()
            return

        if ch == ')':
            raise LexError("Unmatched ')'", Span(self.pos, self.pos + 1))

        self.scan_word()

    # ========================================================================
    # Token Scanners
    # ========================================================================

    def scan_newline(self):
        self.advance()
        last = self.tokens[-1] if self.tokens else None
        if last is not None and last.kind in self.CONTINUATION:
            return

        self.emit(TkType.CMDSEP, '\n', WdFlags.IS_OP)
        self.cmd_pos = True
        self.want_target = False

    def scan_operator(self) -> bool:
        for op_str, op_type in self.OPERATORS:
            if self.source.startswith(op_str, self.pos):
                self.advance(len(op_str))
                self.emit(op_type, op_str, WdFlags.IS_OP)
                self.cmd_pos = True
                self.expect_in = False
                self.want_target = False
                return True

        return False

    def scan_redirection(self) -> bool:
        m = _REDIR_RE.match(self.source, self.pos)
        if m is None:
            return False

        text = m.group(0)
        if text in ('&>', '&>>'):
            op = RedirOp.APPEND if text == '&>>' else RedirOp.OUTPUT
            redir = Redir(op, 1, both=True)
            self.advance(len(text))
        else:
            digits, op_str = m.group(1), m.group(2)
            self.advance(len(text))
            op = {
                '<': RedirOp.INPUT,
                '<&': RedirOp.INPUT,
                '>': RedirOp.OUTPUT,
                '>&': RedirOp.OUTPUT,
                '>>': RedirOp.APPEND,
            }[op_str]
            fd_source = int(digits) if digits else (0 if op is RedirOp.INPUT else 1)
            fd_target = None

            if op_str.endswith('&'):
                target = ''
                while self.peek().isdigit():
                    target += self.advance()
                if not target:
                    raise LexError(f"Expected a file descriptor after '{op_str}'", Span(self.start, self.pos))
                fd_target = int(target)
                text += target

            redir = Redir(op, fd_source, fd_target)

        self.emit(TkType.REDIRECTION, text, WdFlags.IS_OP, redir)
        self.want_target = redir.fd_target is None
        return True

    def scan_subshell(self):
        body = self.read_balanced('(', ')')
        self.emit(TkType.SUBSHELL, body.strip(), WdFlags.IN_PAREN)
        self.cmd_pos = False

    def scan_word(self):
        """Scan one word, folding quotes into escapes"""
        if self.source.startswith('"$(', self.pos) and self.scan_quoted_cmdsub():
            return

        segments: List[Tuple[str, str]] = []

        while self.pos < len(self.source) and self.peek() not in METACHARS:
            ch = self.peek()

            if ch == '\\':
                if self.peek(1) == '\n':
                    self.advance(2)
                    continue
                segments.append(('plain', self.advance(2) if self.pos + 1 < len(self.source) else self.advance()))
            elif ch == "'":
                segments.append(('sng', escape_quoted(self.read_single_quoted())))
            elif ch == '"':
                segments.append(('dub', self.read_double_quoted()))
            elif ch == '$' and self.peek(1) == '(':
                self.advance()
                segments.append(('cmdsub', self.read_balanced('(', ')')))
            elif ch == '`':
                segments.append(('cmdsub', self.read_backticks()))
            elif ch == '$' and self.peek(1) == '{':
                self.advance()
                segments.append(('plain', '$' + self.read_raw_until('}')))
            else:
                segments.append(('plain', self.advance()))

        if not segments:
            raise LexError(f"Unexpected character '{self.peek()}'", Span(self.pos, self.pos + 1))

        kinds = {kind for kind, _ in segments}

        if kinds == {'cmdsub'} and len(segments) == 1:
            self.emit(TkType.COMMAND_SUB, segments[0][1].strip(), self.position_flags())
            self.cmd_pos = False
            return

        # Embedded substitutions stay in the word verbatim
        text = ''.join(
            (f'$({raw})' if kind == 'cmdsub' else raw) for kind, raw in segments
        )

        if kinds == {'plain'}:
            self.classify_plain(text)
            return

        first_kind = segments[0][0]
        if self.cmd_pos and not self.want_target and first_kind == 'plain':
            m = _ASSIGN_RE.match(text)
            if m is not None and m.end() <= len(first_raw_prefix(segments)):
                self.emit_assignment(m, text)
                return

        flags = WdFlags.IS_ARG if self.want_target else self.position_flags()
        if len(segments) == 1 and first_kind == 'sng':
            flags |= WdFlags.SNG_QUOTED
        elif len(segments) == 1 and first_kind == 'dub':
            flags |= WdFlags.DUB_QUOTED

        self.emit(TkType.STRING, text, flags)
        if self.want_target:
            self.want_target = False
        else:
            self.cmd_pos = False

    def scan_quoted_cmdsub(self) -> bool:
        """`"$( ... )"` as a whole word; backtracks if anything follows"""
        saved = self.pos
        self.advance(2)  # "$
        body = self.read_balanced('(', ')')

        if self.peek() == '"' and (self.pos + 1 >= len(self.source) or self.peek(1) in METACHARS):
            self.advance()
            self.emit(TkType.COMMAND_SUB, body.strip(), self.position_flags() | WdFlags.DUB_QUOTED)
            self.cmd_pos = False
            return True

        self.pos = saved
        return False

    def classify_plain(self, text: str):
        if self.want_target:
            self.emit(TkType.IDENT, text, WdFlags.IS_ARG)
            self.want_target = False
            return

        if self.expect_in and text == 'in':
            self.emit(TkType.IN, text, WdFlags.KEYWORD)
            self.expect_in = False
            if self.match_header:
                self.match_header = False
                self.in_match_arms = True
            return

        if self.cmd_pos:
            kind = self.KEYWORDS.get(text)
            if kind is not None:
                self.emit(kind, text, WdFlags.KEYWORD)
                self.after_keyword(kind)
                return

            m = _ASSIGN_RE.match(text)
            if m is not None:
                self.emit_assignment(m, text)
                return

            if text == 'function' or (self.peek() == '(' and self.peek(1) == ')'):
                if self.scan_func_def(text):
                    return

        if _VARSUB_RE.fullmatch(text):
            kind = TkType.VARIABLE_SUB
        else:
            kind = TkType.IDENT

        flags = self.position_flags()
        if self.cmd_pos and text in BUILTINS:
            flags |= WdFlags.BUILTIN

        self.emit(kind, text, flags)
        self.cmd_pos = False

    def after_keyword(self, kind: TkType):
        match kind:
            case TkType.FOR | TkType.SELECT | TkType.MATCH:
                self.cmd_pos = False
                self.expect_in = True
                self.match_header = kind is TkType.MATCH
            case TkType.FI | TkType.DONE:
                self.cmd_pos = False
            case _:
                self.cmd_pos = True

    def emit_assignment(self, m: re.Match, text: str):
        name, op = m.group(1), m.group(2)
        value = text[m.end():]
        parts = AssignmentParts(name, value if value else None, _ASS_OPS[op])
        self.emit(TkType.ASSIGNMENT, text, WdFlags.NONE, parts)
        # The word after an assignment is still in command position

    def scan_func_def(self, word: str) -> bool:
        """`name() { body }` or `function name [()] { body }`"""
        saved = self.pos

        if word == 'function':
            self.skip_whitespace()
            m = _FUNC_NAME_RE.match(self.source, self.pos)
            if m is None:
                self.pos = saved
                return False
            name = m.group(0)
            self.advance(len(name))
        elif _FUNC_NAME_RE.fullmatch(word):
            name = word
        else:
            return False

        if self.peek() == '(' and self.peek(1) == ')':
            self.advance(2)

        while self.peek() in (' ', '\t', '\n'):
            self.advance()

        if self.peek() != '{':
            raise LexError(f"Expected '{{' to open the body of function '{name}'", Span(self.start, self.pos))

        body = self.read_balanced('{', '}')
        self.emit(TkType.FUNC_DEF, name, WdFlags.NONE, FuncParts(name, body.strip()))
        self.cmd_pos = False
        return True

    def scan_match_arm(self):
        """`pattern) body ;;` inside a match statement, or its closing `done`"""
        while self.peek() in (' ', '\t', '\n', ';'):
            self.advance()
        self.start = self.pos

        if self.pos >= len(self.source):
            return

        if self.source.startswith('done', self.pos) and (
            self.pos + 4 >= len(self.source) or self.source[self.pos + 4] in METACHARS
        ):
            self.advance(4)
            self.emit(TkType.DONE, 'done', WdFlags.KEYWORD)
            self.in_match_arms = False
            self.cmd_pos = False
            return

        if self.peek() == '(':
            self.advance()

        pattern = self.read_raw_until(')', keep_close=False)
        body_start = self.pos

        while True:
            if self.pos >= len(self.source):
                raise LexError("This match arm is missing ';;'", Span(self.start, self.pos))
            ch = self.peek()
            if ch == ';' and self.peek(1) == ';':
                body = self.source[body_start:self.pos]
                self.advance(2)
                break
            if ch == '\\':
                self.advance(2)
            elif ch in ("'", '"'):
                self.skip_quoted(ch)
            elif ch == '(':
                self.read_balanced('(', ')')
            else:
                self.advance()

        arm = MatchArm(pattern.strip(), body.strip())
        self.emit(TkType.MATCH_ARM, self.source[self.start:self.pos], WdFlags.NONE, arm)

    # ========================================================================
    # Quoted and bracketed regions
    # ========================================================================

    def read_single_quoted(self) -> str:
        start = self.pos
        self.advance()  # opening quote
        content = ''
        while self.pos < len(self.source) and self.peek() != "'":
            content += self.advance()

        if self.pos >= len(self.source):
            raise LexError("Unterminated single-quoted string", Span(start, self.pos))

        self.advance()
        return content

    def read_double_quoted(self) -> str:
        """Content of "...", with everything except `$` references made inert"""
        start = self.pos
        self.advance()  # opening quote
        out = ''

        while self.pos < len(self.source) and self.peek() != '"':
            ch = self.peek()

            if ch == '\\':
                nxt = self.peek(1)
                self.advance(2)
                if nxt == '\n':
                    continue
                if nxt in '$`"\\':
                    out += '\\' + nxt
                else:
                    # Backslash stays literal before ordinary characters
                    out += '\\\\' + escape_quoted(nxt)
            elif ch == '$':
                nxt = self.peek(1)
                if nxt == '{':
                    self.advance()
                    out += '$' + self.read_raw_until('}')
                elif nxt == '(':
                    self.advance()
                    out += '$(' + self.read_balanced('(', ')') + ')'
                elif nxt in '@*#?$!-':
                    out += self.advance(2)
                else:
                    out += self.advance()
            elif ch == '`':
                out += '$(' + self.read_backticks() + ')'
            else:
                out += escape_quoted(self.advance())

        if self.pos >= len(self.source):
            raise LexError("Unterminated double-quoted string", Span(start, self.pos))

        self.advance()
        return out

    def read_backticks(self) -> str:
        start = self.pos
        self.advance()
        body = ''
        while self.pos < len(self.source) and self.peek() != '`':
            if self.peek() == '\\' and self.peek(1) == '`':
                self.advance()
            body += self.advance()

        if self.pos >= len(self.source):
            raise LexError("Unterminated command substitution", Span(start, self.pos))

        self.advance()
        return body

    def read_balanced(self, open_ch: str, close_ch: str) -> str:
        """Consume `open ... close` with nesting; returns the interior"""
        start = self.pos
        self.advance()  # opener
        depth = 1
        body_start = self.pos

        while self.pos < len(self.source):
            ch = self.peek()
            if ch == '\\':
                self.advance(2)
                continue
            if ch in ("'", '"'):
                self.skip_quoted(ch)
                continue
            if ch == open_ch:
                depth += 1
            elif ch == close_ch:
                depth -= 1
                if depth == 0:
                    body = self.source[body_start:self.pos]
                    self.advance()
                    return body
            self.advance()

        raise LexError(f"Missing closing '{close_ch}'", Span(start, self.pos))

    def read_raw_until(self, close_ch: str, keep_close: bool = True) -> str:
        """Consume up to and including close_ch, honouring quotes and escapes"""
        start = self.pos
        text = ''
        while self.pos < len(self.source):
            ch = self.peek()
            if ch == '\\':
                text += self.advance(2)
                continue
            if ch in ("'", '"') and close_ch != ch:
                quote_start = self.pos
                self.skip_quoted(ch)
                text += self.source[quote_start:self.pos]
                continue
            text += self.advance()
            if ch == close_ch:
                return text if keep_close else text[:-1]

        raise LexError(f"Missing closing '{close_ch}'", Span(start, self.pos))

    def skip_quoted(self, quote: str):
        start = self.pos
        self.advance()
        while self.pos < len(self.source) and self.peek() != quote:
            if quote == '"' and self.peek() == '\\':
                self.advance()
            self.advance()

        if self.pos >= len(self.source):
            raise LexError("Unterminated quoted string", Span(start, self.pos))
        self.advance()

    # ========================================================================
    # Utilities
    # ========================================================================

    def position_flags(self) -> WdFlags:
        return WdFlags.NONE if self.cmd_pos else WdFlags.IS_ARG

    def peek(self, offset: int = 0) -> str:
        """Look ahead at character"""
        idx = self.pos + offset
        if idx < len(self.source):
            return self.source[idx]
        return '\0'

    def advance(self, n: int = 1) -> str:
        """Consume n characters and return them as a string"""
        result = self.source[self.pos:self.pos + n]
        self.pos = min(self.pos + n, len(self.source))
        return result

    def skip_whitespace(self) -> bool:
        """Skip whitespace (not newlines), return True if any skipped"""
        skipped = False
        while self.peek() in (' ', '\t'):
            self.advance()
            skipped = True
        return skipped

    def skip_comment(self):
        while self.peek() not in ('\n', '\0'):
            self.advance()

    def emit(self, kind: TkType, text: str, flags: WdFlags = WdFlags.NONE, payload: TkPayload = None):
        self.tokens.append(Tk(kind, text, Span(self.start, self.pos), flags, payload))


def first_raw_prefix(segments: List[Tuple[str, str]]) -> str:
    """Leading run of unquoted text in a word"""
    prefix = ''
    for kind, raw in segments:
        if kind != 'plain':
            break
        prefix += raw
    return prefix


class LexError(InvalidSyntax):
    """Lexical analysis error"""
    pass

# ============================================================================
# Testing
# ============================================================================

def tokenize(source: str) -> List[Tk]:
    """Convenience function to tokenize source"""
    return Lexer(source).tokenize()


def word_tokens(source: str) -> List[Tk]:
    """Tokens without the SOI/EOI sentinels"""
    return [tk for tk in tokenize(source) if tk.kind not in (TkType.SOI, TkType.EOI)]
