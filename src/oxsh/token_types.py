"""
Token Types for the oxsh front end

Shared between the tokenizer, parser and expansion engine to avoid
circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, Flag, auto
from typing import Optional, Union


class TkType(Enum):
    """Token kinds produced by the tokenizer"""

    # Sentinels
    SOI = auto()
    EOI = auto()

    # Words
    IDENT = auto()
    STRING = auto()
    EXPANDED = auto()  # produced by brace/glob expansion
    VARIABLE_SUB = auto()  # $name / ${name}
    COMMAND_SUB = auto()  # $(...) / `...`
    SUBSHELL = auto()  # ( ... )
    ASSIGNMENT = auto()
    FUNC_DEF = auto()
    MATCH_ARM = auto()

    # Keywords
    IF = auto()
    THEN = auto()
    ELIF = auto()
    ELSE = auto()
    FI = auto()
    FOR = auto()
    WHILE = auto()
    UNTIL = auto()
    SELECT = auto()
    MATCH = auto()
    IN = auto()
    DO = auto()
    DONE = auto()

    # Operators
    REDIRECTION = auto()
    PIPE = auto()  # |
    PIPE_BOTH = auto()  # |&
    LOGIC_AND = auto()  # &&
    LOGIC_OR = auto()  # ||
    CMDSEP = auto()  # ; or newline
    BACKGROUND = auto()  # &


class WdFlags(Flag):
    """Per-token markers"""

    NONE = 0
    IS_ARG = auto()
    KEYWORD = auto()
    BUILTIN = auto()
    FROM_VAR = auto()  # text came out of a parameter, never re-expanded
    SNG_QUOTED = auto()
    DUB_QUOTED = auto()
    IN_PAREN = auto()
    IS_OP = auto()


@dataclass(frozen=True)
class Span:
    """Half-open character range [start, end) into the source text"""

    start: int
    end: int

    @staticmethod
    def cover(first: Span, last: Span) -> Span:
        return Span(first.start, max(first.end, last.end))

    def width(self) -> int:
        return max(self.end - self.start, 0)


class RedirOp(Enum):
    INPUT = auto()  # <
    OUTPUT = auto()  # >
    APPEND = auto()  # >>


@dataclass(frozen=True)
class Redir:
    """Parsed redirection operator; file_target is filled by the parser"""

    op: RedirOp
    fd_source: int
    fd_target: Optional[int] = None
    file_target: Optional[Tk] = None
    both: bool = False  # &> / &>>

    def with_target(self, target: Tk) -> Redir:
        return replace(self, file_target=target)

    def render(self) -> str:
        if self.both:
            op = "&>>" if self.op is RedirOp.APPEND else "&>"
        else:
            op = {RedirOp.INPUT: "<", RedirOp.OUTPUT: ">", RedirOp.APPEND: ">>"}[self.op]
            default_fd = 0 if self.op is RedirOp.INPUT else 1
            if self.fd_source != default_fd:
                op = f"{self.fd_source}{op}"
        if self.fd_target is not None:
            return f"{op}&{self.fd_target}"
        if self.file_target is not None:
            return f"{op} {self.file_target.text}"
        return op


class AssOp(Enum):
    SET = "="
    ADD = "+="
    SUB = "-="
    MUL = "*="
    DIV = "/="


@dataclass(frozen=True)
class AssignmentParts:
    name: str
    value: Optional[str]
    op: AssOp = AssOp.SET


@dataclass(frozen=True)
class FuncParts:
    name: str
    body: str


@dataclass(frozen=True)
class MatchArm:
    pattern: str
    body: str


TkPayload = Union[Redir, AssignmentParts, FuncParts, MatchArm, None]


@dataclass
class Tk:
    """Token: kind, raw text, source span, flag set and optional structured payload"""

    kind: TkType
    text: str
    span: Span
    flags: WdFlags = WdFlags.NONE
    payload: TkPayload = field(default=None)

    def clone(self, **changes) -> Tk:
        return replace(self, **changes)

    def has(self, flag: WdFlags) -> bool:
        return bool(self.flags & flag)

    def __repr__(self) -> str:
        return f"Tk({self.kind.name}, {self.text!r})"


KEYWORDS = {
    'if': TkType.IF,
    'then': TkType.THEN,
    'elif': TkType.ELIF,
    'else': TkType.ELSE,
    'fi': TkType.FI,
    'for': TkType.FOR,
    'while': TkType.WHILE,
    'until': TkType.UNTIL,
    'select': TkType.SELECT,
    'match': TkType.MATCH,
    'do': TkType.DO,
    'done': TkType.DONE,
}

# Kinds that start a compound construct
OPENERS = frozenset({
    TkType.IF,
    TkType.FOR,
    TkType.UNTIL,
    TkType.WHILE,
    TkType.SELECT,
    TkType.MATCH,
})

# Kinds that can appear as a command word or argument
WORD_KINDS = frozenset({
    TkType.IDENT,
    TkType.STRING,
    TkType.EXPANDED,
    TkType.VARIABLE_SUB,
    TkType.COMMAND_SUB,
    TkType.SUBSHELL,
    TkType.ASSIGNMENT,
})

BUILTINS = frozenset({
    '.', ':', '[', 'alias', 'bg', 'break', 'cd', 'continue', 'declare',
    'echo', 'eval', 'exec', 'exit', 'export', 'expr', 'false', 'fg', 'jobs',
    'kill', 'local', 'popd', 'pushd', 'pwd', 'read', 'readonly', 'return',
    'set', 'shift', 'source', 'test', 'true', 'type', 'umask', 'unalias',
    'unset', 'wait',
})
