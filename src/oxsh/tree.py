"""Syntax tree model for the oxsh parser.

Every node carries a variant (a closed set of dataclasses matched with
``match``/``case``), the source span it covers, the token that introduced it,
a flag set and an ordered list of redirection tokens. ``to_lark`` converts a
tree into a ``lark.Tree`` so it can be pretty-printed and compared.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from typing import Iterator, List, Optional, Union

from lark import Token, Tree
from typing_extensions import TypeAlias

from .token_types import AssOp, Span, Tk, TkType


class NdFlags(Flag):
    NONE = 0
    VALID_OPERAND = auto()
    IS_OP = auto()
    COMBINE_OUT = auto()  # stderr joins stdout (|&)
    BACKGROUND = auto()
    IN_PIPE = auto()
    FUNCTION = auto()
    IN_CMD_SUB = auto()
    FOR_BODY = auto()


class ChainOp(Enum):
    AND = "&&"
    OR = "||"


# ============================================================================
# Variants
# ============================================================================

@dataclass
class Root:
    deck: List[Node] = field(default_factory=list)


@dataclass
class Conditional:
    condition: Node
    body: Node


@dataclass
class If:
    cond_blocks: List[Conditional]
    else_block: Optional[Node] = None


@dataclass
class For:
    loop_vars: List[Tk]
    loop_arr: List[Tk]
    body: Node


@dataclass
class Loop:
    condition: Node
    body: Node
    until: bool = False


@dataclass
class Match:
    input: Tk
    arms: List[Tk]


@dataclass
class Select:
    var: Tk
    options: List[Tk]
    body: Node


@dataclass
class PipelineBranch:
    left: Node
    right: Node
    both: bool = False


@dataclass
class Pipeline:
    commands: List[Node]
    both: bool = False


@dataclass
class ChainTree:
    left: Node
    right: Node
    op: ChainOp


@dataclass
class Chain:
    commands: List[Node]
    op: ChainOp


@dataclass
class Subshell:
    body: str
    argv: List[Tk] = field(default_factory=list)


@dataclass
class CommandSub:
    body: str
    argv: List[Tk] = field(default_factory=list)


@dataclass
class FuncDef:
    name: str
    body: str


@dataclass
class Assignment:
    name: str
    value: Optional[str]
    op: AssOp = AssOp.SET
    command: Optional[Node] = None


@dataclass
class Command:
    argv: List[Tk]


@dataclass
class Builtin:
    argv: List[Tk]


@dataclass
class Function:
    body: str
    argv: List[Tk] = field(default_factory=list)


@dataclass
class Redirection:
    redir: Tk


@dataclass
class And:
    pass


@dataclass
class Or:
    pass


@dataclass
class Pipe:
    pass


@dataclass
class PipeBoth:
    pass


@dataclass
class Cmdsep:
    pass


@dataclass
class NullNode:
    pass


NdType: TypeAlias = Union[
    Root, If, For, Loop, Match, Select, PipelineBranch, Pipeline, ChainTree,
    Chain, Subshell, CommandSub, FuncDef, Assignment, Command, Builtin,
    Function, Redirection, And, Or, Pipe, PipeBoth, Cmdsep, NullNode,
]

# Variants whose argv is expanded and handed to the executor
EXECUTABLE = (Command, Builtin, Function, Subshell)


@dataclass
class Node:
    variant: NdType
    span: Span = field(default_factory=lambda: Span(0, 0))
    command: Optional[Tk] = None
    flags: NdFlags = NdFlags.NONE
    redirs: List[Tk] = field(default_factory=list)

    def has(self, flag: NdFlags) -> bool:
        return bool(self.flags & flag)

    def label(self) -> str:
        return _snake(type(self.variant).__name__)

    def children(self) -> List[Node]:
        """Direct child nodes, in source order."""
        match self.variant:
            case Root(deck=deck):
                return list(deck)
            case If(cond_blocks=blocks, else_block=else_block):
                out: List[Node] = []
                for block in blocks:
                    out.extend((block.condition, block.body))
                if else_block is not None:
                    out.append(else_block)
                return out
            case Loop(condition=cond, body=body):
                return [cond, body]
            case For(body=body) | Select(body=body):
                return [body]
            case PipelineBranch(left=left, right=right) | ChainTree(left=left, right=right):
                return [left, right]
            case Pipeline(commands=cmds) | Chain(commands=cmds):
                return list(cmds)
            case Assignment(command=cmd) if cmd is not None:
                return [cmd]
            case _:
                return []

    def walk(self) -> Iterator[Node]:
        """Pre-order traversal including this node."""
        yield self
        for child in self.children():
            yield from child.walk()

    def pretty(self, indent: str = '  ') -> str:
        return to_lark(self).pretty(indent)


@dataclass
class ParseState:
    input: str
    tokens: List[Tk] = field(default_factory=list)
    ast: Optional[Node] = None


def argv_of(node: Node) -> Optional[List[Tk]]:
    match node.variant:
        case Command(argv=argv) | Builtin(argv=argv) | Function(argv=argv) | Subshell(argv=argv) | CommandSub(argv=argv):
            return argv
        case _:
            return None


def is_executable(node: Node) -> bool:
    return isinstance(node.variant, EXECUTABLE)


# ============================================================================
# lark rendering
# ============================================================================

def _snake(name: str) -> str:
    out = []
    for i, ch in enumerate(name):
        if ch.isupper() and i:
            out.append('_')
        out.append(ch.lower())
    return ''.join(out)


def _tok(tk: Tk) -> Token:
    return Token(tk.kind.name, tk.text, start_pos=tk.span.start, end_pos=tk.span.end)


def to_lark(node: Node) -> Tree:
    """Convert an oxsh node into a lark Tree with the same shape."""
    children: List[Union[Tree, Token]] = []

    match node.variant:
        case Root(deck=deck):
            children = [to_lark(n) for n in deck]
        case If(cond_blocks=blocks, else_block=else_block):
            for block in blocks:
                children.append(Tree('cond', [to_lark(block.condition), to_lark(block.body)]))
            if else_block is not None:
                children.append(Tree('else', [to_lark(else_block)]))
        case For(loop_vars=loop_vars, loop_arr=loop_arr, body=body):
            children = [
                Tree('vars', [_tok(t) for t in loop_vars]),
                Tree('array', [_tok(t) for t in loop_arr]),
                to_lark(body),
            ]
        case Loop(condition=cond, body=body, until=until):
            children = [Token('KIND', 'until' if until else 'while'), to_lark(cond), to_lark(body)]
        case Match(input=subject, arms=arms):
            children = [_tok(subject)] + [_tok(a) for a in arms]
        case Select(var=var, options=options, body=body):
            children = [_tok(var), Tree('options', [_tok(t) for t in options]), to_lark(body)]
        case PipelineBranch(left=left, right=right):
            children = [to_lark(left), to_lark(right)]
        case Pipeline(commands=cmds, both=both):
            children = [to_lark(c) for c in cmds]
            if both:
                children.insert(0, Token('BOTH', '|&'))
        case ChainTree(left=left, right=right, op=op):
            children = [Token('OP', op.value), to_lark(left), to_lark(right)]
        case Chain(commands=cmds, op=op):
            children = [Token('OP', op.value)] + [to_lark(c) for c in cmds]
        case Subshell(body=body, argv=argv) | CommandSub(body=body, argv=argv):
            children = [Token('BODY', body)] + [_tok(t) for t in argv]
        case FuncDef(name=name, body=body):
            children = [Token('NAME', name), Token('BODY', body)]
        case Assignment(name=name, value=value, op=op, command=cmd):
            children = [Token('NAME', name), Token('OP', op.value)]
            if value is not None:
                children.append(Token('VALUE', value))
            if cmd is not None:
                children.append(to_lark(cmd))
        case Command(argv=argv) | Builtin(argv=argv) | Function(argv=argv):
            children = [_tok(t) for t in argv]
        case Redirection(redir=redir):
            children = [Token('REDIR', _redir_text(redir))]
        case _:
            pass

    if node.redirs:
        children.append(Tree('redirs', [Token('REDIR', _redir_text(r)) for r in node.redirs]))
    if node.has(NdFlags.BACKGROUND):
        children.append(Token('BACKGROUND', '&'))

    return Tree(node.label(), children)


def _redir_text(tk: Tk) -> str:
    payload = tk.payload
    if tk.kind is TkType.REDIRECTION and payload is not None and hasattr(payload, 'render'):
        return payload.render()
    return tk.text
