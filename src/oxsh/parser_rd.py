"""
Recursive Descent Parser for oxsh

Parsing happens in two phases over a DescentContext:
1. parse_linear: walk the token queue and hand each statement to a builder
   (command, assignment, function definition, redirection, if/loop/for/
   select/match). Operators become marker nodes in the node buffer.
2. join_at_operators: three passes over the node buffer that attach
   redirections to their commands, fold `|`/`|&` into pipelines and fold
   `&&`/`||` into chains.

Redirections written after a compound construct are finally pushed down to
the statements inside it (propagate_redirections).
"""

from __future__ import annotations

import logging
from enum import Enum, auto
from typing import List, Optional, Sequence

from .descent import DescentContext, Item
from .lexer_rd import tokenize
from .token_types import (
    BUILTINS,
    OPENERS,
    Redir,
    RedirOp,
    Span,
    Tk,
    TkType,
    WdFlags,
)
from .tree import (
    And,
    Assignment,
    Builtin,
    Chain,
    ChainOp,
    ChainTree,
    Cmdsep,
    Command,
    CommandSub,
    Conditional,
    For,
    FuncDef,
    Function,
    If,
    Loop,
    Match,
    NdFlags,
    Node,
    Or,
    ParseState,
    Pipe,
    PipeBoth,
    Pipeline,
    PipelineBranch,
    Redirection,
    Root,
    Select,
    Subshell,
)
from .types import InternalError, InvalidSyntax, ParsingError, ShellState

logger = logging.getLogger(__name__)

# Tokens that end a simple command
STATEMENT_END = frozenset({
    TkType.CMDSEP,
    TkType.LOGIC_AND,
    TkType.LOGIC_OR,
    TkType.PIPE,
    TkType.PIPE_BOTH,
    TkType.BACKGROUND,
    TkType.EOI,
})

# Tokens that can be collected into a command's argv
ARG_KINDS = frozenset({
    TkType.IDENT,
    TkType.STRING,
    TkType.EXPANDED,
    TkType.VARIABLE_SUB,
    TkType.COMMAND_SUB,
    TkType.ASSIGNMENT,
})

# Tokens that can start a command
COMMAND_START = ARG_KINDS - {TkType.ASSIGNMENT} | {TkType.SUBSHELL}

# Tokens accepted as a redirection's file target
FILE_TARGETS = frozenset({
    TkType.IDENT,
    TkType.STRING,
    TkType.EXPANDED,
    TkType.VARIABLE_SUB,
    TkType.COMMAND_SUB,
})

IF_CLOSERS = frozenset({TkType.THEN, TkType.ELIF, TkType.ELSE, TkType.FI})
LOOP_CLOSERS = frozenset({TkType.DO, TkType.DONE})


class Phase(Enum):
    CONDITION = auto()
    BODY = auto()
    VARS = auto()
    ARRAY = auto()


class IfContext(Enum):
    IF = auto()
    THEN = auto()
    ELIF = auto()
    ELSE = auto()


def has_content(items: Sequence[Item]) -> bool:
    """True if the items hold anything besides command separators."""
    return any(not (isinstance(it, Tk) and it.kind is TkType.CMDSEP) for it in items)


def compute_span(items: Sequence[Item], fallback: Optional[Span] = None) -> Span:
    if not items:
        return fallback if fallback is not None else Span(0, 0)
    return Span(items[0].span.start, max(it.span.end for it in items))


def marker(variant, tk: Tk) -> Node:
    return Node(variant, tk.span, command=tk, flags=NdFlags.IS_OP)


class Parser:
    """
    Recursive descent parser for oxsh.

    Compound builders consume their whole construct from the context and
    return the finished node. Statements nested inside a construct are
    parsed with a single-statement call and kept as ready-made nodes in the
    construct's item list, which is sub-parsed once the construct closes.
    """

    def __init__(self, shell: Optional[ShellState] = None):
        self.shell = shell

    def parse(self, state: ParseState) -> ParseState:
        ctx = DescentContext(state.tokens)
        state.ast = self.get_tree(ctx, Span(0, len(state.input)))
        state.tokens = [tk for tk in ctx.tokens if isinstance(tk, Tk)]
        return state

    def get_tree(self, ctx: DescentContext, span: Span) -> Node:
        self.parse_linear(ctx)
        root = Node(Root(ctx.take_nodes()), span)
        return propagate_redirections(root)

    # ========================================================================
    # Phase 1
    # ========================================================================

    def parse_linear(self, ctx: DescentContext, once: bool = False) -> DescentContext:
        """Dispatch statements to builders until the queue runs out.

        With once=True, stop after the first statement builder and skip
        operator joining; used for constructs nested inside other builders.
        """
        while (tk := ctx.next_token()) is not None:
            if isinstance(tk, Node):
                ctx.attach_node(tk)
                continue

            match tk.kind:
                case TkType.SOI:
                    continue
                case TkType.EOI:
                    break
                case TkType.IF:
                    ctx.attach_node(self.build_if(ctx, tk))
                case TkType.WHILE | TkType.UNTIL:
                    ctx.attach_node(self.build_loop(ctx, tk))
                case TkType.FOR:
                    ctx.attach_node(self.build_for(ctx, tk))
                case TkType.SELECT:
                    ctx.attach_node(self.build_select(ctx, tk))
                case TkType.MATCH:
                    ctx.attach_node(self.build_match(ctx, tk))
                case kind if kind in COMMAND_START:
                    ctx.push_front(tk)
                    ctx.attach_node(self.build_command(ctx))
                case TkType.ASSIGNMENT:
                    ctx.attach_node(self.build_assignment(ctx, tk))
                case TkType.FUNC_DEF:
                    ctx.attach_node(self.build_func_def(tk))
                case TkType.REDIRECTION:
                    ctx.attach_node(self.build_redirection(ctx, tk))
                    continue
                case TkType.PIPE:
                    ctx.attach_node(marker(Pipe(), tk))
                    continue
                case TkType.PIPE_BOTH:
                    ctx.attach_node(marker(PipeBoth(), tk))
                    continue
                case TkType.LOGIC_AND:
                    ctx.attach_node(marker(And(), tk))
                    continue
                case TkType.LOGIC_OR:
                    ctx.attach_node(marker(Or(), tk))
                    continue
                case TkType.CMDSEP:
                    ctx.attach_node(marker(Cmdsep(), tk))
                    continue
                case TkType.BACKGROUND:
                    self.mark_background(ctx, tk)
                    continue
                case kind if kind in IF_CLOSERS:
                    raise ParsingError(f"Found `{tk.text}` outside of if context", tk.span)
                case kind if kind in LOOP_CLOSERS:
                    raise ParsingError(f"Found `{tk.text}` outside of loop context", tk.span)
                case _:
                    raise InvalidSyntax(f"Unexpected `{tk.text}`", tk.span)

            logger.debug("built %s at %d..%d", ctx.back_node().label(), ctx.start, ctx.end)
            if once:
                return ctx

        if not once:
            join_at_operators(ctx)
        return ctx

    def parse_items(self, items: Sequence[Item], span: Optional[Span] = None) -> Node:
        """Sub-parse an accumulated item list into a Root node."""
        sub = DescentContext(items)
        self.parse_linear(sub)
        return Node(Root(sub.take_nodes()), compute_span(items, span))

    def parse_nested(self, ctx: DescentContext) -> Node:
        """Parse the single statement at the front of the queue."""
        self.parse_linear(ctx, once=True)
        node = ctx.last_node()
        if node is None:
            raise InternalError("Nested construct produced no node", ctx.mark_span())
        return node

    def mark_background(self, ctx: DescentContext, tk: Tk):
        """Flag the statement before `&` and end it with a separator."""
        # Redirections held back from the command sit between it and the `&`
        target = next((n for n in reversed(ctx.root) if not isinstance(n.variant, Redirection)), None)
        if target is None or not target.has(NdFlags.VALID_OPERAND):
            raise InvalidSyntax("Found a background operator with no command to run", tk.span)
        target.flags |= NdFlags.BACKGROUND
        target.span = Span.cover(target.span, tk.span)
        ctx.attach_node(marker(Cmdsep(), tk))

    # ========================================================================
    # Simple statements
    # ========================================================================

    def build_command(self, ctx: DescentContext) -> Node:
        first = ctx.next_token()
        if not isinstance(first, Tk) or first.kind not in COMMAND_START:
            raise InternalError("build_command called without a command word", ctx.mark_span())

        argv: List[Tk] = []
        held: List[Tk] = []
        end = first.span.end

        if first.kind is not TkType.SUBSHELL:
            argv.append(first)

        while (tk := ctx.next_token()) is not None:
            if isinstance(tk, Node):
                ctx.push_front(tk)
                break

            if tk.kind in ARG_KINDS:
                argv.append(tk)
                end = tk.span.end
            elif tk.kind is TkType.REDIRECTION:
                tk = self.redirection_with_target(ctx, tk)
                held.append(tk)
                end = tk.span.end
            else:
                ctx.push_front(tk)
                break

        # Held redirections follow the command; the join pass attaches them
        ctx.push_front_all(held)

        flags = NdFlags.VALID_OPERAND

        name = first.text
        match first.kind:
            case TkType.SUBSHELL:
                variant = Subshell(first.text, argv)
            case TkType.COMMAND_SUB:
                variant = CommandSub(first.text, argv)
            case _ if name in BUILTINS or name.startswith('[ '):
                variant = Builtin(argv)
            case _ if self.shell is not None and (body := self.shell.get_function_body(name)) is not None:
                variant = Function(body, argv)
                flags |= NdFlags.FUNCTION
            case _:
                variant = Command(argv)

        return Node(variant, Span(first.span.start, end), command=first, flags=flags)

    def redirection_with_target(self, ctx: DescentContext, tk: Tk) -> Tk:
        redir = tk.payload
        if not isinstance(redir, Redir):
            raise InternalError("Redirection token without a redirection payload", tk.span)

        if redir.fd_target is not None or redir.file_target is not None:
            return tk

        target = ctx.next_token()
        if not isinstance(target, Tk) or target.kind not in FILE_TARGETS:
            raise InvalidSyntax("Did not find an output for this redirection operator", tk.span)

        return tk.clone(payload=redir.with_target(target), span=Span.cover(tk.span, target.span))

    def build_redirection(self, ctx: DescentContext, tk: Tk) -> Node:
        tk = self.redirection_with_target(ctx, tk)
        return Node(Redirection(tk), tk.span, command=tk, flags=NdFlags.IS_OP)

    def build_assignment(self, ctx: DescentContext, tk: Tk) -> Node:
        parts = tk.payload
        if parts is None or not hasattr(parts, 'name'):
            raise InternalError("Assignment token without assignment parts", tk.span)

        items: List[Item] = []
        front = ctx.front_token()
        if isinstance(front, Tk) and (front.kind in ARG_KINDS or front.kind is TkType.SUBSHELL):
            while isinstance(front := ctx.front_token(), Tk) and front.kind not in STATEMENT_END:
                items.append(ctx.next_token())

        command: Optional[Node] = None
        span = tk.span
        if items:
            head = items[0]
            items[0] = head.clone(flags=head.flags & ~WdFlags.IS_ARG)
            command = self.parse_items(items)
            command.command = items[0]
            span = Span.cover(tk.span, command.span)

        variant = Assignment(parts.name, parts.value, parts.op, command)
        return Node(variant, span, command=tk, flags=NdFlags.VALID_OPERAND)

    def build_func_def(self, tk: Tk) -> Node:
        parts = tk.payload
        if parts is None or not hasattr(parts, 'body'):
            raise InternalError("Function definition token without a body", tk.span)
        return Node(FuncDef(parts.name, parts.body.strip()), tk.span, command=tk)

    # ========================================================================
    # Compound statements
    # ========================================================================

    def build_if(self, ctx: DescentContext, if_tk: Tk) -> Node:
        blocks: List[Conditional] = []
        else_block: Optional[Node] = None
        cond: List[Item] = []
        body: List[Item] = []
        else_items: List[Item] = []
        context = IfContext.IF
        closed = False

        while (tk := ctx.next_token()) is not None:
            if context in (IfContext.IF, IfContext.ELIF):
                current = cond
            elif context is IfContext.THEN:
                current = body
            else:
                current = else_items

            if isinstance(tk, Node):
                current.append(tk)
                continue

            match tk.kind:
                case kind if kind in OPENERS:
                    ctx.push_front(tk)
                    current.append(self.parse_nested(ctx))
                case TkType.THEN:
                    if context not in (IfContext.IF, IfContext.ELIF):
                        raise ParsingError("Found `then` outside of an if condition", tk.span)
                    if not has_content(cond):
                        raise ParsingError("Did not find a condition for this `then` block", tk.span)
                    context = IfContext.THEN
                case TkType.ELIF | TkType.ELSE:
                    if context is not IfContext.THEN:
                        raise ParsingError(f"Found `{tk.text}` outside of a `then` block", tk.span)
                    blocks.append(self.conditional(cond, body, tk))
                    cond, body = [], []
                    context = IfContext.ELIF if tk.kind is TkType.ELIF else IfContext.ELSE
                case TkType.FI:
                    if context is IfContext.THEN:
                        blocks.append(self.conditional(cond, body, tk))
                    elif context is IfContext.ELSE:
                        if not has_content(else_items):
                            raise ParsingError("Did not find a body for this `else` block", tk.span)
                        else_block = self.parse_items(else_items, tk.span)
                    else:
                        raise ParsingError("Found `fi` before a `then` block", tk.span)
                    closed = True
                    break
                case TkType.EOI:
                    ctx.push_front(tk)
                    break
                case kind if kind in LOOP_CLOSERS:
                    raise ParsingError(f"Found `{tk.text}` outside of loop context", tk.span)
                case _:
                    current.append(tk)

        if not closed:
            raise ParsingError('This if statement is missing "fi"', Span(if_tk.span.start, ctx.mark_end()))

        span = Span(if_tk.span.start, ctx.mark_end())
        return Node(If(blocks, else_block), span, command=if_tk, flags=NdFlags.VALID_OPERAND)

    def conditional(self, cond: List[Item], body: List[Item], closer: Tk) -> Conditional:
        if not has_content(body):
            raise ParsingError("Did not find a body for this `then` block", closer.span)
        return Conditional(self.parse_items(cond), self.parse_items(body))

    def build_loop(self, ctx: DescentContext, loop_tk: Tk) -> Node:
        until = loop_tk.kind is TkType.UNTIL
        phase = Phase.CONDITION
        cond: List[Item] = []
        body: List[Item] = []
        closed = False

        while (tk := ctx.next_token()) is not None:
            current = cond if phase is Phase.CONDITION else body

            if isinstance(tk, Node):
                current.append(tk)
                continue

            match tk.kind:
                case kind if kind in OPENERS:
                    ctx.push_front(tk)
                    current.append(self.parse_nested(ctx))
                case TkType.DO:
                    if phase is Phase.BODY:
                        raise ParsingError("Found a second `do` in this loop", tk.span)
                    if not has_content(cond):
                        raise ParsingError("Did not find a condition for this loop", tk.span)
                    phase = Phase.BODY
                case TkType.DONE:
                    if phase is Phase.CONDITION:
                        raise ParsingError('This loop is missing "do"', Span(loop_tk.span.start, tk.span.end))
                    if not has_content(body):
                        raise ParsingError("Did not find a body for this loop", tk.span)
                    closed = True
                    break
                case TkType.EOI:
                    ctx.push_front(tk)
                    break
                case kind if kind in IF_CLOSERS:
                    raise ParsingError(f"Found `{tk.text}` outside of if context", tk.span)
                case _:
                    current.append(tk)

        if not closed:
            raise ParsingError('This loop is missing "done"', Span(loop_tk.span.start, ctx.mark_end()))

        span = Span(loop_tk.span.start, ctx.mark_end())
        variant = Loop(self.parse_items(cond), self.parse_items(body), until)
        return Node(variant, span, command=loop_tk, flags=NdFlags.VALID_OPERAND)

    def read_header(self, ctx: DescentContext, start_tk: Tk, what: str) -> tuple:
        """Collect `VARS in ARRAY do` for for/select, stopping after `do`."""
        phase = Phase.VARS
        loop_vars: List[Tk] = []
        loop_arr: List[Tk] = []

        while (tk := ctx.next_token()) is not None:
            if isinstance(tk, Node):
                raise ParsingError(f"Unexpected construct in this {what} header", tk.span)

            match tk.kind:
                case TkType.CMDSEP:
                    continue
                case TkType.IN if phase is Phase.VARS:
                    if not loop_vars:
                        raise ParsingError(self.header_error(what, 'vars'), tk.span)
                    phase = Phase.ARRAY
                case TkType.DO:
                    if phase is Phase.VARS:
                        if not loop_vars:
                            raise ParsingError(self.header_error(what, 'vars'), tk.span)
                        raise ParsingError(f'This {what} is missing "in"', Span(start_tk.span.start, tk.span.end))
                    if not loop_arr:
                        raise ParsingError(self.header_error(what, 'array'), tk.span)
                    return loop_vars, loop_arr
                case TkType.DONE:
                    raise ParsingError(self.header_error(what, 'vars' if phase is Phase.VARS else 'array'), tk.span)
                case TkType.EOI:
                    ctx.push_front(tk)
                    break
                case kind if kind in ARG_KINDS:
                    (loop_vars if phase is Phase.VARS else loop_arr).append(tk)
                case _:
                    raise ParsingError(f"Unexpected `{tk.text}` in this {what} header", tk.span)

        raise ParsingError(f'This {what} is missing "done"', Span(start_tk.span.start, ctx.mark_end()))

    @staticmethod
    def header_error(what: str, part: str) -> str:
        if what == 'for loop':
            return ("This for loop didn't get any loop variables" if part == 'vars'
                    else "This for loop got an empty array")
        return ("This select statement didn't get a variable" if part == 'vars'
                else "This select statement didn't get any options")

    def read_body(self, ctx: DescentContext, start_tk: Tk, what: str) -> Node:
        """Collect items up to the closing `done` and sub-parse them."""
        body: List[Item] = []

        while (tk := ctx.next_token()) is not None:
            if isinstance(tk, Node):
                body.append(tk)
                continue

            match tk.kind:
                case kind if kind in OPENERS:
                    ctx.push_front(tk)
                    body.append(self.parse_nested(ctx))
                case TkType.DONE:
                    if not has_content(body):
                        raise ParsingError(f"Did not find a body for this {what}", tk.span)
                    return self.parse_items(body)
                case TkType.DO:
                    raise ParsingError(f"Found a second `do` in this {what}", tk.span)
                case TkType.EOI:
                    ctx.push_front(tk)
                    break
                case kind if kind in IF_CLOSERS:
                    raise ParsingError(f"Found `{tk.text}` outside of if context", tk.span)
                case _:
                    body.append(tk)

        raise ParsingError(f'This {what} is missing "done"', Span(start_tk.span.start, ctx.mark_end()))

    def build_for(self, ctx: DescentContext, for_tk: Tk) -> Node:
        loop_vars, loop_arr = self.read_header(ctx, for_tk, 'for loop')
        body = self.read_body(ctx, for_tk, 'for loop')
        body.flags |= NdFlags.FOR_BODY

        span = Span(for_tk.span.start, ctx.mark_end())
        return Node(For(loop_vars, loop_arr, body), span, command=for_tk, flags=NdFlags.VALID_OPERAND)

    def build_select(self, ctx: DescentContext, select_tk: Tk) -> Node:
        names, options = self.read_header(ctx, select_tk, 'select statement')
        if len(names) > 1:
            raise ParsingError("This select statement takes exactly one variable", names[1].span)
        body = self.read_body(ctx, select_tk, 'select statement')

        span = Span(select_tk.span.start, ctx.mark_end())
        return Node(Select(names[0], options, body), span, command=select_tk, flags=NdFlags.VALID_OPERAND)

    def build_match(self, ctx: DescentContext, match_tk: Tk) -> Node:
        subject = ctx.next_token()
        if not isinstance(subject, Tk) or subject.kind not in FILE_TARGETS:
            raise ParsingError("Did not find an input pattern for this match statement", match_tk.span)

        in_tk = ctx.next_token()
        if not isinstance(in_tk, Tk) or in_tk.kind is not TkType.IN:
            raise ParsingError('This match statement is missing "in"', Span.cover(match_tk.span, subject.span))

        arms: List[Tk] = []
        while (tk := ctx.next_token()) is not None:
            if isinstance(tk, Node):
                raise ParsingError("Expected a match arm", tk.span)

            match tk.kind:
                case TkType.MATCH_ARM:
                    arms.append(tk)
                case TkType.CMDSEP:
                    continue
                case TkType.DONE:
                    span = Span(match_tk.span.start, tk.span.end)
                    return Node(Match(subject, arms), span, command=match_tk)
                case TkType.EOI:
                    ctx.push_front(tk)
                    break
                case _:
                    raise ParsingError(f"Expected a match arm, found `{tk.text}`", tk.span)

        raise ParsingError('This match statement is missing "done"', Span(match_tk.span.start, ctx.mark_end()))

# ============================================================================
# Phase 2
# ============================================================================

def join_at_operators(ctx: DescentContext) -> None:
    """Attach redirections, then build pipelines, then build chains."""
    # Redirections bind to the node directly before them
    buffer: List[Node] = []
    while (node := ctx.next_node()) is not None:
        if isinstance(node.variant, Redirection):
            if not buffer or buffer[-1].has(NdFlags.IS_OP):
                raise InvalidSyntax("Found this orphaned redirection operator", node.span)
            target = buffer[-1]
            target.redirs.append(node.variant.redir)
            target.span = Span.cover(target.span, node.span)
        else:
            buffer.append(node)
    ctx.root.extend(buffer)

    # Pipelines
    buffer = []
    while (node := ctx.next_node()) is not None:
        match node.variant:
            case Pipe() | PipeBoth():
                both = isinstance(node.variant, PipeBoth)
                left, right = take_operands(ctx, buffer, node, "pipeline")
                stage = last_stage(left)
                if both:
                    stage.flags |= NdFlags.COMBINE_OUT
                stage.flags |= NdFlags.IN_PIPE
                right.flags |= NdFlags.IN_PIPE
                branch = PipelineBranch(left, right, both)
                buffer.append(Node(branch, Span.cover(left.span, right.span), flags=NdFlags.VALID_OPERAND))
            case _:
                buffer.append(node)
    ctx.root.extend(finish_pipeline(n) for n in buffer)

    # Chains; separators are only barriers here and are dropped afterwards
    buffer = []
    while (node := ctx.next_node()) is not None:
        match node.variant:
            case And() | Or():
                op = ChainOp.AND if isinstance(node.variant, And) else ChainOp.OR
                left, right = take_operands(ctx, buffer, node, "chain")
                tree = ChainTree(left, right, op)
                buffer.append(Node(tree, Span.cover(left.span, right.span), flags=NdFlags.VALID_OPERAND))
            case _:
                buffer.append(node)
    ctx.root.extend(finish_chain(n) for n in buffer if not isinstance(n.variant, Cmdsep))


def take_operands(ctx: DescentContext, buffer: List[Node], op: Node, what: str):
    left = buffer.pop() if buffer else None
    if left is None:
        raise InvalidSyntax(f"This {what} is missing a left operand", op.span)
    right = ctx.next_node()
    if right is None:
        raise InvalidSyntax(f"This {what} is missing a right operand", op.span)
    if not left.has(NdFlags.VALID_OPERAND):
        raise InvalidSyntax(f"The left side of this {what} is invalid", left.span)
    if not right.has(NdFlags.VALID_OPERAND):
        raise InvalidSyntax(f"The right side of this {what} is invalid", right.span)
    return left, right


def last_stage(node: Node) -> Node:
    """The command a new pipe operator attaches to, past earlier stages."""
    while isinstance(node.variant, PipelineBranch):
        node = node.variant.right
    return node


def flatten_tree(left: Node, right: Node) -> List[Node]:
    """Flatten nested pipeline branches into their ordered stages."""
    out: List[Node] = []
    for side in (left, right):
        if isinstance(side.variant, PipelineBranch):
            out.extend(flatten_tree(side.variant.left, side.variant.right))
        else:
            out.append(side)
    return out


def finish_pipeline(node: Node) -> Node:
    if not isinstance(node.variant, PipelineBranch):
        return node

    commands = flatten_tree(node.variant.left, node.variant.right)
    both = any(cmd.has(NdFlags.COMBINE_OUT) for cmd in commands)
    flags = NdFlags.VALID_OPERAND
    if commands[-1].has(NdFlags.BACKGROUND):
        flags |= NdFlags.BACKGROUND
    return Node(Pipeline(commands, both), node.span, flags=flags)


def flatten_chain(node: Node, op: ChainOp) -> List[Node]:
    variant = node.variant
    if not isinstance(variant, ChainTree):
        return [node]
    if variant.op is not op:
        return [finish_chain(node)]
    return flatten_chain(variant.left, op) + flatten_chain(variant.right, op)


def finish_chain(node: Node) -> Node:
    variant = node.variant
    if not isinstance(variant, ChainTree):
        return node

    commands = flatten_chain(node, variant.op)
    return Node(Chain(commands, variant.op), node.span, flags=NdFlags.VALID_OPERAND)

# ============================================================================
# Redirection propagation
# ============================================================================

def push_redirs(node: Node, redirs: List[Tk]) -> None:
    node.redirs[0:0] = list(redirs)


def is_input(tk: Tk) -> bool:
    return isinstance(tk.payload, Redir) and tk.payload.op is RedirOp.INPUT


def propagate_redirections(node: Node) -> Node:
    """Push redirections on compound nodes down to the statements inside."""
    match node.variant:
        case Root(deck=deck):
            for child in deck:
                push_redirs(child, node.redirs)
                propagate_redirections(child)
            node.redirs = []
        case If(cond_blocks=blocks, else_block=else_block):
            cond_redirs = [r for r in node.redirs if is_input(r)]
            body_redirs = [r for r in node.redirs if not is_input(r)]
            for block in blocks:
                push_redirs(block.condition, cond_redirs)
                push_redirs(block.body, body_redirs)
                propagate_redirections(block.condition)
                propagate_redirections(block.body)
            if else_block is not None:
                push_redirs(else_block, body_redirs)
                propagate_redirections(else_block)
            node.redirs = []
        case Loop(condition=cond, body=body):
            push_redirs(cond, [r for r in node.redirs if is_input(r)])
            push_redirs(body, [r for r in node.redirs if not is_input(r)])
            propagate_redirections(cond)
            propagate_redirections(body)
            node.redirs = []
        case For(body=body) | Select(body=body):
            push_redirs(body, node.redirs)
            propagate_redirections(body)
            node.redirs = []
        case Pipeline(commands=commands):
            # Input feeds the first stage, output leaves from the last
            push_redirs(commands[0], [r for r in node.redirs if is_input(r)])
            push_redirs(commands[-1], [r for r in node.redirs if not is_input(r)])
            for cmd in commands:
                propagate_redirections(cmd)
            node.redirs = []
        case Chain(commands=commands):
            for cmd in commands:
                push_redirs(cmd, node.redirs)
                propagate_redirections(cmd)
            node.redirs = []
        case Assignment(command=command) if command is not None:
            propagate_redirections(command)
        case _:
            pass

    return node

# ============================================================================
# Entry points
# ============================================================================

def parse_tokens(source: str, tokens: List[Tk], shell: Optional[ShellState] = None) -> ParseState:
    return Parser(shell).parse(ParseState(source, list(tokens)))


def parse_source(source: str, shell: Optional[ShellState] = None) -> ParseState:
    """Tokenize and parse shell source into a ParseState."""
    return parse_tokens(source, tokenize(source), shell)


if __name__ == '__main__':
    import sys

    args = [arg for arg in sys.argv[1:] if not arg.startswith('--')]

    if len(args) > 0 and args[0] != '-':
        with open(args[0], 'r') as f:
            source = f.read()
    else:
        source = sys.stdin.read()

    try:
        state = parse_source(source)
        print(state.ast.pretty())
    except (InvalidSyntax, ParsingError, InternalError) as e:
        print(e.render(source), file=sys.stderr)
        sys.exit(1)
