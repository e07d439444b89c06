"""Driver for word expansion.

A token moves through a working queue. Each pass applies the first step that
matches (command substitution, tilde, parameters, braces, globs, aliases) and
either re-queues the pieces for further steps or moves them to the product
queue. Product tokens are finally field-split and have their escapes removed.
"""
from __future__ import annotations

import glob
import logging
from collections import deque
from typing import Callable, Deque, List, Optional, Set

from ..token_types import Tk, TkType, WdFlags
from ..tree import Node, Subshell, argv_of, is_executable
from ..types import Executor, InternalError, ShellState
from .braces import expand_braces, is_brace_expansion
from .cmdsub import expand_cmd_sub
from .common import (
    check_globs,
    check_home_expansion,
    consume_escapes,
    escape_literal,
    expand_home,
    find_unescaped,
    glob_pattern,
    has_unescaped,
    split_outside_quotes,
)
from .variables import expand_params, expand_var

logger = logging.getLogger(__name__)

QUOTED = WdFlags.SNG_QUOTED | WdFlags.DUB_QUOTED

GlobFn = Callable[[str], List[str]]


def default_glob(pattern: str) -> List[str]:
    return sorted(glob.glob(pattern))


class Expander:
    def __init__(
        self,
        shell: ShellState,
        executor: Optional[Executor] = None,
        glob_fn: GlobFn = default_glob,
    ):
        self.shell = shell
        self.executor = executor
        self.glob_fn = glob_fn

    def expand(self, token: Tk, glob_enabled: bool = True, aliases: bool = True) -> List[Tk]:
        """Expand one word token into zero or more literal tokens."""
        split_words = token.kind is not TkType.STRING and not token.has(WdFlags.DUB_QUOTED)
        working: Deque[Tk] = deque([token.clone()])
        product: List[Tk] = []
        expanded_aliases: Set[str] = set()

        while working:
            tk = working.popleft()

            if tk.kind is TkType.COMMAND_SUB:
                product.append(self.command_sub(tk))
                continue

            if tk.has(WdFlags.FROM_VAR):
                product.append(tk)
                continue

            if check_home_expansion(tk.text):
                tk.text = expand_home(tk.text, self.shell.get_variable('HOME'))

            if not tk.has(WdFlags.SNG_QUOTED) and has_unescaped(tk.text, '$'):
                if find_unescaped(tk.text, '$@') != -1:
                    working.extendleft(reversed(expand_params(tk, self.shell)))
                    continue
                tk.text = expand_var(tk.text, self.shell, tk.span, quoted=tk.has(WdFlags.DUB_QUOTED))

            if tk.kind is not TkType.STRING and is_brace_expansion(tk.text):
                pieces = [
                    tk.clone(kind=TkType.EXPANDED, text=expand_var(piece, self.shell, tk.span))
                    for piece in expand_braces(tk.text)
                ]
                # Pieces take the word's place ahead of anything already queued
                working.extendleft(reversed(pieces))
                continue

            if glob_enabled and not tk.flags & QUOTED and check_globs(tk.text):
                matches = self.glob_fn(glob_pattern(tk.text))
                logger.debug("glob %r matched %d paths", tk.text, len(matches))
                if matches:
                    for path in matches:
                        product.append(tk.clone(
                            kind=TkType.EXPANDED,
                            text=escape_literal(path),
                            flags=tk.flags | WdFlags.FROM_VAR,
                        ))
                    continue
                # No match: the pattern stays as literal text

            if aliases and not tk.flags & QUOTED and tk.text not in expanded_aliases:
                alias = self.shell.get_alias(tk.text)
                if alias is not None:
                    expanded_aliases.add(tk.text)
                    words = [tk.clone(kind=TkType.IDENT, text=w) for w in alias.split(' ') if w]
                    working.extendleft(reversed(words))
                    continue

            product.append(tk)

        out: List[Tk] = []
        for tk in product:
            fields = split_outside_quotes(tk.text) if split_words else [tk.text]
            out.extend(tk.clone(text=consume_escapes(f)) for f in fields)
        return out

    def command_sub(self, tk: Tk) -> Tk:
        if self.executor is None:
            raise InternalError("Command substitution needs an executor", tk.span)
        return expand_cmd_sub(tk, self.executor)

    def expand_arguments(self, node: Node, glob_enabled: bool = True) -> List[Tk]:
        """Expand a command node's argv in place and return it.

        The command name is never globbed and later arguments never go
        through alias lookup. `expr` receives its arguments unglobbed.
        """
        argv = argv_of(node)
        if argv is None or not is_executable(node):
            raise InternalError("Called expand arguments on a non-command node", node.span)

        out: List[Tk] = []
        rest = argv
        glob_args = glob_enabled
        # A subshell's argv holds only arguments; its body is the command
        if argv and not isinstance(node.variant, Subshell):
            name, rest = argv[0], argv[1:]
            glob_args = glob_enabled and name.text != 'expr'
            out.extend(self.expand(name, glob_enabled=False))
        for arg in rest:
            out.extend(self.expand(arg, glob_enabled=glob_args, aliases=False))

        out = [tk for tk in out if tk.text or tk.flags & QUOTED]
        node.variant.argv = out
        return out


def expand_token(
    token: Tk,
    shell: ShellState,
    executor: Optional[Executor] = None,
    glob_enabled: bool = True,
) -> List[Tk]:
    return Expander(shell, executor).expand(token, glob_enabled)
