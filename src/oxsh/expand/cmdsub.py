from __future__ import annotations

import logging
import tempfile

from ..token_types import TkType, Tk, WdFlags
from ..tree import NdFlags, Node, Subshell
from ..types import ExecFailed, Executor, IoError
from .common import escape_literal

logger = logging.getLogger(__name__)


def expand_cmd_sub(tk: Tk, executor: Executor) -> Tk:
    """Run a command substitution and return its output as one token.

    Output is captured in an anonymous temporary file.
    """
    node = Node(
        Subshell(tk.text),
        tk.span,
        command=tk,
        flags=NdFlags.VALID_OPERAND | NdFlags.IN_CMD_SUB,
    )

    try:
        with tempfile.TemporaryFile() as out:
            code = executor.run_subshell(node, out)
            out.seek(0)
            data = out.read()
    except OSError as e:
        raise IoError(f"Command substitution could not capture output: {e}", tk.span) from e

    if code != 0:
        raise ExecFailed(f"Command substitution `{tk.text}` failed", code, tk.span)

    text = data.decode('utf-8', errors='replace').rstrip()
    logger.debug("command substitution %r -> %r", tk.text, text)

    quoted = tk.has(WdFlags.DUB_QUOTED)
    kind = TkType.STRING if quoted else TkType.IDENT
    # Only field splitting still applies to the output
    return Tk(kind, escape_literal(text, whitespace=False), tk.span, tk.flags | WdFlags.FROM_VAR)
