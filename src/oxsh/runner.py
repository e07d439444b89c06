from __future__ import annotations

import logging
import sys
import traceback
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .expand import Expander
from .parser_rd import parse_source
from .runtime import ShellEnv, SubprocessExecutor
from .token_types import Tk
from .tree import Node, ParseState, is_executable
from .types import Executor, ShellError
from .utils import configure_logging, debug_py_trace_enabled

logger = logging.getLogger(__name__)

USAGE = "usage: oxsh-parse [--expand] [--no-glob] [-c COMMAND | SCRIPT [ARGS...] | -]"


def executable_leaves(ast: Node) -> List[Node]:
    return [node for node in ast.walk() if is_executable(node)]


def expand_leaves(ast: Node, expander: Expander, glob_enabled: bool = True) -> List[Tuple[Node, List[Tk]]]:
    """Expand the argv of every command in the tree, in source order."""
    return [(node, expander.expand_arguments(node, glob_enabled)) for node in executable_leaves(ast)]


def run(
    src: str,
    shell: Optional[ShellEnv] = None,
    expand: bool = False,
    glob_enabled: bool = True,
    executor: Optional[Executor] = None,
) -> ParseState:
    """Parse src and optionally expand every command's arguments."""
    shell = shell if shell is not None else ShellEnv()
    state = parse_source(src, shell)

    if expand and state.ast is not None:
        expander = Expander(shell, executor if executor is not None else SubprocessExecutor())
        for node, argv in expand_leaves(state.ast, expander, glob_enabled):
            logger.debug("%s argv %s", node.label(), [tk.text for tk in argv])

    return state


def render_argv(node: Node) -> str:
    argv = getattr(node.variant, 'argv', [])
    return f"{node.label()}: " + " ".join(repr(tk.text) for tk in argv)


def _load_source(arg: Optional[str]) -> str:
    """
    Resolve CLI input into source text.
    - None or "-" => read stdin.
    - Otherwise the argument names a script file.
    """

    if arg is None or arg == "-":
        data = sys.stdin.read()
        if not data:
            raise SystemExit("No input provided on stdin")
        return data

    candidate = Path(arg)
    if not candidate.is_file():
        raise SystemExit(f"No such script: {arg}")

    return candidate.read_text(encoding="utf-8")


def report(exc: ShellError, source: str) -> None:
    print(exc.render(source), file=sys.stderr)
    if debug_py_trace_enabled():
        print("\nPython traceback:", file=sys.stderr)
        print("".join(traceback.format_tb(exc.__traceback__)), file=sys.stderr, end="")


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()

    expand = False
    glob_enabled = True
    command: Optional[str] = None
    script: Optional[str] = None
    params: List[str] = []
    it = iter(sys.argv[1:] if argv is None else argv)

    for token in it:
        if script is not None or command is not None:
            params.append(token)
            continue

        if token == "--expand":
            expand = True
            continue

        if token == "--no-glob":
            glob_enabled = False
            continue

        if token in ("-h", "--help"):
            print(USAGE)
            return 0

        if token == "-c":
            try:
                command = next(it)
            except StopIteration:
                raise SystemExit("-c flag requires a command string") from None
            continue

        if token.startswith("--"):
            raise SystemExit(f"Unexpected argument: {token}\n{USAGE}")

        script = token

    source = command if command is not None else _load_source(script)
    shell = ShellEnv(params=params)

    try:
        state = run(source, shell, expand=expand, glob_enabled=glob_enabled)
    except ShellError as exc:
        report(exc, source)
        return 1

    print(state.ast.pretty(), end="")
    if expand:
        for node in executable_leaves(state.ast):
            print(render_argv(node))
    return 0


if __name__ == "__main__":
    sys.exit(main())
