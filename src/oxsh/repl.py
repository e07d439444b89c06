"""Interactive REPL for oxsh, powered by prompt_toolkit.

Each submitted line is parsed and its tree printed. With `/expand on`
every command's arguments are also expanded against the session state.
"""

from __future__ import annotations

import re
import sys
from typing import Callable, Dict, Optional

from prompt_toolkit import ANSI, PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.shortcuts import clear

from .expand import Expander, expand_prompt
from .parser_rd import parse_source
from .repl_highlight import OxshLexer
from .runner import executable_leaves, render_argv, report
from .runtime import ShellEnv, SubprocessExecutor
from .types import ShellError
from .utils import configure_logging, debug_py_trace_enabled, set_debug_py_trace

# Pasted text often carries zero-width joiners, BOMs and CRs.
_INVISIBLE_RE = re.compile("[\u200b\u200c\u200d\ufeff\u00a0\r]")

_ON = ("on", "1", "true", "yes")
_OFF = ("off", "0", "false", "no")

# Error messages that mean the input stops mid-construct.
_INCOMPLETE_RE = re.compile(
    r'^(Unterminated|Missing closing|This .* is missing ("fi"|"do"|"done"|a right operand))'
)


class Session:
    """Mutable REPL state so slash commands can swap pieces out."""

    def __init__(self) -> None:
        self.shell = ShellEnv()
        self.expand = False


def needs_more(text: str) -> bool:
    """Return True if *text* is an incomplete construct that continues on the next line."""
    if text.rstrip().endswith("\\"):
        return True

    try:
        parse_source(text, ShellEnv(inherit_env=False))
    except ShellError as exc:
        return bool(_INCOMPLETE_RE.match(exc.message))

    return False


def _toggle(arg: str, current: bool) -> bool | None:
    """Resolve an [on|off] argument; empty toggles. None means bad usage."""
    lowered = arg.lower()
    if lowered in _ON:
        return True
    if lowered in _OFF:
        return False
    if lowered == "":
        return not current
    return None


def _switch(name: str, label: str, arg: str, current: bool) -> Optional[bool]:
    enabled = _toggle(arg, current)
    if enabled is None:
        print(f"Usage: {name} [on|off]", file=sys.stderr)
    else:
        print(f"{label}: {'on' if enabled else 'off'}")
    return enabled


def _cmd_clear(arg: str, session: Session) -> None:
    clear()


def _cmd_expand(arg: str, session: Session) -> None:
    enabled = _switch("/expand", "Expansion", arg, session.expand)
    if enabled is not None:
        session.expand = enabled


def _cmd_py_traceback(arg: str, session: Session) -> None:
    enabled = _switch("/py-traceback", "Python traceback", arg, debug_py_trace_enabled())
    if enabled is not None:
        set_debug_py_trace(enabled)


def _cmd_reset(arg: str, session: Session) -> None:
    session.shell = ShellEnv()
    print("Shell state cleared.")


SlashHandler = Callable[[str, Session], None]

# name => (handler, help shown in the completion menu)
_SLASH_CMDS: Dict[str, tuple[SlashHandler, str]] = {
    "/clear": (_cmd_clear, "clear the screen"),
    "/expand": (_cmd_expand, "[on|off] print expanded argv after each tree"),
    "/py-traceback": (_cmd_py_traceback, "[on|off] show Python tracebacks with errors"),
    "/reset": (_cmd_reset, "drop variables, aliases and functions"),
}


def _handle_slash(line: str, session: Session) -> bool:
    """Run a slash command; False when the line is shell input instead."""
    name, _, arg = line.strip().partition(" ")
    if not name.startswith("/"):
        return False

    entry = _SLASH_CMDS.get(name)
    if entry is None:
        print(f"Unknown command: {name}", file=sys.stderr)
    else:
        entry[0](arg.strip(), session)
    return True


def _slash_completer() -> WordCompleter:
    return WordCompleter(
        list(_SLASH_CMDS),
        meta_dict={name: hint for name, (_, hint) in _SLASH_CMDS.items()},
        sentence=True,
    )


def _normalize(text: str) -> str:
    return _INVISIBLE_RE.sub("", text)


def evaluate(text: str, session: Session) -> None:
    state = parse_source(text, session.shell)
    print(state.ast.pretty(), end="")

    if not session.expand:
        return

    expander = Expander(session.shell, SubprocessExecutor())
    for node in executable_leaves(state.ast):
        expander.expand_arguments(node)
        print(render_argv(node))


def _key_bindings() -> KeyBindings:
    bindings = KeyBindings()

    @bindings.add("enter")
    def _submit_or_continue(event):
        buf = event.app.current_buffer
        # Slash commands are always one line
        if buf.text.startswith("/") or not needs_more(buf.text):
            buf.validate_and_handle()
        else:
            buf.insert_text("\n")

    @bindings.add("backspace")
    def _erase(event):
        buf = event.app.current_buffer
        buf.delete_before_cursor(1)
        if buf.text.startswith("/"):
            buf.start_completion()

    return bindings


def _read(prompt_session: PromptSession, session: Session) -> Optional[str]:
    """One submission from the user; None on end of input."""
    while True:
        try:
            return _normalize(prompt_session.prompt(ANSI(expand_prompt(session.shell))))
        except KeyboardInterrupt:
            print("^C")
        except EOFError:
            print()
            return None


def repl() -> None:
    """Interactive read-parse-print loop with prompt_toolkit."""
    session = Session()
    prompt_session: PromptSession[str] = PromptSession(
        history=InMemoryHistory(),
        lexer=OxshLexer(),
        completer=_slash_completer(),
        complete_while_typing=True,
        key_bindings=_key_bindings(),
        multiline=True,
        prompt_continuation="> ",
    )

    print("oxsh repl - Ctrl-D to exit, / for commands")

    while (text := _read(prompt_session, session)) is not None:
        if not text.strip() or _handle_slash(text, session):
            continue

        try:
            evaluate(text, session)
        except ShellError as exc:
            report(exc, text)
            if exc.fatal:
                sys.exit(1)


def main() -> None:
    configure_logging()
    repl()


if __name__ == "__main__":
    main()
