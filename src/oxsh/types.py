from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, List, Optional, Tuple

from typing_extensions import Protocol

from .token_types import Span

if TYPE_CHECKING:
    from .tree import Node

# ---------- Collaborators ----------

class ShellState(Protocol):
    """Read access to the shell's variables, aliases, functions and options."""

    def get_variable(self, name: str) -> str: ...
    def get_array_element(self, name: str, index: int) -> str: ...
    def get_positional_params(self) -> str: ...
    def get_alias(self, name: str) -> Optional[str]: ...
    def get_function_body(self, name: str) -> Optional[str]: ...
    def get_shell_option(self, name: str) -> Optional[object]: ...


class Executor(Protocol):
    """Runs a Subshell node, writing its standard output into ``stdout``."""

    def run_subshell(self, node: Node, stdout: BinaryIO) -> int: ...

# ---------- Errors ----------

WINDOW_WIDTH = 40
WINDOW_LEAD = 10


class ShellError(Exception):
    header = "Error"
    fatal = False

    def __init__(self, message: str, span: Optional[Span] = None):
        super().__init__(message)
        self.message = message
        self.span = span if span is not None else Span(0, 0)

    def title(self) -> str:
        return f"{self.header}: {self.message}"

    def render(self, source: str) -> str:
        """Header line followed by line:col, a source window and a pointer."""
        line, col = line_col(source, self.span.start)
        window, offset = error_window(source, line, col)
        pointer = error_pointer(self.span.width(), offset)
        return "\n".join([self.title(), f"{line + 1};{col + 1}:", window, pointer])


class CommandNotFound(ShellError):
    header = "Command not found"


class InvalidSyntax(ShellError):
    header = "Syntax Error"


class ParsingError(ShellError):
    header = "Parsing error"


class ExecFailed(ShellError):
    def __init__(self, message: str, code: int, span: Optional[Span] = None):
        super().__init__(message, span)
        self.code = code

    @property
    def header(self) -> str:  # type: ignore[override]
        return f"Execution failed (exit code {self.code})"


class IoError(ShellError):
    header = "I/O Error"
    fatal = True


class InternalError(ShellError):
    header = "Internal Error"

# ---------- Error context rendering ----------

def line_col(source: str, offset: int) -> Tuple[int, int]:
    """Zero-based (line, column) of a character offset."""
    line = 0
    col = 0

    for ch in source[:offset]:
        if ch == '\n':
            line += 1
            col = 0
        else:
            col += 1

    return line, col


def error_window(source: str, line: int, col: int) -> Tuple[str, int]:
    """Slice of the offending line around ``col`` and the column's offset in it."""
    lines: List[str] = source.splitlines()
    if not lines:
        return "", 0
    if line >= len(lines):
        # Errors at end of input after a trailing newline point past the last line
        line = len(lines) - 1
        col = len(lines[line])

    offending = lines[line]
    start = col - WINDOW_LEAD if col > WINDOW_LEAD else 0
    end = min(start + WINDOW_WIDTH, len(offending))

    return offending[start:end], col - start


def error_pointer(width: int, offset: int) -> str:
    visible = min(width, WINDOW_WIDTH - offset)
    pointer = '^'
    if visible > 1:
        pointer += '~' * (visible - 2) + '^'

    return ' ' * offset + pointer
