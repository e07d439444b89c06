from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import threading
from typing import BinaryIO, Dict, List, Mapping, Optional, Tuple

from .token_types import Span
from .tree import Node, Subshell
from .types import InternalError, IoError
from .utils import subshell_path

logger = logging.getLogger(__name__)

SHELL_NAME = "oxsh"


class ShellEnv:
    """In-memory shell state.

    Every accessor takes the same lock, so each read or update is one
    complete transaction even when several threads share the state.
    """

    def __init__(
        self,
        variables: Optional[Mapping[str, str]] = None,
        params: Optional[List[str]] = None,
        inherit_env: bool = True,
    ):
        self._lock = threading.RLock()
        self._env: Dict[str, str] = dict(os.environ) if inherit_env else {}
        self._vars: Dict[str, str] = dict(variables or {})
        self._arrays: Dict[str, List[str]] = {}
        self._params: List[str] = list(params or [])
        self._aliases: Dict[str, str] = {}
        self._functions: Dict[str, str] = {}
        self._options: Dict[str, object] = {}
        self.last_status = 0

    # ---------- reads ----------

    def get_variable(self, name: str) -> str:
        with self._lock:
            match name:
                case "@" | "*":
                    return " ".join(self._params)
                case "#":
                    return str(len(self._params))
                case "?":
                    return str(self.last_status)
                case "$":
                    return str(os.getpid())
                case "-":
                    return "".join(sorted(k for k, v in self._options.items() if len(k) == 1 and v))
                case "0":
                    return SHELL_NAME
                case _ if name.isdigit():
                    idx = int(name) - 1
                    return self._params[idx] if idx < len(self._params) else ""
                case _:
                    if name in self._vars:
                        return self._vars[name]
                    return self._env.get(name, "")

    def get_array_element(self, name: str, index: int) -> str:
        with self._lock:
            items = self._arrays.get(name)
            if items is None:
                # A scalar reads as a one-element array
                return self.get_variable(name) if index == 0 else ""
            return items[index] if 0 <= index < len(items) else ""

    def get_positional_params(self) -> str:
        with self._lock:
            return " ".join(self._params)

    def get_alias(self, name: str) -> Optional[str]:
        with self._lock:
            return self._aliases.get(name)

    def get_function_body(self, name: str) -> Optional[str]:
        with self._lock:
            return self._functions.get(name)

    def get_shell_option(self, name: str) -> Optional[object]:
        with self._lock:
            return self._options.get(name)

    # ---------- updates ----------

    def set_variable(self, name: str, value: str) -> None:
        with self._lock:
            self._vars[name] = value

    def unset_variable(self, name: str) -> None:
        with self._lock:
            self._vars.pop(name, None)
            self._arrays.pop(name, None)

    def set_array(self, name: str, items: List[str]) -> None:
        with self._lock:
            self._arrays[name] = list(items)

    def set_params(self, params: List[str]) -> None:
        with self._lock:
            self._params = list(params)

    def set_alias(self, name: str, value: str) -> None:
        with self._lock:
            self._aliases[name] = value

    def unset_alias(self, name: str) -> None:
        with self._lock:
            self._aliases.pop(name, None)

    def set_function(self, name: str, body: str) -> None:
        with self._lock:
            self._functions[name] = body

    def set_shell_option(self, name: str, value: object) -> None:
        with self._lock:
            self._options[name] = value

    def snapshot_env(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._env)


# `#!name` up to the first blank or `;`, then the separators after it
_SHEBANG_NAME_RE = re.compile(r"#!([^\s;]*)[\s;]*")


def expand_shebang(
    body: str,
    shell_path: str,
    span: Optional[Span] = None,
    search_path: Optional[str] = None,
) -> Tuple[List[str], Optional[str]]:
    """Command line for a subshell body and the script to feed it on stdin.

    A body without `#!` runs through `shell_path -c`. `#!/path/to/interp args`
    runs that interpreter on the rest of the body; an abbreviated `#!python`
    is looked up on PATH and the remaining text is the script.
    """
    if not body.startswith("#!"):
        return [shell_path, "-c", body], None

    first, _, rest = body[2:].partition("\n")
    if "/" in first:
        return first.split(), rest

    m = _SHEBANG_NAME_RE.match(body)
    name = m.group(1)
    if not name:
        raise IoError("Subshell shebang names no interpreter", span)

    path = shutil.which(name, path=search_path)
    if path is None:
        raise IoError(f"Interpreter not found on PATH: {name}", span)
    return [path], body[m.end():]


class SubprocessExecutor:
    """Runs subshell bodies through an external POSIX shell."""

    def __init__(self, shell_path: Optional[str] = None, env: Optional[Mapping[str, str]] = None):
        self.shell_path = shell_path or subshell_path()
        self.env = dict(env) if env is not None else None

    def run_subshell(self, node: Node, stdout: BinaryIO) -> int:
        if not isinstance(node.variant, Subshell):
            raise InternalError("run_subshell expects a subshell node", node.span)

        search_path = self.env.get("PATH") if self.env is not None else None
        argv, script = expand_shebang(node.variant.body, self.shell_path, node.span, search_path)
        logger.debug("running subshell via %s", argv)
        try:
            result = subprocess.run(
                argv,
                input=script.encode() if script is not None else None,
                stdout=stdout,
                env=self.env,
                check=False,
            )
        except FileNotFoundError as exc:
            raise IoError(f"Subshell interpreter not found: {argv[0]}", node.span) from exc

        return result.returncode
