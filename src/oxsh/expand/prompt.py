"""PS1 prompt expansion and C-style escape processing."""
from __future__ import annotations

from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable, Dict, List, Optional

from ..types import ShellState

SHELL_NAME = 'oxsh'

_TIME_FORMATS: Dict[str, str] = {
    'd': '%a %b %d',
    't': '%H:%M:%S',
    'T': '%I:%M:%S',
    'A': '%H:%M',
    '@': '%I:%M %p',
}

_SIMPLE_ESCAPES: Dict[str, str] = {
    'a': '\x07',
    'n': '\n',
    'r': '\r',
    '\\': '\\',
    "'": "'",
    '"': '"',
}

_ANSI_ESCAPES: Dict[str, str] = {
    'a': '\x07',
    'b': '\x08',
    't': '\t',
    'n': '\n',
    'r': '\r',
    'e': '\x1b',
    'E': '\x1b',
}


def default_ps1(shell: ShellState) -> str:
    color = '31' if shell.get_variable('UID') == '0' else '32'
    if shell.get_variable('PWD') == '/':
        path = '\\e[36m\\w\\e[0m'
    else:
        path = f'\\e[1;{color}m\\w\\e[1;36m/\\e[0m'
    return f'\\n{path}\\n\\e[{color}m{SHELL_NAME} \\$\\e[36m>\\e[0m '


def abbreviate_home(path: str, home: str) -> str:
    if home and path.startswith(home):
        return path.replace(home, '~', 1)
    return path


def prompt_cwd(shell: ShellState) -> str:
    cwd = abbreviate_home(shell.get_variable('PWD'), shell.get_variable('HOME'))

    trunc = shell.get_shell_option('trunc_prompt_path')
    try:
        trunc_len = int(trunc) if trunc is not None else 0
    except (TypeError, ValueError):
        trunc_len = 0

    if trunc_len > 0:
        parts = PurePosixPath(cwd).parts
        if len(parts) > trunc_len:
            cwd = str(PurePosixPath(*parts[-trunc_len:]))
    return cwd


def expand_prompt(
    shell: ShellState,
    ps1: Optional[str] = None,
    now: Optional[Callable[[], datetime]] = None,
) -> str:
    """Expand the escapes of PS1 (or the default prompt) into display text."""
    if ps1 is None:
        ps1 = shell.get_variable('PS1') or default_ps1(shell)
    clock = now or datetime.now

    out: List[str] = []
    i = 0
    while i < len(ps1):
        ch = ps1[i]
        i += 1
        if ch != '\\':
            out.append(ch)
            continue
        if i >= len(ps1):
            out.append('\\')
            break

        esc = ps1[i]
        i += 1

        if esc in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[esc])
        elif esc in _TIME_FORMATS:
            out.append(clock().strftime(_TIME_FORMATS[esc]))
        elif esc in '01234567':
            digits = esc
            while len(digits) < 3 and i < len(ps1) and ps1[i] in '01234567':
                digits += ps1[i]
                i += 1
            value = int(digits, 8)
            out.append(chr(value) if value < 256 else '\\' + digits)
        elif esc == 'e':
            out.append('\x1b')
            if i < len(ps1) and ps1[i] == '[':
                end = ps1.find('m', i)
                end = len(ps1) if end == -1 else end + 1
                out.append(ps1[i:end])
                i = end
        elif esc == '[':
            # Non-printing region, copied through up to the closing \]
            end = ps1.find('\\]', i)
            end = len(ps1) if end == -1 else end
            out.append(process_ansi_escapes(ps1[i:end]))
            i = end + 2
        elif esc == ']':
            pass
        elif esc == 'w':
            out.append(prompt_cwd(shell))
        elif esc == 'W':
            cwd = shell.get_variable('PWD')
            home = shell.get_variable('HOME')
            out.append('~' if home and cwd == home else PurePosixPath(cwd).name or cwd)
        elif esc == 'H':
            out.append(shell.get_variable('HOSTNAME') or 'unknown host')
        elif esc == 'h':
            out.append((shell.get_variable('HOSTNAME') or 'unknown host').split('.', 1)[0])
        elif esc == 's':
            out.append(shell.get_variable('SHELL') or SHELL_NAME)
        elif esc == 'u':
            out.append(shell.get_variable('USER') or 'unknown')
        elif esc == '$':
            out.append('#' if shell.get_variable('UID') == '0' else '$')
        else:
            out.append('\\' + esc)

    return ''.join(out)


def process_ansi_escapes(text: str) -> str:
    """Interpret `\\a \\b \\t \\n \\r \\e \\E` and `\\0NNN`; anything else stays literal."""
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        i += 1
        if ch != '\\':
            out.append(ch)
            continue
        if i >= len(text):
            out.append('\\')
            break

        esc = text[i]
        i += 1
        if esc in _ANSI_ESCAPES:
            out.append(_ANSI_ESCAPES[esc])
        elif esc == '0':
            digits = ''
            while len(digits) < 3 and i < len(text) and text[i] in '01234567':
                digits += text[i]
                i += 1
            value = int(digits, 8) if digits else 0
            out.append(chr(value) if value < 256 else '\\0' + digits)
        else:
            out.append('\\' + esc)

    return ''.join(out)
