"""Word expansion for the oxsh front end."""

from .prompt import expand_prompt, process_ansi_escapes
from .word import Expander, expand_token

__all__ = [
    "common",
    "variables",
    "braces",
    "cmdsub",
    "word",
    "prompt",
    "Expander",
    "expand_token",
    "expand_prompt",
    "process_ansi_escapes",
]
