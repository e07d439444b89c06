from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from oxsh.expand import Expander, expand_token
from oxsh.expand.common import (
    check_globs,
    consume_escapes,
    escape_literal,
    find_tildes,
    glob_pattern,
    split_outside_quotes,
)
from oxsh.token_types import Span, Tk, TkType, WdFlags
from oxsh.tree import Node, Redirection
from oxsh.types import InternalError
from tests.support.harness import argv_texts, expand_texts, make_shell, only, word


class GlobRecorder:
    def __init__(self, matches: List[str]):
        self.matches = matches
        self.patterns: List[str] = []

    def __call__(self, pattern: str) -> List[str]:
        self.patterns.append(pattern)
        return list(self.matches)


WORD_CASES = [
    pytest.param('"$USER"', ["alice"], id="quoted-variable"),
    pytest.param("$USER", ["alice"], id="variable"),
    pytest.param("'$USER'", ["$USER"], id="single-quoted"),
    pytest.param('"hello   world"', ["hello   world"], id="quoted-spaces"),
    pytest.param("hello\\ world", ["hello world"], id="escaped-space"),
    pytest.param("$LIST", ["a", "b", "c"], id="field-splitting"),
    pytest.param('"$LIST"', ["a b c"], id="quoted-no-splitting"),
    pytest.param("$MISSING", [], id="unset-vanishes"),
    pytest.param('"$MISSING"', [""], id="quoted-empty-kept"),
    pytest.param("$QUOTED", ["two words", "x"], id="quotes-in-value"),
    pytest.param("pre{a,b}", ["prea", "preb"], id="braces"),
    pytest.param("$USER{1,2}", ["alice1", "alice2"], id="variable-then-braces"),
    pytest.param('"{a,b}"', ["{a,b}"], id="quoted-braces"),
    pytest.param("~", ["/home/alice"], id="tilde"),
    pytest.param("~/docs", ["/home/alice/docs"], id="tilde-path"),
    pytest.param("a:~/bin", ["a:/home/alice/bin"], id="tilde-after-colon"),
    pytest.param("~bob", ["~bob"], id="tilde-user-untouched"),
    pytest.param("'~'", ["~"], id="quoted-tilde"),
    pytest.param("a\\\\b", ["a\\b"], id="escaped-backslash"),
    pytest.param('"$BACKSLASH"', ["a\\b"], id="quoted-value-keeps-backslash"),
    pytest.param('"$PATTERN"', ["*.txt"], id="quoted-value-keeps-glob"),
    pytest.param('"$BRACES"', ["{a,b}"], id="quoted-value-keeps-braces"),
]


@pytest.mark.parametrize("source, expected", WORD_CASES)
def test_expand_word(source: str, expected: List[str]) -> None:
    shell = make_shell(
        USER="alice",
        HOME="/home/alice",
        LIST="a b c",
        QUOTED="'two words' x",
        BACKSLASH="a\\b",
        PATTERN="*.txt",
        BRACES="{a,b}",
    )
    assert expand_texts(source, shell, glob_enabled=False) == expected


def test_echo_user_command_line(shell) -> None:
    node = only('echo "$USER"')
    Expander(shell).expand_arguments(node)
    assert argv_texts(node) == ["echo", "alice"]


# ---------- globbing ----------

def test_glob_matches_replace_the_word(shell) -> None:
    recorder = GlobRecorder(["a.py", "b c.py"])
    assert expand_texts("*.py", shell, glob_fn=recorder) == ["a.py", "b c.py"]
    assert recorder.patterns == ["*.py"]


def test_glob_without_matches_stays_literal(shell) -> None:
    assert expand_texts("*.nothing", shell, glob_fn=GlobRecorder([])) == ["*.nothing"]


def test_quoted_glob_is_not_expanded(shell) -> None:
    recorder = GlobRecorder(["a.py"])
    assert expand_texts('"*.py"', shell, glob_fn=recorder) == ["*.py"]
    assert recorder.patterns == []


def test_quoted_variable_is_not_globbed() -> None:
    recorder = GlobRecorder(["a.txt"])
    shell = make_shell(PATTERN="*.txt")
    assert expand_texts('"$PATTERN"', shell, glob_fn=recorder) == ["*.txt"]
    assert recorder.patterns == []


def test_glob_disabled(shell) -> None:
    recorder = GlobRecorder(["a.py"])
    assert expand_texts("*.py", shell, glob_fn=recorder, glob_enabled=False) == ["*.py"]
    assert recorder.patterns == []


def test_glob_results_are_not_reexpanded(shell) -> None:
    out = expand_texts("*", shell, glob_fn=GlobRecorder(["$HOME", "{a,b}"]))
    assert out == ["$HOME", "{a,b}"]


def test_escaped_glob_characters_become_glob_escapes(shell) -> None:
    recorder = GlobRecorder([])
    expand_texts("'[x]'*", shell, glob_fn=recorder)
    assert recorder.patterns == ["[[]x]*"]


def test_glob_against_filesystem(tmp_path: Path) -> None:
    for name in ("b.txt", "a.txt", "c.log"):
        (tmp_path / name).write_text("")

    shell = make_shell()
    tk = Tk(TkType.IDENT, f"{tmp_path}/*.txt", Span(0, 0), WdFlags.IS_ARG)
    out = Expander(shell).expand(tk, aliases=False)
    assert [Path(t.text).name for t in out] == ["a.txt", "b.txt"]


def test_braces_before_positional_params() -> None:
    shell = make_shell(params=["p", "q"])
    assert expand_texts("{x,y}$@", shell, glob_enabled=False) == ["x", "y", "p", "q"]


# ---------- aliases ----------

def test_alias_expands_command_name() -> None:
    shell = make_shell()
    shell.set_alias("ll", "ls -l")
    node = only("ll /tmp")
    Expander(shell).expand_arguments(node)
    assert argv_texts(node) == ["ls", "-l", "/tmp"]


def test_alias_is_not_applied_to_arguments() -> None:
    shell = make_shell()
    shell.set_alias("ll", "ls -l")
    node = only("echo ll")
    Expander(shell).expand_arguments(node)
    assert argv_texts(node) == ["echo", "ll"]


def test_self_referencing_alias_expands_once() -> None:
    shell = make_shell()
    shell.set_alias("ls", "ls --color")
    out = Expander(shell).expand(word("ls").clone(flags=WdFlags.NONE))
    assert [t.text for t in out] == ["ls", "--color"]


def test_quoted_command_name_skips_alias() -> None:
    shell = make_shell()
    shell.set_alias("ll", "ls -l")
    node = only("'ll' /tmp")
    Expander(shell).expand_arguments(node)
    assert argv_texts(node) == ["ll", "/tmp"]


def test_alias_with_braces_keeps_word_order() -> None:
    shell = make_shell()
    shell.set_alias("e", "echo {a,b} c")
    out = Expander(shell).expand(word("e").clone(flags=WdFlags.NONE))
    assert [t.text for t in out] == ["echo", "a", "b", "c"]


# ---------- expand_arguments ----------

def test_command_name_is_never_globbed() -> None:
    recorder = GlobRecorder(["match"])
    node = only("ls* *")
    Expander(make_shell(), glob_fn=recorder).expand_arguments(node)
    assert argv_texts(node) == ["ls*", "match"]
    assert recorder.patterns == ["*"]


def test_expr_arguments_are_not_globbed() -> None:
    recorder = GlobRecorder(["oops"])
    node = only("expr 2 * 3")
    Expander(make_shell(), glob_fn=recorder).expand_arguments(node)
    assert argv_texts(node) == ["expr", "2", "*", "3"]
    assert recorder.patterns == []


def test_subshell_arguments_expand() -> None:
    node = only("(ls) $USER")
    Expander(make_shell(USER="bob")).expand_arguments(node)
    assert argv_texts(node) == ["bob"]


def test_empty_expansions_are_dropped_from_argv() -> None:
    node = only('printf $NOPE "" x')
    Expander(make_shell()).expand_arguments(node)
    assert argv_texts(node) == ["printf", "", "x"]


def test_non_command_nodes_are_rejected() -> None:
    tk = word("x")
    node = Node(Redirection(tk), tk.span)
    with pytest.raises(InternalError):
        Expander(make_shell()).expand_arguments(node)


def test_expand_token_helper() -> None:
    out = expand_token(word("x{1,2}"), make_shell())
    assert [t.text for t in out] == ["x1", "x2"]
    assert all(t.kind is TkType.EXPANDED for t in out)


# ---------- helpers ----------

@pytest.mark.parametrize(
    "text, expected",
    [
        pytest.param("*.py", True, id="star"),
        pytest.param("a?", True, id="question"),
        pytest.param("[ab]c", True, id="class"),
        pytest.param("\\*.py", False, id="escaped-star"),
        pytest.param("a[", False, id="unclosed-class"),
        pytest.param("plain", False, id="plain"),
    ],
)
def test_check_globs(text: str, expected: bool) -> None:
    assert check_globs(text) is expected


def test_glob_pattern_escapes_literals() -> None:
    assert glob_pattern("\\*a*") == "[*]a*"


def test_escape_round_trip() -> None:
    raw = "a b*{c}$d"
    assert consume_escapes(escape_literal(raw)) == raw
    assert escape_literal("a b", whitespace=False) == "a b"
    assert escape_literal("$a*", active="$") == "$a\\*"


def test_split_outside_quotes() -> None:
    assert split_outside_quotes("a  'b c' \"d e\"f\\ g") == ["a", "b c", "d ef\\ g"]


@pytest.mark.parametrize(
    "text, expected",
    [
        pytest.param("~", [0], id="alone"),
        pytest.param("~/x", [0], id="path"),
        pytest.param("x=~:~/y", [2, 4], id="assignment-list"),
        pytest.param("a~", [], id="inside-word"),
        pytest.param("\\~", [], id="escaped"),
        pytest.param("~x", [], id="user-form"),
    ],
)
def test_find_tildes(text: str, expected: List[int]) -> None:
    assert find_tildes(text) == expected
