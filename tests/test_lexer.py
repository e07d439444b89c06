from __future__ import annotations

from typing import List, Tuple

import pytest

from oxsh.lexer_rd import LexError, tokenize, word_tokens
from oxsh.token_types import (
    AssignmentParts,
    AssOp,
    FuncParts,
    MatchArm,
    Redir,
    RedirOp,
    Span,
    TkType,
    WdFlags,
)
from tests.support.harness import kinds, word

K = TkType

KIND_CASES: List[Tuple[str, List[TkType]]] = [
    pytest.param("echo hi", [K.IDENT, K.IDENT], id="simple-command"),
    pytest.param("a | b", [K.IDENT, K.PIPE, K.IDENT], id="pipe"),
    pytest.param("a |& b", [K.IDENT, K.PIPE_BOTH, K.IDENT], id="pipe-both"),
    pytest.param("a && b || c", [K.IDENT, K.LOGIC_AND, K.IDENT, K.LOGIC_OR, K.IDENT], id="logic"),
    pytest.param("a; b", [K.IDENT, K.CMDSEP, K.IDENT], id="semicolon"),
    pytest.param("a\nb", [K.IDENT, K.CMDSEP, K.IDENT], id="newline"),
    pytest.param("a &", [K.IDENT, K.BACKGROUND], id="background"),
    pytest.param("a |\n  b", [K.IDENT, K.PIPE, K.IDENT], id="newline-after-pipe"),
    pytest.param("a &&\nb", [K.IDENT, K.LOGIC_AND, K.IDENT], id="newline-after-and"),
    pytest.param("echo a \\\n b", [K.IDENT, K.IDENT, K.IDENT], id="line-continuation"),
    pytest.param("echo hi # trailing note", [K.IDENT, K.IDENT], id="comment"),
    pytest.param("echo if then", [K.IDENT, K.IDENT, K.IDENT], id="keywords-as-args"),
    pytest.param(
        "if a; then b; fi",
        [K.IF, K.IDENT, K.CMDSEP, K.THEN, K.IDENT, K.CMDSEP, K.FI],
        id="if-keywords",
    ),
    pytest.param(
        "for i in a b; do c; done",
        [K.FOR, K.IDENT, K.IN, K.IDENT, K.IDENT, K.CMDSEP, K.DO, K.IDENT, K.CMDSEP, K.DONE],
        id="for-keywords",
    ),
    pytest.param("echo $HOME ${PATH}", [K.IDENT, K.VARIABLE_SUB, K.VARIABLE_SUB], id="variables"),
    pytest.param("echo $(date)", [K.IDENT, K.COMMAND_SUB], id="command-sub"),
    pytest.param("echo `date`", [K.IDENT, K.COMMAND_SUB], id="backtick-sub"),
    pytest.param("(cd /tmp; ls)", [K.SUBSHELL], id="subshell"),
    pytest.param("FOO=bar", [K.ASSIGNMENT], id="assignment"),
    pytest.param("cat < in > out", [K.IDENT, K.REDIRECTION, K.IDENT, K.REDIRECTION, K.IDENT], id="redirs"),
]


@pytest.mark.parametrize("source, expected", KIND_CASES)
def test_token_kinds(source: str, expected: List[TkType]) -> None:
    assert kinds(source) == expected


def test_stream_is_framed_by_sentinels() -> None:
    tokens = tokenize("echo hi")
    assert tokens[0].kind is TkType.SOI
    assert tokens[-1].kind is TkType.EOI
    assert tokens[-1].span == Span(7, 7)


def test_spans_cover_source_text() -> None:
    source = "echo  hello | wc -l"
    for tk in word_tokens(source):
        assert source[tk.span.start:tk.span.end] == tk.text


def test_command_position_flags() -> None:
    echo, arg, sep, cd = word_tokens("echo hi; cd")
    assert echo.has(WdFlags.BUILTIN)
    assert not echo.has(WdFlags.IS_ARG)
    assert arg.has(WdFlags.IS_ARG)
    assert sep.has(WdFlags.IS_OP)
    assert cd.has(WdFlags.BUILTIN)


def test_keyword_after_done_is_argument_position() -> None:
    tokens = word_tokens("while a; do b; done x")
    assert tokens[-1].kind is TkType.IDENT
    assert tokens[-1].has(WdFlags.IS_ARG)


# ---------- quoting ----------

QUOTE_CASES = [
    pytest.param("'a b'", "a\\ b", WdFlags.SNG_QUOTED, id="single-quoted"),
    pytest.param("'$x'", "\\$x", WdFlags.SNG_QUOTED, id="single-quoted-dollar"),
    pytest.param('"a b"', "a\\ b", WdFlags.DUB_QUOTED, id="double-quoted"),
    pytest.param('"x $y"', "x\\ $y", WdFlags.DUB_QUOTED, id="double-quoted-var"),
    pytest.param('"*.py"', "\\*.py", WdFlags.DUB_QUOTED, id="double-quoted-glob"),
    pytest.param('"a\\"b"', 'a\\"b', WdFlags.DUB_QUOTED, id="escaped-quote"),
    pytest.param('"a\\b"', "a\\\\b", WdFlags.DUB_QUOTED, id="literal-backslash"),
]


@pytest.mark.parametrize("source, text, flag", QUOTE_CASES)
def test_quotes_fold_into_escapes(source: str, text: str, flag: WdFlags) -> None:
    tk = word(source)
    assert tk.kind is TkType.STRING
    assert tk.text == text
    assert tk.has(flag)


def test_mixed_quoting_is_unflagged_string() -> None:
    tk = word('pre"mid dle"post')
    assert tk.kind is TkType.STRING
    assert tk.text == "premid\\ dlepost"
    assert not tk.has(WdFlags.SNG_QUOTED | WdFlags.DUB_QUOTED)


def test_quoted_command_sub_is_one_token() -> None:
    tk = word('"$(date +%s)"')
    assert tk.kind is TkType.COMMAND_SUB
    assert tk.text == "date +%s"
    assert tk.has(WdFlags.DUB_QUOTED)


def test_embedded_command_sub_stays_in_word() -> None:
    tk = word("x$(date)")
    assert tk.kind is TkType.STRING
    assert tk.text == "x$(date)"


def test_unquoted_escape_is_kept() -> None:
    tk = word("a\\ b")
    assert tk.kind is TkType.IDENT
    assert tk.text == "a\\ b"


# ---------- structured tokens ----------

REDIR_CASES = [
    pytest.param("> out", Redir(RedirOp.OUTPUT, 1), "> out", id="output"),
    pytest.param(">> log", Redir(RedirOp.APPEND, 1), ">> log", id="append"),
    pytest.param("< in", Redir(RedirOp.INPUT, 0), "< in", id="input"),
    pytest.param("2> err", Redir(RedirOp.OUTPUT, 2), "2> err", id="fd-output"),
    pytest.param("2>&1", Redir(RedirOp.OUTPUT, 2, 1), "2>&1", id="dup-output"),
    pytest.param("&> all", Redir(RedirOp.OUTPUT, 1, both=True), "&> all", id="both"),
    pytest.param("&>> all", Redir(RedirOp.APPEND, 1, both=True), "&>> all", id="both-append"),
]


@pytest.mark.parametrize("source, redir, rendered", REDIR_CASES)
def test_redirection_payload(source: str, redir: Redir, rendered: str) -> None:
    tokens = word_tokens(f"cmd {source}")
    tk = tokens[1]
    assert tk.kind is TkType.REDIRECTION
    assert tk.payload == redir

    if redir.fd_target is None:
        target = tokens[2]
        assert target.has(WdFlags.IS_ARG)
        assert tk.payload.with_target(target).render() == rendered
    else:
        assert tk.payload.render() == rendered
        assert len(tokens) == 2


def test_redirect_target_keeps_command_position() -> None:
    tokens = word_tokens("> out echo hi")
    assert tokens[2].text == "echo"
    assert tokens[2].has(WdFlags.BUILTIN)


ASSIGN_CASES = [
    pytest.param("FOO=bar", AssignmentParts("FOO", "bar", AssOp.SET), id="set"),
    pytest.param("FOO=", AssignmentParts("FOO", None, AssOp.SET), id="empty"),
    pytest.param("n+=1", AssignmentParts("n", "1", AssOp.ADD), id="add"),
    pytest.param("n-=1", AssignmentParts("n", "1", AssOp.SUB), id="sub"),
    pytest.param("n*=2", AssignmentParts("n", "2", AssOp.MUL), id="mul"),
    pytest.param("n/=2", AssignmentParts("n", "2", AssOp.DIV), id="div"),
    pytest.param("arr[2]=x", AssignmentParts("arr[2]", "x", AssOp.SET), id="indexed"),
    pytest.param('FOO="a b"', AssignmentParts("FOO", "a\\ b", AssOp.SET), id="quoted-value"),
]


@pytest.mark.parametrize("source, parts", ASSIGN_CASES)
def test_assignment_payload(source: str, parts: AssignmentParts) -> None:
    (tk,) = word_tokens(source)
    assert tk.kind is TkType.ASSIGNMENT
    assert tk.payload == parts


def test_assignment_only_in_command_position() -> None:
    tokens = word_tokens("echo FOO=bar")
    assert tokens[1].kind is TkType.IDENT


def test_word_after_assignment_is_command() -> None:
    tokens = word_tokens("FOO=1 echo hi")
    assert tokens[1].has(WdFlags.BUILTIN)
    assert not tokens[1].has(WdFlags.IS_ARG)


@pytest.mark.parametrize(
    "source",
    [
        pytest.param("greet() { echo hi; }", id="posix"),
        pytest.param("function greet { echo hi; }", id="keyword"),
        pytest.param("function greet() {\n  echo hi;\n}", id="keyword-parens"),
    ],
)
def test_function_definition(source: str) -> None:
    (tk,) = word_tokens(source)
    assert tk.kind is TkType.FUNC_DEF
    assert tk.payload == FuncParts("greet", "echo hi;")


def test_match_arms() -> None:
    tokens = word_tokens("match $x in\n  a) echo a ;;\n  *) echo other ;;\ndone")
    assert [tk.kind for tk in tokens] == [
        K.MATCH, K.VARIABLE_SUB, K.IN, K.MATCH_ARM, K.MATCH_ARM, K.DONE,
    ]
    assert tokens[3].payload == MatchArm("a", "echo a")
    assert tokens[4].payload == MatchArm("*", "echo other")


# ---------- errors ----------

ERROR_CASES = [
    pytest.param("echo 'abc", "Unterminated single-quoted string", id="open-single"),
    pytest.param('echo "abc', "Unterminated double-quoted string", id="open-double"),
    pytest.param("echo `date", "Unterminated command substitution", id="open-backtick"),
    pytest.param("echo $(date", "Missing closing ')'", id="open-cmdsub"),
    pytest.param("(ls", "Missing closing ')'", id="open-subshell"),
    pytest.param("ls )", "Unmatched ')'", id="stray-paren"),
    pytest.param("echo (x)", "Unexpected '(' in argument position", id="paren-in-args"),
    pytest.param("cmd >&", "Expected a file descriptor after '>&'", id="dup-without-fd"),
    pytest.param("match x in a) b", "This match arm is missing ';;'", id="open-arm"),
    pytest.param("function f echo", "Expected '{' to open the body of function 'f'", id="func-no-body"),
]


@pytest.mark.parametrize("source, msg", ERROR_CASES)
def test_lex_errors(source: str, msg: str) -> None:
    with pytest.raises(LexError) as excinfo:
        tokenize(source)
    assert excinfo.value.message == msg
