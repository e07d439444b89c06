from __future__ import annotations

import logging
import os
import tempfile
import threading

import pytest

from oxsh.runtime import ShellEnv, SubprocessExecutor, expand_shebang
from oxsh.token_types import Span
from oxsh.tree import Node, Subshell
from oxsh.types import IoError
from oxsh.utils import (
    LOG_LEVEL_ENV,
    SUBSHELL_ENV,
    configure_logging,
    env_flag,
    log_level,
    subshell_path,
)
from tests.support.harness import make_shell


def test_special_parameters() -> None:
    shell = make_shell(params=["a", "b c"])
    shell.last_status = 7
    assert shell.get_variable("#") == "2"
    assert shell.get_variable("@") == "a b c"
    assert shell.get_variable("?") == "7"
    assert shell.get_variable("1") == "a"
    assert shell.get_variable("5") == ""
    assert shell.get_variable("$") == str(os.getpid())


def test_shell_variables_shadow_environment(monkeypatch) -> None:
    monkeypatch.setenv("OXSH_TEST_VALUE", "from-env")
    shell = ShellEnv()
    assert shell.get_variable("OXSH_TEST_VALUE") == "from-env"

    shell.set_variable("OXSH_TEST_VALUE", "local")
    assert shell.get_variable("OXSH_TEST_VALUE") == "local"
    shell.unset_variable("OXSH_TEST_VALUE")
    assert shell.get_variable("OXSH_TEST_VALUE") == "from-env"


def test_isolated_shell_ignores_environment(monkeypatch) -> None:
    monkeypatch.setenv("OXSH_TEST_VALUE", "from-env")
    assert make_shell().get_variable("OXSH_TEST_VALUE") == ""
    assert make_shell().snapshot_env() == {}


def test_arrays() -> None:
    shell = make_shell(SCALAR="one")
    shell.set_array("ARR", ["x", "y"])
    assert shell.get_array_element("ARR", 1) == "y"
    assert shell.get_array_element("ARR", 2) == ""
    assert shell.get_array_element("SCALAR", 0) == "one"
    assert shell.get_array_element("SCALAR", 1) == ""

    shell.unset_variable("ARR")
    assert shell.get_array_element("ARR", 0) == ""


def test_aliases_functions_and_options() -> None:
    shell = make_shell()
    shell.set_alias("ll", "ls -l")
    shell.set_function("greet", "echo hi")
    shell.set_shell_option("x", True)
    shell.set_shell_option("trunc_prompt_path", 3)

    assert shell.get_alias("ll") == "ls -l"
    assert shell.get_function_body("greet") == "echo hi"
    assert shell.get_variable("-") == "x"
    assert shell.get_shell_option("trunc_prompt_path") == 3

    shell.unset_alias("ll")
    assert shell.get_alias("ll") is None


def test_params_can_be_replaced() -> None:
    shell = make_shell(params=["old"])
    shell.set_params(["n1", "n2"])
    assert shell.get_positional_params() == "n1 n2"


def test_concurrent_updates_are_not_lost() -> None:
    shell = make_shell()

    def worker(idx: int) -> None:
        for n in range(200):
            shell.set_variable(f"T{idx}_{n}", str(n))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert all(shell.get_variable(f"T{i}_199") == "199" for i in range(4))


# ---------- settings ----------

@pytest.mark.parametrize(
    "value, expected",
    [
        pytest.param("1", True, id="one"),
        pytest.param(" Yes ", True, id="yes-padded"),
        pytest.param("off", False, id="off"),
        pytest.param("", False, id="empty"),
    ],
)
def test_env_flag(monkeypatch, value: str, expected: bool) -> None:
    monkeypatch.setenv("OXSH_TEST_FLAG", value)
    assert env_flag("OXSH_TEST_FLAG") is expected


def test_log_level(monkeypatch) -> None:
    assert log_level() == logging.WARNING
    monkeypatch.setenv(LOG_LEVEL_ENV, "debug")
    assert log_level() == logging.DEBUG
    monkeypatch.setenv(LOG_LEVEL_ENV, "chatty")
    assert log_level() == logging.WARNING


def test_configure_logging_is_idempotent() -> None:
    configure_logging(logging.INFO)
    configure_logging(logging.INFO)
    logger = logging.getLogger("oxsh")
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1


def test_subshell_path(monkeypatch) -> None:
    monkeypatch.delenv(SUBSHELL_ENV, raising=False)
    assert subshell_path() == "/bin/sh"
    monkeypatch.setenv(SUBSHELL_ENV, "/bin/dash")
    assert subshell_path() == "/bin/dash"
    assert SubprocessExecutor().shell_path == "/bin/dash"


# ==== subshell interpreters ====

SHEBANG_CASES = [
    pytest.param("echo hi", (["/bin/sh", "-c", "echo hi"], None), id="plain-body"),
    pytest.param(
        "#!/usr/bin/env python3\nprint(1)\n",
        (["/usr/bin/env", "python3"], "print(1)\n"),
        id="full-path",
    ),
    pytest.param("#!sh echo hi", (["/opt/bin/sh"], "echo hi"), id="abbreviated"),
    pytest.param("#!python;print(2)", (["/opt/bin/python"], "print(2)"), id="abbreviated-semicolon"),
]


@pytest.mark.parametrize("body, expected", SHEBANG_CASES)
def test_expand_shebang(monkeypatch, body: str, expected) -> None:
    monkeypatch.setattr("oxsh.runtime.shutil.which", lambda name, path=None: f"/opt/bin/{name}")
    assert expand_shebang(body, "/bin/sh") == expected


def test_shebang_interpreter_missing_from_path(monkeypatch) -> None:
    monkeypatch.setattr("oxsh.runtime.shutil.which", lambda name, path=None: None)
    with pytest.raises(IoError) as excinfo:
        expand_shebang("#!nosuchinterp\nx", "/bin/sh", Span(0, 16))
    assert "nosuchinterp" in excinfo.value.message
    assert excinfo.value.fatal


def test_shebang_without_interpreter_name() -> None:
    with pytest.raises(IoError):
        expand_shebang("#! echo hi", "/bin/sh")


def test_executor_runs_abbreviated_shebang() -> None:
    node = Node(Subshell("#!sh\nprintf abc"), Span(0, 0))
    with tempfile.TemporaryFile() as out:
        assert SubprocessExecutor("/bin/sh").run_subshell(node, out) == 0
        out.seek(0)
        assert out.read() == b"abc"
