"""Command-line tests.

Parser behavior and in-process ``main()`` calls, plus integration tests that
run ``python -m runall`` as a subprocess and interrupt it with SIGINT.

Integration tests are marked with @pytest.mark.integration:
    pytest -m integration tests/test_cli.py
"""

from __future__ import annotations

import logging
import shlex
import signal
import subprocess
import sys
import time
from pathlib import Path
from unittest import mock

import pytest

from runall import __version__
from runall.cli import build_parser, main
from runall.errors import WaitError

IS_WINDOWS = sys.platform == "win32"

posix_only = pytest.mark.skipif(IS_WINDOWS, reason="POSIX shell required")


def _run_runall(args: list[str], env: dict[str, str], timeout: float = 10) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "runall", *args],
        capture_output=True,
        env=env,
        timeout=timeout,
    )


# =============================================================================
# Parser
# =============================================================================


class TestParser:
    """argparse configuration."""

    def test_commands_only(self):
        args = build_parser().parse_args(["echo hi", "echo bye"])
        assert args.commands == ["echo hi", "echo bye"]
        assert args.names is None

    def test_repeated_names(self):
        args = build_parser().parse_args(["-n", "a", "--names", "b", "x", "y"])
        assert args.names == ["a", "b"]
        assert args.commands == ["x", "y"]

    def test_comma_names_kept_as_one(self):
        args = build_parser().parse_args(["--names", "a,b", "x", "y"])
        assert args.names == ["a,b"]

    def test_no_arguments(self):
        args = build_parser().parse_args([])
        assert args.commands == []

    def test_version(self, capsys: pytest.CaptureFixture[str]):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_help_mentions_purpose(self, capsys: pytest.CaptureFixture[str]):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--help"])
        assert "Run multiple commands in parallel." in capsys.readouterr().out


# =============================================================================
# main()
# =============================================================================


class TestMain:
    """In-process main()."""

    def test_name_mismatch_aborts_before_spawning(self):
        with mock.patch("runall.cli.Supervisor") as supervisor_cls:
            assert main(["-n", "a,b", "echo 1", "echo 2", "echo 3"]) == 1
        supervisor_cls.assert_not_called()

    def test_success_returns_aggregated_code(self):
        with mock.patch("runall.cli.Supervisor") as supervisor_cls:
            supervisor_cls.return_value.run.return_value = []
            assert main(["-n", "a,b", "echo 1", "echo 2"]) == 0

        specs = supervisor_cls.call_args.args[0]
        assert [s.name for s in specs] == ["a", "b"]

    def test_wait_failure_is_fatal(self, caplog: pytest.LogCaptureFixture):
        with mock.patch("runall.cli.Supervisor") as supervisor_cls:
            supervisor_cls.return_value.run.side_effect = WaitError("web", 4242, "no child")
            assert main(["-n", "web", "sleep 30"]) == 1

        critical = [r for r in caplog.records if r.levelno == logging.CRITICAL]
        assert len(critical) == 1
        assert "failed to wait for web (pid=4242): no child" in critical[0].getMessage()

    @posix_only
    @pytest.mark.timeout(10)
    def test_runs_commands(self, capfd: pytest.CaptureFixture[str]):
        assert main(["echo hi", "echo bye"]) == 0
        out = capfd.readouterr().out
        assert "[cmd-1] hi\n" in out
        assert "[cmd-2] bye\n" in out


# =============================================================================
# Integration
# =============================================================================


@pytest.mark.integration
@posix_only
class TestIntegration:
    """python -m runall end to end."""

    @pytest.mark.timeout(20)
    def test_echo_scenario(self, runall_env: dict[str, str]):
        result = _run_runall(["echo hi", "echo bye"], runall_env)

        assert result.returncode == 0
        lines = result.stdout.splitlines()
        assert b"[cmd-1] hi" in lines
        assert b"[cmd-2] bye" in lines
        # Diagnostics stay off stdout
        assert b"starting echo hi as cmd-1" in result.stderr
        assert b"starting" not in result.stdout

    @pytest.mark.timeout(20)
    def test_name_mismatch(self, runall_env: dict[str, str]):
        result = _run_runall(["-n", "a,b", "echo 1", "echo 2", "echo 3"], runall_env)

        assert result.returncode == 1
        assert b"expected 3 names, got 2" in result.stderr
        assert result.stdout == b""
        assert b"starting" not in result.stderr

    @pytest.mark.timeout(20)
    def test_comma_names(self, runall_env: dict[str, str]):
        result = _run_runall(["--names", "web,db", "echo up", "echo ok"], runall_env)

        lines = result.stdout.splitlines()
        assert b"[web] up" in lines
        assert b"[db]  ok" in lines

    @pytest.mark.timeout(20)
    def test_nonexistent_binary(self, runall_env: dict[str, str]):
        result = _run_runall(["nonexistent_command_xyz_123"], runall_env)

        assert result.returncode == 0
        assert result.stdout.startswith(b"[cmd-1] ")
        assert b"nonexistent_command_xyz_123" in result.stdout

    @pytest.mark.timeout(20)
    def test_propagate_exit_code(self, runall_env: dict[str, str]):
        runall_env["RUNALL_EXIT_CODE"] = "propagate"
        result = _run_runall(["exit 0", "exit 4"], runall_env)
        assert result.returncode == 4

    @pytest.mark.timeout(20)
    def test_propagate_service_exit_code(self, runall_env: dict[str, str], fake_service_path: Path):
        runall_env["RUNALL_EXIT_CODE"] = "propagate"
        service = f"{shlex.quote(sys.executable)} {shlex.quote(str(fake_service_path))}"
        result = _run_runall(
            ["-n", "ok,bad", f"{service} --duration 0.2 --interval 0.05", f"{service} --duration 0.2 --exit-code 3"],
            runall_env,
        )

        assert result.returncode == 3
        assert b"[ok]  tick 1" in result.stdout.splitlines()
        assert b"[bad] ready" in result.stdout.splitlines()

    @pytest.mark.timeout(20)
    def test_custom_shell_missing(self, runall_env: dict[str, str], tmp_path: Path):
        runall_env["RUNALL_SHELL"] = str(tmp_path / "no-such-shell")
        result = _run_runall(["echo hi"], runall_env)

        assert result.returncode == 1
        assert b"failed to start" in result.stderr

    @pytest.mark.timeout(20)
    def test_sigint_terminates_all(self, runall_env: dict[str, str], fake_service_path: Path):
        service = f"exec {shlex.quote(sys.executable)} {shlex.quote(str(fake_service_path))} --duration 30"
        process = subprocess.Popen(
            [sys.executable, "-m", "runall", "-n", "one,two", service, service],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=runall_env,
        )

        # Both services print "ready" once running, after the handler is armed
        assert process.stdout is not None
        ready = 0
        while ready < 2:
            line = process.stdout.readline()
            assert line, "runall exited before both services were ready"
            if line.rstrip().endswith(b"ready"):
                ready += 1
        time.sleep(0.3)

        start = time.monotonic()
        process.send_signal(signal.SIGINT)
        remaining_out, stderr = process.communicate(timeout=10)

        assert time.monotonic() - start < 5
        assert process.returncode == 0
        assert b"got ctrl-c" in stderr
        assert stderr.count(b"sending sigterm to") == 2
        assert b"[one] Received SIGTERM, stopping gracefully" in remaining_out
        assert b"[two] Received SIGTERM, stopping gracefully" in remaining_out

    @pytest.mark.timeout(20)
    def test_sigint_sleep_scenario(self, runall_env: dict[str, str]):
        process = subprocess.Popen(
            [sys.executable, "-m", "runall", "sleep 5", "sleep 5"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=runall_env,
        )
        time.sleep(1.0)

        start = time.monotonic()
        process.send_signal(signal.SIGINT)
        _, stderr = process.communicate(timeout=10)

        assert time.monotonic() - start < 4
        assert stderr.count(b"sending sigterm to") == 2
