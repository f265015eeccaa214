"""
Tests for host-services adapters — local workstation and in-memory mock.
"""

import socket
import sys
from pathlib import Path

import pytest

from mcp_installer.adapters import (
    CommandResult,
    CommandTimeoutError,
    HostServices,
    HostServicesError,
    HttpError,
    LocalHostServices,
    MockHostServices,
    RunOptions,
)
from mcp_installer.core.domain.classifier import classify
from mcp_installer.core.models.outcome import ErrorKind


class TestPort:
    def test_incomplete_implementation_cannot_be_built(self):
        class Partial(HostServices):
            def run(self, cmd, args, options=None):
                return CommandResult()

        with pytest.raises(TypeError):
            Partial()

    def test_command_result(self):
        result = CommandResult(exit_code=2, stdout="out", stderr="  err \n")
        assert not result.ok
        assert result.output == "err"
        assert CommandResult(stdout="only out").output == "only out"


# ── Local ───────────────────────────────────────────────────────


class TestLocalProcesses:
    def test_run_captures_output(self):
        result = LocalHostServices().run(sys.executable, ["-c", "print('hello')"])
        assert result.ok
        assert result.stdout == "hello"

    def test_non_zero_exit_is_a_result(self):
        result = LocalHostServices().run(
            sys.executable, ["-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"],
        )
        assert result.exit_code == 3
        assert result.stderr == "bad"

    def test_missing_executable(self):
        with pytest.raises(HostServicesError) as exc:
            LocalHostServices().run("definitely-not-a-real-command-xyz", [])
        assert exc.value.exit_code == 127
        assert classify(exc.value.message, exc.value.exit_code) == ErrorKind.MISSING

    def test_timeout(self):
        with pytest.raises(CommandTimeoutError) as exc:
            LocalHostServices().run(
                sys.executable, ["-c", "import time; time.sleep(5)"], RunOptions(timeout_ms=200),
            )
        assert classify(exc.value.message) == ErrorKind.NETWORK

    def test_cwd_and_env(self, tmp_path: Path):
        result = LocalHostServices().run(
            sys.executable,
            ["-c", "import os; print(os.getcwd()); print(os.environ['MCPI_TEST'])"],
            RunOptions(cwd=str(tmp_path), env={"MCPI_TEST": "yes"}),
        )
        lines = result.stdout.splitlines()
        assert Path(lines[0]).resolve() == tmp_path.resolve()
        assert lines[1] == "yes"


class TestLocalFiles:
    def test_write_read(self, tmp_path: Path):
        host = LocalHostServices()
        target = tmp_path / "deep" / "file.json"
        host.write_file(str(target), "{}\n")
        assert host.read_file(str(target)) == "{}\n"
        assert not (tmp_path / "deep" / "file.json.tmp").exists()

    def test_read_missing(self, tmp_path: Path):
        with pytest.raises(HostServicesError) as exc:
            LocalHostServices().read_file(str(tmp_path / "nope"))
        assert exc.value.message.startswith("ENOENT")

    def test_ensure_dir_idempotent(self, tmp_path: Path):
        host = LocalHostServices()
        path = str(tmp_path / "a" / "b")
        host.ensure_dir(path)
        host.ensure_dir(path)
        assert host.exists(path)

    def test_ensure_dir_over_file(self, tmp_path: Path):
        (tmp_path / "f").write_text("x")
        with pytest.raises(HostServicesError) as exc:
            LocalHostServices().ensure_dir(str(tmp_path / "f"))
        assert classify(exc.value.message) == ErrorKind.EXISTS

    def test_list_and_remove(self, tmp_path: Path):
        host = LocalHostServices()
        (tmp_path / "b.txt").write_text("")
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "inner").write_text("")
        assert host.list_dir(str(tmp_path)) == ["a", "b.txt"]

        host.remove(str(tmp_path / "a"), recursive=True)
        host.remove(str(tmp_path / "missing"))
        assert host.list_dir(str(tmp_path)) == ["b.txt"]

    def test_remove_non_empty_requires_recursive(self, tmp_path: Path):
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "inner").write_text("")
        with pytest.raises(HostServicesError):
            LocalHostServices().remove(str(tmp_path / "a"))


class TestLocalEnvironment:
    def test_platform(self):
        assert LocalHostServices().platform() in ("windows", "macos", "linux")

    def test_env(self, monkeypatch):
        monkeypatch.setenv("MCPI_SOMETHING", "1")
        assert LocalHostServices().env("MCPI_SOMETHING") == "1"
        assert LocalHostServices().env("MCPI_NOT_SET_ANYWHERE") is None

    def test_tcp_connect(self):
        server = socket.socket()
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        try:
            assert LocalHostServices().tcp_connect("127.0.0.1", port, timeout_ms=1000)
        finally:
            server.close()
        assert not LocalHostServices().tcp_connect("127.0.0.1", port, timeout_ms=200)


# ── Mock ────────────────────────────────────────────────────────


class TestMock:
    def test_scripted_responses_consumed_in_order(self, host):
        host.on_command("git clone", CommandResult(exit_code=1), HostServicesError("boom"))
        assert host.run("git", ["clone", "u", "/t"]).exit_code == 1
        with pytest.raises(HostServicesError):
            host.run("git", ["clone", "u", "/t"])
        assert host.run("git", ["clone", "u", "/t"]).ok

    def test_missing_tool(self, host):
        with pytest.raises(HostServicesError) as exc:
            host.run("pnpm", ["install"])
        assert exc.value.exit_code == 127

    def test_clone_materializes_remote(self, host):
        host.add_remote("https://github.com/example/foo", {"package.json": "{}"})
        host.run("git", ["clone", "https://github.com/example/foo.git", "/srv/foo"])
        assert host.list_dir("/srv/foo") == [".git", "package.json"]

    def test_raw_fetch(self, host):
        host.add_remote("https://github.com/Example/Foo", {"README.md": "hi"})
        assert host.http_get("https://raw.githubusercontent.com/example/foo/HEAD/README.md") == "hi"
        with pytest.raises(HttpError) as exc:
            host.http_get("https://raw.githubusercontent.com/example/foo/HEAD/nope")
        assert exc.value.not_found

    def test_write_failure_keeps_content(self, host):
        host.set_file("/etc/x", "old")
        host.fail_write("/etc/x", "EACCES: permission denied")
        with pytest.raises(HostServicesError):
            host.write_file("/etc/x", "new")
        assert host.read_file("/etc/x") == "old"

    def test_windows_paths(self):
        host = MockHostServices(platform="windows", home="C:\\Users\\u")
        host.ensure_dir("C:\\MCP\\Servers\\foo")
        assert host.exists("C:\\MCP\\Servers")
        assert host.list_dir("C:\\MCP\\Servers") == ["foo"]
