"""
Tests for pure domain helpers — classification, paths, dotenv.
"""

import pytest

from mcp_installer.core.domain.classifier import classify
from mcp_installer.core.domain.dotenv import DotenvError, append_missing, parse_dotenv
from mcp_installer.core.domain.paths import (
    default_install_path,
    github_slug,
    host_config_path,
    is_under,
    normalize_remote,
    rebase,
    registry_path,
    repo_name_from_url,
    user_install_root,
)
from mcp_installer.core.models.outcome import ErrorKind

# ── Classification ──────────────────────────────────────────────


class TestClassify:
    @pytest.mark.parametrize("message,kind", [
        ("spawn npm ENOENT", ErrorKind.MISSING),
        ("bash: uv: command not found", ErrorKind.MISSING),
        ("EACCES: permission denied, mkdir '/opt/mcp'", ErrorKind.PERMISSION),
        ("Access is denied.", ErrorKind.PERMISSION),
        ("fatal: destination path 'foo' already exists and is not an empty directory.",
         ErrorKind.EXISTS),
        ('The container name "/mcp-foo" is already in use', ErrorKind.EXISTS),
        ("fatal: unable to access 'https://github.com/x/y/': Could not resolve host",
         ErrorKind.NETWORK),
        ("connect ETIMEDOUT 140.82.112.3:443", ErrorKind.NETWORK),
        ("ENOSPC: no space left on device", ErrorKind.DISK),
        ("something odd happened", ErrorKind.UNKNOWN),
    ])
    def test_patterns(self, message, kind):
        assert classify(message) == kind

    def test_case_insensitive(self):
        assert classify("PERMISSION DENIED") == ErrorKind.PERMISSION

    def test_first_row_wins(self):
        """A message matching two rows takes the earlier one."""
        assert classify("ENOENT while checking disk") == ErrorKind.MISSING

    def test_exit_code_fallback(self):
        assert classify("", 127) == ErrorKind.MISSING
        assert classify(None, 126) == ErrorKind.PERMISSION
        assert classify("weird", 1) == ErrorKind.UNKNOWN

    def test_message_beats_exit_code(self):
        assert classify("Could not resolve host", 127) == ErrorKind.NETWORK


# ── Paths ───────────────────────────────────────────────────────


class TestRepoUrls:
    @pytest.mark.parametrize("url", [
        "https://github.com/example/foo-mcp",
        "https://github.com/example/foo-mcp.git",
        "https://github.com/example/foo-mcp/",
        "git@github.com:example/foo-mcp.git",
    ])
    def test_repo_name(self, url):
        assert repo_name_from_url(url) == "foo-mcp"

    def test_github_slug(self):
        assert github_slug("git@github.com:Example/Foo.git") == ("Example", "Foo")
        assert github_slug("https://gitlab.com/a/b") is None

    def test_normalize_remote(self):
        expected = "github.com/a/b"
        assert normalize_remote("git@github.com:a/b.git") == expected
        assert normalize_remote("https://GitHub.com/a/b/") == expected
        assert normalize_remote("https://user@github.com/a/b.git") == expected


class TestLocations:
    def test_default_install_path(self):
        assert default_install_path("linux", "foo") == "/opt/mcp/servers/foo"
        assert default_install_path("windows", "foo") == "C:\\MCP\\Servers\\foo"

    def test_user_install_root(self):
        assert user_install_root("linux", "/home/u") == "/home/u/.local/mcp/servers"
        assert user_install_root("windows", "C:\\Users\\u") == "C:\\Users\\u\\MCP\\Servers"

    def test_host_config_path(self):
        assert host_config_path("linux", "/home/u") == "/home/u/.config/claude/config.json"
        assert host_config_path("macos", "/Users/u") == (
            "/Users/u/Library/Application Support/Claude/config.json"
        )
        assert host_config_path("windows", "C:\\Users\\u", "D:\\Roaming") == (
            "D:\\Roaming\\Claude\\config.json"
        )

    def test_registry_path(self):
        assert registry_path("linux", "/home/u") == (
            "/home/u/.local/share/mcp-installer/registry.json"
        )


class TestRebase:
    def test_is_under(self):
        assert is_under("linux", "/opt/a/b", "/opt/a")
        assert is_under("linux", "/opt/a", "/opt/a")
        assert not is_under("linux", "/opt/ab", "/opt/a")

    def test_rebase_inside(self):
        assert rebase("linux", "/opt/a/sub", "/opt/a", "/home/u/a") == "/home/u/a/sub"
        assert rebase("linux", "/opt/a", "/opt/a", "/home/u/a") == "/home/u/a"

    def test_rebase_outside_untouched(self):
        assert rebase("linux", "/app/data", "/opt/a", "/home/u/a") == "/app/data"


# ── Dotenv ──────────────────────────────────────────────────────


class TestDotenv:
    def test_parse(self):
        content = '# comment\nexport A=1\nB="two words"\nC=\'x\'\n\n'
        assert parse_dotenv(content) == {"A": "1", "B": "two words", "C": "x"}

    def test_lenient_skips_garbage(self):
        assert parse_dotenv("not a pair\nA=1") == {"A": "1"}

    def test_strict_rejects_garbage(self):
        with pytest.raises(DotenvError):
            parse_dotenv("not a pair", strict=True)

    def test_append_missing_keeps_existing(self):
        content = "# keep me\nPORT=4000\n"
        result = append_missing(content, {"PORT": "3000", "TOKEN": "abc"})
        assert result == "# keep me\nPORT=4000\nTOKEN=abc\n"

    def test_append_missing_quotes(self):
        assert append_missing("", {"MSG": "hello world"}) == 'MSG="hello world"\n'

    def test_escaped_quotes_read_back(self):
        values = {"GREETING": 'say "hi"', "WIN_PATH": 'C:\\dir\\ "x"', "PLAIN": "a\\b"}
        assert parse_dotenv(append_missing("", values)) == values

    def test_parse_escapes(self):
        assert parse_dotenv('A="x \\"y\\""\nB=\'k \\"raw\'') == {"A": 'x "y"', "B": 'k \\"raw'}

    def test_append_nothing_missing(self):
        assert append_missing("A=1\n", {"A": "2"}) == "A=1\n"
