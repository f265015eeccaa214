"""
Tests for installer settings loading.
"""

import textwrap
from pathlib import Path

import pytest

from mcp_installer.core.config.loader import (
    ConfigError,
    InstallerSettings,
    find_settings_file,
    load_settings,
)


class TestDefaults:
    def test_defaults(self):
        settings = InstallerSettings()
        assert settings.pacing_ms == 500
        assert settings.max_attempts == 4
        assert settings.timeouts.clone == 600_000
        assert settings.port_range == (3010, 3099)
        assert settings.required_servers["memory"] == 3011

    def test_no_file_means_defaults(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert load_settings(environ={}) == InstallerSettings()


class TestLoadSettings:
    def test_load_yaml(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text(textwrap.dedent("""\
            pacing_ms: 0
            max_attempts: 2
            timeouts:
              clone: 1000
            registry_path: /tmp/registry.json
            required_servers:
              time: 3014
        """))
        settings = load_settings(path)

        assert settings.pacing_ms == 0
        assert settings.max_attempts == 2
        assert settings.timeouts.clone == 1000
        assert settings.timeouts.install == 600_000
        assert settings.registry_path == "/tmp/registry.json"
        assert settings.required_servers == {"time": 3014}

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("")
        assert load_settings(path) == InstallerSettings()

    def test_env_var_location(self, tmp_path: Path):
        path = tmp_path / "from-env.yml"
        path.write_text("pacing_ms: 7\n")
        assert load_settings(environ={"MCPI_CONFIG": str(path)}).pacing_ms == 7

    def test_explicit_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("pacing_ms: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path)

    def test_unknown_key_rejected(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("pacing: 3\n")
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings(path)

    def test_negative_pacing_rejected(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("pacing_ms: -1\n")
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_bad_port_range(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("port_range: [4000, 3000]\n")
        with pytest.raises(ConfigError):
            load_settings(path)


class TestFindSettingsFile:
    def test_explicit_wins(self, tmp_path: Path):
        explicit = tmp_path / "a.yml"
        assert find_settings_file(explicit, {"MCPI_CONFIG": "/other.yml"}) == (explicit, True)

    def test_env(self):
        assert find_settings_file(None, {"MCPI_CONFIG": "/x.yml"}) == (Path("/x.yml"), True)
