"""Tests for LdapTestSettings — unified settings with TOML source."""

from pathlib import Path

import click
import pytest

from ldap_test_server.config.discovery import CONFIG_FILENAME
from ldap_test_server.config.settings import LdapTestSettings


@pytest.mark.usefixtures("isolated_env")
class TestDefaults:
    def test_all_defaults(self, tmp_path: Path) -> None:
        settings = LdapTestSettings.from_cli(start_dir=tmp_path)
        assert settings.config_path is None
        assert settings.verbose is False
        assert settings.log_json is False
        assert settings.tools.slapd == "slapd"
        assert settings.startup.ready_timeout == 60.0
        assert settings.server.bind_addr == "127.0.0.1"

    def test_frozen(self) -> None:
        settings = LdapTestSettings()
        with pytest.raises(Exception):
            settings.verbose = True  # type: ignore[misc]


@pytest.mark.usefixtures("isolated_env")
class TestTomlSource:
    def test_loads_from_toml(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(
            '[tools]\nslapd = "/opt/openldap/libexec/slapd"\n[startup]\nready_timeout = 5.0\n'
        )
        settings = LdapTestSettings.from_cli(start_dir=tmp_path)
        assert settings.tools.slapd == "/opt/openldap/libexec/slapd"
        assert settings.tools.slapadd == "slapadd"  # default preserved
        assert settings.startup.ready_timeout == 5.0
        assert settings.startup.port_timeout == 60.0

    def test_explicit_config_path(self, tmp_path: Path) -> None:
        custom = tmp_path / "custom" / "my.toml"
        custom.parent.mkdir(parents=True)
        custom.write_text('[server]\nbind_addr = "0.0.0.0"\n')
        settings = LdapTestSettings.from_cli(config_path=str(custom))
        assert settings.server.bind_addr == "0.0.0.0"
        assert settings.config_path == custom

    def test_invalid_toml_raises_click_exception(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("[startup\n")
        with pytest.raises(click.ClickException, match="Invalid TOML"):
            LdapTestSettings.from_cli(start_dir=tmp_path)

    def test_plain_construction_skips_toml(self, isolated_env: Path) -> None:
        (isolated_env / CONFIG_FILENAME).write_text("verbose = true\n")
        assert LdapTestSettings().verbose is False


@pytest.mark.usefixtures("isolated_env")
class TestPriority:
    def test_cli_flags_override_toml(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("verbose = false\n")
        settings = LdapTestSettings.from_cli(start_dir=tmp_path, verbose=True)
        assert settings.verbose is True

    def test_none_flags_do_not_mask_toml(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("log_json = true\n")
        settings = LdapTestSettings.from_cli(start_dir=tmp_path, log_json=None)
        assert settings.log_json is True

    def test_env_var_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LDAP_TEST_SERVER_VERBOSE", "true")
        settings = LdapTestSettings.from_cli(start_dir=tmp_path)
        assert settings.verbose is True

    def test_nested_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LDAP_TEST_SERVER_STARTUP__READY_TIMEOUT", "120")
        settings = LdapTestSettings.from_cli(start_dir=tmp_path)
        assert settings.startup.ready_timeout == 120.0

    def test_env_beats_toml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / CONFIG_FILENAME).write_text('[tools]\nslapd = "from-toml"\n')
        monkeypatch.setenv("LDAP_TEST_SERVER_TOOLS__SLAPD", "from-env")
        settings = LdapTestSettings.from_cli(start_dir=tmp_path)
        assert settings.tools.slapd == "from-env"
