"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags or explicit overrides from test code
  2. Env vars     — ``LDAP_TEST_SERVER_*`` prefix (``__`` for nested sections)
  3. TOML file    — ``ldap-test-server.toml`` discovered via walk-up
  4. Code defaults — baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource` that
reuses the ``find_config`` walk-up discovery from
:mod:`ldap_test_server.config.discovery`.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from ldap_test_server.config.discovery import find_config
from ldap_test_server.config.models import (
    DiscoveryConfig,
    ServerConfig,
    StartupConfig,
    ToolsConfig,
)


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from an ``ldap-test-server.toml`` file."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                import click

                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        """Return the full TOML data dict for Pydantic to merge."""
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class LdapTestSettings(BaseSettings):
    """Settings for building and supervising test servers.

    Constructing it directly (``LdapTestSettings()``) skips TOML discovery
    and uses env vars plus defaults, which is what library callers get when
    they pass no settings to the builder. The CLI goes through
    :meth:`from_cli`.

    Attributes:
        config_path: TOML file the settings were read from, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "LDAP_TEST_SERVER_",
        "env_nested_delimiter": "__",
    }

    config_path: Path | None = None

    # --- CLI flags ---
    verbose: bool = False
    log_json: bool = False

    # --- TOML sections ---
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    startup: StartupConfig = Field(default_factory=StartupConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        start_dir: Path | None = None,
        **cli_flags: Any,
    ) -> LdapTestSettings:
        """Construct settings from a CLI invocation.

        Uses the explicit *config_path* when given, otherwise discovers
        ``ldap-test-server.toml`` by walking up from *start_dir* (or cwd).
        CLI flags are merged as highest-priority overrides; flags left at
        None are dropped so they don't mask lower-priority sources.
        """
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(start_dir)

        flags = {k: v for k, v in cli_flags.items() if v is not None}

        _tls.toml_path = toml_path
        try:
            return cls(config_path=toml_path, **flags)
        finally:
            _tls.toml_path = None
