"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, ``ldap-test-server.toml`` only
contains overrides. Every section is frozen once constructed.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from ldap_test_server.infrastructure.schema import POSSIBLE_MODULE_DIRS, POSSIBLE_SCHEMA_DIRS


class ToolsConfig(BaseModel):
    """[tools] section — OpenLDAP executables, looked up on PATH by default."""

    model_config = {"frozen": True}

    slapd: str = "slapd"
    slapadd: str = "slapadd"
    ldapadd: str = "ldapadd"
    ldapmodify: str = "ldapmodify"
    ldapdelete: str = "ldapdelete"


class StartupConfig(BaseModel):
    """[startup] section — readiness detection for the spawned daemon."""

    model_config = {"frozen": True}

    ready_marker: str = "slapd starting"
    ready_timeout: float = Field(default=60.0, gt=0)
    port_timeout: float = Field(default=60.0, gt=0)
    port_poll_interval: float = Field(default=0.01, ge=0)
    connect_timeout: float = Field(default=1.0, gt=0)
    debug_flags: str = "2048"


class DiscoveryConfig(BaseModel):
    """[discovery] section — where installed schema files and modules live."""

    model_config = {"frozen": True}

    schema_dirs: tuple[str, ...] = POSSIBLE_SCHEMA_DIRS
    module_dirs: tuple[str, ...] = POSSIBLE_MODULE_DIRS


class ServerConfig(BaseModel):
    """[server] section — listener defaults used when the builder sets none."""

    model_config = {"frozen": True}

    bind_addr: str = "127.0.0.1"
    port: int | None = Field(default=None, ge=1, le=65535)
    ssl_port: int | None = Field(default=None, ge=1, le=65535)
    tls: bool = True
