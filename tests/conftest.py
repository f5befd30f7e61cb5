"""Shared pytest fixtures and test helpers for ldap_test_server tests.

Most tests run against fake OpenLDAP executables: small Python scripts
written into ``tmp_path`` that record how they were called. The fake slapd
prints slapd-like stderr lines and listens on the ports from ``-h``, so the
whole orchestrator can be exercised without an OpenLDAP installation.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import sys
from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import structlog
from click.testing import CliRunner

from ldap_test_server.config.models import (
    DiscoveryConfig,
    ServerConfig,
    StartupConfig,
    ToolsConfig,
)
from ldap_test_server.config.settings import LdapTestSettings

ROOT_LDIF = """\
dn: dc=example,dc=com
objectClass: dcObject
objectClass: organization
o: Example
dc: example
"""

_FAKE_SLAPD = """\
import socket
import sys
import time
from urllib.parse import urlsplit

MODE = {mode!r}

args = sys.argv[1:]
urls = args[args.index("-h") + 1].split()

if MODE == "silent":
    time.sleep(3600)

print("65f1c2a3.0bd4e1a2 0x7f00 @(#) $OpenLDAP: slapd 2.6.7 $", file=sys.stderr, flush=True)

if MODE == "exit":
    sys.exit(3)

listeners = []


def listen():
    for url in urls:
        parts = urlsplit(url)
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((parts.hostname, parts.port))
        sock.listen(16)
        listeners.append(sock)


if MODE == "ok":
    listen()

print("65f1c2a3.0bd4e1a3 0x7f00 slapd starting", file=sys.stderr, flush=True)

if MODE == "late-listen":
    time.sleep(0.3)
    listen()

while True:
    print("65f1c2a3.0bd4e1a4 0x7f00 daemon: epoll: listen=7 active_threads=0", file=sys.stderr, flush=True)
    time.sleep(0.5)
"""

_FAKE_TOOL = """\
import json
import sys
from pathlib import Path

args = sys.argv[1:]
flag = {file_flag!r}
source = Path(args[args.index(flag) + 1])
content = source.read_text(encoding="utf-8") if source.is_file() else None

with open({log!r}, "a", encoding="utf-8") as fh:
    fh.write(json.dumps({{"argv": args, "content": content}}) + "\\n")

if content is None:
    print({name!r} + ": could not open " + str(source), file=sys.stderr)
    sys.exit(1)
if "FAIL" in content:
    print("stdout of failed " + {name!r})
    print({name!r} + ": invalid entry", file=sys.stderr)
    sys.exit(68)
print({name!r} + ": ok")
"""


def _write_script(path: Path, body: str) -> Path:
    path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@dataclass
class FakeLdap:
    """Fake OpenLDAP installation rooted in a temporary directory."""

    root: Path
    schema_dir: Path

    @property
    def bin_dir(self) -> Path:
        return self.root / "bin"

    def log_path(self, tool: str) -> Path:
        return self.root / f"{tool}.jsonl"

    def calls(self, tool: str) -> list[dict[str, Any]]:
        """Recorded invocations of *tool*, oldest first."""
        log = self.log_path(tool)
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]

    def slapd(self, mode: str) -> Path:
        return _write_script(self.bin_dir / f"slapd-{mode}", _FAKE_SLAPD.format(mode=mode))

    def tools(self, slapd_mode: str = "ok") -> ToolsConfig:
        self.bin_dir.mkdir(exist_ok=True)
        scripts: dict[str, str] = {}
        for name, file_flag in (
            ("slapadd", "-l"),
            ("ldapadd", "-f"),
            ("ldapmodify", "-f"),
            ("ldapdelete", "-f"),
        ):
            body = _FAKE_TOOL.format(file_flag=file_flag, log=str(self.log_path(name)), name=name)
            scripts[name] = str(_write_script(self.bin_dir / name, body))
        return ToolsConfig(slapd=str(self.slapd(slapd_mode)), **scripts)

    def settings(
        self,
        *,
        slapd_mode: str = "ok",
        schema_dirs: tuple[str, ...] | None = None,
        tls: bool = True,
        **startup: Any,
    ) -> LdapTestSettings:
        startup_values: dict[str, Any] = {
            "ready_timeout": 10.0,
            "port_timeout": 10.0,
            "port_poll_interval": 0.01,
        }
        startup_values.update(startup)
        return LdapTestSettings(
            tools=self.tools(slapd_mode),
            startup=StartupConfig(**startup_values),
            discovery=DiscoveryConfig(
                schema_dirs=schema_dirs if schema_dirs is not None else (str(self.schema_dir),),
                module_dirs=(),
            ),
            server=ServerConfig(tls=tls),
        )


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_ldap(tmp_path: Path) -> FakeLdap:
    """Fake slapd/slapadd/ldap* executables plus an empty schema directory."""
    root = tmp_path / "fake-ldap"
    schema_dir = root / "schema"
    schema_dir.mkdir(parents=True)
    (schema_dir / "collective.ldif").write_text("dn: cn=collective,cn=schema,cn=config\n")
    return FakeLdap(root=root, schema_dir=schema_dir)


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Run with a clean cwd and no LDAP_TEST_SERVER_* variables."""
    for key in list(os.environ):
        if key.startswith("LDAP_TEST_SERVER_"):
            monkeypatch.delenv(key)
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def restore_logging() -> Generator[None]:
    """Restore root logger and structlog state changed by configure_logging."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    pkg = logging.getLogger("ldap_test_server")
    pkg_level = pkg.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    pkg.setLevel(pkg_level)
    structlog.reset_defaults()
