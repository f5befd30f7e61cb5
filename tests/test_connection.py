"""Tests for LdapServerConn lifecycle and delegation."""

import asyncio
import gc
from pathlib import Path

import pytest

from ldap_test_server import LdapServerBuilder, LdapServerConn
from ldap_test_server.errors import MutationError
from ldap_test_server.infrastructure.supervisor import SupervisorState, is_process_alive
from tests.conftest import ROOT_LDIF, FakeLdap

pytestmark = pytest.mark.anyio


@pytest.fixture
async def server(fake_ldap: FakeLdap):
    builder = LdapServerBuilder.new("dc=example,dc=com", settings=fake_ldap.settings())
    conn = await builder.add(1, ROOT_LDIF).run()
    try:
        yield conn
    finally:
        await conn.aclose()


async def test_repr_mentions_url(server: LdapServerConn) -> None:
    assert server.url in repr(server)
    assert "ready" in repr(server)


async def test_host_matches_url(server: LdapServerConn) -> None:
    assert server.host == "127.0.0.1"
    assert server.url.endswith(f":{server.port}")


async def test_mutations_delegate_to_tools(
    server: LdapServerConn, fake_ldap: FakeLdap, tmp_path: Path
) -> None:
    dns = tmp_path / "dns.txt"
    dns.write_text("ou=people,dc=example,dc=com\n")

    await server.modify("dn: dc=example,dc=com\nchangetype: modify\nreplace: o\no: Other\n")
    await server.delete("dn: ou=people,dc=example,dc=com\nchangetype: delete\n")
    await server.delete_file(dns)

    assert len(fake_ldap.calls("ldapmodify")) == 2
    [delete] = fake_ldap.calls("ldapdelete")
    assert delete["content"] == "ou=people,dc=example,dc=com\n"


async def test_failed_mutation_leaves_server_running(
    server: LdapServerConn, fake_ldap: FakeLdap
) -> None:
    with pytest.raises(MutationError):
        await server.add("FAIL\n")
    assert server.state is SupervisorState.READY
    assert (await server.add("dn: ou=ok,dc=example,dc=com\n")).returncode == 0


async def test_clone_to_dir(server: LdapServerConn, tmp_path: Path) -> None:
    dest = await server.clone_to_dir(tmp_path / "clone")
    assert dest == tmp_path / "clone"
    assert (dest / "config").is_dir()
    assert (dest / "cert.pem").read_text() == server.ssl_cert_pem


async def test_close_is_idempotent(server: LdapServerConn) -> None:
    server.close()
    server.close()
    await server.aclose()
    assert server.closed
    assert server.state is SupervisorState.TERMINATED
    assert not server.server_dir.exists()


async def test_sync_context_manager(fake_ldap: FakeLdap) -> None:
    conn = await LdapServerBuilder.new("dc=example,dc=com", settings=fake_ldap.settings()).run()
    with conn as server:
        assert server is conn
    assert conn.closed
    assert not conn.server_dir.exists()


async def test_dropped_handle_kills_slapd(fake_ldap: FakeLdap) -> None:
    conn = await LdapServerBuilder.new("dc=example,dc=com", settings=fake_ldap.settings()).run()
    pid = conn.pid
    server_dir = conn.server_dir
    assert pid is not None and is_process_alive(pid)

    del conn
    gc.collect()

    for _ in range(100):
        if not is_process_alive(pid):
            break
        await asyncio.sleep(0.05)
    assert not is_process_alive(pid)
    assert not server_dir.exists()
