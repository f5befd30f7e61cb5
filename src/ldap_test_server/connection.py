"""LdapServerConn — handle to a running, ready slapd instance.

Created exactly once by :meth:`LdapServerBuilder.run`. It exclusively owns
the process supervisor (and through it the slapd process) and the temporary
working directory. Closing it kills slapd and removes the directory::

    async with await builder.run() as server:
        await server.add(ldif)

If a handle is garbage collected without being closed, a finalizer still
kills the process; the working directory has its own finalizer.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import tempfile
import weakref
from pathlib import Path
from types import TracebackType

from ldap_test_server.infrastructure.mutation import MutationClient
from ldap_test_server.infrastructure.supervisor import ProcessSupervisor, SupervisorState
from ldap_test_server.infrastructure.tools import ToolOutput

logger = logging.getLogger(__name__)


def _kill_orphan(pid: int) -> None:
    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        return
    except OSError as exc:
        logger.warning("failed to kill slapd server: %s, pid: %s", exc, pid)
    else:
        logger.debug("killed unclosed slapd server pid: %s", pid)


class LdapServerConn:
    """Connection facts and runtime mutations for one running server."""

    def __init__(
        self,
        *,
        url: str,
        host: str,
        port: int,
        ssl_url: str | None,
        ssl_port: int | None,
        ssl_cert_pem: str,
        base_dn: str,
        root_dn: str,
        root_pw: str,
        work_dir: tempfile.TemporaryDirectory[str],
        supervisor: ProcessSupervisor,
        mutations: MutationClient,
    ) -> None:
        self._url = url
        self._host = host
        self._port = port
        self._ssl_url = ssl_url
        self._ssl_port = ssl_port
        self._ssl_cert_pem = ssl_cert_pem
        self._base_dn = base_dn
        self._root_dn = root_dn
        self._root_pw = root_pw
        self._work_dir = work_dir
        self._supervisor = supervisor
        self._mutations = mutations
        self._closed = False
        pid = supervisor.pid
        self._finalizer = (
            weakref.finalize(self, _kill_orphan, pid) if pid is not None else None
        )

    def __repr__(self) -> str:
        return (
            f"LdapServerConn(url={self._url!r}, ssl_url={self._ssl_url!r}, "
            f"base_dn={self._base_dn!r}, pid={self.pid}, state={self.state.value})"
        )

    # ------------------------------------------------------------------
    # Connection facts
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        """``ldap://host:port`` URL of the plaintext listener."""
        return self._url

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def ssl_url(self) -> str | None:
        """``ldaps://host:port`` URL, or None when TLS is disabled."""
        return self._ssl_url

    @property
    def ssl_port(self) -> int | None:
        return self._ssl_port

    @property
    def ssl_cert_pem(self) -> str:
        """PEM certificate served on the ldaps port."""
        return self._ssl_cert_pem

    @property
    def base_dn(self) -> str:
        return self._base_dn

    @property
    def root_dn(self) -> str:
        """Administrator DN."""
        return self._root_dn

    @property
    def root_pw(self) -> str:
        """Administrator password."""
        return self._root_pw

    @property
    def server_dir(self) -> Path:
        """Private working directory (configuration, data, TLS files)."""
        return Path(self._work_dir.name)

    @property
    def pid(self) -> int | None:
        return self._supervisor.pid

    @property
    def state(self) -> SupervisorState:
        return self._supervisor.state

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Runtime mutations
    # ------------------------------------------------------------------

    async def add(
        self, ldif: str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Add entries from LDIF text (ldapadd)."""
        return await self._mutations.add(ldif, bind_dn=bind_dn, bind_pw=bind_pw)

    async def add_file(
        self, file: Path | str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Add entries from an LDIF file (ldapadd)."""
        return await self._mutations.add_file(file, bind_dn=bind_dn, bind_pw=bind_pw)

    async def modify(
        self, ldif: str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Apply modification LDIF text (ldapmodify).

        Example::

            await server.modify(
                "dn: cn=Philip J. Fry,dc=planetexpress,dc=com\\n"
                "changetype: modify\\n"
                "add: displayName\\n"
                "displayName: Philip J. Fry\\n"
            )
        """
        return await self._mutations.modify(ldif, bind_dn=bind_dn, bind_pw=bind_pw)

    async def modify_file(
        self, file: Path | str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Apply a modification LDIF file (ldapmodify)."""
        return await self._mutations.modify_file(file, bind_dn=bind_dn, bind_pw=bind_pw)

    async def delete(
        self, ldif: str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Apply deletion LDIF text (``changetype: delete`` records)."""
        return await self._mutations.delete(ldif, bind_dn=bind_dn, bind_pw=bind_pw)

    async def delete_file(
        self, file: Path | str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Delete the DNs listed in *file* (ldapdelete)."""
        return await self._mutations.delete_file(file, bind_dn=bind_dn, bind_pw=bind_pw)

    async def clone_to_dir(self, dest: Path | str) -> Path:
        """Copy the server directory (config and data) to *dest*."""
        src = self.server_dir
        dst = Path(dest)
        await asyncio.to_thread(shutil.copytree, src, dst, dirs_exist_ok=True)
        return dst

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Kill slapd and remove the working directory. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._finalizer is not None:
            self._finalizer.detach()
        try:
            self._supervisor.terminate()
        finally:
            self._cleanup_dir()

    async def aclose(self) -> None:
        """Kill slapd, wait for it to exit, then remove the working directory."""
        if self._closed:
            return
        self._closed = True
        if self._finalizer is not None:
            self._finalizer.detach()
        try:
            await self._supervisor.aterminate()
        finally:
            self._cleanup_dir()

    def _cleanup_dir(self) -> None:
        try:
            self._work_dir.cleanup()
        except OSError as exc:
            logger.warning("failed to remove ldap server dir %s: %s", self._work_dir.name, exc)

    async def __aenter__(self) -> LdapServerConn:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def __enter__(self) -> LdapServerConn:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
