"""Runtime Mutation Client — add/modify/delete against the running slapd.

Every call shells out to ldapadd/ldapmodify/ldapdelete with simple bind
credentials. Inline LDIF is spooled to a single fixed file (``tmp.ldif``) in
the server's working directory, so calls against one server are serialized
with a lock.

A failing tool raises :class:`MutationError`. Mutations issued by a test are
preconditions of that test, not recoverable events, but the server itself is
left running and usable.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from ldap_test_server.config.models import ToolsConfig
from ldap_test_server.errors import MutationError
from ldap_test_server.infrastructure.tools import ToolOutput, run_tool

logger = logging.getLogger(__name__)

SPOOL_FILENAME = "tmp.ldif"


class MutationClient:
    """Issues LDIF mutations to one running server.

    Args:
        tools: Executable names for ldapadd/ldapmodify/ldapdelete.
        url: Plaintext ``ldap://`` URL of the server.
        work_dir: Server working directory (hosts the spool file).
        root_dn: Default bind DN.
        root_pw: Default bind password.
    """

    def __init__(
        self,
        tools: ToolsConfig,
        *,
        url: str,
        work_dir: Path,
        root_dn: str,
        root_pw: str,
    ) -> None:
        self._tools = tools
        self._url = url
        self._work_dir = work_dir
        self._root_dn = root_dn
        self._root_pw = root_pw
        self._lock = asyncio.Lock()

    @property
    def spool_path(self) -> Path:
        return self._work_dir / SPOOL_FILENAME

    async def add(
        self, ldif: str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Add the entries in *ldif*."""
        return await self._run_text(self._tools.ldapadd, ldif, bind_dn, bind_pw)

    async def add_file(
        self, file: Path | str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Add the entries in LDIF *file*."""
        return await self._run_file(self._tools.ldapadd, Path(file), bind_dn, bind_pw)

    async def modify(
        self, ldif: str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Apply the ``changetype`` records in *ldif*."""
        return await self._run_text(self._tools.ldapmodify, ldif, bind_dn, bind_pw)

    async def modify_file(
        self, file: Path | str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Apply the ``changetype`` records in LDIF *file*."""
        return await self._run_file(self._tools.ldapmodify, Path(file), bind_dn, bind_pw)

    async def delete(
        self, ldif: str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Delete entries given as ``changetype: delete`` LDIF records.

        Inline deletions go through ldapmodify, which understands LDIF
        change records; ldapdelete only reads bare DNs.
        """
        return await self._run_text(self._tools.ldapmodify, ldif, bind_dn, bind_pw)

    async def delete_file(
        self, file: Path | str, *, bind_dn: str | None = None, bind_pw: str | None = None
    ) -> ToolOutput:
        """Delete the entries whose DNs are listed in *file*, one per line."""
        return await self._run_file(self._tools.ldapdelete, Path(file), bind_dn, bind_pw)

    async def _run_text(
        self, tool: str, ldif: str, bind_dn: str | None, bind_pw: str | None
    ) -> ToolOutput:
        async with self._lock:
            spool = self.spool_path
            spool.write_text(ldif, encoding="utf-8")
            return await self._invoke(tool, spool, bind_dn, bind_pw)

    async def _run_file(
        self, tool: str, file: Path, bind_dn: str | None, bind_pw: str | None
    ) -> ToolOutput:
        async with self._lock:
            return await self._invoke(tool, file, bind_dn, bind_pw)

    async def _invoke(
        self, tool: str, file: Path, bind_dn: str | None, bind_pw: str | None
    ) -> ToolOutput:
        dn = bind_dn if bind_dn is not None else self._root_dn
        pw = bind_pw if bind_pw is not None else self._root_pw
        logger.debug("%s as %s on %s: %s", tool, dn, self._url, file)
        return await run_tool(
            [tool, "-x", "-D", dn, "-w", pw, "-H", self._url, "-f", file],
            source=file,
            error_cls=MutationError,
        )
