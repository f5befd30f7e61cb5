"""LdapServerBuilder — stages a server configuration and starts it.

The builder is a plain mutable object: setters are last-write-wins, ``add*``
methods append directives, and every method returns the builder so calls
can be chained. Nothing touches the filesystem or spawns a process until
:meth:`LdapServerBuilder.run`, which finalizes everything at once:

1. discover the system schema directory (fails before anything is created),
2. pick host and ports, create the private working directory,
3. provision TLS material,
4. resolve template directives,
5. assemble ``cn=config`` and databases with slapadd,
6. spawn slapd and wait for both readiness signals,
7. hand process and directory over to a :class:`LdapServerConn`.

Any failure in 2-6 removes the working directory and kills slapd if it was
spawned; no connection is returned.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from ldap_test_server.config.settings import LdapTestSettings
from ldap_test_server.connection import LdapServerConn
from ldap_test_server.domain.bootstrap import default_init_ldif
from ldap_test_server.domain.directives import (
    FilePath,
    IncludeDirective,
    InlineText,
    SystemSchemaFile,
)
from ldap_test_server.domain.templates import build_substitutions, resolve_directives
from ldap_test_server.errors import BuilderConsumedError, SchemaDirNotFoundError
from ldap_test_server.infrastructure.assembler import ConfigAssembler
from ldap_test_server.infrastructure.mutation import MutationClient
from ldap_test_server.infrastructure.network import pick_unused_port
from ldap_test_server.infrastructure.schema import find_module_dir, find_schema_dir
from ldap_test_server.infrastructure.supervisor import ProcessSupervisor
from ldap_test_server.infrastructure.tls import provision_tls

logger = logging.getLogger(__name__)

DEFAULT_ROOT_PW = "secret"
CONFIG_DIRNAME = "config"


def _format_url(scheme: str, host: str, port: int) -> str:
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"{scheme}://{host}:{port}"


class LdapServerBuilder:
    """Staged configuration for one isolated slapd instance.

    Base DN and administrator identity are fixed at construction. Use
    :meth:`new` for a ready-made ``cn=config`` bootstrap, or :meth:`empty`
    to supply the whole configuration yourself.
    """

    def __init__(
        self,
        base_dn: str,
        root_dn: str,
        root_pw: str,
        *,
        settings: LdapTestSettings | None = None,
    ) -> None:
        self._base_dn = base_dn
        self._root_dn = root_dn
        self._root_pw = root_pw
        self._settings = settings if settings is not None else LdapTestSettings()
        self._bind_addr: str | None = None
        self._port: int | None = None
        self._ssl_port: int | None = None
        self._tls: bool | None = None
        self._ssl_cert_key: tuple[str, str] | None = None
        self._includes: list[IncludeDirective] = []
        self._consumed = False

    @classmethod
    def empty(
        cls,
        base_dn: str,
        root_dn: str,
        root_pw: str,
        *,
        settings: LdapTestSettings | None = None,
    ) -> LdapServerBuilder:
        """Builder with no directives at all."""
        return cls(base_dn, root_dn, root_pw, settings=settings)

    @classmethod
    def new(cls, base_dn: str, *, settings: LdapTestSettings | None = None) -> LdapServerBuilder:
        """Builder with the default bootstrap loaded into database 0.

        The administrator is ``cn=admin,<base_dn>`` with password ``secret``.
        ``cn=admin,cn=config`` (same password) administers ``cn=config``.
        Database 1 is an MDB database rooted at *base_dn*; its root entry
        still has to be added, for example with ``add(1, ...)``.
        """
        builder = cls(base_dn, f"cn=admin,{base_dn}", DEFAULT_ROOT_PW, settings=settings)
        module_dir = find_module_dir(builder._settings.discovery.module_dirs)
        return builder.add_template(0, default_init_ldif(module_dir))

    def __repr__(self) -> str:
        return (
            f"LdapServerBuilder(base_dn={self._base_dn!r}, root_dn={self._root_dn!r}, "
            f"includes={len(self._includes)})"
        )

    @property
    def base_dn(self) -> str:
        return self._base_dn

    @property
    def root_dn(self) -> str:
        return self._root_dn

    @property
    def includes(self) -> tuple[IncludeDirective, ...]:
        """Directives staged so far, in load order."""
        return tuple(self._includes)

    # ------------------------------------------------------------------
    # Scalar settings (last write wins)
    # ------------------------------------------------------------------

    def ssl_certificates(self, certificate: str, key: str) -> LdapServerBuilder:
        """Use an existing certificate and key PEM instead of generating one."""
        self._ssl_cert_key = (certificate, key)
        return self

    def bind_addr(self, bind_addr: str) -> LdapServerBuilder:
        """Listen address (default ``127.0.0.1``)."""
        self._bind_addr = bind_addr
        return self

    def port(self, port: int) -> LdapServerBuilder:
        """Plaintext listen port (default: a free port)."""
        self._port = port
        return self

    def ssl_port(self, port: int) -> LdapServerBuilder:
        """ldaps listen port (default: a free port)."""
        self._ssl_port = port
        return self

    def tls(self, enabled: bool) -> LdapServerBuilder:
        """Enable or disable the ldaps listener."""
        self._tls = enabled
        return self

    # ------------------------------------------------------------------
    # Directives (append only, load order)
    # ------------------------------------------------------------------

    def _push(self, directive: IncludeDirective) -> LdapServerBuilder:
        if self._consumed:
            raise BuilderConsumedError("builder was already used to run a server")
        self._includes.append(directive)
        return self

    def add(self, dbnum: int, content: str) -> LdapServerBuilder:
        """Load LDIF *content* verbatim into database *dbnum*.

        Example::

            builder.add(0, '''dn: cn=user,cn=schema,cn=config
            objectClass: olcSchemaConfig
            cn: user
            olcObjectClasses: ( 1.2.840.113556.1.5.9 NAME 'user' SUP top AUXILIARY )''')
        """
        return self._push(IncludeDirective(dbnum, InlineText(content), is_template=False))

    def add_template(self, dbnum: int, content: str) -> LdapServerBuilder:
        """Load LDIF *content* into *dbnum* after placeholder substitution."""
        return self._push(IncludeDirective(dbnum, InlineText(content), is_template=True))

    def add_file(self, dbnum: int, file: Path | str) -> LdapServerBuilder:
        """Load an LDIF file verbatim into database *dbnum*."""
        return self._push(IncludeDirective(dbnum, FilePath(Path(file)), is_template=False))

    def add_template_file(self, dbnum: int, file: Path | str) -> LdapServerBuilder:
        """Load an LDIF file into *dbnum* after placeholder substitution."""
        return self._push(IncludeDirective(dbnum, FilePath(Path(file)), is_template=True))

    def add_system_file(self, dbnum: int, file: Path | str) -> LdapServerBuilder:
        """Load a schema file shipped with slapd, e.g. ``"collective.ldif"``."""
        return self._push(IncludeDirective(dbnum, SystemSchemaFile(Path(file))))

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def _pick_ports(self, host: str) -> tuple[int, int | None]:
        server = self._settings.server
        tls_enabled = self._tls if self._tls is not None else server.tls

        port = self._port or server.port or pick_unused_port(host)
        if not tls_enabled:
            return port, None

        ssl_port = self._ssl_port or server.ssl_port
        while ssl_port is None or ssl_port == port:
            ssl_port = pick_unused_port(host)
        return port, ssl_port

    async def run(self) -> LdapServerConn:
        """Create the databases, start slapd and wait until it is ready.

        Raises:
            BuilderConsumedError: ``run`` was already called on this builder.
            SchemaDirNotFoundError: no slapd schema directory is installed.
            TemplateSourceError: a template file could not be read.
            AssemblyError: slapadd rejected one of the directives.
            StartupError: slapd did not become ready in time.
        """
        if self._consumed:
            raise BuilderConsumedError("builder was already used to run a server")

        settings = self._settings
        schema_dir = find_schema_dir(settings.discovery.schema_dirs)
        if schema_dir is None:
            raise SchemaDirNotFoundError(settings.discovery.schema_dirs)

        directives, self._includes = self._includes, []
        self._consumed = True

        host = self._bind_addr or settings.server.bind_addr
        port, ssl_port = self._pick_ports(host)
        url = _format_url("ldap", host, port)
        ssl_url = _format_url("ldaps", host, ssl_port) if ssl_port is not None else None
        urls = [url] if ssl_url is None else [url, ssl_url]

        work_dir = tempfile.TemporaryDirectory(prefix="ldap-test-server-")
        try:
            work_path = Path(work_dir.name)
            tls_material = provision_tls(work_path, host, self._ssl_cert_key)

            substitutions = build_substitutions(
                schema_dir=schema_dir,
                work_dir=work_path,
                base_dn=self._base_dn,
                root_dn=self._root_dn,
                root_pw=self._root_pw,
            )
            resolved = resolve_directives(directives, substitutions)

            config_dir = work_path / CONFIG_DIRNAME
            assembler = ConfigAssembler(
                settings.tools.slapadd, work_dir=work_path, schema_dir=schema_dir
            )
            await assembler.assemble(resolved, config_dir)

            supervisor = ProcessSupervisor(
                settings.tools.slapd,
                config_dir=config_dir,
                urls=urls,
                probe_host=host,
                probe_port=port,
                startup=settings.startup,
            )
            await supervisor.start()
        except BaseException:
            work_dir.cleanup()
            raise

        logger.info("Started ldap server on %s in %s", " ".join(urls), work_path)

        mutations = MutationClient(
            settings.tools,
            url=url,
            work_dir=work_path,
            root_dn=self._root_dn,
            root_pw=self._root_pw,
        )
        return LdapServerConn(
            url=url,
            host=host,
            port=port,
            ssl_url=ssl_url,
            ssl_port=ssl_port,
            ssl_cert_pem=tls_material.cert_pem,
            base_dn=self._base_dn,
            root_dn=self._root_dn,
            root_pw=self._root_pw,
            work_dir=work_dir,
            supervisor=supervisor,
            mutations=mutations,
        )
