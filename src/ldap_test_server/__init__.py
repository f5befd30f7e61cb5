"""ldap-test-server — isolated OpenLDAP (slapd) servers for integration tests.

Typical use::

    server = await LdapServerBuilder.new("dc=planetexpress,dc=com").add(
        1,
        "dn: dc=planetexpress,dc=com\n"
        "objectClass: dcObject\n"
        "objectClass: organization\n"
        "o: Planet Express\n"
        "dc: planetexpress\n",
    ).run()
    async with server:
        await server.add("dn: ou=people,dc=planetexpress,dc=com\n...")
"""

from __future__ import annotations

from ldap_test_server.builder import LdapServerBuilder
from ldap_test_server.connection import LdapServerConn
from ldap_test_server.errors import (
    AssemblyError,
    BuilderConsumedError,
    LdapTestServerError,
    MutationError,
    PortTimeoutError,
    ReadinessTimeoutError,
    SchemaDirNotFoundError,
    StartupError,
    TemplateSourceError,
    ToolError,
)

__version__ = "0.1.0"

__all__ = [
    "AssemblyError",
    "BuilderConsumedError",
    "LdapServerBuilder",
    "LdapServerConn",
    "LdapTestServerError",
    "MutationError",
    "PortTimeoutError",
    "ReadinessTimeoutError",
    "SchemaDirNotFoundError",
    "StartupError",
    "TemplateSourceError",
    "ToolError",
    "__version__",
]
