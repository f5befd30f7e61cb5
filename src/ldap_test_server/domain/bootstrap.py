"""Default bootstrap configuration for database 0 (``cn=config``).

The packaged ``init.ldif`` is a template: it references the working
directory (pid/args files, TLS material, MDB data), the schema directory
(core, cosine, nis and inetorgperson schemas), the base DN and the admin
identity. ``cn=admin,cn=config`` with the admin password is the config
database root, for callers that need to modify ``cn=config`` at runtime.
"""

from __future__ import annotations

from importlib import resources
from pathlib import Path

from ldap_test_server.infrastructure.schema import MDB_MODULE

CONFIG_ROOT_DN = "cn=admin,cn=config"


def _read_init_ldif() -> str:
    return resources.files("ldap_test_server").joinpath("resources/init.ldif").read_text(
        encoding="utf-8"
    )


def module_entry(module_dir: Path) -> str:
    """LDIF entry that loads back_mdb from *module_dir*."""
    return (
        "dn: cn=module{0},cn=config\n"
        "objectClass: olcModuleList\n"
        "cn: module{0}\n"
        f"olcModulePath: {module_dir}\n"
        f"olcModuleLoad: {MDB_MODULE}\n"
    )


def default_init_ldif(module_dir: Path | None = None) -> str:
    """Return the bootstrap template, loading back_mdb when *module_dir* is set.

    The module entry must follow ``cn=config`` (its parent) and precede the
    MDB database definition, so it is spliced in right after the first entry.
    """
    template = _read_init_ldif()
    if module_dir is None:
        return template
    global_entry, rest = template.split("\n\n", 1)
    return f"{global_entry}\n\n{module_entry(module_dir)}\n{rest}"
