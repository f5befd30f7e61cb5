"""Discovery of the installed OpenLDAP schema and module directories.

The candidate lists are read-only process-wide constants; settings may
replace them, but nothing mutates them at runtime.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

POSSIBLE_SCHEMA_DIRS: tuple[str, ...] = (
    "/etc/ldap/schema",
    "/usr/local/etc/openldap/schema",
    "/etc/openldap/schema",
)

# Distributions that build backends as loadable modules (Debian, Ubuntu)
# need back_mdb loaded explicitly; others compile it in.
POSSIBLE_MODULE_DIRS: tuple[str, ...] = (
    "/usr/lib/ldap",
    "/usr/lib64/openldap",
    "/usr/lib/openldap",
    "/usr/local/libexec/openldap",
)

MDB_MODULE = "back_mdb"


def find_schema_dir(candidates: Iterable[str | Path] = POSSIBLE_SCHEMA_DIRS) -> Path | None:
    """Return the first candidate that exists and is a directory."""
    for candidate in candidates:
        path = Path(candidate)
        if path.is_dir():
            logger.debug("Using slapd schema directory %s", path)
            return path
    return None


def find_module_dir(candidates: Iterable[str | Path] = POSSIBLE_MODULE_DIRS) -> Path | None:
    """Return the first candidate directory that ships a loadable back_mdb module."""
    for candidate in candidates:
        path = Path(candidate)
        if not path.is_dir():
            continue
        if any(path.glob(f"{MDB_MODULE}.*")):
            logger.debug("Using slapd module directory %s", path)
            return path
    return None
