"""Exception taxonomy for server provisioning and runtime mutations.

Categories:
- Discovery (:class:`SchemaDirNotFoundError`): raised before anything is
  created on disk or spawned.
- Template (:class:`TemplateSourceError`): a template file is unreadable;
  raised before slapadd runs.
- Assembly (:class:`AssemblyError`): ``slapadd`` failed; the daemon is never
  started from a half-loaded configuration.
- Startup (:class:`StartupError` and subclasses): the daemon was spawned but
  never became ready. The process has already been killed when this is raised.
- Mutation (:class:`MutationError`): an ``ldapadd``/``ldapmodify``/
  ``ldapdelete`` call failed. The connection remains usable.

Teardown failures are never raised, only logged.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class LdapTestServerError(Exception):
    """Base class for every error raised by ldap_test_server."""


class BuilderConsumedError(LdapTestServerError):
    """The builder's directives were already handed over to a running server."""


class SchemaDirNotFoundError(LdapTestServerError):
    """None of the candidate slapd schema directories exists."""

    def __init__(self, candidates: Sequence[str | Path]) -> None:
        self.candidates = tuple(str(c) for c in candidates)
        super().__init__(
            "no slapd schema directory found (tried: "
            f"{', '.join(self.candidates)}). Is the openldap server installed?"
        )


class ToolError(LdapTestServerError):
    """An external OpenLDAP tool could not be run or exited with an error.

    Attributes:
        command: Full argv of the failed invocation.
        returncode: Exit status, or None when the binary could not be executed.
        stdout: Captured standard output.
        stderr: Captured standard error (or the OS error text).
        source: The LDIF file the tool was fed.
    """

    def __init__(
        self,
        command: Sequence[str],
        returncode: int | None,
        stdout: str,
        stderr: str,
        source: Path | None = None,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.source = source
        name = Path(self.command[0]).name if self.command else "<unknown>"
        status = "could not be executed" if returncode is None else f"exited with {returncode}"
        super().__init__(
            f"{name} command {status}, stdout: {stdout}, stderr: {stderr} on file {source}"
        )


class AssemblyError(ToolError):
    """``slapadd`` rejected a directive while building the configuration."""


class MutationError(ToolError):
    """A runtime add/modify/delete against the running server failed."""


class TemplateSourceError(LdapTestServerError):
    """A template file could not be read for placeholder substitution."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"cannot read template file {path}: {reason}")


class StartupError(LdapTestServerError):
    """slapd was spawned but did not become ready."""


class ReadinessTimeoutError(StartupError):
    """The readiness marker did not appear on stderr before the deadline."""


class PortTimeoutError(StartupError):
    """The listener port did not accept connections before the deadline."""
