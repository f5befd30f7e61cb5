"""Include directives — one unit of LDIF to load into a numbered database.

An include source is a tagged union of three cases:

- :class:`InlineText`: LDIF held in memory.
- :class:`FilePath`: LDIF read from a caller-supplied file.
- :class:`SystemSchemaFile`: a file relative to the installed slapd schema
  directory (for example ``"collective.ldif"``).

Inline text and files may additionally be flagged as templates, which gives
four loadable shapes in total. System schema files are never templates.

INVARIANT: Directive order is load order. Directives for the same database
are applied exactly in the order they were added.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

MAX_DATABASE_NUMBER = 255


@dataclass(frozen=True)
class InlineText:
    """LDIF content held in memory."""

    content: str


@dataclass(frozen=True)
class FilePath:
    """LDIF content stored in a file."""

    path: Path


@dataclass(frozen=True)
class SystemSchemaFile:
    """LDIF file relative to the discovered slapd schema directory."""

    path: Path


IncludeSource = InlineText | FilePath | SystemSchemaFile


@dataclass(frozen=True)
class IncludeDirective:
    """One LDIF payload destined for database *database*.

    Attributes:
        database: slapd database number (0 is ``cn=config``).
        source: Where the LDIF comes from.
        is_template: Whether placeholders must be substituted before loading.
    """

    database: int
    source: IncludeSource
    is_template: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.database <= MAX_DATABASE_NUMBER:
            msg = f"database number must be in 0..{MAX_DATABASE_NUMBER}, got {self.database}"
            raise ValueError(msg)
        if not isinstance(self.source, (InlineText, FilePath, SystemSchemaFile)):
            msg = f"unsupported include source: {self.source!r}"
            raise TypeError(msg)
        if self.is_template and isinstance(self.source, SystemSchemaFile):
            raise ValueError("system schema files cannot be templates")

    def describe(self) -> str:
        """Short human-readable label used in log lines."""
        if isinstance(self.source, InlineText):
            kind = "inline"
        elif isinstance(self.source, FilePath):
            kind = f"file {self.source.path}"
        else:
            kind = f"system {self.source.path}"
        suffix = " (template)" if self.is_template else ""
        return f"db {self.database}: {kind}{suffix}"
