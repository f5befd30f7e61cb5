"""Config Assembler — builds the slapd configuration directory with slapadd.

INVARIANT: The configuration directory is complete before slapd sees it.
Directives are replayed strictly in order, one slapadd call each, and the
first failure aborts the whole assembly. A half-loaded cn=config is not a
state worth starting a server from, so there is no retry and no skipping.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from ldap_test_server.domain.directives import (
    FilePath,
    IncludeDirective,
    InlineText,
    SystemSchemaFile,
)
from ldap_test_server.errors import AssemblyError
from ldap_test_server.infrastructure.tools import ToolOutput, run_tool

logger = logging.getLogger(__name__)


class ConfigAssembler:
    """Replays resolved include directives through slapadd.

    Args:
        loader: slapadd executable.
        work_dir: Directory where inline LDIF is spooled to files.
        schema_dir: Discovered system schema directory.
    """

    def __init__(self, loader: str, *, work_dir: Path, schema_dir: Path) -> None:
        self._loader = loader
        self._work_dir = work_dir
        self._schema_dir = schema_dir

    def source_file(self, index: int, directive: IncludeDirective) -> Path:
        """Return the file slapadd should read for *directive*.

        Inline text is written to ``tmp_<index>.ldif`` in the work dir.
        """
        if directive.is_template:
            msg = f"template directive reached the assembler unresolved: {directive.describe()}"
            raise ValueError(msg)

        source = directive.source
        if isinstance(source, SystemSchemaFile):
            return self._schema_dir / source.path
        if isinstance(source, FilePath):
            return source.path
        if isinstance(source, InlineText):
            spool = self._work_dir / f"tmp_{index}.ldif"
            spool.write_text(source.content, encoding="utf-8")
            return spool
        msg = f"unsupported include source: {source!r}"
        raise TypeError(msg)

    async def load(self, config_dir: Path, database: int, file: Path) -> ToolOutput:
        """Run ``slapadd -F <config_dir> -n <database> -l <file>``."""
        logger.debug("slapadd dbnum: %d file: %s", database, file)
        return await run_tool(
            [self._loader, "-F", config_dir, "-n", str(database), "-l", file],
            source=file,
            error_cls=AssemblyError,
        )

    async def assemble(self, directives: Iterable[IncludeDirective], config_dir: Path) -> Path:
        """Create *config_dir* and load every directive into it, in order."""
        config_dir.mkdir()
        count = 0
        for index, directive in enumerate(directives):
            file = self.source_file(index, directive)
            await self.load(config_dir, directive.database, file)
            count += 1
        logger.debug("Assembled slapd configuration from %d directive(s) in %s", count, config_dir)
        return config_dir
