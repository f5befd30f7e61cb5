"""Async runner for the one-shot OpenLDAP command line tools.

slapadd, ldapadd, ldapmodify and ldapdelete all share the same contract:
feed them an LDIF file, capture stdout/stderr, and treat any non-zero exit
as fatal to the operation that issued them.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ldap_test_server.errors import ToolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolOutput:
    """Result of a successful tool invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


async def run_tool(
    args: Sequence[str | Path],
    *,
    source: Path | None = None,
    error_cls: type[ToolError] = ToolError,
) -> ToolOutput:
    """Run *args* to completion and return its captured output.

    Raises *error_cls* when the binary cannot be executed or exits non-zero.
    """
    argv = tuple(str(a) for a in args)
    logger.debug("Running %s", " ".join(argv))
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise error_cls(argv, None, "", str(exc), source) from exc

    try:
        stdout_b, stderr_b = await proc.communicate()
    except BaseException:
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
        await proc.wait()
        raise
    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")
    returncode = proc.returncode if proc.returncode is not None else -1

    if returncode != 0:
        raise error_cls(argv, returncode, stdout, stderr, source)

    return ToolOutput(args=argv, returncode=returncode, stdout=stdout, stderr=stderr)
