"""Tests for the async tool runner."""

import asyncio
import sys
from pathlib import Path

import pytest

from ldap_test_server.errors import AssemblyError, ToolError
from ldap_test_server.infrastructure.supervisor import is_process_alive
from ldap_test_server.infrastructure.tools import run_tool

pytestmark = pytest.mark.anyio


async def test_captures_output() -> None:
    script = "import sys; print('out'); print('err', file=sys.stderr)"
    output = await run_tool([sys.executable, "-c", script])
    assert output.returncode == 0
    assert output.stdout.strip() == "out"
    assert output.stderr.strip() == "err"
    assert output.args[0] == sys.executable


async def test_nonzero_exit_raises_with_details(tmp_path: Path) -> None:
    source = tmp_path / "entry.ldif"
    script = "import sys; print('o'); print('e', file=sys.stderr); sys.exit(4)"
    with pytest.raises(ToolError) as exc_info:
        await run_tool([sys.executable, "-c", script], source=source)
    error = exc_info.value
    assert error.returncode == 4
    assert error.stdout.strip() == "o"
    assert error.stderr.strip() == "e"
    assert error.source == source
    assert f"on file {source}" in str(error)


async def test_error_class_is_configurable() -> None:
    with pytest.raises(AssemblyError):
        await run_tool([sys.executable, "-c", "raise SystemExit(1)"], error_cls=AssemblyError)


async def test_missing_binary(tmp_path: Path) -> None:
    missing = tmp_path / "no-such-slapadd"
    with pytest.raises(ToolError) as exc_info:
        await run_tool([missing, "-l", "x.ldif"])
    assert exc_info.value.returncode is None
    assert "could not be executed" in str(exc_info.value)
    assert exc_info.value.command == (str(missing), "-l", "x.ldif")


async def test_cancellation_kills_child(tmp_path: Path) -> None:
    pid_file = tmp_path / "child.pid"
    script = (
        "import os, pathlib, time; "
        f"pathlib.Path({str(pid_file)!r}).write_text(str(os.getpid())); "
        "time.sleep(60)"
    )
    task = asyncio.create_task(run_tool([sys.executable, "-c", script]))
    for _ in range(200):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.05)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not is_process_alive(pid)
