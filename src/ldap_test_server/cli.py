"""ldap-test-server — run an isolated slapd until interrupted.

Thin front end over :class:`LdapServerBuilder`: turns flags into builder
calls, starts the server, prints how to reach it and waits for Ctrl-C.
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Any

import click
import structlog

from ldap_test_server import __version__
from ldap_test_server.builder import LdapServerBuilder
from ldap_test_server.config.logging import configure_logging
from ldap_test_server.config.settings import LdapTestSettings
from ldap_test_server.errors import LdapTestServerError

log = structlog.get_logger("ldap_test_server.cli")

LDIF_SUFFIX = ".ldif"

_EXAMPLES = """\
  # Start a server for dc=planetexpress,dc=com on free ports
  ldap-test-server

  # Listen on all interfaces on fixed ports, loading schema and data
  ldap-test-server --bind-addr 0.0.0.0 --port 8389 -b "dc=planetexpress,dc=com" \\
      -s schema/ -d data/

  # Plaintext only, with every slapd log line
  ldap-test-server --no-tls -v"""


def _add_examples_option(cmd: click.Command, examples: str) -> None:
    """Attach an eager ``--examples`` flag to a Click command."""

    def show_examples(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value:
            return
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo(examples)
        ctx.exit(0)

    cmd.params.append(
        click.Option(
            ["--examples"],
            is_flag=True,
            expose_value=False,
            is_eager=True,
            callback=show_examples,
            help="Show usage examples.",
        )
    )


class ExamplesCommand(click.Command):
    """Click Command subclass that supports an ``--examples`` flag."""

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            _add_examples_option(self, examples)


def list_ldif_files(directory: Path) -> list[Path]:
    """Return the ``*.ldif`` files in *directory*, sorted by name.

    Anything else in the directory is skipped with a warning.
    """
    files: list[Path] = []
    for path in directory.iterdir():
        if path.suffix == LDIF_SUFFIX and path.is_file():
            files.append(path)
        else:
            log.warning("Ignoring file", path=str(path))
    return sorted(files)


def root_entry_ldif(base_dn: str) -> str:
    """Minimal root entry for *base_dn* (``dcObject`` + ``organization``)."""
    first_rdn = base_dn.split(",", 1)[0]
    attr, _, value = first_rdn.partition("=")
    lines = [
        f"dn: {base_dn}",
        "objectClass: dcObject",
        "objectClass: organization",
        "o: ldap-test-server-cli",
    ]
    if attr.strip().lower() == "dc":
        lines.append(f"dc: {value.strip()}")
    return "\n".join(lines) + "\n"


def make_builder(
    settings: LdapTestSettings,
    *,
    base_dn: str,
    bind_addr: str | None = None,
    port: int | None = None,
    ssl_port: int | None = None,
    tls: bool = True,
    schema_dir: Path | None = None,
    data_dir: Path | None = None,
) -> LdapServerBuilder:
    """Translate CLI options into a staged builder."""
    builder = LdapServerBuilder.new(base_dn, settings=settings).add(1, root_entry_ldif(base_dn))

    if bind_addr is not None:
        builder.bind_addr(bind_addr)
    if port is not None:
        builder.port(port)
    if ssl_port is not None:
        builder.ssl_port(ssl_port)
    if not tls:
        builder.tls(False)

    if schema_dir is not None:
        for ldif in list_ldif_files(schema_dir):
            log.info("add schema file", path=str(ldif))
            builder.add_template_file(0, ldif)

    if data_dir is not None:
        for ldif in list_ldif_files(data_dir):
            log.info("add data file", path=str(ldif))
            builder.add_template_file(1, ldif)

    return builder


async def _wait_for_shutdown() -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        loop.add_signal_handler(sig, stop.set)
    try:
        await stop.wait()
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)


async def serve(builder: LdapServerBuilder) -> None:
    """Run the server until SIGINT/SIGTERM, then tear it down."""
    server = await builder.run()
    async with server:
        log.info(
            "Server started",
            url=server.url,
            ssl_url=server.ssl_url,
            server_dir=str(server.server_dir),
        )
        log.info(
            f'ldapsearch -x -H "{server.url}" -D "{server.root_dn}" -w "{server.root_pw}" '
            f'-b "{server.base_dn}" "(objectClass=*)"'
        )
        log.info("waiting for ctrl-c")
        await _wait_for_shutdown()
    log.info("Server stopped")


_DIR = click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path)


@click.command(cls=ExamplesCommand, examples=_EXAMPLES)
@click.version_option(version=__version__, prog_name="ldap-test-server")
@click.option(
    "-b", "--base-dn", default="dc=planetexpress,dc=com", show_default=True, help="Base DN."
)
@click.option("--bind-addr", default=None, help="Bind ldap server on address.")
@click.option("--port", type=click.IntRange(1, 65535), default=None, help="Plaintext port.")
@click.option("--ssl-port", type=click.IntRange(1, 65535), default=None, help="ldaps port.")
@click.option(
    "-s", "--schema-dir", type=_DIR, default=None, help="LDIF files installed in database 0."
)
@click.option(
    "-d", "--data-dir", type=_DIR, default=None, help="LDIF files installed in database 1."
)
@click.option("--no-tls", is_flag=True, help="Do not open an ldaps listener.")
@click.option("-v", "--verbose", is_flag=True, help="Debug output, including slapd stderr.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
def cli(
    base_dn: str,
    bind_addr: str | None,
    port: int | None,
    ssl_port: int | None,
    schema_dir: Path | None,
    data_dir: Path | None,
    no_tls: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
) -> None:
    """Run an isolated OpenLDAP server until interrupted."""
    settings = LdapTestSettings.from_cli(
        config_path=config_path,
        verbose=verbose or None,
        log_json=log_json or None,
    )
    configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    builder = make_builder(
        settings,
        base_dn=base_dn,
        bind_addr=bind_addr,
        port=port,
        ssl_port=ssl_port,
        tls=not no_tls,
        schema_dir=schema_dir,
        data_dir=data_dir,
    )
    try:
        asyncio.run(serve(builder))
    except LdapTestServerError as exc:
        raise click.ClickException(str(exc)) from exc
