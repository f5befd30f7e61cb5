"""Placeholder substitution for template directives.

Tokens are replaced literally in a single pass: no escaping, no recursive
expansion (a substituted value that itself contains a token is left as is),
and no validation of the resulting LDIF. slapadd is the validator.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from pathlib import Path

from ldap_test_server.domain.directives import FilePath, IncludeDirective, InlineText
from ldap_test_server.errors import TemplateSourceError

SCHEMADIR = "@SCHEMADIR@"
WORKDIR = "@WORKDIR@"
BASEDN = "@BASEDN@"
ROOTDN = "@ROOTDN@"
ROOTPW = "@ROOTPW@"

PLACEHOLDERS: tuple[str, ...] = (SCHEMADIR, WORKDIR, BASEDN, ROOTDN, ROOTPW)


def build_substitutions(
    *,
    schema_dir: Path,
    work_dir: Path,
    base_dn: str,
    root_dn: str,
    root_pw: str,
) -> dict[str, str]:
    """Return the token table for one server instance.

    ``@SCHEMADIR@`` is a ``file://`` URI because it is consumed by LDIF
    ``include:`` lines; ``@WORKDIR@`` is a plain filesystem path.
    """
    return {
        SCHEMADIR: schema_dir.absolute().as_uri(),
        WORKDIR: str(work_dir),
        BASEDN: base_dn,
        ROOTDN: root_dn,
        ROOTPW: root_pw,
    }


def resolve_template(payload: str, substitutions: Mapping[str, str]) -> str:
    """Replace every occurrence of each token in *payload*.

    Text without any token is returned unchanged.
    """
    if not substitutions:
        return payload
    pattern = re.compile("|".join(re.escape(token) for token in substitutions))
    return pattern.sub(lambda match: substitutions[match.group(0)], payload)


def resolve_directives(
    directives: Iterable[IncludeDirective],
    substitutions: Mapping[str, str],
) -> list[IncludeDirective]:
    """Turn every template directive into concrete inline text.

    File templates are read from disk. Non-template directives are returned
    untouched, in their original position.
    """
    resolved: list[IncludeDirective] = []
    for directive in directives:
        if not directive.is_template:
            resolved.append(directive)
            continue

        source = directive.source
        if isinstance(source, FilePath):
            try:
                content = source.path.read_text(encoding="utf-8")
            except OSError as exc:
                raise TemplateSourceError(source.path, exc.strerror or str(exc)) from exc
        elif isinstance(source, InlineText):
            content = source.content
        else:
            msg = f"cannot resolve template from {source!r}"
            raise TypeError(msg)

        resolved.append(
            IncludeDirective(
                database=directive.database,
                source=InlineText(resolve_template(content, substitutions)),
                is_template=False,
            )
        )
    return resolved
