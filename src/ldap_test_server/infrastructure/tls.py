"""TLS material for the ldaps listener.

Produces a throwaway self-signed certificate (or passes a caller-supplied
pair through untouched) and writes both PEMs into the working directory,
where the bootstrap configuration points slapd at them.
"""

from __future__ import annotations

import ipaddress
import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)

CERT_FILENAME = "cert.pem"
KEY_FILENAME = "key.pem"

_COMMON_NAME = "ldap-test-server self signed cert"
_NOT_BEFORE = datetime(1975, 1, 1, tzinfo=UTC)
_NOT_AFTER = datetime(4096, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class TlsMaterial:
    """Certificate and key, both in memory and on disk."""

    cert_pem: str
    key_pem: str
    cert_path: Path
    key_path: Path


def _subject_alt_name(host: str) -> x509.GeneralName:
    try:
        return x509.IPAddress(ipaddress.ip_address(host))
    except ValueError:
        return x509.DNSName(host)


def generate_self_signed(host: str) -> tuple[str, str]:
    """Generate ``(certificate PEM, private key PEM)`` valid for *host*.

    The subject alternative name is an IP address entry when *host* is an
    IP literal and a DNS name entry otherwise.
    """
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, _COMMON_NAME)])

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(_NOT_BEFORE)
        .not_valid_after(_NOT_AFTER)
        .add_extension(x509.SubjectAlternativeName([_subject_alt_name(host)]), critical=False)
        .sign(key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    return cert_pem, key_pem


def provision_tls(
    work_dir: Path,
    host: str,
    supplied: tuple[str, str] | None = None,
) -> TlsMaterial:
    """Write certificate and key into *work_dir* and return them.

    A *supplied* ``(cert, key)`` pair is used verbatim, without validation.
    """
    if supplied is not None:
        cert_pem, key_pem = supplied
        logger.debug("Using supplied TLS certificate")
    else:
        cert_pem, key_pem = generate_self_signed(host)
        logger.debug("Generated self-signed TLS certificate for %s", host)

    cert_path = work_dir / CERT_FILENAME
    cert_path.write_text(cert_pem, encoding="utf-8")

    key_path = work_dir / KEY_FILENAME
    key_path.write_text(key_pem, encoding="utf-8")
    os.chmod(key_path, 0o600)

    return TlsMaterial(cert_pem=cert_pem, key_pem=key_pem, cert_path=cert_path, key_path=key_path)
