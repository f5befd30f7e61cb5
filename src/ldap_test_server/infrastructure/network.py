"""Port selection and TCP reachability probes."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import random
import socket

logger = logging.getLogger(__name__)

FALLBACK_PORT_RANGE = (15000, 55000)


def _address_family(host: str) -> socket.AddressFamily:
    try:
        version = ipaddress.ip_address(host).version
    except ValueError:
        return socket.AF_INET
    return socket.AF_INET6 if version == 6 else socket.AF_INET


def pick_unused_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for a free TCP port on *host*.

    Falls back to a random port in 15000..55000 when binding fails (for
    example when *host* is not a local address yet).
    """
    try:
        with socket.socket(_address_family(host), socket.SOCK_STREAM) as sock:
            sock.bind((host, 0))
            return sock.getsockname()[1]
    except OSError as exc:
        port = random.randint(*FALLBACK_PORT_RANGE)
        logger.debug("Could not bind %s:0 (%s), using random port %d", host, exc, port)
        return port


async def is_tcp_port_open(host: str, port: int, *, timeout: float = 1.0) -> bool:
    """Return True when a TCP connection to *host*:*port* succeeds within *timeout*."""
    try:
        _reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except (OSError, TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True
