"""Loopback detection used for the compression default."""

from __future__ import annotations

import ipaddress
import logging
import socket

LOG = logging.getLogger(__name__)


def is_local_address(host: str) -> bool:
    """Return ``True`` when every address *host* resolves to is loopback.

    Resolution failures count as "not local": the connection attempt will
    report the real error.
    """
    try:
        return ipaddress.ip_address(host.strip("[]")).is_loopback
    except ValueError:
        pass

    try:
        infos = socket.getaddrinfo(host, None)
    except (OSError, UnicodeError) as exc:
        LOG.debug("Cannot resolve %s: %s", host, exc)
        return False

    addresses = {info[4][0] for info in infos}
    if not addresses:
        return False
    return all(ipaddress.ip_address(str(address).split("%")[0]).is_loopback for address in addresses)
