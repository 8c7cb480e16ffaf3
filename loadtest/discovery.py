"""
DNS fan-out for node registration.

A headless Kubernetes service resolves to one address per ready pod, so a
single name expands into one node URL per cluster member. Resolution is a
pure function of the input; inserting the candidates is the caller's job.
"""

from __future__ import annotations

import socket
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

DEFAULT_PORT = 80
SCHEMES = ("http://", "https://")


@dataclass
class Discovery:
    """Outcome of resolving one operator input into candidate node URLs."""
    raw: str
    normalized: str
    port: int = DEFAULT_PORT
    addresses: List[str] = field(default_factory=list)
    candidates: List[str] = field(default_factory=list)
    fallback: bool = False
    error: Optional[str] = None


def ensure_scheme(raw: str) -> str:
    url = raw.strip()
    if not url.lower().startswith(SCHEMES):
        url = "http://" + url
    return url


def split_host_port(url: str) -> Tuple[str, str, int]:
    """
    Return ``(scheme, host, port)`` for a scheme-prefixed URL.

    Raises:
        ValueError: If the URL has no host, an invalid port or a second scheme
    """
    parts = urlsplit(url)
    if parts.netloc.endswith(":") and parts.path.startswith("//"):
        raise ValueError(f"unsupported scheme in {url!r}")
    host = parts.hostname
    if not host:
        raise ValueError(f"no host in {url!r}")
    port = parts.port  # raises ValueError when out of range or non-numeric
    return parts.scheme.lower(), host, port if port is not None else DEFAULT_PORT


def format_node_url(scheme: str, host: str, port: int) -> str:
    if ":" in host:
        host = f"[{host}]"
    return f"{scheme}://{host}:{port}"


def normalize_node_url(raw: str) -> str:
    """
    Canonical ``scheme://host:port`` form of an operator-supplied address.

    Unparseable input is returned scheme-prefixed but otherwise literal.
    """
    url = ensure_scheme(raw)
    try:
        scheme, host, port = split_host_port(url)
    except ValueError:
        return url
    return format_node_url(scheme, host, port)


def resolve_all(host: str) -> List[str]:
    """All distinct addresses for ``host``, in resolver order."""
    addresses: List[str] = []
    for _family, _type, _proto, _canon, sockaddr in socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP):
        addr = str(sockaddr[0])
        if addr not in addresses:
            addresses.append(addr)
    return addresses


class DiscoveryResolver:
    """Turns a DNS name or URL into one candidate node URL per resolved address."""

    def __init__(self, resolve_host: Optional[Callable[[str], List[str]]] = None) -> None:
        self.resolve_host = resolve_host or resolve_all

    def resolve(self, raw: str) -> Discovery:
        normalized = ensure_scheme(raw)
        discovery = Discovery(raw=raw, normalized=normalized)
        try:
            scheme, host, port = split_host_port(normalized)
            discovery.normalized = normalized = format_node_url(scheme, host, port)
            discovery.port = port
            addresses = self.resolve_host(host)
            if not addresses:
                raise OSError(f"{host} resolved to no addresses")
        except (OSError, ValueError, UnicodeError) as e:
            logger.info(f"Resolution of {normalized} failed ({e}), using it literally")
            discovery.fallback = True
            discovery.error = str(e)
            discovery.candidates = [normalized]
            return discovery

        discovery.addresses = list(addresses)
        discovery.candidates = [format_node_url("http", addr, port) for addr in addresses]
        logger.info(f"Resolved {host} to {len(addresses)} addresses")
        return discovery
