"""
Address parsing helpers.
"""

from typing import Tuple

TCP_NETWORKS = ("tcp", "tcp4", "tcp6")
UNIX_NETWORKS = ("unix",)


def split_host_port(address: str, default_port: int = 0) -> Tuple[str, int]:
    """
    Split "host:port" into its parts.

    IPv6 literals must be bracketed: "[::1]:22". A missing port falls back
    to default_port, or raises ValueError when default_port is 0.
    """
    host = address
    port_str = ""

    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"Missing ']' in address: {address}")
        host = address[1:end]
        rest = address[end + 1:]
        if rest:
            if not rest.startswith(":"):
                raise ValueError(f"Unexpected text after ']' in address: {address}")
            port_str = rest[1:]
    elif address.count(":") == 1:
        host, port_str = address.split(":", 1)
    elif address.count(":") > 1:
        raise ValueError(f"Too many colons in address: {address}")

    if not port_str:
        if default_port:
            return host, default_port
        raise ValueError(f"Missing port in address: {address}")

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port in address: {address}")

    if not (0 <= port <= 65535):
        raise ValueError(f"Port out of range in address: {address}")

    return host, port


def join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def validate_network(network: str) -> str:
    if network not in TCP_NETWORKS + UNIX_NETWORKS:
        raise ValueError(f"Unsupported network: {network}")
    return network
