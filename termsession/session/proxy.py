"""
Proxy tunnel for SSH connections.

Opens a TCP connection to the SSH server through a SOCKS4/SOCKS5/HTTP
CONNECT proxy and hands the connected socket to the SSH transport.
"""

from __future__ import annotations
import logging
import socket
from typing import Optional

import socks

from ..errors import ProxyError
from .options import SessionOptions

logger = logging.getLogger(__name__)

PROXY_TYPES = {
    "4": socks.SOCKS4,
    "socks4": socks.SOCKS4,
    "5": socks.SOCKS5,
    "socks5": socks.SOCKS5,
    "http": socks.HTTP,
}


class ProxyConnector:
    """
    Connects to the SSH server through the proxy named in SessionOptions.

    Usage:
        sock = ProxyConnector().connect(options)
        if sock is None:
            ...  # no proxy configured, connect directly
    """

    def __init__(self, default_timeout: Optional[float] = None):
        self.default_timeout = default_timeout

    def connect(self, options: SessionOptions) -> Optional[socket.socket]:
        """
        Open the tunnel.

        Returns:
            Connected socket, or None if options carry no usable proxy

        Raises:
            ProxyError: If the proxy is unreachable or refuses the tunnel
        """
        proxy = options.proxy
        if proxy is None or not proxy.enabled:
            return None

        proxy_type = PROXY_TYPES.get(str(proxy.proxy_type).lower())
        if proxy_type is None:
            raise ProxyError(f"Unsupported proxy type: {proxy.proxy_type}")

        timeout = proxy.timeout or options.ready_timeout or self.default_timeout
        logger.info(
            f"Connecting to {options.host}:{options.port} via proxy "
            f"{proxy.proxy_ip}:{proxy.proxy_port} (type {proxy.proxy_type})"
        )

        try:
            sock = socks.create_connection(
                (options.host, options.port),
                timeout=timeout,
                proxy_type=proxy_type,
                proxy_addr=proxy.proxy_ip,
                proxy_port=int(proxy.proxy_port),
                proxy_rdns=True,
                proxy_username=proxy.proxy_username or None,
                proxy_password=proxy.proxy_password or None,
            )
        except (socks.ProxyError, OSError) as e:
            raise ProxyError(
                f"Proxy {proxy.proxy_ip}:{proxy.proxy_port} failed: {e}"
            ) from e

        logger.debug(f"Proxy tunnel established to {options.host}:{options.port}")
        return sock
