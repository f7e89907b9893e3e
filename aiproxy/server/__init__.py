"""
Raw HTTP/1.1 gateway server.
"""
from aiproxy.server.proxy import FALLBACK_PORTS, ProxyServer

__all__ = ["FALLBACK_PORTS", "ProxyServer"]
