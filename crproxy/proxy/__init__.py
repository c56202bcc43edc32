"""Upstream registry proxy implementation."""

from crproxy.proxy.proxy import ProxyHandler
from crproxy.proxy.upstream import RegistryFetcher

__all__ = ["ProxyHandler", "RegistryFetcher"]
