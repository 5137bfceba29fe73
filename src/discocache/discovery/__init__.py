"""Discovery clients and the operations they share.

:class:`DiscoveryInterface` describes the seven discovery operations,
:class:`DiscoveryClient` implements them against a live API server with
:mod:`httpx`, and :mod:`discocache.discovery.helpers` composes the aggregate
operations from the per-document ones.
"""

from discocache.discovery.client import DiscoveryClient
from discocache.discovery.interface import CachedDiscoveryInterface, DiscoveryInterface

__all__ = ["CachedDiscoveryInterface", "DiscoveryClient", "DiscoveryInterface"]
