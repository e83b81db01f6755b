"""
Network selection
Binds network identifiers to upstream RPC URLs and builds the per-request context
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from cache import ExplorerCache
from responses import ErrorCode, ExplorerError

logger = logging.getLogger(__name__)

SUPPORTED_NETWORKS = ("mainnet", "devnet")


@dataclass(frozen=True)
class RequestContext:
    """Upstream target for a single request"""

    network: str
    rpc_url: str


class NetworkSelector:
    """
    Holds the process-wide selected network.

    Requests are routed by their own path prefix through ``context_for``;
    the selected network only drives cache invalidation, so switching it
    clears every cache tier.
    """

    def __init__(
        self,
        urls: Dict[str, str],
        cache: Optional[ExplorerCache] = None,
        default: str = "mainnet",
    ):
        unknown = set(urls) - set(SUPPORTED_NETWORKS)
        if unknown:
            raise ValueError(f"Unsupported networks configured: {sorted(unknown)}")
        if default not in urls:
            raise ValueError(f"Default network {default} has no RPC URL")

        self._urls = dict(urls)
        self._cache = cache
        self._current = default
        self._lock = threading.RLock()

    @property
    def available(self) -> List[str]:
        return list(self._urls)

    def get_current_network(self) -> str:
        with self._lock:
            return self._current

    def set_network(self, name: str) -> bool:
        """
        Select ``name`` as the current network.

        Returns True when the selection changed. Unknown names raise
        ExplorerError(INVALID_PARAMETERS).
        """
        if name not in self._urls:
            raise ExplorerError(
                ErrorCode.INVALID_PARAMETERS,
                f"Unsupported network: {name}",
                {"available": self.available},
            )

        with self._lock:
            if name == self._current:
                return False
            previous = self._current
            self._current = name
            if self._cache is not None:
                self._cache.clear()

        logger.info(f"Network switched from {previous} to {name}, cache invalidated")
        return True

    def context_for(self, network: str) -> RequestContext:
        """Request context for a network path prefix"""
        url = self._urls.get(network)
        if url is None:
            raise ExplorerError(
                ErrorCode.INVALID_NETWORK,
                f"Unknown network: {network}",
                {"available": self.available},
            )
        return RequestContext(network=network, rpc_url=url)

    def attach(self, request) -> Optional[RequestContext]:
        """
        Build the context from a Flask request routed under
        ``/api/v1/<network>/``. Returns None for routes outside that prefix.
        """
        network = (request.view_args or {}).get("network")
        if network is None:
            return None
        return self.context_for(network)
