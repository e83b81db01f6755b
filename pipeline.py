"""
Request pipeline
validate -> cache lookup -> fetch -> cache store -> envelope, shared by every route
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Type, Union

from cache import CacheKey, CachePolicy, ExplorerCache
from network import NetworkSelector, RequestContext
from responses import ExplorerError, error_response, success_response
from schemas import ExplorerParams, validate

logger = logging.getLogger(__name__)

PolicyChoice = Union[CachePolicy, Callable[[ExplorerParams, Any], CachePolicy]]


@dataclass(frozen=True)
class Endpoint:
    """How one route validates, fetches and caches"""

    resource: str
    schema: Type[ExplorerParams]
    fetch: Callable[[RequestContext, ExplorerParams], Any]
    policy: PolicyChoice

    def policy_for(self, params: ExplorerParams, data: Any) -> CachePolicy:
        if isinstance(self.policy, CachePolicy):
            return self.policy
        return self.policy(params, data)


class Pipeline:
    """Runs endpoints against the shared cache and network selector"""

    def __init__(self, cache: ExplorerCache, selector: NetworkSelector):
        self.cache = cache
        self.selector = selector

    def execute(self, endpoint: Endpoint, network: str, raw: Mapping[str, Any]):
        """
        Serve one request.

        Validation failures return before any upstream call. Only
        successful results are cached, under their own policy's TTL.
        """
        try:
            ctx = self.selector.context_for(network)
            result = validate(endpoint.schema, raw)
            if not result.ok:
                raise ExplorerError(
                    result.error_code(endpoint.schema),
                    "Invalid request parameters",
                    result.issues,
                )
            params = result.data

            key = CacheKey.build(ctx.network, endpoint.resource, params.cache_params())
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit for {endpoint.resource} on {ctx.network}")
                policy = endpoint.policy_for(params, cached)
                return success_response(cached, policy, headers={"X-Cache": "HIT"})

            data = endpoint.fetch(ctx, params)
            policy = endpoint.policy_for(params, data)
            if policy.max_age > 0:
                self.cache.set(key, data, ttl=policy.max_age)
            return success_response(data, policy, headers={"X-Cache": "MISS"})
        except ExplorerError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"{endpoint.resource} failed on {network}: {e}")
            return error_response(e)
