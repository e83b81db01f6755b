"""
Rate limiting middleware for the explorer API
Sliding-window limits per client and route tier
"""

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from flask import g, request

from responses import ErrorCode, ExplorerError, error_response

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/health", "/", "/api/docs", "/apispec.json")
SWEEP_INTERVAL = 60  # seconds between idle-client sweeps


@dataclass
class RateLimitRule:
    """Rate limit rule configuration"""
    requests: int  # Number of requests
    window: int  # Time window in seconds


@dataclass
class RateLimitState:
    """Track rate limit state for a client"""
    requests: List[float] = field(default_factory=list)  # Timestamps of requests
    blocked_until: Optional[float] = None


class RateLimiter:
    """Sliding-window limiter keyed by client and rule"""

    def __init__(self, per_minute: int = 300, search_per_minute: int = 60, analytics_per_minute: int = 60):
        self.rules = {
            "default": RateLimitRule(requests=per_minute, window=60),
            "search": RateLimitRule(requests=search_per_minute, window=60),
            "analytics": RateLimitRule(requests=analytics_per_minute, window=60),
        }
        self.states: Dict[Tuple[str, str], RateLimitState] = defaultdict(RateLimitState)
        self._lock = threading.RLock()
        self._last_sweep = 0.0

        self.stats = {
            "total_requests": 0,
            "blocked_requests": 0,
        }

    @classmethod
    def from_config(cls, cfg) -> "RateLimiter":
        return cls(
            per_minute=cfg.RATE_LIMIT_PER_MINUTE,
            search_per_minute=cfg.RATE_LIMIT_SEARCH_PER_MINUTE,
            analytics_per_minute=cfg.RATE_LIMIT_ANALYTICS_PER_MINUTE,
        )

    def check_rate_limit(
        self, client_id: str, rule_name: str = "default"
    ) -> Tuple[bool, Dict]:
        """
        Check if request is within rate limit
        Returns (allowed, info)
        """
        rule = self.rules.get(rule_name, self.rules["default"])
        current_time = time.time()

        with self._lock:
            self.stats["total_requests"] += 1
            if current_time - self._last_sweep >= SWEEP_INTERVAL:
                self._sweep(current_time)
            state = self.states[(client_id, rule_name)]

            if state.blocked_until and current_time < state.blocked_until:
                self.stats["blocked_requests"] += 1
                return False, {
                    "limit": rule.requests,
                    "window": rule.window,
                    "retry_after": max(1, int(state.blocked_until - current_time)),
                }

            # Remove old requests outside the window
            window_start = current_time - rule.window
            state.requests = [ts for ts in state.requests if ts > window_start]

            if len(state.requests) >= rule.requests:
                # Block for the remainder of the window
                state.blocked_until = state.requests[0] + rule.window
                self.stats["blocked_requests"] += 1
                logger.warning(f"Rate limit exceeded for {client_id} on {rule_name}")
                return False, {
                    "limit": rule.requests,
                    "window": rule.window,
                    "retry_after": max(1, int(state.blocked_until - current_time)),
                }

            state.requests.append(current_time)
            remaining = rule.requests - len(state.requests)
            reset_time = state.requests[0] + rule.window

        return True, {
            "limit": rule.requests,
            "remaining": remaining,
            "reset": int(reset_time),
            "window": rule.window,
        }

    def _sweep(self, current_time: float) -> None:
        """Drop clients with no requests in their window and no active block"""
        idle = []
        for (client_id, rule_name), state in self.states.items():
            window = self.rules.get(rule_name, self.rules["default"]).window
            if state.blocked_until and current_time < state.blocked_until:
                continue
            if any(ts > current_time - window for ts in state.requests):
                continue
            idle.append((client_id, rule_name))

        for key in idle:
            del self.states[key]
        self._last_sweep = current_time
        if idle:
            logger.debug(f"Rate limiter dropped {len(idle)} idle clients")

    def reset(self) -> None:
        """Forget every client"""
        with self._lock:
            self.states.clear()
            self._last_sweep = 0.0
            self.stats = {"total_requests": 0, "blocked_requests": 0}

    def get_stats(self) -> Dict:
        """Get rate limiter statistics"""
        with self._lock:
            total = self.stats["total_requests"]
            blocked = self.stats["blocked_requests"]
            return {
                "total_requests": total,
                "blocked_requests": blocked,
                "active_clients": len(self.states),
                "block_rate": (blocked / total * 100) if total > 0 else 0,
            }


def rule_for_path(path: str) -> str:
    if "/search" in path:
        return "search"
    if "/analytics" in path:
        return "analytics"
    return "default"


def create_rate_limit_middleware(app, rate_limiter: RateLimiter, enabled: bool = True):
    """Create Flask middleware for rate limiting"""

    @app.before_request
    def check_rate_limit():
        if not enabled or request.path in EXEMPT_PATHS or request.path.startswith("/flasgger"):
            return None

        client_id = request.remote_addr or "unknown"
        rule_name = rule_for_path(request.path)
        allowed, info = rate_limiter.check_rate_limit(client_id, rule_name)
        if allowed:
            g.rate_limit = info
            return None

        error = ExplorerError(
            ErrorCode.RATE_LIMIT_EXCEEDED,
            "Too many requests, retry later",
            {"limit": info["limit"], "window": info["window"], "retryAfter": info["retry_after"]},
        )
        return error_response(error, headers={
            "Retry-After": str(info["retry_after"]),
            "X-RateLimit-Limit": str(info["limit"]),
            "X-RateLimit-Remaining": "0",
        })

    @app.after_request
    def add_rate_limit_headers(response):
        info = g.pop("rate_limit", None)
        if info:
            response.headers["X-RateLimit-Limit"] = str(info["limit"])
            response.headers["X-RateLimit-Remaining"] = str(info["remaining"])
            response.headers["X-RateLimit-Reset"] = str(info["reset"])
        return response
