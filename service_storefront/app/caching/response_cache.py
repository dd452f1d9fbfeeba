"""
API response caching for the storefront.

Read path: GET responses on registered routes are served from an in-memory
:class:`TTLStore` when present and captured into it when absent. Write path:
mutating routes invalidate the tags and patterns they are configured with
once the handler answers with a 2xx status.
"""

import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Sequence, Tuple, TYPE_CHECKING

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from shared.logging import get_logger, set_cache_context
from .tags import CacheTag
from .ttl_store import DEFAULT_TTL_SECONDS, MISSING, TTLStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CACHE_HEADER = "X-Cache"
CACHE_HIT = "HIT"
CACHE_MISS = "MISS"
CACHEABLE_FLAG = "cacheable"

CACHEABLE_METHODS = frozenset({"GET"})
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

_TRUTHY = frozenset({"true", "1", "yes"})


def _prefix_matches(prefix: str, path: str) -> bool:
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


@dataclass(frozen=True)
class CacheRoute:
    """
    A GET route prefix whose responses may be cached.

    ``guard`` runs before any lookup. Requests it rejects bypass the cache
    entirely and reach the route, which answers them with its own auth
    errors. Routes behind auth must set one; the cache runs before route
    dependencies.
    """

    prefix: str
    ttl_seconds: Optional[int] = None
    tags: Tuple[CacheTag, ...] = ()
    guard: Optional[Callable[[Request], bool]] = field(default=None, compare=False)

    def matches(self, path: str) -> bool:
        return _prefix_matches(self.prefix, path)

    def admits(self, request: Request) -> bool:
        return self.guard is None or self.guard(request)


@dataclass(frozen=True)
class InvalidationRoute:
    """A mutating route prefix and the cache entries it makes stale."""

    prefix: str
    tags: Tuple[CacheTag, ...] = ()
    patterns: Tuple[str, ...] = ()
    methods: FrozenSet[str] = field(default=MUTATING_METHODS)

    def __post_init__(self):
        # Patterns are route configuration; a bad one fails at startup
        for pattern in self.patterns:
            re.compile(pattern)

    def matches(self, method: str, path: str) -> bool:
        return method in self.methods and _prefix_matches(self.prefix, path)


class ApiResponseCache:
    """Caching policy shared by the read and write paths."""

    def __init__(
        self,
        store: Optional[TTLStore] = None,
        *,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store if store is not None else TTLStore()
        self.default_ttl = default_ttl
        self.metrics = metrics
        self.logger = get_logger("storefront.api_cache")
        self._inflight: Dict[str, asyncio.Event] = {}

    @staticmethod
    def build_key(request: Request) -> str:
        """Method-qualified key over the path and raw query string."""
        key = f"api:{request.method}:{request.url.path}"
        if request.url.query:
            key = f"{key}?{request.url.query}"
        return key

    @staticmethod
    def is_cacheable(request: Request) -> bool:
        """
        Only shared reads are cacheable. A credentialed request must opt in
        with ``cacheable=true``, which marks its response as shareable with
        every caller of the same URL.
        """
        if request.method not in CACHEABLE_METHODS:
            return False
        if request.headers.get("Authorization"):
            flag = request.query_params.get(CACHEABLE_FLAG, "")
            return flag.lower() in _TRUTHY
        return True

    @staticmethod
    def should_store(body: Any, status_code: int) -> bool:
        """Error statuses and ``{"success": false}`` payloads are never stored."""
        if status_code != 200 or body is None:
            return False
        if isinstance(body, dict) and body.get("success") is False:
            return False
        return True

    def lookup(self, key: str) -> Any:
        """Return the cached body or ``MISSING``, counting the outcome."""
        value = self.store.get(key)
        if value is MISSING:
            self.store.record_miss()
            self._count_lookup(CACHE_MISS)
            self.logger.debug("Cache miss", key=key)
        else:
            self.store.record_hit()
            self._count_lookup(CACHE_HIT)
            self.logger.debug("Cache hit", key=key)
        return value

    def remember(
        self,
        key: str,
        body: Any,
        status_code: int,
        *,
        ttl_seconds: Optional[int] = None,
        tags: Iterable[CacheTag] = (),
    ) -> bool:
        """Store a captured response if it qualifies. Never raises."""
        if not self.should_store(body, status_code):
            return False

        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return False

        try:
            self.store.set(key, body, ttl, tags)
        except Exception as exc:
            self.logger.error("Cache store failed", key=key, error=str(exc))
            return False

        self.logger.debug("Cached response", key=key, ttl=ttl)
        self._update_entries_gauge()
        return True

    def invalidate(
        self,
        *,
        tags: Iterable[CacheTag] = (),
        patterns: Iterable[str] = (),
        source: str = "mutation",
    ) -> int:
        """Delete entries under ``tags`` and keys matching ``patterns``."""
        tags = tuple(tags)
        patterns = tuple(patterns)

        deleted = self.store.delete_tagged(tags) if tags else 0
        for pattern in patterns:
            deleted += self.store.delete_matching(pattern)

        self.logger.info(
            "Invalidated cache entries",
            source=source,
            tags=[tag.value for tag in tags],
            patterns=list(patterns),
            deleted=deleted,
        )
        if self.metrics:
            self.metrics.increment_counter("api_cache_invalidations_total", deleted, source=source)
        self._update_entries_gauge()
        return deleted

    def clear_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern``; raises ``re.error`` on a bad regex."""
        return self.invalidate(patterns=(pattern,), source="pattern")

    def clear_tags(self, tags: Iterable[CacheTag]) -> int:
        return self.invalidate(tags=tags, source="tag")

    def clear_all(self) -> None:
        """Drop every entry and reset the hit/miss counters."""
        self.store.clear()
        self.logger.info("Cleared all API response cache")
        self._update_entries_gauge()

    def get_stats(self) -> Dict[str, Any]:
        return self.store.stats()

    def inflight(self, key: str) -> Optional[asyncio.Event]:
        """Event for a miss currently being computed for ``key``, if any."""
        return self._inflight.get(key)

    def claim(self, key: str) -> Optional[asyncio.Event]:
        """Mark ``key`` as being computed. ``None`` if another request already is."""
        if key in self._inflight:
            return None
        event = asyncio.Event()
        self._inflight[key] = event
        return event

    def release(self, key: str, event: asyncio.Event) -> None:
        if self._inflight.get(key) is event:
            del self._inflight[key]
        event.set()

    def _count_lookup(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("api_cache_lookups_total", result=result.lower())

    def _update_entries_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("api_cache_entries", self.store.size())


class ApiCacheMiddleware(BaseHTTPMiddleware):
    """Applies :class:`ApiResponseCache` to the configured routes."""

    def __init__(
        self,
        app,
        cache: ApiResponseCache,
        cache_routes: Sequence[CacheRoute] = (),
        invalidation_routes: Sequence[InvalidationRoute] = (),
    ):
        super().__init__(app)
        self.cache = cache
        # Longest prefix wins
        self.cache_routes = sorted(cache_routes, key=lambda route: len(route.prefix), reverse=True)
        self.invalidation_routes = sorted(
            invalidation_routes, key=lambda route: len(route.prefix), reverse=True
        )
        self.logger = get_logger("storefront.api_cache_middleware")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        if request.method in CACHEABLE_METHODS:
            route = self._match_cache_route(path)
            if route is not None and self.cache.is_cacheable(request) and route.admits(request):
                return await self._serve_read(request, call_next, route)
            return await call_next(request)

        invalidation = self._match_invalidation_route(request.method, path)
        if invalidation is None:
            return await call_next(request)

        response = await call_next(request)
        if 200 <= response.status_code < 300:
            self.cache.invalidate(
                tags=invalidation.tags,
                patterns=invalidation.patterns,
                source=f"{request.method} {invalidation.prefix}",
            )
        return response

    async def _serve_read(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
        route: CacheRoute,
    ) -> Response:
        key = self.cache.build_key(request)

        pending = self.cache.inflight(key)
        if pending is not None:
            await pending.wait()

        cached = self.cache.lookup(key)
        if cached is not MISSING:
            set_cache_context(key, CACHE_HIT)
            return JSONResponse(content=cached, headers={CACHE_HEADER: CACHE_HIT})

        set_cache_context(key, CACHE_MISS)
        claim = self.cache.claim(key)
        try:
            response = await call_next(request)
            body = b"".join([chunk async for chunk in response.body_iterator])
            self._capture(key, route, response, body)
        finally:
            if claim is not None:
                self.cache.release(key, claim)

        replay = Response(
            content=body,
            status_code=response.status_code,
            background=response.background,
        )
        replay.raw_headers = list(response.raw_headers)
        replay.headers[CACHE_HEADER] = CACHE_MISS
        return replay

    def _capture(self, key: str, route: CacheRoute, response: Response, body: bytes) -> None:
        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("application/json"):
            return

        try:
            payload = json.loads(body)
        except ValueError:
            self.logger.warning("Response body is not valid JSON, not caching", key=key)
            return

        self.cache.remember(
            key,
            payload,
            response.status_code,
            ttl_seconds=route.ttl_seconds,
            tags=route.tags,
        )

    def _match_cache_route(self, path: str) -> Optional[CacheRoute]:
        for route in self.cache_routes:
            if route.matches(path):
                return route
        return None

    def _match_invalidation_route(self, method: str, path: str) -> Optional[InvalidationRoute]:
        for route in self.invalidation_routes:
            if route.matches(method, path):
                return route
        return None
