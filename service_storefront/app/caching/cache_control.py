"""
HTTP Cache-Control headers by resource class.
"""

import re
import time
from email.utils import formatdate
from typing import Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response


# Seconds
CACHE_DURATIONS = {
    "static": 31536000,  # versioned assets
    "public": 86400,
    "private": 3600,
    "api": 300,
    "no_cache": 0,
}

DASHBOARD_TTL = 60

_TEXT_ASSET = re.compile(r"\.(css|js|woff2?|ttf|eot)$", re.IGNORECASE)
_VERSIONED = re.compile(r"\.(v\d+|[a-f0-9]{6,})\.", re.IGNORECASE)
_MEDIA_ASSET = re.compile(r"\.(jpe?g|png|gif|svg|webp|ico|woff2?|ttf|eot)$", re.IGNORECASE)
_HTML = re.compile(r"\.html?$", re.IGNORECASE)


def _expires(seconds: int) -> str:
    return formatdate(time.time() + seconds, usegmt=True)


def static_headers() -> Dict[str, str]:
    duration = CACHE_DURATIONS["static"]
    return {
        "Cache-Control": f"public, max-age={duration}, immutable",
        "Expires": _expires(duration),
    }


def public_headers() -> Dict[str, str]:
    duration = CACHE_DURATIONS["public"]
    return {
        "Cache-Control": f"public, max-age={duration}, must-revalidate",
        "Expires": _expires(duration),
    }


def private_headers() -> Dict[str, str]:
    duration = CACHE_DURATIONS["private"]
    return {
        "Cache-Control": f"private, max-age={duration}",
        "Expires": _expires(duration),
    }


def api_headers(duration: int = CACHE_DURATIONS["api"]) -> Dict[str, str]:
    return {
        "Cache-Control": f"public, max-age={duration}, must-revalidate",
        "Expires": _expires(duration),
    }


def no_cache_headers() -> Dict[str, str]:
    return {
        "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
        "Pragma": "no-cache",
        "Expires": "0",
    }


def cache_control_for_path(path: str) -> Dict[str, str]:
    """Pick the Cache-Control header set for a request path. Empty when none applies."""
    if _TEXT_ASSET.search(path) and _VERSIONED.search(path):
        return static_headers()

    if _MEDIA_ASSET.search(path):
        return public_headers()

    if path.startswith("/api/"):
        if "/products" in path or "/settings" in path:
            return api_headers()
        if "/stats" in path or "/dashboard" in path:
            return api_headers(DASHBOARD_TTL)
        if "/orders" in path or "/customers" in path or "/admin" in path:
            return no_cache_headers()
        return api_headers()

    if path == "/" or _HTML.search(path):
        return no_cache_headers()

    return {}


class CacheControlMiddleware(BaseHTTPMiddleware):
    """Sets Cache-Control on responses that do not carry one yet."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        if "cache-control" in response.headers:
            return response

        headers = cache_control_for_path(request.url.path)
        # Shared caches must not keep credentialed responses
        if request.headers.get("Authorization") and headers.get("Cache-Control", "").startswith("public"):
            headers = private_headers()
        for name, value in headers.items():
            response.headers[name] = value
        return response
