#!/usr/bin/env python3
"""
Inspect and clear the storefront API response cache.

The cache lives in the memory of each running storefront process, so this
helper talks to the admin routes of one instance over HTTP. Run it once
per instance when the service is scaled horizontally.
"""

import argparse
import json
import os
import sys
from typing import Any, Dict, Optional

import httpx


DEFAULT_URL = "http://localhost:8000"


class CacheAdminClient:
    """Thin client for the /api/admin/cache routes."""

    def __init__(self, base_url: str, token: str, transport: Optional[httpx.BaseTransport] = None, timeout: float = 10.0):
        kwargs: Dict[str, Any] = {
            "base_url": base_url.rstrip("/"),
            "timeout": timeout,
            "headers": {"Authorization": f"Bearer {token}"},
        }
        if transport is not None:
            kwargs["transport"] = transport
        self._client = httpx.Client(**kwargs)

    def close(self) -> None:
        self._client.close()

    def stats(self) -> Dict[str, Any]:
        return self._request("GET", "/api/admin/cache/stats")

    def clear_pattern(self, pattern: str) -> Dict[str, Any]:
        return self._request("DELETE", "/api/admin/cache", params={"pattern": pattern})

    def clear_tag(self, tag: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/admin/cache/tags/{tag}")

    def clear_all(self) -> Dict[str, Any]:
        return self._request("DELETE", "/api/admin/cache/all")

    def _request(self, method: str, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        response = self._client.request(method, path, params=params)
        response.raise_for_status()
        return response.json()


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect and clear the storefront API response cache.")
    parser.add_argument("--url", default=os.getenv("STOREFRONT_URL", DEFAULT_URL), help="Storefront base URL")
    parser.add_argument("--token", default=os.getenv("STOREFRONT_ADMIN_TOKEN", "dev-admin-token"), help="Admin bearer token")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("stats", help="Show entry count, hits, misses and hit rate")
    clear_pattern = commands.add_parser("clear-pattern", help="Delete entries whose key matches a regex")
    clear_pattern.add_argument("pattern")
    clear_tag = commands.add_parser("clear-tag", help="Delete entries stored under a tag")
    clear_tag.add_argument("tag")
    commands.add_parser("clear-all", help="Delete every entry and reset counters")
    return parser.parse_args(argv)


def main(argv=None, transport: Optional[httpx.BaseTransport] = None) -> int:
    args = _parse_args(argv)
    client = CacheAdminClient(args.url, args.token, transport=transport)
    try:
        if args.command == "stats":
            result = client.stats()
        elif args.command == "clear-pattern":
            result = client.clear_pattern(args.pattern)
        elif args.command == "clear-tag":
            result = client.clear_tag(args.tag)
        else:
            result = client.clear_all()
    except httpx.HTTPStatusError as exc:
        print(f"[cache-admin] {exc.response.status_code}: {exc.response.text}", file=sys.stderr)
        return 1
    except httpx.HTTPError as exc:
        print(f"[cache-admin] request failed: {exc}", file=sys.stderr)
        return 1
    finally:
        client.close()

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
