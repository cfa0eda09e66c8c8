"""
Furanomi Worker — Cache Strategy Router
========================================

What:  Picks exactly one caching policy for each intercepted GET request.
How:   An ordered list of Route(predicate, strategy) pairs evaluated top-down;
       the first matching predicate wins. Non-GET requests are never routed,
       so they pass straight through without touching any bucket.
Who:   Called by the worker's fetch handler.

Default routing table (priority order):
    1. "/" or *.html, same origin  → NetworkOnly(no-store)
    2. *.js / *.css, same origin   → NetworkFirst(js-css bucket, short TTL)
    3. API paths                   → NetworkFirst(api bucket, with timeout)
    4. image extensions            → CacheFirst(image bucket, long TTL)
    5. other same-origin requests  → CacheMatchFallback
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

import httpx

from furanomi.config import Settings
from furanomi.platform.base import WorkerPlatform
from furanomi.services.expiration import ExpirationPolicy
from furanomi.services.strategies import (
    CacheFirst,
    CacheMatchFallback,
    CachingStrategy,
    NetworkFirst,
    NetworkOnly,
)

logger = logging.getLogger(__name__)

Predicate = Callable[[httpx.Request, str], bool]

JS_CSS_PATTERN = re.compile(r"\.(js|css)$")
IMAGE_PATTERN = re.compile(r"\.(png|jpg|jpeg|svg|gif|webp)$", re.IGNORECASE)

# Cache bucket categories, one bucket per category and version
CATEGORY_HTML = "html"
CATEGORY_JS_CSS = "js-css"
CATEGORY_API = "api"
CATEGORY_IMAGE = "image"
CATEGORIES = (CATEGORY_HTML, CATEGORY_JS_CSS, CATEGORY_API, CATEGORY_IMAGE)


def cache_name(category: str, version: str) -> str:
    return f"{category}-cache-{version}"


def _origin_of(url: httpx.URL) -> str:
    default_port = {"http": 80, "https": 443}.get(url.scheme)
    port = f":{url.port}" if url.port and url.port != default_port else ""
    return f"{url.scheme}://{url.host}{port}"


def is_same_origin(request: httpx.Request, origin: str) -> bool:
    return _origin_of(request.url) == _origin_of(httpx.URL(origin))


def is_navigation_html(request: httpx.Request, origin: str) -> bool:
    path = request.url.path
    return (path == "/" or path.endswith(".html")) and is_same_origin(request, origin)


def is_js_css(request: httpx.Request, origin: str) -> bool:
    return bool(JS_CSS_PATTERN.search(request.url.path)) and is_same_origin(request, origin)


def make_api_predicate(segments: Sequence[str]) -> Predicate:
    """API calls: paths under /api/, or containing any of `segments` as a path segment."""
    wanted = {s for s in segments if s}

    def is_api(request: httpx.Request, origin: str) -> bool:
        path = request.url.path
        if path.startswith("/api/"):
            return True
        return any(part in wanted for part in path.split("/")[:-1])

    return is_api


is_api = make_api_predicate(["api"])


def is_image(request: httpx.Request, origin: str) -> bool:
    return bool(IMAGE_PATTERN.search(request.url.path))


@dataclass(frozen=True)
class Route:
    name: str
    predicate: Predicate
    strategy: CachingStrategy


class Router:
    """
    Data-driven strategy router.

    Routes are tried in order; a request no route claims is not intercepted
    and the platform performs it untouched.
    """

    def __init__(self, platform: WorkerPlatform, routes: Iterable[Route] = ()):
        self.platform = platform
        self.routes: List[Route] = list(routes)

    def add_route(self, route: Route) -> None:
        self.routes.append(route)

    def match(self, request: httpx.Request) -> Optional[Route]:
        if request.method.upper() != "GET":
            return None
        for route in self.routes:
            if route.predicate(request, self.platform.origin):
                return route
        return None

    async def handle(self, request: httpx.Request) -> Optional[httpx.Response]:
        """
        Serve a request with its route's strategy.

        Returns:
            The response, or None when the request is not intercepted.

        Raises:
            NetworkError: the chosen policy could not produce a response.
        """
        route = self.match(request)
        if route is None:
            return None
        logger.debug("%s %s → %s (%s)", request.method, request.url.path, route.name, route.strategy.name)
        return await route.strategy.handle(request, self.platform)


def build_default_routes(settings: Settings) -> List[Route]:
    """The deployed routing table, with buckets named after `settings.sw_version`."""
    version = settings.sw_version
    return [
        Route("html", is_navigation_html, NetworkOnly(no_store=True)),
        Route(
            "js-css",
            is_js_css,
            NetworkFirst(
                cache_name(CATEGORY_JS_CSS, version),
                ExpirationPolicy(
                    max_entries=settings.js_css_max_entries,
                    max_age_seconds=settings.js_css_max_age_seconds,
                ),
            ),
        ),
        Route(
            "api",
            make_api_predicate(settings.api_path_segments_list),
            NetworkFirst(
                cache_name(CATEGORY_API, version),
                ExpirationPolicy(
                    max_entries=settings.api_max_entries,
                    max_age_seconds=settings.api_max_age_seconds,
                ),
                network_timeout_seconds=settings.api_network_timeout_seconds,
            ),
        ),
        Route(
            "image",
            is_image,
            CacheFirst(
                cache_name(CATEGORY_IMAGE, version),
                ExpirationPolicy(
                    max_entries=settings.image_max_entries,
                    max_age_seconds=settings.image_max_age_seconds,
                ),
            ),
        ),
        Route("static", is_same_origin, CacheMatchFallback()),
    ]


def build_default_router(platform: WorkerPlatform, settings: Settings) -> Router:
    return Router(platform, build_default_routes(settings))
