"""
Furanomi Worker — Exception Hierarchy
======================================

What:  Application-specific exceptions for the cache controller and push bridge.
How:   Each exception carries a message and an optional context dict. The
       context is logged but never shown to end users.
Who:   Raised by the platform adapters, strategies and push services.

Exception Hierarchy:
    FuranomiError (base)
    ├── NetworkError              → fetch rejected; recovered by cache fallback
    │   ├── NetworkTimeoutError   → network attempt exceeded its timeout
    │   └── NoCachedResponseError → network failed AND the fallback cache missed
    ├── CacheStorageError         → cache API failure; logged, treated as no-op
    ├── PushServiceError          → push platform or server failure
    └── InitializationError       → a one-time initializer failed

Only NetworkError (and subclasses) ever surfaces to the page, as a failed
fetch. Everything else is handled inside the worker so it can keep serving
subsequent events.
"""

from typing import Any, Dict, Optional


class FuranomiError(Exception):
    """
    Base exception for all worker errors.

    Attributes:
        message:  Human-readable error description
        context:  Additional debug info (URL, bucket name, status code)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class NetworkError(FuranomiError):
    """
    Raised when a network fetch is rejected.

    When:    Connection refused, DNS failure, offline, transport error.
    Recovery: Network-first policies fall back to their cache bucket; the
              network-only HTML policy propagates it to the page.
    """

    def __init__(
        self,
        message: str = "Network request failed",
        url: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if url:
            ctx["url"] = url
        super().__init__(message=message, context=ctx)
        self.url = url


class NetworkTimeoutError(NetworkError):
    """Raised when a bounded network attempt exceeds its timeout."""

    def __init__(
        self,
        timeout: float,
        url: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["timeout"] = timeout
        super().__init__(
            message=f"Network request timed out after {timeout}s",
            url=url,
            context=ctx,
        )
        self.timeout = timeout


class NoCachedResponseError(NetworkError):
    """
    Raised when a network-first fetch fails and the cache has no fallback.

    This is the only error a caching policy lets escape: the page sees a
    failed fetch, exactly as it would without a service worker.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        cache_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if cache_name:
            ctx["cache_name"] = cache_name
        super().__init__(
            message="Network request failed and no cached response is available",
            url=url,
            context=ctx,
        )
        self.cache_name = cache_name


class CacheStorageError(FuranomiError):
    """
    Raised by cache storage backends when an operation fails.

    When:    Quota exceeded, bucket closed or deleted mid-operation, disk I/O error.
    Recovery: Strategies and the lifecycle manager catch it, log it and carry on
              as if the cache operation had been a no-op.
    """

    def __init__(
        self,
        message: str = "Cache storage operation failed",
        cache_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if cache_name:
            ctx["cache_name"] = cache_name
        super().__init__(message=message, context=ctx)
        self.cache_name = cache_name


class PushServiceError(FuranomiError):
    """
    Raised when a push subscription step fails.

    When:    VAPID key unavailable, permission denied, platform rejection,
             server answered with a non-2xx status.
    Recovery: PushSubscriptionService converts it to None/False so the UI only
              ever sees a "not subscribed" state.
    """

    def __init__(
        self,
        message: str = "Push notification service error",
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code


class InitializationError(FuranomiError):
    """Raised when a one-time initializer's setup fails."""

    def __init__(
        self,
        name: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["initializer"] = name
        super().__init__(message=f"Initialization of '{name}' failed", context=ctx)
        self.name = name
