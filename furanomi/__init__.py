"""
Furanomi Worker — Package Initializer
======================================

What:  Service worker cache controller and push bridge for the ふらのみ PWA.

Architecture Note:

    ┌─────────────────────────────────────┐
    │        ServiceWorker (worker.py)    │  ← handler registration
    ├─────────────────────────────────────┤
    │   Services: Router, Lifecycle,      │  ← caching policies, cache sweep,
    │   PushBridge, PushSubscription      │    notifications, subscriptions
    ├─────────────────────────────────────┤
    │   Schemas & Events                  │  ← wire formats, event objects
    ├─────────────────────────────────────┤
    │   Platform adapter                  │  ← fetch, caches, clients, push
    └─────────────────────────────────────┘

The services never touch a real browser runtime; they are given a
WorkerPlatform and can be exercised with LocalPlatform and httpx.MockTransport.
"""

__version__ = "1.0.7"
