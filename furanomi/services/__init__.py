"""
Furanomi Worker — Services Layer
=================================

What:  The worker's behaviour, independent of any runtime.

Service Inventory:
    - Router + strategies: one caching policy per intercepted GET request
    - ExpirationPolicy: per-bucket TTL and entry cap
    - LifecycleManager: install, activation sweep, client messages
    - PushBridge: push display and notification clicks (worker side)
    - PushSubscriptionService / PushToggle: subscribe flows (page side)
    - Initializer: idempotent one-time setup
"""
