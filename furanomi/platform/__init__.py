"""
Furanomi Worker — Platform Adapters
====================================

What:  The seam between the worker logic and its runtime.

Adapter Inventory:
    - base.WorkerPlatform (abstract): fetch, caches, clients, notifications, push
    - local.LocalPlatform: httpx network + in-memory clients
    - memory.MemoryCacheStorage: process-local buckets (default)
    - disk.DiskCacheStorage: buckets persisted with aiofiles
"""
