"""
Furanomi Worker — Cache Lifecycle Manager
==========================================

What:  Keeps cache buckets consistent with the deployed version.
How:   Runs once per activation. Every step is failure-tolerant: errors are
       logged and the next step still runs, so activation never aborts.
Who:   Called by the worker's install, activate and message handlers.

Activation Sequence:
    0. Claim all open clients
    1. Compute the current bucket names from the version tag
    2. Delete every bucket that is not current (precache buckets excepted)
    3. Purge "/", *.html, *.js and *.css entries from the current buckets
    4. Tell every window client (controlled or not) to reload

Invariant after activation:
    No bucket outside the current version remains (except precache buckets),
    and no current bucket holds an HTML/JS/CSS entry written before it.
"""

import logging
from typing import Any, Dict, List, Optional

from furanomi.config import Settings
from furanomi.exceptions import CacheStorageError
from furanomi.platform.base import WindowClient, WorkerPlatform
from furanomi.services.router import CATEGORIES, cache_name

logger = logging.getLogger(__name__)

# Client → worker message types
MSG_SKIP_WAITING = "SKIP_WAITING"
MSG_GET_VERSION = "GET_VERSION"
MSG_CLEAR_CACHES = "CLEAR_CACHES"

# Worker → client replies
MSG_VERSION = "VERSION"
MSG_CACHES_CLEARED = "CACHES_CLEARED"


def current_cache_names(version: str) -> List[str]:
    return [cache_name(category, version) for category in CATEGORIES]


def legacy_cache_name(version: str) -> str:
    """Single flat bucket used by the earlier, unversioned-per-category worker."""
    return f"furanomi-cache-{version}"


def is_stale_asset_path(path: str) -> bool:
    return path == "/" or path.endswith((".html", ".js", ".css"))


class LifecycleManager:
    """Install, activation and client-message handling for one version."""

    def __init__(self, platform: WorkerPlatform, settings: Settings):
        self.platform = platform
        self.version = settings.sw_version
        self.precache_prefix = settings.precache_prefix
        self.activation_message_type = settings.activation_message_type

    @property
    def current_cache_names(self) -> List[str]:
        return current_cache_names(self.version)

    async def install(self) -> None:
        """Activate the new version as soon as it is installed."""
        logger.info("Installing version %s", self.version)
        await self.platform.skip_waiting()

    async def activate(self) -> Dict[str, Any]:
        """
        Run the activation sweep.

        Returns:
            Summary with the deleted bucket names, the number of purged
            entries and the number of clients notified.
        """
        logger.info("Activating version %s", self.version)
        summary: Dict[str, Any] = {"deleted": [], "purged": 0, "notified": 0}

        try:
            await self.platform.claim_clients()
        except Exception as e:
            logger.warning("Failed to claim clients: %s", e)

        current = set(self.current_cache_names)

        try:
            summary["deleted"] = await self._delete_outdated(current)
        except CacheStorageError as e:
            logger.warning("Failed to list caches: %s", e.message)

        summary["purged"] = await self._purge_stale_assets(current)
        summary["notified"] = await self._notify_clients()

        logger.info(
            "Activation of %s complete: deleted=%d purged=%d notified=%d",
            self.version,
            len(summary["deleted"]),
            summary["purged"],
            summary["notified"],
        )
        return summary

    async def _delete_outdated(self, current: set) -> List[str]:
        names = await self.platform.caches.keys()
        logger.info("Found %d caches: %s", len(names), names)
        deleted = []
        for name in names:
            if name in current or name.startswith(self.precache_prefix):
                continue
            try:
                if await self.platform.caches.delete(name):
                    deleted.append(name)
                    logger.info("Deleted old cache: %s", name)
            except CacheStorageError as e:
                logger.warning("Failed to delete cache %s: %s", name, e.message)
        return deleted

    async def _purge_stale_assets(self, current: set) -> int:
        purged = 0
        for name in sorted(current):
            try:
                if not await self.platform.caches.has(name):
                    continue
                bucket = await self.platform.caches.open(name)
                stale = [e.key for e in await bucket.entries() if is_stale_asset_path(e.path)]
                for key in stale:
                    await bucket.delete(key)
                if stale:
                    logger.info("Cleared %d HTML/JS/CSS entries from %s", len(stale), name)
                purged += len(stale)
            except CacheStorageError as e:
                logger.warning("Failed to clear cache %s: %s", name, e.message)
        return purged

    async def _notify_clients(self) -> int:
        try:
            clients = await self.platform.match_clients(type="window", include_uncontrolled=True)
        except Exception as e:
            logger.warning("Failed to list clients: %s", e)
            return 0
        message = {"type": self.activation_message_type, "version": self.version, "reload": True}
        notified = 0
        for client in clients:
            try:
                await client.post_message(message)
                notified += 1
            except Exception as e:
                logger.warning("Failed to notify client %s: %s", client.id, e)
        return notified

    async def clear_all_caches(self) -> List[str]:
        """Delete every bucket, precache included. Debug tooling only."""
        deleted = []
        for name in await self.platform.caches.keys():
            try:
                if await self.platform.caches.delete(name):
                    deleted.append(name)
            except CacheStorageError as e:
                logger.warning("Failed to delete cache %s: %s", name, e.message)
        logger.info("Cleared %d caches on request", len(deleted))
        return deleted

    async def handle_message(self, data: Any, source: Optional[WindowClient] = None) -> None:
        if not isinstance(data, dict):
            return
        kind = data.get("type")
        if kind == MSG_SKIP_WAITING:
            logger.info("Received SKIP_WAITING message")
            await self.platform.skip_waiting()
        elif kind == MSG_GET_VERSION:
            if source is not None:
                await source.post_message({"type": MSG_VERSION, "version": self.version})
        elif kind == MSG_CLEAR_CACHES:
            deleted = await self.clear_all_caches()
            if source is not None:
                await source.post_message({"type": MSG_CACHES_CLEARED, "deleted": deleted})
        else:
            logger.debug("Ignoring message of type %r", kind)
