"""Identifier to display-name lookups for label enrichment.

Pool and instance names are listed in bulk once at startup. Identifiers
that show up later are fetched one at a time and memoized, including
failed fetches, which are stored as ``UNKNOWN`` so a missing resource is
not looked up again on every scrape. Entries never expire.
"""

import logging
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

UNKNOWN = 'UNKNOWN'

POOL = 'pool'
INSTANCE = 'instance'


class UnknownLookupKindError(ValueError):
    """A lookup was requested for a resource kind the cache does not hold"""


class LookupCache:
    """Thread-safe memoizing id -> name lookups for pools and instances"""

    def __init__(self, resource_client, pools: Optional[Dict[str, str]] = None,
                 instances: Optional[Dict[str, str]] = None):
        self.client = resource_client
        self._lock = threading.Lock()
        self._names = {
            POOL: dict(pools or {}),
            INSTANCE: dict(instances or {}),
        }
        self._fetchers: Dict[str, Callable[[str], str]] = {
            POOL: resource_client.get_pool,
            INSTANCE: resource_client.get_instance,
        }

    @classmethod
    def populate(cls, resource_client) -> 'LookupCache':
        """Build a cache from the full pool and instance listings.

        Listing errors propagate; the exporter cannot start without them.
        """
        logger.debug("Populating id lookup caches")
        pools = dict(resource_client.list_pools())
        instances = dict(resource_client.list_instances())
        logger.debug(f"Finished populating caches. {len(pools)} pools and {len(instances)} instances prepared.")
        return cls(resource_client, pools=pools, instances=instances)

    def lookup(self, kind: str, resource_id: Optional[str]) -> str:
        """Resolve resource_id to a display name, fetching on a cache miss"""
        if kind not in self._names:
            raise UnknownLookupKindError(f"Unknown lookup kind {kind!r}")
        if not resource_id:
            return UNKNOWN

        with self._lock:
            name = self._names[kind].get(resource_id)
        if name is not None:
            return name

        # Fetched outside the lock; racing misses for one id may both fetch.
        try:
            name = self._fetchers[kind](resource_id)
        except Exception as e:
            logger.warning(f"Failure while looking up {kind} id {resource_id!r}: {e}")
            name = UNKNOWN

        with self._lock:
            self._names[kind][resource_id] = name
        return name

    def lookup_pool(self, pool_id: Optional[str]) -> str:
        return self.lookup(POOL, pool_id)

    def lookup_instance(self, instance_id: Optional[str]) -> str:
        return self.lookup(INSTANCE, instance_id)

    def size(self, kind: str) -> int:
        """Number of cached entries for kind"""
        with self._lock:
            return len(self._names[kind])
