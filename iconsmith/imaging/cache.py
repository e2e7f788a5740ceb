"""Asset storage and a byte-aware LRU cache for rendered icons."""

import dataclasses
import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional

from cachetools import LRUCache

from iconsmith.models import PixelBuffer, ProcessedAsset

log = logging.getLogger(__name__)

SOURCE = "source"
OUTPUT = "output"


class ByteLRUCache(LRUCache):
    """An LRU Cache that respects the size of its items in bytes."""

    def __init__(
        self,
        max_bytes: int,
        size_of: Callable[[Any], int] = len,
        on_evict: Callable[[], None] = None,
    ):
        super().__init__(maxsize=max_bytes, getsizeof=size_of)
        self.on_evict = on_evict
        log.info(
            f"Initialized byte-aware LRU cache with {max_bytes / 1024**2:.2f} MB capacity."
        )

    def __setitem__(self, key, value):
        # Eviction to make room is handled by the parent class via popitem
        super().__setitem__(key, value)
        log.debug(
            f"Cached item '{key}'. Cache size: {self.currsize / 1024**2:.2f} MB"
        )

    def popitem(self):
        """Extend popitem to log eviction."""
        key, value = super().popitem()
        log.debug(
            f"Evicted item '{key}' to free up space. Cache size: {self.currsize / 1024**2:.2f} MB"
        )

        if self.on_evict:
            self.on_evict()

        return key, value


def get_buffer_size(item) -> int:
    """Size in bytes of a cached PixelBuffer."""
    if isinstance(item, PixelBuffer):
        return item.data.nbytes
    return 1


def build_cache_key(
    asset_id: str, generation: int, target_size: int, fingerprint: str, timestamp: Optional[float] = None
) -> str:
    """Builds a render cache key that changes whenever any render input changes."""
    t = "static" if timestamp is None else f"{float(timestamp):.6f}"
    return f"{asset_id}::{generation}::{target_size}::{fingerprint}::{t}"


class AssetStore:
    """Thread-safe map from asset identifier to ProcessedAsset.

    Each asset has its own lock, so work on different assets never contends.
    Writes for the same asset are sequenced with tickets: every operation asks
    for a ticket when it is submitted, and its result is only committed if no
    newer ticket of the same kind was issued in the meantime. Late results from
    superseded runs are dropped instead of overwriting newer ones.

    Source and output tickets are counted separately. An output is also
    rejected if the source it was rendered from has since been replaced.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._assets: Dict[str, ProcessedAsset] = {}
        self._key_locks: Dict[str, threading.Lock] = {}
        self._tickets: Dict[str, Dict[str, int]] = {}

    def _key_lock(self, asset_id: str) -> threading.Lock:
        with self._lock:
            if asset_id not in self._assets:
                raise KeyError(f"Unknown asset: {asset_id!r}")
            return self._key_locks[asset_id]

    def add(
        self,
        source: PixelBuffer,
        name: str = "",
        label: str = "",
        fidelity: float = 100.0,
        asset_id: Optional[str] = None,
    ) -> str:
        """Stores a copy of `source` as a new asset and returns its id."""
        asset_id = asset_id or uuid.uuid4().hex
        asset = ProcessedAsset(
            asset_id=asset_id, source=source.copy(), name=name, label=label, fidelity=fidelity
        )
        with self._lock:
            if asset_id in self._assets:
                raise KeyError(f"Asset {asset_id!r} already exists")
            self._assets[asset_id] = asset
            self._key_locks[asset_id] = threading.Lock()
            self._tickets[asset_id] = {SOURCE: 0, OUTPUT: 0}
        log.debug("Added asset %s (%dx%d)", asset_id, source.width, source.height)
        return asset_id

    def get(self, asset_id: str) -> ProcessedAsset:
        """Returns a snapshot of the asset; its buffers are copies."""
        with self._key_lock(asset_id):
            asset = self._assets[asset_id]
            return dataclasses.replace(
                asset,
                source=asset.source.copy(),
                output=asset.output.copy() if asset.output is not None else None,
            )

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._assets)

    def __contains__(self, asset_id) -> bool:
        with self._lock:
            return asset_id in self._assets

    def __len__(self) -> int:
        with self._lock:
            return len(self._assets)

    def issue_ticket(self, asset_id: str, kind: str = OUTPUT) -> int:
        """Reserves the next sequence number for a `kind` write to `asset_id`."""
        with self._key_lock(asset_id):
            tickets = self._tickets[asset_id]
            tickets[kind] += 1
            return tickets[kind]

    def is_current(self, asset_id: str, ticket: int, kind: str = OUTPUT) -> bool:
        with self._lock:
            tickets = self._tickets.get(asset_id)
            return tickets is not None and tickets[kind] == ticket

    def commit_source(self, asset_id: str, ticket: int, source: PixelBuffer) -> bool:
        """Replaces the source if `ticket` is still the newest source ticket."""
        try:
            lock = self._key_lock(asset_id)
        except KeyError:
            log.debug("Dropping source for deleted asset %s", asset_id)
            return False
        with lock:
            tickets = self._tickets.get(asset_id)
            if tickets is None or tickets[SOURCE] != ticket:
                log.debug("Dropping stale source for asset %s (ticket %d)", asset_id, ticket)
                return False
            asset = self._assets[asset_id]
            asset.source = source.copy()
            asset.generation += 1
            asset.output = None
            return True

    def commit_output(self, asset_id: str, ticket: int, output: PixelBuffer, generation: int) -> bool:
        """Stores a rendered output if it is the newest render of the current source."""
        try:
            lock = self._key_lock(asset_id)
        except KeyError:
            log.debug("Dropping output for deleted asset %s", asset_id)
            return False
        with lock:
            asset = self._assets.get(asset_id)
            tickets = self._tickets.get(asset_id)
            if asset is None or tickets is None:
                return False
            if tickets[OUTPUT] != ticket or asset.generation != generation:
                log.debug(
                    "Dropping stale output for asset %s (ticket %d, generation %d)",
                    asset_id, ticket, generation,
                )
                return False
            asset.output = output.copy()
            return True

    def delete(self, asset_id: str) -> bool:
        """Removes an asset; pending writes for it will be dropped.

        Waits for any commit in progress on the asset to finish first.
        """
        try:
            lock = self._key_lock(asset_id)
        except KeyError:
            return False
        with lock, self._lock:
            if asset_id not in self._assets:
                return False
            del self._assets[asset_id]
            del self._key_locks[asset_id]
            del self._tickets[asset_id]
        log.debug("Deleted asset %s", asset_id)
        return True
