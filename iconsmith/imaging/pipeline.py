"""Runs segmentation, normalization and compositing for many assets in a thread pool."""

import logging
import math
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Optional, Union

from iconsmith.config import config
from iconsmith.imaging.cache import (
    OUTPUT,
    SOURCE,
    AssetStore,
    ByteLRUCache,
    build_cache_key,
    get_buffer_size,
)
from iconsmith.imaging.compositor import composite
from iconsmith.imaging.normalizer import remove_background_and_center
from iconsmith.io.codec import decode_image, load_image
from iconsmith.io.generation import ImageGenerator, fetch_generated_source
from iconsmith.models import CropRegion, EffectConfig, PixelBuffer

log = logging.getLogger(__name__)

FIDELITY_REFERENCE = 1024


def calculate_fidelity(width: int, height: int) -> float:
    """Scores source resolution 0-100; a 1024x1024 source scores 100."""
    if width <= 0 or height <= 0:
        return 0.0
    return min(100.0, math.sqrt(width * height) / FIDELITY_REFERENCE * 100.0)


class IconPipeline:
    """Schedules per-asset work and commits results through an AssetStore.

    Each submit_* call takes a ticket from the store before queuing its task.
    When the task finishes, the result is written back only if that ticket is
    still the newest for the asset; otherwise the future resolves to None.
    Exceptions stay in the future of the asset that raised them.
    """

    def __init__(
        self,
        store: Optional[AssetStore] = None,
        max_workers: Optional[int] = None,
        cache_bytes: Optional[int] = None,
    ):
        self.store = store or AssetStore()
        if max_workers is None:
            max_workers = config.getint("core", "max_workers", fallback=0) or min(os.cpu_count() or 1, 8)
        if cache_bytes is None:
            cache_bytes = config.getint("core", "cache_size_mb", fallback=256) * 1024**2

        self.executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="IconPipeline"
        )
        self.render_cache = ByteLRUCache(max_bytes=cache_bytes, size_of=get_buffer_size)
        self._cache_lock = threading.Lock()

    # ---- Ingestion ----

    def ingest(self, buffer: PixelBuffer, name: str = "", label: str = "") -> str:
        """Adds a decoded image as a new asset and returns its id."""
        fidelity = calculate_fidelity(buffer.width, buffer.height)
        return self.store.add(buffer, name=name, label=label, fidelity=fidelity)

    def ingest_bytes(self, data: bytes, name: str = "", label: str = "") -> str:
        return self.ingest(decode_image(data), name=name, label=label)

    def ingest_path(self, path: Union[str, Path], label: str = "") -> str:
        path = Path(path)
        return self.ingest(load_image(path), name=path.stem, label=label)

    def delete(self, asset_id: str) -> bool:
        return self.store.delete(asset_id)

    # ---- Rendering ----

    def submit_render(
        self,
        asset_id: str,
        target_size: int,
        effects: Optional[EffectConfig] = None,
        timestamp: Optional[float] = None,
        crop_region: Optional[CropRegion] = None,
    ) -> Future:
        """Queues a composite of the asset's current source."""
        effects = effects or EffectConfig()
        ticket = self.store.issue_ticket(asset_id, OUTPUT)
        log.debug("Submitted render for %s (ticket %d, size %d)", asset_id, ticket, target_size)
        return self.executor.submit(
            self._render, asset_id, ticket, target_size, effects, timestamp, crop_region
        )

    def _render(
        self,
        asset_id: str,
        ticket: int,
        target_size: int,
        effects: EffectConfig,
        timestamp: Optional[float],
        crop_region: Optional[CropRegion],
    ) -> Optional[PixelBuffer]:
        if not self.store.is_current(asset_id, ticket, OUTPUT):
            log.debug("Skipping stale render for %s (ticket %d)", asset_id, ticket)
            return None

        try:
            asset = self.store.get(asset_id)
        except KeyError:
            log.debug("Asset %s was deleted before rendering", asset_id)
            return None
        key = None
        if crop_region is None:
            key = build_cache_key(
                asset_id, asset.generation, target_size, effects.fingerprint(), timestamp
            )
            with self._cache_lock:
                cached = self.render_cache.get(key)
            if cached is not None:
                log.debug("Render cache hit for %s", key)
                output = cached.copy()
                return output if self.store.commit_output(asset_id, ticket, output, asset.generation) else None

        t_start = time.perf_counter()
        output = composite(
            asset.source,
            target_size,
            effects,
            crop_region=crop_region,
            fidelity_factor=asset.fidelity,
            timestamp=timestamp,
        )
        log.debug("Rendered %s in %.3fs", asset_id, time.perf_counter() - t_start)

        if key is not None:
            with self._cache_lock:
                self.render_cache[key] = output.copy()
        if not self.store.commit_output(asset_id, ticket, output, asset.generation):
            return None
        return output

    def render_all(
        self,
        target_size: int,
        effects: Optional[EffectConfig] = None,
        timestamp: Optional[float] = None,
    ) -> Dict[str, Future]:
        """Submits one render per stored asset; returns futures keyed by asset id."""
        futures = {}
        for asset_id in self.store.ids():
            try:
                futures[asset_id] = self.submit_render(asset_id, target_size, effects, timestamp)
            except KeyError:
                # Deleted between listing and submission
                continue
        log.info("Queued %d renders at %dpx", len(futures), target_size)
        return futures

    # ---- Source replacement ----

    def submit_cleanup(
        self,
        asset_id: str,
        aggression: Optional[float] = None,
        keep_internal: Optional[bool] = None,
        output_size: Optional[int] = None,
        margin_fraction: Optional[float] = None,
    ) -> Future:
        """Queues background removal and re-centering of the asset's source."""
        if aggression is None:
            aggression = config.getfloat("cleanup", "aggression", fallback=80)
        if keep_internal is None:
            keep_internal = config.getboolean("cleanup", "keep_internal", fallback=True)
        if output_size is None:
            output_size = config.getint("cleanup", "output_size", fallback=1024)
        if margin_fraction is None:
            margin_fraction = config.getfloat("cleanup", "margin_fraction", fallback=0.0625)
        min_fragment_size = config.getint("cleanup", "min_fragment_size", fallback=4)

        ticket = self.store.issue_ticket(asset_id, SOURCE)
        log.debug("Submitted cleanup for %s (ticket %d)", asset_id, ticket)
        return self.executor.submit(
            self._cleanup, asset_id, ticket,
            aggression, keep_internal, output_size, margin_fraction, min_fragment_size,
        )

    def _cleanup(
        self,
        asset_id: str,
        ticket: int,
        aggression: float,
        keep_internal: bool,
        output_size: int,
        margin_fraction: float,
        min_fragment_size: int,
    ) -> Optional[PixelBuffer]:
        if not self.store.is_current(asset_id, ticket, SOURCE):
            log.debug("Skipping stale cleanup for %s (ticket %d)", asset_id, ticket)
            return None
        try:
            source = self.store.get(asset_id).source
        except KeyError:
            log.debug("Asset %s was deleted before cleanup", asset_id)
            return None
        cleaned = remove_background_and_center(
            source, aggression, keep_internal, output_size, margin_fraction, min_fragment_size
        )
        if not self.store.commit_source(asset_id, ticket, cleaned):
            return None
        return cleaned

    def submit_generated(self, asset_id: str, generator: ImageGenerator, prompt: str) -> Future:
        """Replaces the asset's source with a cleaned, centered generated image.

        The future raises ExternalServiceError if the generator fails.
        """
        ticket = self.store.issue_ticket(asset_id, SOURCE)
        log.debug("Submitted generation for %s (ticket %d)", asset_id, ticket)
        return self.executor.submit(self._generate, asset_id, ticket, generator, prompt)

    def _generate(
        self, asset_id: str, ticket: int, generator: ImageGenerator, prompt: str
    ) -> Optional[PixelBuffer]:
        generated = fetch_generated_source(generator, prompt)
        cleaned = remove_background_and_center(
            generated,
            config.getfloat("cleanup", "aggression", fallback=80),
            config.getboolean("cleanup", "keep_internal", fallback=True),
            config.getint("cleanup", "output_size", fallback=1024),
            config.getfloat("cleanup", "margin_fraction", fallback=0.0625),
            config.getint("cleanup", "min_fragment_size", fallback=4),
        )
        if not self.store.commit_source(asset_id, ticket, cleaned):
            return None
        return cleaned

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
