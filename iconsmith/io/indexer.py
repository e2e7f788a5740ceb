"""Scans directories for source images."""

import logging
import os
import time
from pathlib import Path
from typing import List, Tuple

log = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp", ".ico"}


def find_images(directory: Path) -> List[Path]:
    """Finds all supported images in a directory, oldest first."""
    t_start = time.perf_counter()
    log.info("Scanning directory for images: %s", directory)
    found: List[Tuple[Path, float]] = []

    try:
        for entry in os.scandir(directory):
            if entry.is_file():
                p = Path(entry.path)
                if p.suffix.lower() in IMAGE_EXTENSIONS:
                    found.append((p, entry.stat().st_mtime))
    except OSError:
        log.exception("Error scanning directory %s", directory)
        return []

    found.sort(key=lambda x: (x[1], x[0].name))
    log.info("Found %d images in %.3fs", len(found), time.perf_counter() - t_start)
    return [p for p, _ in found]
