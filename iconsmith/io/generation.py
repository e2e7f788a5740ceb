"""Boundary to the external AI image generator.

The pipeline never talks to a generation service directly. Callers hand in any
object with a ``generate(prompt) -> bytes`` method; whatever it returns is
decoded and treated like any other source image.
"""

import logging
from typing import Protocol

from iconsmith.errors import DecodeError, ExternalServiceError
from iconsmith.io.codec import decode_image
from iconsmith.models import PixelBuffer

log = logging.getLogger(__name__)

SERVICE_HINT = "Check your connection or API key, then try again."
MALFORMED_HINT = "The generator returned something that is not an image. Try rerolling."


class ImageGenerator(Protocol):
    def generate(self, prompt: str) -> bytes:
        """Returns encoded image bytes for `prompt`."""
        ...


def fetch_generated_source(generator: ImageGenerator, prompt: str) -> PixelBuffer:
    """Runs the generator once and decodes its output.

    No retries happen here; retry policy belongs to the caller.

    Raises:
        ExternalServiceError: if the generator fails or its output cannot be decoded.
    """
    try:
        data = generator.generate(prompt)
    except ExternalServiceError:
        raise
    except Exception as e:
        log.error("Image generation failed: %s", e)
        raise ExternalServiceError(f"Image generation failed: {e}", SERVICE_HINT) from e

    if not data:
        raise ExternalServiceError("Image generation returned no data", MALFORMED_HINT)

    try:
        return decode_image(data)
    except DecodeError as e:
        log.error("Generated image could not be decoded: %s", e)
        raise ExternalServiceError(f"Malformed generator response: {e}", MALFORMED_HINT) from e
