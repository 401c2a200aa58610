import io
import logging
from typing import Optional

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

MAX_SAMPLE_DIMENSION = 200
PIXEL_STEP = 10
QUANTIZE_STEP = 16


def extract_dominant_color(data: bytes) -> Optional[str]:
    """
    Return the most common opaque colour of an image as ``#RRGGBB``.

    The image is shrunk, every tenth pixel sampled and channels quantized
    to steps of 16 before counting. Returns None on any failure.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image = image.convert("RGBA")
            image.thumbnail((MAX_SAMPLE_DIMENSION, MAX_SAMPLE_DIMENSION))
            pixels = np.asarray(image).reshape(-1, 4)[::PIXEL_STEP]

        opaque = pixels[pixels[:, 3] >= 128][:, :3]
        if opaque.size == 0:
            return None

        quantized = np.clip(np.round(opaque / QUANTIZE_STEP) * QUANTIZE_STEP, 0, 255).astype(np.uint8)
        colors, counts = np.unique(quantized, axis=0, return_counts=True)
        r, g, b = (int(v) for v in colors[int(np.argmax(counts))])
        return f"#{r:02X}{g:02X}{b:02X}"
    except Exception as e:
        logger.warning(f"Dominant color extraction failed: {e}")
        return None
