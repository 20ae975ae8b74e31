"""
preprocess.py - Normalize a raw card photo before OCR.

Pipeline:
    1. Decode bytes (JPEG/PNG/WebP/...) with OpenCV
    2. Grayscale conversion (single channel)
    3. Crop the top band of the card, full width, height = floor(h * 0.3).
       Name, HP and (on most eras) the stage line live here; the artwork
       and attack text below only add OCR noise.
    4. Re-encode as PNG (lossless, so the crop doesn't pick up JPEG artifacts)

If the bytes cannot be decoded, DecodeError is raised. Callers that want
the pipeline to keep going use preprocess_or_original(), which falls back
to the untouched image.
"""

import logging
import math
import time
from pathlib import Path

import cv2
import numpy as np

from config import NAME_BAND_RATIO, OCR_DEBUG_DIR

logger = logging.getLogger("preprocess")


class DecodeError(Exception):
    """Image bytes could not be decoded (corrupt or unsupported format)."""


def decode_image(data):
    """Decode image bytes to a BGR numpy array. Raises DecodeError."""
    if not data:
        raise DecodeError("Empty image buffer")
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if img is None or img.size == 0:
        raise DecodeError("Could not read image metadata (corrupt or unsupported format)")
    return img


def crop_box(width, height, ratio=NAME_BAND_RATIO):
    """
    Return the (x, y, w, h) band to keep: full width, top floor(h * ratio).

    1000x1400 -> (0, 0, 1000, 420)
    """
    band_h = max(1, int(math.floor(height * ratio)))
    return 0, 0, width, min(band_h, height)


def preprocess_for_ocr(data, ratio=NAME_BAND_RATIO):
    """
    Grayscale + crop the top band of a card image.

    Args:
        data: raw image bytes
        ratio: fraction of the image height to keep, measured from the top

    Returns:
        PNG-encoded bytes of the single-channel band.
    """
    img = decode_image(data)
    h, w = img.shape[:2]

    gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    x, y, cw, ch = crop_box(w, h, ratio)
    band = gray[y:y + ch, x:x + cw]

    logger.info("Preprocessed %dx%d -> %dx%d band (ratio=%.2f)", w, h, cw, ch, ratio)
    _save_debug_image(band, "name_band")

    ok, encoded = cv2.imencode(".png", band)
    if not ok:
        raise DecodeError("Failed to encode preprocessed image")
    return encoded.tobytes()


def preprocess_or_original(data, ratio=NAME_BAND_RATIO):
    """Preprocess, falling back to the original bytes on DecodeError."""
    try:
        return preprocess_for_ocr(data, ratio=ratio)
    except DecodeError as e:
        logger.warning("Preprocessing skipped, using original image: %s", e)
        return data


def _save_debug_image(img, label):
    """Save a preprocessing step image for debugging."""
    if OCR_DEBUG_DIR is None:
        return
    debug_dir = Path(OCR_DEBUG_DIR)
    debug_dir.mkdir(parents=True, exist_ok=True)
    timestamp = int(time.time() * 1000) % 100000
    cv2.imwrite(str(debug_dir / f"{timestamp}_{label}.png"), img)
