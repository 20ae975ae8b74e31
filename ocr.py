"""
ocr.py - Card text extraction via EasyOCR.

extract_text() runs recognition on an image (raw bytes, CardImage, or data
URI) and returns the recognized text as one string with one line per printed
text row, so the Field Parser can work line by line.

  - Character allowlist: letters, digits, space and ./-'& (config.OCR_ALLOWLIST)
    suppresses spurious symbol reads from holo foil and energy icons.
  - Automatic layout: EasyOCR's text detector finds every text box on the
    image (no paragraph merging). Boxes are regrouped into rows by vertical
    overlap and read left to right, words joined with a single space.
  - Engine lifecycle: every call builds its own reader inside ocr_engine()
    and releases it on every exit path. Readers are never shared between
    requests.
  - Failure: any recognition error is logged and returned as
    TextResult(text="", error=...). Partial failure on real photos is the
    normal case, so nothing is raised to the caller.
"""

import gc
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from card_image import as_card_image
from config import (
    OCR_ALLOWLIST, OCR_GPU, OCR_LANGUAGE, OCR_LANGUAGE_ALIASES,
    OCR_LINE_OVERLAP,
)

logger = logging.getLogger("ocr")


@dataclass
class TextResult:
    """Recognized text. error is set when recognition failed."""
    text: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ─────────────────────────────────────────────────────────────
# ENGINE LIFECYCLE
# ─────────────────────────────────────────────────────────────

def normalize_language(language):
    """Map a language hint ('en', 'eng', 'EN') to an EasyOCR code."""
    code = (language or OCR_LANGUAGE).strip().lower()
    return OCR_LANGUAGE_ALIASES.get(code, code)


def _easyocr_reader(language):
    """Build an EasyOCR reader for one language."""
    import easyocr

    logger.info("Loading EasyOCR model (lang=%s, gpu=%s)...", language, OCR_GPU)
    return easyocr.Reader([language], gpu=OCR_GPU, verbose=False)


def _release_reader(reader):
    """Free a reader's model weights (and GPU memory, if any)."""
    close = getattr(reader, "close", None)
    if callable(close):
        close()
    if OCR_GPU:
        import torch

        if torch.cuda.is_available():
            torch.cuda.empty_cache()
    gc.collect()


@contextmanager
def ocr_engine(language=OCR_LANGUAGE, reader_factory=None):
    """
    Scoped OCR engine: initialize on enter, release on exit.

    Usage:
        with ocr_engine("en") as reader:
            results = reader.readtext(img)
    """
    factory = reader_factory or _easyocr_reader
    reader = factory(normalize_language(language))
    try:
        yield reader
    finally:
        _release_reader(reader)
        logger.debug("OCR engine released")


# ─────────────────────────────────────────────────────────────
# LINE ASSEMBLY
# ─────────────────────────────────────────────────────────────

def _box_extent(bbox):
    xs = [pt[0] for pt in bbox]
    ys = [pt[1] for pt in bbox]
    return min(xs), min(ys), max(ys)


def group_lines(ocr_results, min_overlap=OCR_LINE_OVERLAP):
    """
    Group EasyOCR detections into text rows.

    Detections are sorted top to bottom; a detection joins the current row
    when its vertical overlap with the row is at least min_overlap of the
    shorter height. Each row is read left to right.

    Returns a list of row strings.
    """
    boxes = []
    for (bbox, text, conf) in ocr_results:
        text = text.strip()
        if not text:
            continue
        x0, y0, y1 = _box_extent(bbox)
        boxes.append((y0, y1, x0, text))

    boxes.sort(key=lambda b: ((b[0] + b[1]) / 2, b[2]))

    rows = []  # [top, bottom, [(x0, text), ...]]
    for y0, y1, x0, text in boxes:
        if rows:
            top, bottom, words = rows[-1]
            overlap = min(bottom, y1) - max(top, y0)
            shorter = max(1, min(bottom - top, y1 - y0))
            if overlap / shorter >= min_overlap:
                words.append((x0, text))
                rows[-1][0] = min(top, y0)
                rows[-1][1] = max(bottom, y1)
                continue
        rows.append([y0, y1, [(x0, text)]])

    lines = []
    for _, _, words in rows:
        words.sort(key=lambda w: w[0])
        lines.append(" ".join(" ".join(t for _, t in words).split()))
    return lines


# ─────────────────────────────────────────────────────────────
# TEXT EXTRACTION
# ─────────────────────────────────────────────────────────────

def extract_text(image, language=OCR_LANGUAGE, reader_factory=None):
    """
    Run OCR on an image and return its text, one printed row per line.

    Args:
        image: raw bytes, CardImage, or data URI string
        language: language hint (default English)
        reader_factory: callable(language) -> reader; defaults to EasyOCR

    Returns:
        TextResult. On any failure text is "" and error holds the message.
    """
    try:
        data = as_card_image(image).data
        with ocr_engine(language, reader_factory=reader_factory) as reader:
            results = reader.readtext(
                data,
                allowlist=OCR_ALLOWLIST,
                paragraph=False,
            )
    except Exception as e:
        logger.warning("OCR failed: %s", e)
        return TextResult(text="", error=f"OCR failed: {e}")

    lines = group_lines(results)
    logger.info("OCR read %d detections in %d lines", len(results), len(lines))
    for line in lines:
        logger.debug("  ocr_line='%s'", line)

    return TextResult(text="\n".join(lines))
