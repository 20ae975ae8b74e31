"""
identify.py - Card identification pipeline, main entry point.

Two interchangeable extraction paths, both FieldExtractor implementations:

  OCR path (OcrFieldExtractor):
    1. Grayscale + crop top band (preprocess.py; falls back to the raw
       image if it can't be decoded)
    2. EasyOCR text extraction (ocr.py)
    3. Ordered heuristic parsing of name / number / rarity (card_parser.py)

  Model path (VisionFieldExtractor):
    1. Image straight to Gemini with a JSON schema (vision.py)

identify_card() picks a path, then hands the fields to the catalog
(catalog.py) for the two-phase search and returns ranked candidates for a
human to confirm. Every failure (unreadable image, OCR crash, model down,
catalog down) ends up in result.errors; the caller always gets a result
with whatever fields could be filled in.

method:
  "auto"    vision model if configured, OCR if the model is unavailable
            or returns nothing
  "vision"  model path only
  "ocr"     OCR path only

Usage:
    python3 identify.py card.jpg                    # auto
    python3 identify.py --method ocr *.png          # OCR only
    python3 identify.py --strict --verbose card.jpg # strict model prompt
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import List, Optional

from card_image import CardImage, ExtractedFields
from card_parser import (
    parse_fields, parse_rarity, split_lines, strip_name_modifiers,
)
from catalog import CatalogClient, SearchError, ValidationError
from config import OCR_LANGUAGE
from ocr import extract_text
from preprocess import preprocess_or_original
from vision import ModelUnavailable, VisionClient

logger = logging.getLogger("identify")

METHODS = ("auto", "vision", "ocr")


# ─────────────────────────────────────────────────────────────
# EXTRACTORS
# ─────────────────────────────────────────────────────────────

class FieldExtractor:
    """Common interface: extract card fields from an image."""
    method = ""

    def extract(self, image: CardImage) -> ExtractedFields:
        raise NotImplementedError


class OcrFieldExtractor(FieldExtractor):
    """Preprocess -> OCR -> heuristic parsing."""
    method = "ocr"

    def __init__(self, language=OCR_LANGUAGE, reader_factory=None, preprocess=True):
        self.language = language
        self.reader_factory = reader_factory
        self.preprocess = preprocess

    def read(self, image: CardImage):
        """Return (ExtractedFields, raw OCR text)."""
        data = preprocess_or_original(image.data) if self.preprocess else image.data
        text_result = extract_text(data, language=self.language,
                                   reader_factory=self.reader_factory)

        lines = split_lines(text_result.text)
        parsed = parse_fields(lines)
        name, needs_review = strip_name_modifiers(parsed["name"])
        rarity = parse_rarity(lines, parsed["cardNumber"])

        logger.info("OCR fields: name=%s number=%s rarity=%s",
                    name, parsed["cardNumber"], rarity)

        fields = ExtractedFields(
            name=name,
            card_number=parsed["cardNumber"],
            rarity=rarity,
            error=text_result.error,
            needs_review=needs_review,
            source=self.method,
        )
        return fields, text_result.text

    def extract(self, image: CardImage) -> ExtractedFields:
        return self.read(image)[0]


class VisionFieldExtractor(FieldExtractor):
    """Image -> vision model -> structured fields. Raises ModelUnavailable."""
    method = "vision"

    def __init__(self, client: Optional[VisionClient] = None, strict=False):
        self.client = client or VisionClient()
        self.strict = strict

    @property
    def configured(self) -> bool:
        return self.client.configured

    def extract(self, image: CardImage) -> ExtractedFields:
        if self.strict:
            return self.client.scan_card(image)
        return self.client.find_card_by_image(image)


# ─────────────────────────────────────────────────────────────
# RESULT
# ─────────────────────────────────────────────────────────────

@dataclass
class IdentificationResult:
    """Everything one identification attempt produced."""
    fields: ExtractedFields = field(default_factory=ExtractedFields)
    candidates: list = field(default_factory=list)
    method: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    raw_text: Optional[str] = None
    needs_review: bool = True
    time: float = 0.0

    def to_dict(self) -> dict:
        return {
            "fields": self.fields.to_dict(),
            "candidates": [c.to_dict() for c in self.candidates],
            "method": self.method,
            "errors": list(self.errors),
            "rawText": self.raw_text,
            "needsReview": self.needs_review,
            "time": self.time,
        }


# ─────────────────────────────────────────────────────────────
# MAIN PIPELINE
# ─────────────────────────────────────────────────────────────

def _run_vision(image, vision, result):
    """Model path. Returns fields, or None if the model was unavailable."""
    try:
        fields = vision.extract(image)
    except ModelUnavailable as e:
        logger.warning("Vision path unavailable: %s", e)
        result.errors.append(str(e))
        return None
    result.method = vision.method
    return fields


def _run_ocr(image, ocr_extractor, result):
    """OCR path. Never raises; OCR errors are carried in fields.error."""
    fields, text = ocr_extractor.read(image)
    result.method = ocr_extractor.method
    result.raw_text = text
    if fields.error:
        result.errors.append(fields.error)
    return fields


def identify_card(image: CardImage, method="auto", strict=False,
                  vision: Optional[VisionFieldExtractor] = None,
                  ocr_extractor: Optional[OcrFieldExtractor] = None,
                  catalog: Optional[CatalogClient] = None) -> IdentificationResult:
    """
    Identify one card image and return catalog candidates.

    Args:
        image: CardImage to identify
        method: "auto", "vision", or "ocr"
        strict: use the strict model prompt (reports non-card images)
        vision / ocr_extractor / catalog: injectable collaborators

    Returns IdentificationResult. Never raises for pipeline failures.
    """
    if method not in METHODS:
        raise ValueError(f"Unknown method: {method} (expected one of {', '.join(METHODS)})")

    t0 = time.time()
    result = IdentificationResult()
    fields = None

    # ── Model path ──
    if method in ("auto", "vision"):
        vision = vision or VisionFieldExtractor(strict=strict)
        if method == "vision" or vision.configured:
            fields = _run_vision(image, vision, result)
            if (method == "auto" and fields is not None and fields.is_empty()
                    and fields.is_pokemon_card is not False):
                logger.info("Vision model returned no fields, trying OCR")
                fields = None
        else:
            logger.info("Vision model not configured, using OCR")

    # ── OCR path ──
    if fields is None and method in ("auto", "ocr"):
        fields = _run_ocr(image, ocr_extractor or OcrFieldExtractor(), result)

    if fields is None:
        result.time = round(time.time() - t0, 2)
        return result

    result.fields = fields

    # ── Catalog disambiguation ──
    if fields.is_pokemon_card is False:
        result.errors.append(fields.error or "Image is not a Pokémon card.")
    else:
        catalog = catalog or CatalogClient()
        try:
            result.candidates = catalog.find_matches(fields)
        except ValidationError:
            logger.info("Nothing to search on: no name, set, or number recognized")
            result.errors.append("No card details recognized")
        except SearchError as e:
            logger.warning("Catalog search failed: %s", e)
            result.errors.append(f"Catalog search failed: {e.message}")

    result.needs_review = fields.needs_review or len(result.candidates) != 1
    result.time = round(time.time() - t0, 2)

    logger.info("Identification (%s): %s -> %d candidate(s) in %.2fs",
                result.method, fields.to_dict(), len(result.candidates), result.time)
    return result


# ─────────────────────────────────────────────────────────────
# BATCH MODE (CLI)
# ─────────────────────────────────────────────────────────────

def print_summary_table(paths, results):
    """Build the batch results summary table."""
    from prettytable import PrettyTable

    table = PrettyTable()
    table.field_names = ["File", "Name", "Set", "Num", "Rarity", "Via", "Matches", "Top match", "Time"]
    table.align["File"] = "l"
    table.align["Name"] = "l"
    table.align["Top match"] = "l"
    table.align["Time"] = "r"
    table.max_width["File"] = 28
    table.max_width["Top match"] = 32

    for path, r in zip(paths, results):
        f = r.fields
        top = r.candidates[0] if r.candidates else None
        top_str = f"{top.name} ({top.set} {top.card_number})" if top else "-"
        if r.errors and not top:
            top_str = f"ERROR: {r.errors[-1]}"
        table.add_row([
            path, f.name or "?", f.set or "?", f.card_number or "?",
            f.rarity or "?", r.method or "-", len(r.candidates),
            top_str, f"{r.time:.1f}s",
        ])
    return table


def main(argv=None):
    parser = argparse.ArgumentParser(description="Pokemon Card Identifier")
    parser.add_argument("images", nargs="+", help="Card image files")
    parser.add_argument("--method", choices=METHODS, default="auto",
                        help="Extraction path (default: auto)")
    parser.add_argument("--strict", action="store_true",
                        help="Use the strict model prompt (rejects non-card images)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show debug output")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    catalog = CatalogClient()
    vision = VisionFieldExtractor(strict=args.strict)
    ocr_extractor = OcrFieldExtractor()

    paths, results = [], []
    for i, path in enumerate(args.images):
        print(f"[{i+1}/{len(args.images)}] {path}")
        try:
            image = CardImage.from_path(path)
        except OSError as e:
            print(f"  ERROR: {e}")
            continue
        r = identify_card(image, method=args.method, strict=args.strict,
                          vision=vision, ocr_extractor=ocr_extractor,
                          catalog=catalog)
        paths.append(path)
        results.append(r)

    if not results:
        sys.exit(1)

    print(print_summary_table(paths, results))
    identified = sum(1 for r in results if r.candidates)
    print(f"\n  Cards: {len(results)}  Matched: {identified}  "
          f"Needs review: {sum(1 for r in results if r.needs_review)}")


if __name__ == "__main__":
    main()
