"""
server.py - FastAPI server for the Pokemon card identifier

Exposes the identification pipeline and the catalog search over HTTP for
the collection web app.

Architecture:
    ├── Identification pipeline   (identify.py - identify_card)
    ├── Catalog search            (catalog.py)
    └── FastAPI server            (this file)
        ├── POST /api/identify      → upload a card photo, get fields + candidates
        ├── GET  /api/search-cards  → catalog search by name / set / cardNumber
        └── GET  /api/status        → configuration + uptime

Usage:
    python server.py
    python server.py --host 0.0.0.0 --port 8080 --log-level debug
"""

import argparse
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, File, Query, UploadFile
from fastapi.responses import JSONResponse
import uvicorn

from card_image import CardImage
from catalog import CatalogClient, SearchError, ValidationError
from config import GEMINI_MODEL, UPLOAD_MAX_BYTES
from identify import METHODS, OcrFieldExtractor, VisionFieldExtractor, identify_card

# ─────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("server")

# ─────────────────────────────────────────────────────────────
# GLOBALS
# Stateless collaborators, created in the lifespan handler.
# OCR engines are NOT kept here: each request builds and releases its own.
# ─────────────────────────────────────────────────────────────

services: dict = {
    "catalog": None,         # CatalogClient
    "vision": None,          # VisionFieldExtractor (default prompt)
    "vision_strict": None,   # VisionFieldExtractor (strict prompt)
    "ocr": None,             # OcrFieldExtractor
}

start_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: build pipeline collaborators. Shutdown: log."""
    global start_time

    start_time = time.time()
    services["catalog"] = CatalogClient()
    services["vision"] = VisionFieldExtractor(strict=False)
    services["vision_strict"] = VisionFieldExtractor(strict=True)
    services["ocr"] = OcrFieldExtractor()

    logger.info("Server ready (vision model %s: %s)",
                GEMINI_MODEL,
                "configured" if services["vision"].configured else "not configured, OCR only")

    yield  # ── Server is running ──

    logger.info("Server shutdown complete")


app = FastAPI(
    title="Card Identifier",
    lifespan=lifespan,
)


# ─────────────────────────────────────────────────────────────
# ROUTES
# ─────────────────────────────────────────────────────────────

# ──────────────── POST /api/identify ── Card Photo Upload ────────────────

@app.post("/api/identify")
async def identify_upload(
    image: UploadFile = File(...),
    method: str = Query("auto"),
    strict: bool = Query(False),
):
    """
    Identify a card from an uploaded photo.

    Query params:
        method: auto | vision | ocr
        strict: true to use the strict model prompt

    Response (JSON): IdentificationResult.to_dict()
        {
            "fields": {"name": ..., "set": ..., "cardNumber": ..., "rarity": ...},
            "candidates": [{"id": ..., "name": ..., "set": ..., "cardNumber": ..., "imageUrl": ...}],
            "method": "vision" | "ocr",
            "errors": [...],
            "needsReview": true,
            "time": 1.8
        }
    """
    if method not in METHODS:
        return JSONResponse(
            content={"error": f"Unknown method: {method}"},
            status_code=400,
        )

    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        return JSONResponse(
            content={"error": f"Expected image file, got {content_type}"},
            status_code=400,
        )

    data = await image.read()
    if not data:
        return JSONResponse(content={"error": "Empty upload"}, status_code=400)
    if len(data) > UPLOAD_MAX_BYTES:
        return JSONResponse(
            content={"error": f"Image too large ({len(data)} bytes)"},
            status_code=413,
        )

    card_image = CardImage(data=data, content_type=content_type)

    # identify_card() blocks on OCR and network I/O; run it in the thread pool.
    loop = asyncio.get_event_loop()
    result = await loop.run_in_executor(None, _run_identify, card_image, method, strict)

    return JSONResponse(content=result.to_dict())


def _run_identify(card_image: CardImage, method: str, strict: bool):
    """Execute the pipeline (blocking, called from the thread pool)."""
    vision = services["vision_strict"] if strict else services["vision"]
    result = identify_card(
        card_image,
        method=method,
        strict=strict,
        vision=vision,
        ocr_extractor=services["ocr"],
        catalog=services["catalog"],
    )
    logger.info(
        "Identify complete: %s (%s), %d candidate(s) in %.2fs",
        result.fields.name or "?",
        result.method or "-",
        len(result.candidates),
        result.time,
    )
    return result


# ──────────────── GET /api/search-cards ── Catalog Search ────────────────

@app.get("/api/search-cards")
async def search_cards(
    name: Optional[str] = None,
    set: Optional[str] = None,
    cardNumber: Optional[str] = None,
):
    """
    Search the card catalog. At least one of name / set / cardNumber
    is required.

    Response: list of candidates, or {"message": ...} on error.
    """
    name = (name or "").strip() or None
    set_name = (set or "").strip() or None
    card_number = (cardNumber or "").strip() or None

    loop = asyncio.get_event_loop()
    try:
        candidates = await loop.run_in_executor(
            None,
            lambda: services["catalog"].search(
                name=name, set_name=set_name, card_number=card_number,
            ),
        )
    except ValidationError as e:
        return JSONResponse(content={"message": str(e)}, status_code=400)
    except SearchError as e:
        logger.warning("Error searching for cards: %s", e)
        return JSONResponse(
            content={"message": "Error searching for cards", "error": e.message},
            status_code=502,
        )

    return JSONResponse(content=[c.to_dict() for c in candidates])


# ──────────────── GET /api/status ── Server Status ────────────────

@app.get("/api/status")
async def api_status():
    """Return pipeline configuration and server uptime."""
    vision = services["vision"]
    return JSONResponse(content={
        "vision_configured": bool(vision and vision.configured),
        "vision_model": GEMINI_MODEL,
        "methods": list(METHODS),
        "uptime_seconds": round(time.time() - start_time, 1),
    })


# ─────────────────────────────────────────────────────────────
# CLI ENTRY POINT
# ─────────────────────────────────────────────────────────────

def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Card Identifier - FastAPI Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python server.py                              # localhost:8080
  python server.py --host 0.0.0.0               # LAN-accessible
  python server.py --port 9000 --log-level debug
        """,
    )
    parser.add_argument(
        "--host", default="127.0.0.1",
        help="Bind address (default: 127.0.0.1, use 0.0.0.0 for LAN access)",
    )
    parser.add_argument(
        "--port", type=int, default=8080,
        help="Port number (default: 8080)",
    )
    parser.add_argument(
        "--log-level", default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: info)",
    )
    return parser.parse_args(argv)


def main():
    """Entry point - parse args and start the uvicorn server."""
    args = parse_args()

    logging.getLogger().setLevel(getattr(logging, args.log_level.upper()))

    logger.info("Starting Card Identifier server...")
    logger.info("  Host: %s", args.host)
    logger.info("  Port: %d", args.port)

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
