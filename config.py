"""
config.py
Central configuration for the card identifier.
API keys loaded from .env file (not committed to git).
"""

import os
from pathlib import Path

# ============================================
# Paths
# ============================================
BASE_DIR = Path(__file__).parent

# ============================================
# .env loader (no external dependency)
# ============================================
_env_path = BASE_DIR / ".env"
if _env_path.exists():
    with open(_env_path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, _, value = line.partition("=")
                os.environ.setdefault(key.strip(), value.strip())

# ============================================
# API Configuration
# ============================================
# pokemontcg.io card catalog (runtime disambiguation)
POKEMONTCG_API_KEY = os.environ.get("POKEMONTCG_API_KEY", "")
POKEMONTCG_BASE = "https://api.pokemontcg.io/v2"
CATALOG_TIMEOUT = 10  # seconds

# Gemini vision model
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
VISION_TEMPERATURE = 0.2   # Low randomness: reproducible extractions

# ============================================
# Image Preprocessing
# ============================================
# Name/HP/number band at the top of the card
NAME_BAND_RATIO = 0.3

# Debug: save preprocessed images
# Set OCR_DEBUG_DIR in the environment to enable, unset to disable
OCR_DEBUG_DIR = Path(os.environ["OCR_DEBUG_DIR"]) if os.environ.get("OCR_DEBUG_DIR") else None

# ============================================
# OCR Configuration
# ============================================
OCR_LANGUAGE = "en"
OCR_GPU = os.environ.get("OCR_GPU", "").lower() in ("1", "true", "yes")

# Letters, digits, space and ./-'& only
OCR_ALLOWLIST = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "0123456789"
    " ./-'&"
)

# Two detections belong to the same text line when their vertical
# overlap is at least this fraction of the shorter box height
OCR_LINE_OVERLAP = 0.5

# Legacy tesseract-style codes accepted as language hints
OCR_LANGUAGE_ALIASES = {
    "eng": "en", "jpn": "ja", "fra": "fr", "deu": "de",
    "spa": "es", "ita": "it", "por": "pt", "kor": "ko",
}

# ============================================
# Field Parser
# ============================================
# Tokens that disqualify a line as the card name (substring, case-insensitive).
NAME_DENYLIST = [
    "HP", "BASIC", "STAGE", "EVOLUTION", "POKEMON",
    "TRAINER", "ENERGY", "RARE", "COMMON", "UNCOMMON",
]

# Name modifiers that are not part of the base Pokemon name.
# Extend these lists as new mechanics are printed.
NAME_SUFFIX_MODIFIERS = ["V", "VMAX", "VSTAR", "V-UNION", "ex", "EX", "GX", "BREAK", "Tera"]
NAME_PREFIX_MODIFIERS = ["Radiant", "Tera"]

# Leading words that are sometimes a modifier and sometimes part of the
# printed name. Kept as-is and flagged for human confirmation.
AMBIGUOUS_NAME_PREFIXES = [
    "Mega", "M", "Dark", "Light", "Shining", "Galarian", "Alolan",
    "Hisuian", "Paldean", "Ancient", "Iron",
]

# Single-letter rarity symbols printed next to the card number
RARITY_SYMBOLS = {
    "C": "Common",
    "U": "Uncommon",
    "R": "Rare",
    "P": "Promo",
    "S": "Secret Rare",
    "H": "Holo Rare",
}

# Rarity keywords, most specific first
RARITY_KEYWORDS = [
    ("SPECIAL ILLUSTRATION RARE", "Special Illustration Rare"),
    ("ILLUSTRATION RARE", "Illustration Rare"),
    ("DOUBLE RARE", "Double Rare"),
    ("ULTRA RARE", "Ultra Rare"),
    ("SECRET RARE", "Secret Rare"),
    ("HYPER RARE", "Hyper Rare"),
    ("AMAZING RARE", "Amazing Rare"),
    ("REVERSE HOLO", "Reverse Holo"),
    ("HOLO RARE", "Holo Rare"),
    ("UNCOMMON", "Uncommon"),
    ("COMMON", "Common"),
    ("RADIANT", "Radiant Rare"),
    ("PROMO", "Promo"),
    ("HOLO", "Holo Rare"),
    ("RARE", "Rare"),
]

# Number of trailing lines searched for rarity keywords
RARITY_TAIL_LINES = 5

# ============================================
# Server
# ============================================
UPLOAD_MAX_BYTES = 15 * 1024 * 1024
