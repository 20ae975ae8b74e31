"""
card_image.py - Request-scoped value types shared by both extraction paths.

  - CardImage:        raw image bytes + declared content type, with data URI
                      encode/decode (data:<mimetype>;base64,<data>)
  - ExtractedFields:  name / set / card number / rarity recovered from an
                      image. Fields are trimmed on construction and an empty
                      string is stored as None, so consumers can test
                      presence with plain truthiness.
"""

import base64
import binascii
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?:;[^;,]*)*?;base64,(?P<data>.*)$", re.DOTALL)

_EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
}


class InvalidDataUri(ValueError):
    """Raised when a string is not a base64 data URI."""


@dataclass(frozen=True)
class CardImage:
    """Raw image bytes plus declared content type."""
    data: bytes
    content_type: str = "image/jpeg"

    @classmethod
    def from_data_uri(cls, uri: str) -> "CardImage":
        match = _DATA_URI_RE.match(uri.strip())
        if not match:
            raise InvalidDataUri("Expected 'data:<mimetype>;base64,<data>'")
        try:
            data = base64.b64decode(match.group("data"), validate=False)
        except (binascii.Error, ValueError) as e:
            raise InvalidDataUri(f"Invalid base64 payload: {e}") from e
        return cls(data=data, content_type=match.group("mime") or "application/octet-stream")

    @classmethod
    def from_path(cls, path) -> "CardImage":
        path = Path(path)
        content_type = _EXTENSION_TYPES.get(path.suffix.lower(), "image/jpeg")
        return cls(data=path.read_bytes(), content_type=content_type)

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


def as_card_image(image) -> CardImage:
    """Accept a CardImage, raw bytes, or a data URI string."""
    if isinstance(image, CardImage):
        return image
    if isinstance(image, (bytes, bytearray)):
        return CardImage(data=bytes(image))
    if isinstance(image, str):
        return CardImage.from_data_uri(image)
    raise TypeError(f"Unsupported image type: {type(image).__name__}")


def clean_field(value) -> Optional[str]:
    """Trim a field value; empty or missing becomes None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class ExtractedFields:
    """Structured output of either extraction path. Immutable."""
    name: Optional[str] = None
    set: Optional[str] = None
    card_number: Optional[str] = None
    rarity: Optional[str] = None

    # Strict-variant metadata from the vision model
    is_pokemon_card: Optional[bool] = None
    error: Optional[str] = None

    # Set when the name carries a leading word that may or may not be a modifier
    needs_review: bool = False
    source: str = field(default="", compare=False)

    def __post_init__(self):
        for attr in ("name", "set", "card_number", "rarity", "error"):
            object.__setattr__(self, attr, clean_field(getattr(self, attr)))

    def is_empty(self) -> bool:
        return not (self.name or self.set or self.card_number or self.rarity)

    def to_dict(self) -> dict:
        """JSON shape used by the HTTP surface. Absent fields are omitted."""
        out = {}
        for key, value in (
            ("name", self.name),
            ("set", self.set),
            ("cardNumber", self.card_number),
            ("rarity", self.rarity),
            ("isPokemonCard", self.is_pokemon_card),
            ("error", self.error),
        ):
            if value is not None:
                out[key] = value
        if self.needs_review:
            out["needsReview"] = True
        return out
