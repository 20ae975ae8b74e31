"""
vision.py - Card field extraction with a hosted multimodal model (Gemini).

Sends the card photo straight to the model with a JSON response schema and
gets name / set / card number / rarity back without any OCR.

Two prompts:
  - find_card_by_image(): identification prompt. Encodes the base-name rule
    ("Pikachu VMAX" -> "Pikachu", "Radiant Greninja" -> "Greninja").
  - scan_card(): strict variant. Also asks the model whether the image is a
    Pokemon TCG card at all and for an error message when it is not.

Output is normalized before it leaves this module: every field trimmed,
empty strings dropped, and the name run through strip_name_modifiers() so
the base-name rule holds even when the model ignores it.

No response, an empty/non-JSON body, or an SDK error raises
ModelUnavailable. There is no retry; the caller falls back to the OCR path
or asks the user to type the card in.
"""

import json
import logging
from typing import Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, Field

from card_image import CardImage, ExtractedFields, as_card_image
from card_parser import strip_name_modifiers
from config import GEMINI_API_KEY, GEMINI_MODEL, VISION_TEMPERATURE

logger = logging.getLogger("vision")


class ModelUnavailable(Exception):
    """The vision model gave no usable response."""


# ─────────────────────────────────────────────────────────────
# RESPONSE SCHEMAS
# ─────────────────────────────────────────────────────────────

class CardFieldsSchema(BaseModel):
    name: Optional[str] = Field(
        None,
        description=(
            "The name of the Pokémon card. Extract the main Pokémon name, excluding "
            "V, VMAX, VSTAR, ex, GX, Radiant, Tera etc. if they are part of a larger "
            'title phrase. E.g., for "Pikachu VMAX", return "Pikachu". For '
            '"Radiant Greninja", return "Greninja".'
        ),
    )
    set: Optional[str] = Field(
        None,
        description="The name of the card's set (e.g., 'Scarlet & Violet', '151', 'Temporal Forces').",
    )
    cardNumber: Optional[str] = Field(
        None,
        description='The card number, including any prefixes or suffixes (e.g., "025/198", "SV001", "TG05/TG30").',
    )
    rarity: Optional[str] = Field(
        None,
        description=(
            'The rarity of the card (e.g., "Common", "Ultra Rare", "Illustration Rare", '
            '"Promo"). If a symbol like C, U, R is present near the card number, use '
            "that to infer Common, Uncommon, Rare."
        ),
    )


class ScanCardSchema(CardFieldsSchema):
    isPokemonCard: bool = Field(
        ..., description="Set to true if the image is identified as a Pokémon TCG card, false otherwise."
    )
    error: Optional[str] = Field(
        None, description="Any error message if identification fails or it's not a Pokémon card."
    )


# ─────────────────────────────────────────────────────────────
# PROMPTS
# ─────────────────────────────────────────────────────────────

FIND_CARD_PROMPT = """You are an expert Pokémon TCG card identifier. Analyze the provided image of a Pokémon card.
You must extract the following details if they are clearly visible on the card:

1.  **Card Name**: Identify the main name of the Pokémon. For example, if the card says "Pikachu VMAX", the Card Name is "Pikachu". If it says "Radiant Greninja", the Card Name is "Greninja". If it's "Professor's Research (Professor Sada)", the Card Name is "Professor's Research".
2.  **Set Name**: Identify the name of the expansion set the card belongs to. This is often found near the card number or a set symbol. Examples: "Obsidian Flames", "Crown Zenith", "Pokémon GO".
3.  **Card Number**: Identify the collector number of the card, typically in a format like "001/165", "123/XY-P", "SV001", "TG01/TG30", or "H30/H32". Include any letters or symbols that are part of the number.
4.  **Rarity**: Determine the card's rarity. Look for explicit rarity text (e.g., "PROMO", "Illustration Rare") or symbols (like a circle for Common, diamond for Uncommon, star for Rare) often found near the card number or set information.

If a detail is not clearly visible or cannot be confidently identified from the image, omit that field. Focus on accuracy.
"""

SCAN_CARD_PROMPT = """You are an expert Pokémon TCG card identifier. Analyze the provided image. Your goal is to extract specific details from the Pokémon card.
Respond in JSON format matching the provided schema.

If the image is clearly a Pokémon TCG card, extract the following details:
- name: The name of the Pokémon or card, without modifiers such as V, VMAX, VSTAR, ex, GX, Radiant or Tera ("Pikachu VMAX" -> "Pikachu", "Radiant Greninja" -> "Greninja").
- set: The official English name of the expansion set.
- cardNumber: The collector number of the card, exactly as it appears (e.g., "101/165", "SWSH001", "TG14/TG30").
- rarity: The card's rarity (e.g., Common, Uncommon, Rare, Holo Rare, Ultra Rare, Secret Rare, Amazing Rare, Radiant).
- isPokemonCard: Set this to true.

If any specific detail is unreadable or not present, omit that field or set it to null in the JSON.
If the image is not a Pokémon TCG card, or if it's completely unreadable, set 'isPokemonCard' to false and provide a brief 'error' message explaining why (e.g., "Image is not a Pokémon card.", "Card details are unreadable.").
"""

_SAFETY_SETTINGS = [
    types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE)
    for category in (
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    )
]


# ─────────────────────────────────────────────────────────────
# CLIENT
# ─────────────────────────────────────────────────────────────

class VisionClient:
    """
    Gemini-backed card field extractor.

    Usage:
        vision = VisionClient()
        fields = vision.find_card_by_image("data:image/jpeg;base64,...")
        fields = vision.scan_card(card_image)   # strict variant
    """

    def __init__(self, client=None, model: str = GEMINI_MODEL,
                 temperature: float = VISION_TEMPERATURE,
                 api_key: Optional[str] = None):
        self.model = model
        self.temperature = temperature
        self._api_key = api_key if api_key is not None else GEMINI_API_KEY
        self._client = client

    @property
    def configured(self) -> bool:
        """True if a client was injected or an API key is available."""
        return self._client is not None or bool(self._api_key)

    def _get_client(self):
        if self._client is None:
            if not self._api_key:
                raise ModelUnavailable("GEMINI_API_KEY or GOOGLE_API_KEY not configured")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def _generate(self, image: CardImage, prompt: str, schema, strict: bool) -> dict:
        """Run one structured-output request. Returns the parsed JSON object."""
        client = self._get_client()
        config = types.GenerateContentConfig(
            temperature=self.temperature,
            response_mime_type="application/json",
            response_schema=schema,
            safety_settings=_SAFETY_SETTINGS if strict else None,
        )
        contents = [
            types.Part.from_bytes(data=image.data, mime_type=image.content_type),
            types.Part.from_text(text=prompt),
        ]

        try:
            response = client.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            logger.warning("Vision model request failed: %s", e)
            raise ModelUnavailable(f"Vision model request failed: {e}") from e

        raw = getattr(response, "text", None) if response is not None else None
        if not raw:
            raise ModelUnavailable("No response from AI model.")

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Vision model returned non-JSON: %.200s", raw)
            raise ModelUnavailable(f"Malformed response from AI model: {e}") from e

        if not isinstance(data, dict):
            raise ModelUnavailable("Malformed response from AI model: expected a JSON object")

        logger.info("Vision model output: %s", data)
        return data

    @staticmethod
    def _to_fields(data: dict, source: str, **extra) -> ExtractedFields:
        name, needs_review = strip_name_modifiers(_as_text(data.get("name")))
        return ExtractedFields(
            name=name,
            set=_as_text(data.get("set")),
            card_number=_as_text(data.get("cardNumber")),
            rarity=_as_text(data.get("rarity")),
            needs_review=needs_review,
            source=source,
            **extra,
        )

    def find_card_by_image(self, image) -> ExtractedFields:
        """Identify card fields from an image (data URI, bytes, or CardImage)."""
        image = as_card_image(image)
        data = self._generate(image, FIND_CARD_PROMPT, CardFieldsSchema, strict=False)
        return self._to_fields(data, source="vision")

    def scan_card(self, image) -> ExtractedFields:
        """
        Strict variant: also reports whether the image is a Pokemon card.

        If the model leaves isPokemonCard out, it is inferred from whether
        any of name / set / number came back.
        """
        image = as_card_image(image)
        data = self._generate(image, SCAN_CARD_PROMPT, ScanCardSchema, strict=True)

        is_card = data.get("isPokemonCard")
        error = _as_text(data.get("error"))
        if not isinstance(is_card, bool):
            if any(_as_text(data.get(k)) for k in ("name", "set", "cardNumber")):
                is_card = True
            else:
                is_card = False
                error = error or "Could not determine if image is a Pokémon card."

        return self._to_fields(data, source="vision", is_pokemon_card=is_card, error=error)


def _as_text(value):
    """Model output value as a trimmed string, or None."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    return value.strip() or None
