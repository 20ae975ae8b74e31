"""
catalog.py - Match extracted card fields against the pokemontcg.io catalog.

Search expression (pokemontcg.io Lucene-like syntax, clauses AND-ed by
whitespace):
    name:"Pikachu"                                  exact phrase
    (set.id:base1 OR set.name:"Base Set")           id or display name
    number:58                                       printed "058/102" -> own number, unpadded

find_matches() runs the two-phase search used for scanned cards:
    1. name + number only (the extracted set name often doesn't match the
       catalog's canonical set naming)
    2. only if (1) returned nothing and a set is known: same search plus
       the set clause

Errors:
    ValidationError: no name, set, or number given; never hits the network
    SearchError:     network failure or non-2xx response; carries the
                     HTTP status (None for network errors) and message
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from config import CATALOG_TIMEOUT, POKEMONTCG_API_KEY, POKEMONTCG_BASE

logger = logging.getLogger("catalog")


class ValidationError(ValueError):
    """Search called with no criteria."""


class SearchError(Exception):
    """Catalog request failed."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status
        self.message = message


@dataclass
class CatalogCandidate:
    """One card record returned by the catalog."""
    id: str
    name: str
    set: str
    card_number: str
    image_url: Optional[str] = None
    rarity: Optional[str] = None
    set_id: Optional[str] = None

    @classmethod
    def from_api(cls, card: dict) -> "CatalogCandidate":
        card_set = card.get("set") or {}
        images = card.get("images") or {}
        return cls(
            id=card.get("id", ""),
            name=card.get("name", ""),
            set=card_set.get("name", "") if isinstance(card_set, dict) else str(card_set),
            card_number=str(card.get("number", "")),
            image_url=images.get("large") or images.get("small"),
            rarity=card.get("rarity"),
            set_id=card_set.get("id") if isinstance(card_set, dict) else None,
        )

    def to_dict(self) -> dict:
        out = {
            "id": self.id,
            "name": self.name,
            "set": self.set,
            "cardNumber": self.card_number,
        }
        if self.image_url:
            out["imageUrl"] = self.image_url
        if self.rarity:
            out["rarity"] = self.rarity
        if self.set_id:
            out["setId"] = self.set_id
        return out


def _quote(value):
    return '"' + value.replace('"', '\\"') + '"'


def catalog_number(card_number):
    """
    Printed collector number -> catalog number field.

    The catalog stores the card's own number without the set total and
    without zero padding: "058/203" -> "58", "TG05/TG30" -> "TG05".
    """
    number = card_number.split("/", 1)[0].strip()
    if number.isdigit():
        number = number.lstrip("0") or "0"
    return number


def build_query(name=None, set_name=None, card_number=None):
    """
    Build the catalog search expression. Raises ValidationError if every
    field is empty.
    """
    clauses = []
    if name:
        clauses.append(f"name:{_quote(name)}")
    if set_name:
        set_id = set_name if " " not in set_name else _quote(set_name)
        clauses.append(f"(set.id:{set_id} OR set.name:{_quote(set_name)})")
    if card_number and catalog_number(card_number):
        clauses.append(f"number:{catalog_number(card_number)}")

    if not clauses:
        raise ValidationError("Provide at least one search parameter (name, set, or cardNumber).")
    return " ".join(clauses)


class CatalogClient:
    """
    pokemontcg.io card search.

    Usage:
        catalog = CatalogClient()
        cards = catalog.search(name="Pikachu", card_number="58")
        cards = catalog.find_matches(extracted_fields)
    """

    def __init__(self, session=None, base_url=POKEMONTCG_BASE,
                 api_key=POKEMONTCG_API_KEY, timeout=CATALOG_TIMEOUT):
        # None: one requests.get() per search, nothing shared between threads
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"X-Api-Key": api_key} if api_key else {}

    def search(self, name=None, set_name=None, card_number=None):
        """
        Query the catalog. Returns a list of CatalogCandidate (may be empty).

        Raises ValidationError (no criteria) or SearchError.
        """
        query = build_query(name=name, set_name=set_name, card_number=card_number)
        logger.info("Catalog search: q=%s", query)

        http = self.session or requests
        try:
            r = http.get(
                f"{self.base_url}/cards",
                params={"q": query},
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Catalog request failed: %s", e)
            raise SearchError(f"Catalog request failed: {e}") from e

        if not 200 <= r.status_code < 300:
            message = f"Catalog returned HTTP {r.status_code}: {r.text[:200]}"
            logger.warning(message)
            raise SearchError(message, status=r.status_code)

        try:
            payload = r.json()
        except ValueError as e:
            raise SearchError(f"Catalog returned invalid JSON: {e}", status=r.status_code) from e

        cards = (payload.get("data") or []) if isinstance(payload, dict) else []
        candidates = [CatalogCandidate.from_api(c) for c in cards if isinstance(c, dict)]
        logger.info("Catalog search: %d result(s)", len(candidates))
        return candidates

    def find_matches(self, fields):
        """
        Two-phase search for extracted fields (name + number, then + set).

        Args:
            fields: ExtractedFields (or anything with name / set / card_number)

        Returns list of CatalogCandidate.
        """
        name = fields.name
        set_name = fields.set
        card_number = fields.card_number

        if not (name or set_name or card_number):
            raise ValidationError("Provide at least one search parameter (name, set, or cardNumber).")

        if name or card_number:
            results = self.search(name=name, card_number=card_number)
            if results or not set_name:
                return results
            logger.info("No matches without set, retrying with set '%s'", set_name)

        return self.search(name=name, set_name=set_name, card_number=card_number)
