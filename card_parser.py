"""
card_parser.py - Recover card fields from raw OCR text.

OCR output on a phone photo is a handful of noisy lines in roughly
top-to-bottom order. Each field is recovered by an ordered list of
strategies; a strategy is a pure function (lines) -> str | None and the
first non-None result wins. Within a strategy the first qualifying line
(top to bottom) wins. There is no scoring or voting.

Name strategies:
    1. Capitalized line, 3-25 chars of letters/space/-'&. with no
       denylisted token (HP, BASIC, STAGE, ...)
    2. Title Case words with an optional trailing ALL-CAPS word, 3-20 chars
    3. Any 3-25 char letters-only line without a card-structure keyword

Number strategies:
    1. "123/456" anywhere in the space-joined text
    2. "123/456" on a single line
    3. A line that is only a 1-3 digit number, 1-999
    4. Digits after an indicator: No. / No / # / Card / Card#

Also here: rarity recovery from the printed rarity symbol or rarity
keywords, and name-modifier cleanup ("Pikachu VMAX" -> "Pikachu").
"""

import re

from config import (
    AMBIGUOUS_NAME_PREFIXES, NAME_DENYLIST, NAME_PREFIX_MODIFIERS,
    NAME_SUFFIX_MODIFIERS, RARITY_KEYWORDS, RARITY_SYMBOLS,
    RARITY_TAIL_LINES,
)


def split_lines(text):
    """Split raw OCR text into trimmed, non-empty lines."""
    if not text:
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]


def first_match(strategies, lines):
    """Run strategies in order; return the first non-None result."""
    for strategy in strategies:
        result = strategy(lines)
        if result is not None:
            return result
    return None


# ─────────────────────────────────────────────────────────────
# NAME STRATEGIES
# ─────────────────────────────────────────────────────────────

_NAME_CAPITALIZED_RE = re.compile(r"^[A-Z][A-Za-z \-'&.]{2,24}$")
_NAME_TITLE_CASE_RE = re.compile(r"^[A-Z][a-z]+(?: [A-Z][a-z]+)*(?: [A-Z]+)?$")
_NAME_LETTERS_RE = re.compile(r"^[A-Za-z \-'&.]{3,25}$")
_NAME_STRUCTURE_RE = re.compile(r"(HP|BASIC|STAGE|POKEMON|TRAINER|ENERGY|\d)", re.IGNORECASE)

_DENYLIST_UPPER = [token.upper() for token in NAME_DENYLIST]


def _has_denylisted_token(line):
    upper = line.upper()
    return any(token in upper for token in _DENYLIST_UPPER)


def name_capitalized_line(lines):
    for line in lines:
        if _NAME_CAPITALIZED_RE.match(line) and not _has_denylisted_token(line):
            return line
    return None


def name_title_case_line(lines):
    for line in lines:
        if 3 <= len(line) <= 20 and _NAME_TITLE_CASE_RE.match(line):
            return line
    return None


def name_letters_fallback(lines):
    for line in lines:
        if _NAME_LETTERS_RE.match(line) and not _NAME_STRUCTURE_RE.search(line):
            return line
    return None


NAME_STRATEGIES = (
    name_capitalized_line,
    name_title_case_line,
    name_letters_fallback,
)


# ─────────────────────────────────────────────────────────────
# NUMBER STRATEGIES
# ─────────────────────────────────────────────────────────────

_NUMBER_FRACTION_RE = re.compile(r"\d+/\d+")
_NUMBER_ONLY_RE = re.compile(r"^\s*(\d{1,3})\s*$")
_NUMBER_INDICATOR_RE = re.compile(
    r"(?:\bCard\s*#|\bCard|\bNo|#)\.?\s*(\d+(?:\s*/\s*\d+)?)",
    re.IGNORECASE,
)


def number_fraction_in_text(lines):
    match = _NUMBER_FRACTION_RE.search(" ".join(lines))
    return match.group(0) if match else None


def number_fraction_in_line(lines):
    for line in lines:
        match = _NUMBER_FRACTION_RE.search(line)
        if match:
            return match.group(0)
    return None


def number_standalone_line(lines):
    for line in lines:
        match = _NUMBER_ONLY_RE.match(line)
        if match and 1 <= int(match.group(1)) <= 999:
            return match.group(1)
    return None


def number_after_indicator(lines):
    match = _NUMBER_INDICATOR_RE.search(" ".join(lines))
    if not match:
        return None
    return re.sub(r"\s+", "", match.group(1))


NUMBER_STRATEGIES = (
    number_fraction_in_text,
    number_fraction_in_line,
    number_standalone_line,
    number_after_indicator,
)


# ─────────────────────────────────────────────────────────────
# PUBLIC PARSERS
# ─────────────────────────────────────────────────────────────

def parse_name(lines):
    """Best-effort card name, or None."""
    return first_match(NAME_STRATEGIES, lines)


def parse_card_number(lines):
    """Best-effort card number ("4/102", "58", ...), or None."""
    return first_match(NUMBER_STRATEGIES, lines)


def parse_fields(lines):
    """
    Recover name and card number from OCR lines.

    Returns {"name": str | None, "cardNumber": str | None}.
    """
    return {
        "name": parse_name(lines),
        "cardNumber": parse_card_number(lines),
    }


_RARITY_SYMBOL_RE = re.compile(r"\b([" + "".join(RARITY_SYMBOLS) + r"])\b")
_SLASH_SPACING_RE = re.compile(r"\s*/\s*")


def parse_rarity(lines, card_number=None):
    """
    Recover the rarity.

    The rarity symbol (C, U, R, ...) is printed right beside the card
    number, so the number's line is checked first (after the number, then
    before it). Failing that, the last few lines are searched for rarity
    keywords such as "Holo Rare" or "Illustration Rare".
    """
    if card_number:
        for line in lines:
            line = _SLASH_SPACING_RE.sub("/", line)
            if card_number not in line:
                continue
            before, _, after = line.partition(card_number)
            match = _RARITY_SYMBOL_RE.search(after) or _RARITY_SYMBOL_RE.search(before)
            if match:
                return RARITY_SYMBOLS[match.group(1)]
            break

    for line in lines[-RARITY_TAIL_LINES:]:
        upper = line.upper()
        for keyword, rarity in RARITY_KEYWORDS:
            if keyword in upper:
                return rarity
    return None


# ─────────────────────────────────────────────────────────────
# NAME MODIFIERS
# ─────────────────────────────────────────────────────────────

_SUFFIXES = {token.lower() for token in NAME_SUFFIX_MODIFIERS}
_PREFIXES = {token.lower() for token in NAME_PREFIX_MODIFIERS}
_AMBIGUOUS = {token.lower() for token in AMBIGUOUS_NAME_PREFIXES}
_PARENTHETICAL_RE = re.compile(r"\s*\([^)]*\)\s*$")


def strip_name_modifiers(name):
    """
    Reduce a printed card title to the base name.

    "Pikachu VMAX" -> "Pikachu", "Radiant Greninja" -> "Greninja",
    "Professor's Research (Professor Sada)" -> "Professor's Research".

    Leading words in AMBIGUOUS_NAME_PREFIXES ("Mega", "Dark", ...) are
    sometimes part of the catalog name, so they are kept and the result is
    flagged for review.

    Returns (name, needs_review). name is None if nothing is left.
    """
    if not name:
        return None, False

    name = _PARENTHETICAL_RE.sub("", name.strip())
    words = name.split()

    while len(words) > 1 and words[-1].lower() in _SUFFIXES:
        words.pop()
    while len(words) > 1 and words[0].lower() in _PREFIXES:
        words.pop(0)

    needs_review = len(words) > 1 and words[0].lower() in _AMBIGUOUS
    return (" ".join(words) or None), needs_review
