"""Normalization helpers producing stable comparison keys for free text."""
from __future__ import annotations

import re
import unicodedata
from typing import Any

UNTITLED_KEY = "untitled"

# Keep letters, digits, whitespace and the separators product names use.
_DISALLOWED = re.compile(r"[^\w\s.\-/]", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")

# Letters that NFKD does not decompose into base letter + combining mark.
_SPECIAL_FOLDS = str.maketrans({"ł": "l", "ø": "o", "đ": "d", "ß": "ss", "æ": "ae", "œ": "oe"})


def normalize_whitespace(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _WHITESPACE.sub(" ", value).strip()


def normalize_key_value(value: Any, fallback: str = "unknown") -> str:
    """Lower-case whitespace-normalized identity, used for payer keys."""

    normalized = normalize_whitespace(value)
    if not normalized:
        return fallback
    return normalized.lower()


def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_product_key(name: Any) -> str:
    """Fold a product name into a comparison key.

    Case, diacritics, punctuation and repeated whitespace are removed, so
    ``"Czarna  Stodoła!"`` and ``"czarna stodola"`` share a key. Empty
    input maps to ``UNTITLED_KEY``.
    """

    if name is None or name == "":
        return UNTITLED_KEY
    text = normalize_whitespace(str(name)).lower().translate(_SPECIAL_FOLDS)
    text = strip_diacritics(text)
    text = _DISALLOWED.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return text or UNTITLED_KEY


def is_meaningful_key(normalized: str | None) -> bool:
    return bool(normalized) and normalized != UNTITLED_KEY
