"""Text keys used for deduplication of authored and generated content."""

import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Trim and collapse internal whitespace runs to a single space."""
    return _WHITESPACE.sub(" ", text).strip()


def strip_diacritics(text: str) -> str:
    """Remove combining marks (tone marks, dots below) after NFD decomposition.

    Args:
        text: Text in any Unicode normalization form

    Returns:
        Text without combining characters, recomposed to NFC
    """
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return unicodedata.normalize("NFC", stripped)


def proverb_key(text: str) -> str:
    """Dedup key for proverbs within one language.

    Case, surrounding/internal whitespace and diacritics are ignored, so
    "Ìwà l'ẹwà " and "iwà l'ẹwà" collapse to the same key.
    """
    return collapse_whitespace(strip_diacritics(str(text or ""))).casefold()


def phrase_key(text: str, translation: str) -> str:
    """Case- and whitespace-insensitive key for a (text, translation) pair.

    Diacritics are kept: tone marks distinguish words in the target languages.
    """
    left = collapse_whitespace(unicodedata.normalize("NFC", str(text or ""))).casefold()
    right = collapse_whitespace(unicodedata.normalize("NFC", str(translation or ""))).casefold()
    return f"{left}::{right}"


def title_key(title: str) -> str:
    """Key used to detect duplicate lesson titles."""
    return collapse_whitespace(str(title or "")).casefold()
