"""Language name and locale mapping utilities."""

from contentflow.validators.schema import Language

# Language to display name mapping
LANGUAGE_DISPLAY_NAMES = {
    Language.YORUBA: "Yoruba",
    Language.IGBO: "Igbo",
    Language.HAUSA: "Hausa",
}

# Language to ISO 639-1 code mapping
LANGUAGE_CODES = {
    Language.YORUBA: "yo",
    Language.IGBO: "ig",
    Language.HAUSA: "ha",
}


def get_language(language_name_or_code: str) -> Language:
    """Resolve a language name, enum value or ISO code to a ``Language``.

    Args:
        language_name_or_code: e.g. "Yoruba", "yoruba" or "yo"

    Returns:
        Language enum member

    Raises:
        ValueError: If language is not supported
    """
    lower_input = str(language_name_or_code).strip().lower()

    for language, code in LANGUAGE_CODES.items():
        if lower_input in (language.value, code):
            return language

    raise ValueError(
        f"Unsupported language: '{language_name_or_code}'. "
        f"Supported: {', '.join(LANGUAGE_DISPLAY_NAMES.values())}"
    )


def get_language_name(language: Language) -> str:
    """Display name used in prompts and logs."""
    return LANGUAGE_DISPLAY_NAMES[Language(language)]
