"""Prompts for AI-assisted authoring of phrases, proverbs and lessons.

Responses are parsed by Instructor into the raw models of
``contentflow.utils.ai_content_client``; the prompts describe content rules
only, not the output encoding.
"""

from typing import List, Optional

from contentflow.constants import MAX_EXISTING_PROVERBS_IN_PROMPT


def build_authoring_system_prompt(language: str, level: str) -> str:
    """Build the system prompt shared by every authoring request.

    Args:
        language: Target language display name (e.g., "Yoruba")
        level: Learner level (beginner, intermediate, advanced)

    Returns:
        System prompt string
    """
    return f"""You are an experienced {language} teacher writing course material for English-speaking learners at the {level} level.

General rules:
- Write target-language text in {language} with correct tone marks and diacritics.
- Write translations and explanations in clear, concise English.
- Keep content culturally accurate; never invent proverbs or idioms.
- Match vocabulary and sentence length to the {level} level.
- Difficulty is an integer from 1 (easiest) to 5 (hardest)."""


def build_phrase_generation_prompt(
    title: Optional[str],
    description: Optional[str],
    seed_words: Optional[List[str]] = None,
    existing_phrases: Optional[List[str]] = None,
    extra_instructions: Optional[str] = None,
) -> str:
    """Build the user prompt asking for new lesson phrases."""
    lines = [
        "Generate useful phrases for the lesson below.",
        "Each phrase needs text, translation, pronunciation, a short explanation, "
        "one or two usage examples (original and translation) and a difficulty.",
    ]
    if title:
        lines.append(f"Lesson title: {title}")
    if description:
        lines.append(f"Lesson description: {description}")
    if seed_words:
        lines.append(f"Seed words to build phrases around: {', '.join(seed_words)}")
    if existing_phrases:
        lines.append(f"Phrases already in the lesson (do not repeat): {' | '.join(existing_phrases)}")
    if extra_instructions and extra_instructions.strip():
        lines.append(f"Extra generation instructions: {extra_instructions.strip()}")
    return "\n".join(lines)


def build_phrase_enhancement_prompt(text: str, translation: str) -> str:
    """Build the user prompt asking to fill in details of one phrase."""
    return "\n".join(
        [
            "Enhance this phrase with pronunciation, an explanation, usage examples and a difficulty.",
            "Do not change the phrase or its translation.",
            f"Phrase: {text}",
            f"Translation: {translation}",
        ]
    )


def build_proverb_generation_prompt(
    title: Optional[str],
    description: Optional[str],
    count: Optional[int] = None,
    existing_proverbs: Optional[List[str]] = None,
    extra_instructions: Optional[str] = None,
) -> str:
    """Build the user prompt asking for proverbs that fit a lesson.

    Only the first MAX_EXISTING_PROVERBS_IN_PROMPT existing proverbs are
    listed to keep the prompt short.
    """
    lines = [
        "Suggest well-known proverbs that fit the lesson below.",
        "Each proverb needs text in the target language, a concise English translation "
        "and a short, practical context note.",
    ]
    if title:
        lines.append(f"Lesson title: {title}")
    if description:
        lines.append(f"Lesson description: {description}")
    if count:
        lines.append(f"Generate exactly {count} items.")
    if extra_instructions and extra_instructions.strip():
        lines.append(f"Extra generation instructions: {extra_instructions.strip()}")
    if existing_proverbs:
        listed = " | ".join(existing_proverbs[:MAX_EXISTING_PROVERBS_IN_PROMPT])
        lines.append(f"Existing proverbs to avoid: {listed}")
    return "\n".join(lines)


def build_lesson_suggestion_prompt(topic: Optional[str] = None) -> str:
    """Build the user prompt asking for a lesson outline."""
    lines = [
        "Suggest a lesson outline with a short title, a one-sentence description, "
        "three to five short measurable objectives, seed phrases in the target language "
        "and one or two culturally authentic proverbs with English translations.",
    ]
    if topic:
        lines.append(f"Topic: {topic}")
    return "\n".join(lines)
