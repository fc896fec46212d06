"""
Sanitization of LLM output before it enters the authoring workflow.

LLM payloads are untrusted: fields may be missing, mistyped or out of range.
The sanitizer is lenient per item (a bad item is dropped, a bad optional field
is omitted) and strict per field (nothing with an invalid shape comes out).
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from contentflow.utils.text_normalization import phrase_key, proverb_key
from contentflow.validators.schema import (
    AiMeta,
    LessonSuggestion,
    Phrase,
    PhraseExample,
    SanitizedPhrase,
    SanitizedProverb,
)

logger = logging.getLogger(__name__)

ENHANCEABLE_FIELDS = ("pronunciation", "explanation", "examples", "difficulty")


def _field(raw: Any, name: str) -> Any:
    if isinstance(raw, dict):
        return raw.get(name)
    return getattr(raw, name, None)


def _as_text(value: Any) -> str:
    """Coerce scalars (bools included) to trimmed text; containers and None become ''."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return ""
    return str(value).strip()


def _as_examples(value: Any) -> Optional[List[PhraseExample]]:
    if not isinstance(value, list):
        return None
    examples = []
    for item in value:
        original = _field(item, "original")
        translation = _field(item, "translation")
        if not isinstance(original, str) or not isinstance(translation, str):
            return None
        examples.append(PhraseExample(original=original.strip(), translation=translation.strip()))
    return examples


def _as_difficulty(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or not 1 <= number <= 5:
        return None
    return int(round(number))


def _as_string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [text for text in (_as_text(item) for item in value) if text]


class AiContentSanitizer:
    """Validates, trims and deduplicates AI-generated content."""

    def sanitize_phrase(self, raw: Any) -> Optional[SanitizedPhrase]:
        """
        Sanitize one generated phrase.

        Args:
            raw: Dict or object with phrase fields as produced by the LLM

        Returns:
            SanitizedPhrase, or None when text or translation is unusable
        """
        text = _as_text(_field(raw, "text"))
        translation = _as_text(_field(raw, "translation"))
        if not text or not translation:
            return None

        result: Dict[str, Any] = {"text": text, "translation": translation}

        pronunciation = _as_text(_field(raw, "pronunciation"))
        if pronunciation:
            result["pronunciation"] = pronunciation

        explanation = _as_text(_field(raw, "explanation"))
        if explanation:
            result["explanation"] = explanation

        examples = _as_examples(_field(raw, "examples"))
        if examples is not None:
            result["examples"] = examples

        difficulty = _as_difficulty(_field(raw, "difficulty"))
        if difficulty is not None:
            result["difficulty"] = difficulty

        return SanitizedPhrase(**result)

    def sanitize_batch(
        self,
        raw_items: Iterable[Any],
        existing_keys: Optional[Iterable[str]] = None,
    ) -> List[SanitizedPhrase]:
        """
        Sanitize a generated batch and drop duplicates.

        Duplicates are detected with ``phrase_key`` against ``existing_keys``
        (phrases already stored for the lesson) and against earlier items of
        the batch; the first occurrence wins.

        Args:
            raw_items: LLM phrase items
            existing_keys: phrase_key values of persisted phrases

        Returns:
            Sanitized, de-duplicated phrases in input order
        """
        seen = set(existing_keys or [])
        accepted: List[SanitizedPhrase] = []
        dropped_invalid = 0
        dropped_duplicate = 0

        for raw in raw_items or []:
            phrase = self.sanitize_phrase(raw)
            if phrase is None:
                dropped_invalid += 1
                continue
            key = phrase_key(phrase.text, phrase.translation)
            if key in seen:
                dropped_duplicate += 1
                continue
            seen.add(key)
            accepted.append(phrase)

        if dropped_invalid or dropped_duplicate:
            logger.info(
                f"Sanitized phrase batch: kept={len(accepted)} invalid={dropped_invalid} "
                f"duplicates={dropped_duplicate}"
            )
        return accepted

    @staticmethod
    def existing_phrase_keys(phrases: Iterable[Phrase]) -> List[str]:
        return [phrase_key(phrase.text, phrase.translation) for phrase in phrases]

    def tag(self, items: Iterable[SanitizedPhrase], model: str) -> List[SanitizedPhrase]:
        """Mark sanitized phrases as AI-generated by ``model`` and not yet reviewed."""
        return [
            item.model_copy(
                update={"ai_meta": AiMeta(generated_by_ai=True, model=model, reviewed_by_admin=False)}
            )
            for item in items
        ]

    def sanitize_enhancement(self, phrase: Phrase, raw_update: Any) -> Optional[Dict[str, Any]]:
        """
        Reduce an LLM enhancement payload to a partial phrase update.

        Only pronunciation, explanation, examples and difficulty can change;
        text and translation are always carried over from ``phrase``. Empty
        example lists do not replace existing examples.

        Returns:
            Dict of valid field updates, or None when nothing valid remains
        """
        candidate = {"text": phrase.text, "translation": phrase.translation}
        for name in ENHANCEABLE_FIELDS:
            candidate[name] = _field(raw_update, name)

        sanitized = self.sanitize_phrase(candidate)
        if sanitized is None:
            return None

        updates: Dict[str, Any] = {}
        if sanitized.pronunciation:
            updates["pronunciation"] = sanitized.pronunciation
        if sanitized.explanation:
            updates["explanation"] = sanitized.explanation
        if sanitized.examples:
            updates["examples"] = sanitized.examples
        if sanitized.difficulty is not None:
            updates["difficulty"] = sanitized.difficulty
        return updates or None

    def sanitize_proverbs(
        self,
        raw_items: Iterable[Any],
        existing_texts: Optional[Iterable[str]] = None,
    ) -> List[SanitizedProverb]:
        """
        Sanitize generated proverbs, dropping blanks and duplicates.

        Args:
            raw_items: Strings or dicts with text/translation/context_note
            existing_texts: Texts of proverbs already linked to the lesson

        Returns:
            Sanitized proverbs, first occurrence of each proverb key kept
        """
        seen = {proverb_key(text) for text in existing_texts or []}
        accepted: List[SanitizedProverb] = []

        for raw in raw_items or []:
            if isinstance(raw, str):
                raw = {"text": raw}
            text = _as_text(_field(raw, "text"))
            if not text:
                continue
            key = proverb_key(text)
            if key in seen:
                continue
            seen.add(key)
            accepted.append(
                SanitizedProverb(
                    text=text,
                    translation=_as_text(_field(raw, "translation")),
                    context_note=_as_text(_field(raw, "context_note") or _field(raw, "contextNote")),
                )
            )
        return accepted

    def sanitize_lesson_suggestion(self, raw: Any) -> Optional[LessonSuggestion]:
        """
        Sanitize an LLM lesson outline.

        Returns:
            LessonSuggestion, or None when the title is blank
        """
        title = _as_text(_field(raw, "title"))
        if not title:
            return None
        return LessonSuggestion(
            title=title,
            description=_as_text(_field(raw, "description")),
            objectives=_as_string_list(_field(raw, "objectives")),
            seed_phrases=_as_string_list(_field(raw, "seed_phrases") or _field(raw, "seedPhrases")),
            proverbs=self.sanitize_proverbs(_field(raw, "proverbs") or []),
        )
