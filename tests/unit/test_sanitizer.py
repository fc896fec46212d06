"""Unit tests for AiContentSanitizer."""

import pytest

from contentflow.validators.schema import Language, Phrase, PhraseExample
from contentflow.workflow.sanitizer import AiContentSanitizer


class TestSanitizePhrase:
    """Test per-item phrase sanitization."""

    @pytest.fixture
    def sanitizer(self):
        return AiContentSanitizer()

    def test_trims_and_keeps_valid_fields(self, sanitizer):
        phrase = sanitizer.sanitize_phrase(
            {
                "text": "  Ẹ káàárọ̀ ",
                "translation": " Good morning ",
                "pronunciation": " eh kaa-roh ",
                "explanation": "Morning greeting",
                "examples": [{"original": "Ẹ káàárọ̀ màmá", "translation": "Good morning, mother"}],
                "difficulty": 2,
            }
        )

        assert phrase.text == "Ẹ káàárọ̀"
        assert phrase.translation == "Good morning"
        assert phrase.pronunciation == "eh kaa-roh"
        assert phrase.examples == [PhraseExample(original="Ẹ káàárọ̀ màmá", translation="Good morning, mother")]
        assert phrase.difficulty == 2

    @pytest.mark.parametrize(
        "raw",
        [
            {"text": "Bawo ni"},
            {"text": "Bawo ni", "translation": "   "},
            {"text": None, "translation": "How are you"},
            {"text": ["Bawo"], "translation": "How are you"},
            {},
        ],
    )
    def test_missing_text_or_translation_drops_item(self, sanitizer, raw):
        assert sanitizer.sanitize_phrase(raw) is None

    @pytest.mark.parametrize(
        "value,expected",
        [
            (3, 3),
            (2.6, 3),
            ("4", 4),
            (" 5 ", 5),
            (0, None),
            (6, None),
            ("hard", None),
            (True, None),
            (float("nan"), None),
            (None, None),
        ],
    )
    def test_difficulty_coercion(self, sanitizer, value, expected):
        phrase = sanitizer.sanitize_phrase({"text": "Bawo ni", "translation": "How are you", "difficulty": value})
        assert phrase.difficulty == expected

    def test_malformed_examples_are_omitted(self, sanitizer):
        phrase = sanitizer.sanitize_phrase(
            {
                "text": "Bawo ni",
                "translation": "How are you",
                "examples": [{"original": "Bawo ni?"}],
            }
        )
        assert phrase.examples is None

    def test_examples_not_a_list_are_omitted(self, sanitizer):
        phrase = sanitizer.sanitize_phrase(
            {"text": "Bawo ni", "translation": "How are you", "examples": "Bawo ni?"}
        )
        assert phrase.examples is None

    def test_scalar_fields_are_stringified(self, sanitizer):
        phrase = sanitizer.sanitize_phrase({"text": 1990, "translation": True, "explanation": False})

        assert phrase.text == "1990"
        assert phrase.translation == "True"
        assert phrase.explanation == "False"

    def test_accepts_objects(self, sanitizer):
        class Raw:
            text = "Sannu"
            translation = "Hello"

        phrase = sanitizer.sanitize_phrase(Raw())
        assert phrase.text == "Sannu"
        assert phrase.pronunciation is None


class TestSanitizeBatch:
    @pytest.fixture
    def sanitizer(self):
        return AiContentSanitizer()

    def test_good_duplicate_and_invalid_yield_one(self, sanitizer):
        batch = sanitizer.sanitize_batch(
            [
                {"text": "Bawo ni", "translation": "How are you"},
                {"text": "  BAWO  NI ", "translation": "how are you"},
                {"text": "Ẹ ṣé"},
            ]
        )

        assert len(batch) == 1
        assert batch[0].text == "Bawo ni"

    def test_existing_phrases_are_skipped(self, sanitizer):
        existing = [
            Phrase(lesson_ids=["l1"], language=Language.YORUBA, text="Bawo ni", translation="How are you")
        ]
        batch = sanitizer.sanitize_batch(
            [
                {"text": "bawo ni", "translation": "How are you"},
                {"text": "Ẹ ṣé", "translation": "Thanks"},
            ],
            sanitizer.existing_phrase_keys(existing),
        )

        assert [item.text for item in batch] == ["Ẹ ṣé"]

    def test_tone_marks_distinguish_phrases(self, sanitizer):
        batch = sanitizer.sanitize_batch(
            [
                {"text": "Ọkọ", "translation": "Husband"},
                {"text": "Ọkọ̀", "translation": "Husband"},
            ]
        )
        assert len(batch) == 2

    def test_none_batch(self, sanitizer):
        assert sanitizer.sanitize_batch(None) == []

    def test_tag_marks_ai_generated(self, sanitizer):
        tagged = sanitizer.tag(sanitizer.sanitize_batch([{"text": "Sannu", "translation": "Hello"}]), "gpt-4o")

        assert tagged[0].ai_meta.generated_by_ai is True
        assert tagged[0].ai_meta.model == "gpt-4o"
        assert tagged[0].ai_meta.reviewed_by_admin is False


class TestSanitizeEnhancement:
    @pytest.fixture
    def phrase(self):
        return Phrase(
            lesson_ids=["l1"],
            language=Language.HAUSA,
            text="Sannu",
            translation="Hello",
            examples=[PhraseExample(original="Sannu da zuwa", translation="Welcome")],
        )

    def test_keeps_only_enhanceable_fields(self, phrase):
        updates = AiContentSanitizer().sanitize_enhancement(
            phrase,
            {
                "text": "Changed",
                "translation": "Changed",
                "pronunciation": "san-noo",
                "difficulty": "2",
            },
        )
        assert updates == {"pronunciation": "san-noo", "difficulty": 2}

    def test_empty_examples_do_not_replace_existing(self, phrase):
        updates = AiContentSanitizer().sanitize_enhancement(
            phrase, {"examples": [], "explanation": "Common greeting"}
        )
        assert updates == {"explanation": "Common greeting"}

    def test_nothing_valid_returns_none(self, phrase):
        assert AiContentSanitizer().sanitize_enhancement(phrase, {"difficulty": 9, "pronunciation": ""}) is None


class TestSanitizeProverbsAndSuggestions:
    def test_proverbs_accept_strings_and_aliases(self):
        proverbs = AiContentSanitizer().sanitize_proverbs(
            [
                "Ìwà l'ẹwà",
                {"text": "iwa l'ewa", "translation": "dup"},
                {"text": "Àgbà kì í wà lọ́jà", "translation": "Elders", "contextNote": "On wisdom"},
                {"text": "  "},
            ]
        )

        assert [proverb.text for proverb in proverbs] == ["Ìwà l'ẹwà", "Àgbà kì í wà lọ́jà"]
        assert proverbs[1].context_note == "On wisdom"

    def test_proverbs_already_in_lesson_are_dropped(self):
        proverbs = AiContentSanitizer().sanitize_proverbs([{"text": "IWA L'EWA"}], existing_texts=["Ìwà l'ẹwà"])
        assert proverbs == []

    def test_lesson_suggestion(self):
        suggestion = AiContentSanitizer().sanitize_lesson_suggestion(
            {
                "title": " At the market ",
                "description": "Buying and bargaining",
                "objectives": ["Ask prices", "", None],
                "seedPhrases": "Èló ni?",
                "proverbs": [{"text": "Ìwà l'ẹwà", "translation": "Character is beauty"}],
            }
        )

        assert suggestion.title == "At the market"
        assert suggestion.objectives == ["Ask prices"]
        assert suggestion.seed_phrases == ["Èló ni?"]
        assert suggestion.proverbs[0].translation == "Character is beauty"

    def test_lesson_suggestion_without_title(self):
        assert AiContentSanitizer().sanitize_lesson_suggestion({"title": "   "}) is None
