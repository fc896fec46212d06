"""Unit tests for AI phrase, proverb and lesson services with a mocked LLM contract."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from contentflow.errors import (
    NotFoundError,
    Reason,
    StateConflictError,
    UpstreamFailureError,
    ValidationFailedError,
)
from contentflow.services import build_services
from contentflow.services.ai_lessons import SKIP_DUPLICATE_TITLE, SKIP_EMPTY_TITLE
from contentflow.utils.ai_content_client import AiContentClient
from contentflow.validators.schema import Language, Level, MergeOutcome, Status
from contentflow.workflow.scope import Scope


@pytest.fixture
def ai_client():
    """AiContentClient double; each test sets the return values it needs."""
    client = MagicMock(spec=AiContentClient)
    client.model_name = "gpt-4o-mini"
    client.generate_phrases = AsyncMock(return_value=[])
    client.enhance_phrase = AsyncMock(return_value={})
    client.suggest_lesson = AsyncMock(return_value={})
    client.generate_proverbs = AsyncMock(return_value=[])
    return client


@pytest.fixture
def services(store, ai_client):
    return build_services(store, ai_client=ai_client)


class TestAiPhraseGeneration:
    def test_generated_batch_is_sanitized_and_tagged(self, services, factory, ai_client, admin):
        ai_client.generate_phrases.return_value = [
            {"text": "Bawo ni", "translation": "How are you", "difficulty": "2"},
            {"text": "bawo  ni ", "translation": "HOW ARE YOU"},
            {"text": "Ẹ ṣé", "translation": ""},
        ]

        async def scenario():
            lesson = await factory.lesson()
            created = await services.ai_phrases.generate_for_lesson(lesson.id, admin, seed_words=[" bawo ", ""])

            assert len(created) == 1
            assert created[0].text == "Bawo ni"
            assert created[0].difficulty == 2
            assert created[0].status == Status.DRAFT
            assert created[0].ai_meta.generated_by_ai is True
            assert created[0].ai_meta.model == "gpt-4o-mini"
            assert created[0].ai_meta.reviewed_by_admin is False

            call = ai_client.generate_phrases.call_args
            assert call.kwargs["seed_words"] == ["bawo"]
            assert call.args[0].language == Language.YORUBA

        asyncio.run(scenario())

    def test_existing_phrases_are_not_regenerated(self, services, factory, ai_client, admin):
        ai_client.generate_phrases.return_value = [{"text": "Ẹ káàárọ̀", "translation": "good morning"}]

        async def scenario():
            lesson = await factory.lesson()
            await factory.phrase([lesson.id], text="Ẹ káàárọ̀", translation="Good morning")

            with pytest.raises(StateConflictError) as exc_info:
                await services.ai_phrases.generate_for_lesson(lesson.id, admin)
            assert exc_info.value.reason == Reason.NO_NEW_PHRASES_GENERATED
            assert ai_client.generate_phrases.call_args.kwargs["existing_phrases"] == ["Ẹ káàárọ̀"]

        asyncio.run(scenario())

    def test_llm_failure_propagates(self, services, factory, ai_client, admin):
        ai_client.generate_phrases.side_effect = UpstreamFailureError(Reason.LLM_GENERATION_FAILED)

        async def scenario():
            lesson = await factory.lesson()
            with pytest.raises(UpstreamFailureError):
                await services.ai_phrases.generate_for_lesson(lesson.id, admin)
            assert await services.phrases.list(admin) == []

        asyncio.run(scenario())

    def test_out_of_scope_lesson(self, services, factory, ai_client):
        async def scenario():
            lesson = await factory.lesson()
            with pytest.raises(NotFoundError):
                await services.ai_phrases.generate_for_lesson(lesson.id, Scope(Language.HAUSA))
            ai_client.generate_phrases.assert_not_called()

        asyncio.run(scenario())


class TestAiPhraseEnhancement:
    def test_enhance_draft_phrase(self, services, factory, ai_client, admin):
        ai_client.enhance_phrase.return_value = {
            "pronunciation": "eh shay",
            "explanation": "Informal thanks",
            "examples": [{"original": "Ẹ ṣé o", "translation": "Thank you"}],
            "difficulty": 1,
        }

        async def scenario():
            lesson = await factory.lesson(level=Level.INTERMEDIATE)
            phrase = await factory.phrase([lesson.id], text="Ẹ ṣé", translation="Thanks")

            enhanced = await services.ai_phrases.enhance_phrase(phrase.id, admin)

            assert enhanced.text == "Ẹ ṣé"
            assert enhanced.pronunciation == "eh shay"
            assert enhanced.examples[0].original == "Ẹ ṣé o"
            assert enhanced.ai_meta.generated_by_ai is True
            ai_client.enhance_phrase.assert_awaited_once_with(
                "Ẹ ṣé", "Thanks", Language.YORUBA, Level.INTERMEDIATE
            )

        asyncio.run(scenario())

    def test_enhance_finished_phrase_rejected(self, services, factory, ai_client, admin):
        async def scenario():
            lesson = await factory.lesson()
            phrase = await factory.phrase([lesson.id])
            await services.phrases.finish(phrase.id, admin)

            with pytest.raises(StateConflictError) as exc_info:
                await services.ai_phrases.enhance_phrase(phrase.id, admin)
            assert exc_info.value.reason == Reason.CANNOT_EDIT_NON_DRAFT

        asyncio.run(scenario())

    def test_enhance_with_nothing_usable(self, services, factory, ai_client, admin):
        ai_client.enhance_phrase.return_value = {"difficulty": "very hard", "examples": "none"}

        async def scenario():
            lesson = await factory.lesson()
            phrase = await factory.phrase([lesson.id])

            with pytest.raises(ValidationFailedError) as exc_info:
                await services.ai_phrases.enhance_phrase(phrase.id, admin)
            assert exc_info.value.reason == Reason.NO_VALID_PHRASE_UPDATES

        asyncio.run(scenario())


class TestAiProverbGeneration:
    def test_generated_proverbs_merge_with_catalogue(self, store, services, factory, ai_client, admin):
        ai_client.generate_proverbs.return_value = [
            {"text": "IWA L'EWA", "translation": "Character is beauty"},
            {"text": "Àgbà kì í wà lọ́jà", "translation": "Elders are never absent from the market"},
        ]

        async def scenario():
            other = await factory.lesson("Other")
            lesson = await factory.lesson("Target")
            known = await factory.proverb([other.id], text="Ìwà l'ẹwà")

            results = await services.ai_proverbs.generate_for_lesson(lesson.id, admin, count=2)

            assert [result.outcome for result in results] == [MergeOutcome.MERGED, MergeOutcome.CREATED]
            assert results[0].proverb.id == known.id
            assert results[0].proverb.lesson_ids == [other.id, lesson.id]
            assert results[1].proverb.ai_meta.generated_by_ai is True
            assert len(await store.proverbs.list(language=Language.YORUBA)) == 2

        asyncio.run(scenario())

    def test_proverbs_already_in_lesson_yield_nothing_new(self, services, factory, ai_client, admin):
        ai_client.generate_proverbs.return_value = ["Ìwà l'ẹwà"]

        async def scenario():
            lesson = await factory.lesson()
            await factory.proverb([lesson.id], text="iwa l'ewa")

            with pytest.raises(StateConflictError) as exc_info:
                await services.ai_proverbs.generate_for_lesson(lesson.id, admin)
            assert exc_info.value.reason == Reason.NO_NEW_PROVERBS_GENERATED

        asyncio.run(scenario())

    @pytest.mark.parametrize("count", [0, 21])
    def test_count_out_of_range(self, services, ai_client, admin, count):
        async def scenario():
            with pytest.raises(ValidationFailedError):
                await services.ai_proverbs.generate_for_lesson("any", admin, count=count)
            ai_client.generate_proverbs.assert_not_called()

        asyncio.run(scenario())


class TestAiLessonGeneration:
    def test_suggest_lesson(self, services, ai_client, admin):
        ai_client.suggest_lesson.return_value = {"title": " Market day ", "objectives": ["Ask prices"]}

        async def scenario():
            suggestion = await services.ai_lessons.suggest_lesson(Language.HAUSA, Level.BEGINNER, admin, topic="market")
            assert suggestion.title == "Market day"
            ai_client.suggest_lesson.assert_awaited_once_with(Language.HAUSA, Level.BEGINNER, "market")

        asyncio.run(scenario())

    def test_suggest_lesson_without_title(self, services, ai_client, admin):
        ai_client.suggest_lesson.return_value = {"title": ""}

        async def scenario():
            with pytest.raises(UpstreamFailureError):
                await services.ai_lessons.suggest_lesson(Language.HAUSA, Level.BEGINNER, admin)

        asyncio.run(scenario())

    def test_bulk_generation_reports_each_item(self, services, factory, ai_client, admin):
        ai_client.suggest_lesson.side_effect = [
            {"title": "At the market", "proverbs": [{"text": "Ìwà l'ẹwà", "translation": "Character is beauty"}]},
            {"title": "  "},
            {"title": "greetings"},
            RuntimeError("rate limited"),
            {"title": "Family"},
        ]

        async def scenario():
            await factory.lesson("Greetings")

            report = await services.ai_lessons.generate_lessons_bulk(
                language=Language.YORUBA,
                level=Level.BEGINNER,
                count=5,
                created_by="admin-1",
                scope=admin,
                topics=["market", "weather", "greetings", "food", "family"],
            )

            assert report.summary() == {
                "total_requested": 5,
                "created_count": 2,
                "skipped_count": 2,
                "error_count": 1,
            }
            assert [lesson.title for lesson in report.lessons] == ["At the market", "Family"]
            assert [lesson.order_index for lesson in report.lessons] == [1, 2]
            assert [skip.reason for skip in report.skipped] == [SKIP_EMPTY_TITLE, SKIP_DUPLICATE_TITLE]
            assert report.errors[0].topic == "food"
            assert "rate limited" in report.errors[0].error
            assert report.merged_proverbs[0].outcome == MergeOutcome.CREATED
            assert report.lessons[0].topics == ["market"]

            lessons = await services.lessons.list(admin, language=Language.YORUBA)
            assert [lesson.order_index for lesson in lessons] == [0, 1, 2]

        asyncio.run(scenario())

    def test_bulk_generation_skips_titles_repeated_within_batch(self, services, ai_client, admin):
        ai_client.suggest_lesson.return_value = {"title": "Numbers"}

        async def scenario():
            report = await services.ai_lessons.generate_lessons_bulk(
                language=Language.IGBO,
                level=Level.BEGINNER,
                count=3,
                created_by="admin-1",
                scope=admin,
                title="Counting",
            )

            assert report.created_count == 1
            assert report.skipped_count == 2
            topics = [call.args[2] for call in ai_client.suggest_lesson.call_args_list]
            assert topics == ["Counting #1", "Counting #2", "Counting #3"]

        asyncio.run(scenario())

    def test_bulk_generation_count_validated(self, services, ai_client, admin):
        async def scenario():
            with pytest.raises(ValidationFailedError):
                await services.ai_lessons.generate_lessons_bulk(
                    language=Language.IGBO, level=Level.BEGINNER, count=0, created_by="a", scope=admin
                )

        asyncio.run(scenario())
