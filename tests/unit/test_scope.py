"""Unit tests for ScopeGuard and scoped service access."""

import asyncio

import pytest

from contentflow.errors import ErrorKind, NoScopeError, NotFoundError, Reason, ValidationFailedError
from contentflow.validators.schema import Actor, Language, Role, TutorProfile, VoiceArtistProfile
from contentflow.workflow.scope import Scope


class TestScopeGuard:
    """Test actor scope resolution."""

    def test_admin_and_ai_are_unrestricted(self, services):
        async def scenario():
            for role in (Role.ADMIN, Role.AI):
                scope = await services.scope_guard.resolve(Actor(id="u1", role=role))
                assert scope.is_unrestricted

        asyncio.run(scenario())

    def test_tutor_gets_profile_language(self, store, services):
        async def scenario():
            await store.tutor_profiles.create(TutorProfile(user_id="t1", language=Language.IGBO))
            scope = await services.scope_guard.resolve(Actor(id="t1", role=Role.TUTOR))
            assert scope == Scope(Language.IGBO)

        asyncio.run(scenario())

    def test_tutor_without_profile_has_no_scope(self, services):
        async def scenario():
            with pytest.raises(NoScopeError) as exc_info:
                await services.scope_guard.resolve(Actor(id="t1", role=Role.TUTOR))
            assert exc_info.value.kind == ErrorKind.SCOPE_VIOLATION
            assert exc_info.value.reason == Reason.NO_SCOPE

        asyncio.run(scenario())

    def test_inactive_tutor_has_no_scope(self, store, services):
        async def scenario():
            profile = await store.tutor_profiles.create(TutorProfile(user_id="t1", language=Language.IGBO))
            await store.tutor_profiles.update_active(profile.id, False)

            with pytest.raises(NoScopeError):
                await services.scope_guard.resolve(Actor(id="t1", role=Role.TUTOR))

        asyncio.run(scenario())

    def test_voice_artist_gets_profile_language(self, store, services):
        async def scenario():
            await store.voice_profiles.create(VoiceArtistProfile(user_id="v1", language=Language.HAUSA))
            scope = await services.scope_guard.resolve(Actor(id="v1", role=Role.VOICE_ARTIST))
            assert scope.language == Language.HAUSA

        asyncio.run(scenario())

    def test_voice_artist_without_active_profile_has_no_scope(self, store, services):
        async def scenario():
            profile = await store.voice_profiles.create(VoiceArtistProfile(user_id="v1", language=Language.HAUSA))
            await store.voice_profiles.update_active(profile.id, False)

            for user_id in ("v1", "v2"):
                with pytest.raises(NoScopeError) as exc_info:
                    await services.scope_guard.resolve(Actor(id=user_id, role=Role.VOICE_ARTIST))
                assert exc_info.value.reason == Reason.PROFILE_INACTIVE
                assert exc_info.value.kind == ErrorKind.SCOPE_VIOLATION

        asyncio.run(scenario())

    def test_tutor_profile_does_not_scope_voice_artist(self, store, services):
        async def scenario():
            await store.tutor_profiles.create(TutorProfile(user_id="u1", language=Language.IGBO))
            with pytest.raises(NoScopeError):
                await services.scope_guard.resolve(Actor(id="u1", role=Role.VOICE_ARTIST))

        asyncio.run(scenario())

    def test_learner_has_no_authoring_scope(self, services):
        async def scenario():
            with pytest.raises(NoScopeError):
                await services.scope_guard.resolve(Actor(id="l1", role=Role.LEARNER))

        asyncio.run(scenario())


class TestScopedAccess:
    """Out-of-scope content looks missing, never forbidden."""

    @pytest.fixture
    def igbo_tutor(self):
        return Scope(Language.IGBO)

    def test_cross_language_lesson_is_not_found(self, services, factory, igbo_tutor):
        async def scenario():
            lesson = await factory.lesson("Greetings", language=Language.YORUBA)

            with pytest.raises(NotFoundError) as exc_info:
                await services.lessons.get(lesson.id, igbo_tutor)
            assert exc_info.value.to_dict() == {"kind": "not_found", "reason": "lesson_not_found"}

            with pytest.raises(NotFoundError):
                await services.lessons.finish(lesson.id, igbo_tutor)

        asyncio.run(scenario())

    def test_cross_language_content_is_not_found(self, services, factory, igbo_tutor):
        async def scenario():
            lesson = await factory.lesson()
            phrase = await factory.phrase([lesson.id])
            proverb = await factory.proverb([lesson.id])
            question = await factory.question(lesson.id, phrase.id)

            with pytest.raises(NotFoundError) as exc_info:
                await services.phrases.get(phrase.id, igbo_tutor)
            assert exc_info.value.reason == Reason.PHRASE_NOT_FOUND

            with pytest.raises(NotFoundError) as exc_info:
                await services.proverbs.update(proverb.id, {"translation": "x"}, igbo_tutor)
            assert exc_info.value.reason == Reason.PROVERB_NOT_FOUND

            with pytest.raises(NotFoundError) as exc_info:
                await services.questions.publish(question.id, igbo_tutor)
            assert exc_info.value.reason == Reason.QUESTION_NOT_FOUND

        asyncio.run(scenario())

    def test_lists_are_narrowed_to_scope(self, services, factory, igbo_tutor):
        async def scenario():
            await factory.lesson("Greetings", language=Language.YORUBA)
            igbo = await factory.lesson("Ekele", language=Language.IGBO)

            lessons = await services.lessons.list(igbo_tutor, language=Language.YORUBA)
            assert [lesson.id for lesson in lessons] == [igbo.id]

        asyncio.run(scenario())

    def test_tutor_lesson_create_uses_own_language(self, services, igbo_tutor):
        async def scenario():
            lesson = await services.lessons.create(
                {"title": "Ekele", "level": "beginner", "created_by": "t1"}, igbo_tutor
            )
            assert lesson.language == Language.IGBO

            with pytest.raises(ValidationFailedError) as exc_info:
                await services.lessons.create(
                    {"title": "Greetings", "language": "yoruba", "level": "beginner", "created_by": "t1"},
                    igbo_tutor,
                )
            assert exc_info.value.reason == Reason.INVALID_INPUT

        asyncio.run(scenario())

    def test_admin_must_name_language(self, services, admin):
        async def scenario():
            with pytest.raises(ValidationFailedError):
                await services.lessons.create({"title": "Greetings", "level": "beginner", "created_by": "a"}, admin)

        asyncio.run(scenario())

    def test_tutor_cannot_link_foreign_lessons(self, services, factory, igbo_tutor):
        async def scenario():
            lesson = await factory.lesson()
            with pytest.raises(NotFoundError) as exc_info:
                await services.phrases.create(
                    {"lesson_ids": [lesson.id], "text": "Ndewo", "translation": "Hello"}, igbo_tutor
                )
            assert exc_info.value.reason == Reason.LESSON_NOT_FOUND

        asyncio.run(scenario())
