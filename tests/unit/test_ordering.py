"""Unit tests for OrderIndexManager and lesson partition ordering."""

import asyncio

import pytest

from contentflow.errors import NotFoundError, Reason, StateConflictError, ValidationFailedError
from contentflow.services import build_services
from contentflow.validators.schema import Language, Phrase
from contentflow.workflow.scope import Scope


async def _indexes(services, language=Language.YORUBA):
    return [(lesson.title, lesson.order_index) for lesson in await services.lessons.list(Scope(language))]


class TestOrderIndexManager:
    """Test contiguous ordering within language partitions."""

    def test_create_appends_to_partition(self, services, factory):
        async def scenario():
            first = await factory.lesson("One")
            second = await factory.lesson("Two")
            igbo = await factory.lesson("Otu", language=Language.IGBO)

            assert first.order_index == 0
            assert second.order_index == 1
            assert igbo.order_index == 0

        asyncio.run(scenario())

    def test_delete_then_create_stays_contiguous(self, services, factory, admin):
        async def scenario():
            await factory.lesson("A")
            b = await factory.lesson("B")
            await factory.lesson("C")

            await services.lessons.delete(b.id, admin)
            assert await _indexes(services) == [("A", 0), ("C", 1)]

            d = await factory.lesson("D")
            assert d.order_index == 2
            assert await services.ordering.verify(Language.YORUBA)

        asyncio.run(scenario())

    def test_reorder_full_permutation(self, services, factory, admin):
        async def scenario():
            a = await factory.lesson("A")
            b = await factory.lesson("B")
            c = await factory.lesson("C")

            result = await services.lessons.reorder(Language.YORUBA, [c.id, a.id, b.id], admin)

            assert [(lesson.title, lesson.order_index) for lesson in result] == [("C", 0), ("A", 1), ("B", 2)]
            assert await services.ordering.verify(Language.YORUBA)

        asyncio.run(scenario())

    @pytest.mark.parametrize("case", ["missing", "extra", "duplicate", "foreign"])
    def test_reorder_mismatch_writes_nothing(self, services, factory, admin, case):
        async def scenario():
            a = await factory.lesson("A")
            b = await factory.lesson("B")
            igbo = await factory.lesson("Otu", language=Language.IGBO)
            submissions = {
                "missing": [b.id],
                "extra": [b.id, a.id, "not-a-lesson"],
                "duplicate": [b.id, b.id],
                "foreign": [b.id, a.id, igbo.id],
            }

            with pytest.raises(StateConflictError) as exc_info:
                await services.lessons.reorder(Language.YORUBA, submissions[case], admin)

            assert exc_info.value.reason == Reason.REORDER_SET_MISMATCH
            assert await _indexes(services) == [("A", 0), ("B", 1)]

        asyncio.run(scenario())

    def test_reorder_mismatch_details(self, services, factory, admin):
        async def scenario():
            a = await factory.lesson("A")
            await factory.lesson("B")

            with pytest.raises(StateConflictError) as exc_info:
                await services.lessons.reorder(Language.YORUBA, [a.id, "ghost"], admin)

            assert exc_info.value.details["extra"] == ["ghost"]
            assert len(exc_info.value.details["missing"]) == 1

        asyncio.run(scenario())

    def test_reorder_out_of_scope_partition(self, services, factory):
        async def scenario():
            a = await factory.lesson("A")
            with pytest.raises(NotFoundError):
                await services.lessons.reorder(Language.YORUBA, [a.id], Scope(Language.HAUSA))

        asyncio.run(scenario())

    def test_compact_closes_gaps(self, store, services, factory, admin):
        async def scenario():
            a = await factory.lesson("A")
            b = await factory.lesson("B")
            await store.lessons.update_by_id(a.id, {"order_index": 4})
            await store.lessons.update_by_id(b.id, {"order_index": 9})
            assert not await services.ordering.verify(Language.YORUBA)

            written = await services.lessons.compact(Language.YORUBA, admin)

            assert written == 2
            assert await _indexes(services) == [("A", 0), ("B", 1)]
            assert await services.lessons.compact(Language.YORUBA, admin) == 0

        asyncio.run(scenario())

    def test_concurrent_creates_with_partition_lock(self, store):
        services = build_services(store, serialize_partitions=True)

        async def scenario():
            await asyncio.gather(
                *[
                    services.lessons.create(
                        {"title": f"L{i}", "language": "yoruba", "level": "beginner", "created_by": "a"},
                        Scope.unrestricted(),
                    )
                    for i in range(6)
                ]
            )
            lessons = await services.lessons.list(Scope(Language.YORUBA))
            assert sorted(lesson.order_index for lesson in lessons) == list(range(6))

        asyncio.run(scenario())


class TestLessonLanguageMove:
    def test_move_appends_to_new_partition_and_compacts_old(self, services, factory, admin):
        async def scenario():
            a = await factory.lesson("A")
            await factory.lesson("B")
            await factory.lesson("Daya", language=Language.HAUSA)

            moved = await services.lessons.update(a.id, {"language": "hausa"}, admin)

            assert moved.language == Language.HAUSA
            assert moved.order_index == 1
            assert await _indexes(services) == [("B", 0)]
            assert await _indexes(services, Language.HAUSA) == [("Daya", 0), ("A", 1)]

        asyncio.run(scenario())

    def test_move_refused_with_content(self, services, factory, admin):
        async def scenario():
            a = await factory.lesson("A")
            await factory.phrase([a.id])

            with pytest.raises(StateConflictError) as exc_info:
                await services.lessons.update(a.id, {"language": Language.IGBO}, admin)

            assert exc_info.value.reason == Reason.LESSON_HAS_CONTENT

        asyncio.run(scenario())

    def test_tutor_cannot_move_out_of_scope(self, services, factory):
        async def scenario():
            a = await factory.lesson("A")

            with pytest.raises(ValidationFailedError):
                await services.lessons.update(a.id, {"language": "igbo"}, Scope(Language.YORUBA))

        asyncio.run(scenario())


async def _after_checkpoints(count, make):
    for _ in range(count):
        await asyncio.sleep(0)
    return await make()


class TestMoveRacingContentLinks:
    """A lesson never ends up in one language with content of another linked to it."""

    def test_move_rolls_back_when_content_lands_mid_move(self, store, services, factory, admin, monkeypatch):
        async def scenario():
            a = await factory.lesson("A")
            await factory.lesson("B")
            write = store.lessons.update_by_id
            inserted = []

            async def insert_phrase_then_write(entity_id, changes, expected=None):
                if changes.get("language") == Language.IGBO and not inserted:
                    inserted.append(
                        await store.phrases.create(
                            Phrase(lesson_ids=[a.id], language=Language.YORUBA, text="Ẹ ṣé", translation="Thanks")
                        )
                    )
                return await write(entity_id, changes, expected)

            monkeypatch.setattr(store.lessons, "update_by_id", insert_phrase_then_write)

            with pytest.raises(StateConflictError) as exc_info:
                await services.lessons.update(a.id, {"language": "igbo"}, admin)

            assert exc_info.value.reason == Reason.LESSON_HAS_CONTENT
            lesson = await store.lessons.find_by_id(a.id)
            assert lesson.language == Language.YORUBA
            assert await _indexes(services) == [("A", 0), ("B", 1)]
            assert await services.ordering.verify(Language.IGBO)

        asyncio.run(scenario())

    def test_phrase_create_undone_when_lesson_moves_mid_create(self, store, services, factory, monkeypatch):
        async def scenario():
            a = await factory.lesson("A")
            insert = store.phrases.create

            async def move_lesson_then_insert(entity):
                await store.lessons.update_by_id(a.id, {"language": Language.IGBO})
                return await insert(entity)

            monkeypatch.setattr(store.phrases, "create", move_lesson_then_insert)

            with pytest.raises(ValidationFailedError) as exc_info:
                await factory.phrase([a.id])

            assert exc_info.value.reason == Reason.LANGUAGE_MISMATCH_WITH_LESSONS
            assert exc_info.value.details["moved_lesson_ids"] == [a.id]
            assert await store.phrases.list() == []

        asyncio.run(scenario())

    def test_link_undone_when_lesson_moves_mid_link(self, store, services, factory, admin, monkeypatch):
        async def scenario():
            a = await factory.lesson("A")
            b = await factory.lesson("B")
            phrase = await factory.phrase([a.id])
            write = store.phrases.update_by_id

            async def move_lesson_then_write(entity_id, changes, expected=None):
                await store.lessons.update_by_id(b.id, {"language": Language.IGBO})
                return await write(entity_id, changes, expected)

            monkeypatch.setattr(store.phrases, "update_by_id", move_lesson_then_write)

            with pytest.raises(ValidationFailedError):
                await services.phrases.link_lessons(phrase.id, [b.id], admin)

            kept = await store.phrases.find_by_id(phrase.id)
            assert kept.lesson_ids == [a.id]

        asyncio.run(scenario())

    def test_proverb_create_undone_when_lesson_moves_mid_create(self, store, services, factory, admin, monkeypatch):
        async def scenario():
            a = await factory.lesson("A")
            insert = store.proverbs.create

            async def move_lesson_then_insert(entity):
                await store.lessons.update_by_id(a.id, {"language": Language.IGBO})
                return await insert(entity)

            monkeypatch.setattr(store.proverbs, "create", move_lesson_then_insert)

            with pytest.raises(ValidationFailedError):
                await factory.proverb([a.id])

            assert await store.proverbs.list() == []

        asyncio.run(scenario())

    @pytest.mark.parametrize("delay", range(8))
    def test_concurrent_move_and_phrase_create_stay_consistent(self, store, services, factory, admin, delay):
        async def scenario():
            a = await factory.lesson("A")

            await asyncio.gather(
                services.lessons.update(a.id, {"language": "igbo"}, admin),
                _after_checkpoints(delay, lambda: factory.phrase([a.id])),
                return_exceptions=True,
            )

            lesson = await store.lessons.find_by_id(a.id)
            for phrase in await store.phrases.list():
                assert phrase.language == lesson.language
            assert await services.ordering.verify(Language.YORUBA)
            assert await services.ordering.verify(Language.IGBO)

        asyncio.run(scenario())
