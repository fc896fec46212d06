"""Unit tests for the in-memory entity store and JSON snapshots."""

import asyncio
import json
from datetime import timedelta

import pytest

from contentflow.storage import PreconditionFailedError, create_memory_store
from contentflow.storage.json_store import JsonSnapshotStore
from contentflow.validators.schema import (
    Language,
    Lesson,
    Level,
    Phrase,
    Proverb,
    Status,
    TutorProfile,
    utc_now,
)


def _lesson(title="Greetings", language=Language.YORUBA, order_index=0):
    return Lesson(title=title, language=language, level=Level.BEGINNER, order_index=order_index, created_by="a")


class TestInMemoryRepositories:
    """Test the repository contract against the in-memory store."""

    def test_soft_deleted_rows_are_invisible_by_default(self, store):
        async def scenario():
            lesson = await store.lessons.create(_lesson())
            await store.lessons.soft_delete_by_id(lesson.id, utc_now())

            assert await store.lessons.find_by_id(lesson.id) is None
            assert await store.lessons.list() == []
            deleted = await store.lessons.find_by_id(lesson.id, include_deleted=True)
            assert deleted.is_deleted is True
            assert deleted.deleted_at is not None

        asyncio.run(scenario())

    def test_soft_delete_twice_returns_none(self, store):
        async def scenario():
            lesson = await store.lessons.create(_lesson())
            assert await store.lessons.soft_delete_by_id(lesson.id, utc_now()) is not None
            assert await store.lessons.soft_delete_by_id(lesson.id, utc_now()) is None

        asyncio.run(scenario())

    def test_restore(self, store):
        async def scenario():
            lesson = await store.lessons.create(_lesson())
            await store.lessons.soft_delete_by_id(lesson.id, utc_now())

            restored = await store.lessons.restore_by_id(lesson.id)

            assert restored.is_deleted is False
            assert restored.deleted_at is None
            assert await store.lessons.find_by_id(lesson.id) is not None

        asyncio.run(scenario())

    def test_returned_rows_are_copies(self, store):
        async def scenario():
            lesson = await store.lessons.create(_lesson())
            lesson.title = "Mutated"
            stored = await store.lessons.find_by_id(lesson.id)
            assert stored.title == "Greetings"

        asyncio.run(scenario())

    def test_update_with_stale_expectation_fails(self, store):
        async def scenario():
            lesson = await store.lessons.create(_lesson())
            await store.lessons.update_by_id(lesson.id, {"status": Status.FINISHED})

            with pytest.raises(PreconditionFailedError) as exc_info:
                await store.lessons.update_by_id(
                    lesson.id, {"status": Status.PUBLISHED}, expected={"status": Status.DRAFT}
                )

            assert exc_info.value.reason.value == "concurrent_modification"
            assert (await store.lessons.find_by_id(lesson.id)).status == Status.FINISHED

        asyncio.run(scenario())

    def test_update_missing_returns_none(self, store):
        async def scenario():
            assert await store.lessons.update_by_id("missing", {"title": "x"}) is None

        asyncio.run(scenario())

    def test_update_revalidates(self, store):
        async def scenario():
            lesson = await store.lessons.create(_lesson())
            with pytest.raises(ValueError):
                await store.lessons.update_by_id(lesson.id, {"order_index": -3})

        asyncio.run(scenario())

    def test_list_sorted_by_language_and_index(self, store):
        async def scenario():
            await store.lessons.create(_lesson("b", Language.YORUBA, 1))
            await store.lessons.create(_lesson("c", Language.HAUSA, 0))
            await store.lessons.create(_lesson("a", Language.YORUBA, 0))

            lessons = await store.lessons.list()
            assert [lesson.title for lesson in lessons] == ["c", "a", "b"]
            assert await store.lessons.find_last_order_index(Language.YORUBA) == 1
            assert await store.lessons.find_last_order_index(Language.IGBO) is None

        asyncio.run(scenario())

    def test_unlink_keeps_shared_phrase(self, store):
        async def scenario():
            phrase = await store.phrases.create(
                Phrase(lesson_ids=["l1", "l2"], language=Language.YORUBA, text="Ẹ ṣé", translation="Thanks")
            )
            updated = await store.phrases.unlink_lesson(phrase.id, "l1", utc_now())

            assert updated.lesson_ids == ["l2"]
            assert updated.is_deleted is False

        asyncio.run(scenario())

    def test_unlink_last_lesson_soft_deletes(self, store):
        async def scenario():
            now = utc_now() - timedelta(minutes=5)
            phrase = await store.phrases.create(
                Phrase(lesson_ids=["l1"], language=Language.YORUBA, text="Ẹ ṣé", translation="Thanks")
            )
            updated = await store.phrases.unlink_lesson(phrase.id, "l1", now)

            assert updated.is_deleted is True
            assert updated.lesson_ids == []
            assert updated.deleted_at == now
            assert await store.phrases.find_by_id(phrase.id) is None

        asyncio.run(scenario())

    def test_find_reusable_matches_normalized_text(self, store):
        async def scenario():
            proverb = await store.proverbs.create(
                Proverb(lesson_ids=["l1"], language=Language.YORUBA, text="Ìwà l'ẹwà")
            )

            found = await store.proverbs.find_reusable(Language.YORUBA, "  iwa L'EWA ")
            assert found.id == proverb.id
            assert await store.proverbs.find_reusable(Language.IGBO, "Ìwà l'ẹwà") is None

        asyncio.run(scenario())

    def test_tutor_profiles(self, store):
        async def scenario():
            profile = await store.tutor_profiles.create(TutorProfile(user_id="t1", language=Language.IGBO))
            await store.tutor_profiles.update_active(profile.id, False)

            found = await store.tutor_profiles.find_by_user_id("t1")
            assert found.is_active is False
            assert await store.tutor_profiles.find_by_user_id("t2") is None

        asyncio.run(scenario())


class TestJsonSnapshotStore:
    """Test loading and saving store snapshots."""

    def test_missing_file_gives_empty_store(self, tmp_path):
        store = JsonSnapshotStore(tmp_path / "store.json").load()
        assert JsonSnapshotStore.counts(store) == {
            "lessons": 0,
            "phrases": 0,
            "proverbs": 0,
            "questions": 0,
            "tutor_profiles": 0,
            "voice_profiles": 0,
            "voice_submissions": 0,
        }

    def test_roundtrip_keeps_deleted_rows(self, tmp_path):
        snapshot = JsonSnapshotStore(tmp_path / "nested" / "store.json")
        store = create_memory_store()

        async def populate():
            kept = await store.lessons.create(_lesson("Kept"))
            gone = await store.lessons.create(_lesson("Gone", order_index=1))
            await store.lessons.soft_delete_by_id(gone.id, utc_now())
            await store.tutor_profiles.create(TutorProfile(user_id="t1", language=Language.HAUSA))
            return kept, gone

        kept, gone = asyncio.run(populate())
        snapshot.save(store)

        with open(snapshot.snapshot_file, encoding="utf-8") as f:
            data = json.load(f)
        assert data["version"] == 1
        assert len(data["lessons"]) == 2

        loaded = snapshot.load()

        async def check():
            assert (await loaded.lessons.find_by_id(kept.id)).title == "Kept"
            assert await loaded.lessons.find_by_id(gone.id) is None
            assert (await loaded.lessons.find_by_id(gone.id, include_deleted=True)).is_deleted
            assert (await loaded.tutor_profiles.find_by_user_id("t1")).language == Language.HAUSA

        asyncio.run(check())

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ValueError) as exc_info:
            JsonSnapshotStore(path).load()
        assert "Corrupt snapshot" in str(exc_info.value)

    def test_non_object_raises(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[]", encoding="utf-8")

        with pytest.raises(ValueError):
            JsonSnapshotStore(path).load()
