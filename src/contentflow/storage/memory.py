"""In-process implementation of the repository contracts.

Rows are held as pydantic models keyed by id. Every public call awaits a
checkpoint before touching state so that interleavings between concurrent
tasks look like they would against a networked document store. The
read-check-write body of each call then runs without suspending, which
makes every single-document update atomic.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from contentflow.storage.base import (
    EntityStore,
    LessonRepository,
    PhraseRepository,
    PreconditionFailedError,
    ProverbRepository,
    QuestionRepository,
    TutorProfileRepository,
    VoiceArtistProfileRepository,
    VoiceSubmissionRepository,
)
from contentflow.utils.text_normalization import proverb_key
from contentflow.validators.schema import (
    Language,
    LanguageProfile,
    Lesson,
    Phrase,
    Proverb,
    Question,
    QuestionType,
    Status,
    SubmissionStatus,
    TutorProfile,
    VoiceArtistProfile,
    VoiceAudioSubmission,
    utc_now,
)

T = TypeVar("T", bound=BaseModel)
P = TypeVar("P", bound=LanguageProfile)

logger = logging.getLogger(__name__)


async def _checkpoint() -> None:
    await asyncio.sleep(0)


class _RowTable(Generic[T]):
    """Row storage plus the generic contract operations for one model."""

    def __init__(self, model_cls: Type[T]):
        self.model_cls = model_cls
        self._rows: Dict[str, T] = {}

    # --- snapshot helpers used by the JSON store -----------------------------

    def dump_rows(self) -> List[Dict[str, Any]]:
        return [row.model_dump(mode="json") for row in self._rows.values()]

    def load_rows(self, rows: List[Dict[str, Any]]) -> None:
        self._rows = {}
        for data in rows:
            row = self.model_cls.model_validate(data)
            self._rows[row.id] = row

    def __len__(self) -> int:
        return len(self._rows)

    # --- internals -----------------------------------------------------------

    def _active(self) -> List[T]:
        return [row.model_copy(deep=True) for row in self._rows.values() if not row.is_deleted]

    def _select(self, predicate: Callable[[T], bool]) -> List[T]:
        rows = [row for row in self._active() if predicate(row)]
        return sorted(rows, key=lambda row: row.created_at, reverse=True)

    def _check_expected(self, row: T, expected: Optional[Dict[str, Any]]) -> None:
        for field, value in (expected or {}).items():
            actual = getattr(row, field)
            if actual != value:
                raise PreconditionFailedError(row.id, field, value, actual)

    def _write(self, row: T, changes: Dict[str, Any]) -> T:
        data = row.model_dump()
        data["updated_at"] = utc_now()
        data.update(changes)
        updated = self.model_cls.model_validate(data)
        self._rows[updated.id] = updated
        return updated.model_copy(deep=True)

    # --- contract ------------------------------------------------------------

    async def create(self, entity: T) -> T:
        await _checkpoint()
        stored = self.model_cls.model_validate(entity.model_dump())
        self._rows[stored.id] = stored
        logger.debug(f"Created {self.model_cls.__name__} {stored.id}")
        return stored.model_copy(deep=True)

    async def find_by_id(self, entity_id: str, include_deleted: bool = False) -> Optional[T]:
        await _checkpoint()
        row = self._rows.get(entity_id)
        if row is None or (row.is_deleted and not include_deleted):
            return None
        return row.model_copy(deep=True)

    async def find_by_ids(self, entity_ids: List[str]) -> List[T]:
        await _checkpoint()
        found = []
        for entity_id in dict.fromkeys(entity_ids):
            row = self._rows.get(entity_id)
            if row is not None and not row.is_deleted:
                found.append(row.model_copy(deep=True))
        return found

    async def update_by_id(
        self,
        entity_id: str,
        changes: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> Optional[T]:
        await _checkpoint()
        row = self._rows.get(entity_id)
        if row is None or row.is_deleted:
            return None
        self._check_expected(row, expected)
        return self._write(row, changes)

    async def soft_delete_by_id(self, entity_id: str, now: datetime) -> Optional[T]:
        await _checkpoint()
        row = self._rows.get(entity_id)
        if row is None or row.is_deleted:
            return None
        return self._write(row, {"is_deleted": True, "deleted_at": now, "updated_at": now})

    async def restore_by_id(self, entity_id: str) -> Optional[T]:
        await _checkpoint()
        row = self._rows.get(entity_id)
        if row is None or not row.is_deleted:
            return None
        return self._write(row, {"is_deleted": False, "deleted_at": None})


class _LinkedRowTable(_RowTable[T]):
    """Shared unlink-and-orphan-delete for lesson-linked rows."""

    async def unlink_lesson(self, entity_id: str, lesson_id: str, now: datetime) -> Optional[T]:
        await _checkpoint()
        row = self._rows.get(entity_id)
        if row is None or row.is_deleted:
            return None
        remaining = [item for item in row.lesson_ids if item != lesson_id]
        changes: Dict[str, Any] = {"lesson_ids": remaining, "updated_at": now}
        if not remaining:
            changes.update({"is_deleted": True, "deleted_at": now})
        return self._write(row, changes)


class InMemoryLessonRepository(_RowTable[Lesson], LessonRepository):
    def __init__(self):
        super().__init__(Lesson)

    async def list(
        self,
        language: Optional[Language] = None,
        status: Optional[Status] = None,
    ) -> List[Lesson]:
        await _checkpoint()
        lessons = [
            lesson
            for lesson in self._active()
            if (language is None or lesson.language == language)
            and (status is None or lesson.status == status)
        ]
        return sorted(
            lessons,
            key=lambda lesson: (lesson.language.value, lesson.order_index, lesson.created_at),
        )

    async def list_by_language(self, language: Language) -> List[Lesson]:
        await _checkpoint()
        lessons = [lesson for lesson in self._active() if lesson.language == language]
        return sorted(lessons, key=lambda lesson: (lesson.order_index, lesson.created_at))


class InMemoryPhraseRepository(_LinkedRowTable[Phrase], PhraseRepository):
    def __init__(self):
        super().__init__(Phrase)

    async def list(
        self,
        status: Optional[Status] = None,
        lesson_id: Optional[str] = None,
        lesson_ids: Optional[List[str]] = None,
        language: Optional[Language] = None,
    ) -> List[Phrase]:
        await _checkpoint()
        wanted = set(lesson_ids) if lesson_ids is not None else None
        return self._select(
            lambda phrase: (status is None or phrase.status == status)
            and (lesson_id is None or lesson_id in phrase.lesson_ids)
            and (wanted is None or bool(wanted.intersection(phrase.lesson_ids)))
            and (language is None or phrase.language == language)
        )


class InMemoryProverbRepository(_LinkedRowTable[Proverb], ProverbRepository):
    def __init__(self):
        super().__init__(Proverb)

    async def list(
        self,
        status: Optional[Status] = None,
        language: Optional[Language] = None,
        lesson_id: Optional[str] = None,
        lesson_ids: Optional[List[str]] = None,
    ) -> List[Proverb]:
        await _checkpoint()
        wanted = set(lesson_ids) if lesson_ids is not None else None
        return self._select(
            lambda proverb: (status is None or proverb.status == status)
            and (language is None or proverb.language == language)
            and (lesson_id is None or lesson_id in proverb.lesson_ids)
            and (wanted is None or bool(wanted.intersection(proverb.lesson_ids)))
        )

    async def find_reusable(self, language: Language, text: str) -> Optional[Proverb]:
        await _checkpoint()
        key = proverb_key(text)
        matches = [
            proverb
            for proverb in self._active()
            if proverb.language == language and proverb.normalized_text == key
        ]
        if not matches:
            return None
        return min(matches, key=lambda proverb: proverb.created_at)


class InMemoryQuestionRepository(_RowTable[Question], QuestionRepository):
    def __init__(self):
        super().__init__(Question)

    async def list(
        self,
        lesson_id: Optional[str] = None,
        lesson_ids: Optional[List[str]] = None,
        phrase_id: Optional[str] = None,
        type: Optional[QuestionType] = None,
        status: Optional[Status] = None,
    ) -> List[Question]:
        await _checkpoint()
        wanted = set(lesson_ids) if lesson_ids is not None else None
        return self._select(
            lambda question: (lesson_id is None or question.lesson_id == lesson_id)
            and (wanted is None or question.lesson_id in wanted)
            and (phrase_id is None or question.phrase_id == phrase_id)
            and (type is None or question.type == type)
            and (status is None or question.status == status)
        )


class _ProfileTable(Generic[P]):
    def __init__(self, model_cls: Type[P]):
        self.model_cls = model_cls
        self._rows: Dict[str, P] = {}

    def dump_rows(self) -> List[Dict[str, Any]]:
        return [row.model_dump(mode="json") for row in self._rows.values()]

    def load_rows(self, rows: List[Dict[str, Any]]) -> None:
        self._rows = {}
        for data in rows:
            profile = self.model_cls.model_validate(data)
            self._rows[profile.id] = profile

    async def find_by_user_id(self, user_id: str) -> Optional[P]:
        await _checkpoint()
        for profile in self._rows.values():
            if profile.user_id == user_id:
                return profile.model_copy(deep=True)
        return None

    async def create(self, profile: P) -> P:
        await _checkpoint()
        self._rows[profile.id] = profile.model_copy(deep=True)
        return profile

    async def update_active(self, profile_id: str, is_active: bool) -> Optional[P]:
        await _checkpoint()
        profile = self._rows.get(profile_id)
        if profile is None:
            return None
        updated = profile.model_copy(update={"is_active": is_active, "updated_at": utc_now()})
        self._rows[profile_id] = updated
        return updated.model_copy(deep=True)


class InMemoryTutorProfileRepository(_ProfileTable[TutorProfile], TutorProfileRepository):
    def __init__(self):
        super().__init__(TutorProfile)


class InMemoryVoiceArtistProfileRepository(_ProfileTable[VoiceArtistProfile], VoiceArtistProfileRepository):
    def __init__(self):
        super().__init__(VoiceArtistProfile)


class InMemoryVoiceSubmissionRepository(VoiceSubmissionRepository):
    def __init__(self):
        self._rows: Dict[str, VoiceAudioSubmission] = {}

    def dump_rows(self) -> List[Dict[str, Any]]:
        return [row.model_dump(mode="json") for row in self._rows.values()]

    def load_rows(self, rows: List[Dict[str, Any]]) -> None:
        self._rows = {}
        for data in rows:
            submission = VoiceAudioSubmission.model_validate(data)
            self._rows[submission.id] = submission

    async def create(self, submission: VoiceAudioSubmission) -> VoiceAudioSubmission:
        await _checkpoint()
        stored = VoiceAudioSubmission.model_validate(submission.model_dump())
        self._rows[stored.id] = stored
        return stored.model_copy(deep=True)

    async def find_by_id(self, submission_id: str) -> Optional[VoiceAudioSubmission]:
        await _checkpoint()
        row = self._rows.get(submission_id)
        return None if row is None else row.model_copy(deep=True)

    async def list(
        self,
        status: Optional[SubmissionStatus] = None,
        voice_artist_user_id: Optional[str] = None,
        phrase_id: Optional[str] = None,
        language: Optional[Language] = None,
    ) -> List[VoiceAudioSubmission]:
        await _checkpoint()
        rows = [
            row.model_copy(deep=True)
            for row in self._rows.values()
            if (status is None or row.status == status)
            and (voice_artist_user_id is None or row.voice_artist_user_id == voice_artist_user_id)
            and (phrase_id is None or row.phrase_id == phrase_id)
            and (language is None or row.language == language)
        ]
        return sorted(rows, key=lambda row: row.created_at, reverse=True)

    async def update_by_id(
        self,
        submission_id: str,
        changes: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> Optional[VoiceAudioSubmission]:
        await _checkpoint()
        row = self._rows.get(submission_id)
        if row is None:
            return None
        for field, value in (expected or {}).items():
            actual = getattr(row, field)
            if actual != value:
                raise PreconditionFailedError(row.id, field, value, actual)
        data = row.model_dump()
        data["updated_at"] = utc_now()
        data.update(changes)
        updated = VoiceAudioSubmission.model_validate(data)
        self._rows[updated.id] = updated
        return updated.model_copy(deep=True)


def create_memory_store() -> EntityStore:
    """Build an empty in-process EntityStore."""
    return EntityStore(
        lessons=InMemoryLessonRepository(),
        phrases=InMemoryPhraseRepository(),
        proverbs=InMemoryProverbRepository(),
        questions=InMemoryQuestionRepository(),
        tutor_profiles=InMemoryTutorProfileRepository(),
        voice_profiles=InMemoryVoiceArtistProfileRepository(),
        voice_submissions=InMemoryVoiceSubmissionRepository(),
    )
