"""Repository contracts for the entity store.

The workflow engine is written against these async contracts only. Reads
return active (non-deleted) rows unless ``include_deleted`` is requested;
deletion and restoration are explicit named operations. Updates accept an
``expected`` precondition map that must still hold at write time, otherwise
the write fails with ``PreconditionFailedError`` instead of silently applying.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

from contentflow.errors import Reason, StateConflictError
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
)

T = TypeVar("T", bound=BaseModel)
P = TypeVar("P", bound=LanguageProfile)

logger = logging.getLogger(__name__)


class PreconditionFailedError(StateConflictError):
    """The expected state no longer holds at write time."""

    def __init__(self, entity_id: str, field: str, expected: Any, actual: Any):
        super().__init__(
            Reason.CONCURRENT_MODIFICATION,
            f"Precondition failed for {entity_id}: expected {field}={expected!r}, found {actual!r}",
            details={"id": entity_id, "field": field},
        )


class Repository(ABC, Generic[T]):
    """Generic persistence contract shared by every entity."""

    @abstractmethod
    async def create(self, entity: T) -> T:
        """Persist a new entity and return the stored copy."""

    @abstractmethod
    async def find_by_id(self, entity_id: str, include_deleted: bool = False) -> Optional[T]:
        """Fetch one entity; soft-deleted rows are invisible by default."""

    @abstractmethod
    async def find_by_ids(self, entity_ids: List[str]) -> List[T]:
        """Fetch active entities among ``entity_ids`` (missing ids are skipped)."""

    @abstractmethod
    async def update_by_id(
        self,
        entity_id: str,
        changes: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> Optional[T]:
        """Apply ``changes`` to an active entity.

        Args:
            entity_id: Entity id
            changes: Field values to set (re-validated against the model)
            expected: Field values that must still hold at write time

        Returns:
            Updated entity, or None when missing or soft-deleted

        Raises:
            PreconditionFailedError: If ``expected`` does not match
            pydantic.ValidationError: If the result violates model invariants
        """

    @abstractmethod
    async def soft_delete_by_id(self, entity_id: str, now: datetime) -> Optional[T]:
        """Mark an active entity deleted; returns None when already gone."""

    @abstractmethod
    async def restore_by_id(self, entity_id: str) -> Optional[T]:
        """Clear the deleted flag of a soft-deleted entity."""


class LessonRepository(Repository[Lesson]):
    """Lesson persistence plus order-index helpers."""

    @abstractmethod
    async def list(
        self,
        language: Optional[Language] = None,
        status: Optional[Status] = None,
    ) -> List[Lesson]:
        """Active lessons sorted by (language, order_index, created_at)."""

    @abstractmethod
    async def list_by_language(self, language: Language) -> List[Lesson]:
        """Active lessons of one partition sorted by (order_index, created_at)."""

    async def find_by_id_and_language(self, entity_id: str, language: Language) -> Optional[Lesson]:
        lesson = await self.find_by_id(entity_id)
        if lesson is None or lesson.language != language:
            return None
        return lesson

    async def find_last_order_index(self, language: Language) -> Optional[int]:
        """Highest order_index among active lessons of ``language``, or None."""
        lessons = await self.list_by_language(language)
        if not lessons:
            return None
        return max(lesson.order_index for lesson in lessons)

    async def reorder_by_ids(self, ordered_ids: List[str]) -> int:
        """Assign index ``i`` to ``ordered_ids[i]``; skips rows already in place.

        Returns:
            Number of lessons written
        """
        written = 0
        current = {lesson.id: lesson for lesson in await self.find_by_ids(ordered_ids)}
        for index, lesson_id in enumerate(ordered_ids):
            lesson = current.get(lesson_id)
            if lesson is None or lesson.order_index == index:
                continue
            updated = await self.update_by_id(lesson_id, {"order_index": index})
            if updated is not None:
                written += 1
        return written

    async def compact_order_indexes(self, language: Language) -> int:
        """Re-sequence a partition to 0..N-1 keeping (order_index, created_at) order.

        Returns:
            Number of lessons whose index changed (0 when already contiguous)
        """
        lessons = await self.list_by_language(language)
        written = 0
        for index, lesson in enumerate(lessons):
            if lesson.order_index == index:
                continue
            updated = await self.update_by_id(lesson.id, {"order_index": index})
            if updated is not None:
                written += 1
        return written


class PhraseRepository(Repository[Phrase]):
    @abstractmethod
    async def list(
        self,
        status: Optional[Status] = None,
        lesson_id: Optional[str] = None,
        lesson_ids: Optional[List[str]] = None,
        language: Optional[Language] = None,
    ) -> List[Phrase]:
        """Active phrases, newest first."""

    async def find_by_lesson_id(self, lesson_id: str) -> List[Phrase]:
        phrases = await self.list(lesson_id=lesson_id)
        return sorted(phrases, key=lambda phrase: phrase.created_at)

    @abstractmethod
    async def unlink_lesson(self, entity_id: str, lesson_id: str, now: datetime) -> Optional[Phrase]:
        """Atomically drop ``lesson_id`` from lesson_ids.

        A phrase left without lessons is soft-deleted with ``now`` in the same
        write. Returns None when the phrase is missing or already deleted.
        """


class ProverbRepository(Repository[Proverb]):
    @abstractmethod
    async def list(
        self,
        status: Optional[Status] = None,
        language: Optional[Language] = None,
        lesson_id: Optional[str] = None,
        lesson_ids: Optional[List[str]] = None,
    ) -> List[Proverb]:
        """Active proverbs, newest first."""

    async def find_by_lesson_id(self, lesson_id: str) -> List[Proverb]:
        return await self.list(lesson_id=lesson_id)

    @abstractmethod
    async def find_reusable(self, language: Language, text: str) -> Optional[Proverb]:
        """Active proverb of ``language`` whose normalized text matches ``text``."""

    @abstractmethod
    async def unlink_lesson(self, entity_id: str, lesson_id: str, now: datetime) -> Optional[Proverb]:
        """Same contract as ``PhraseRepository.unlink_lesson``."""


class QuestionRepository(Repository[Question]):
    @abstractmethod
    async def list(
        self,
        lesson_id: Optional[str] = None,
        lesson_ids: Optional[List[str]] = None,
        phrase_id: Optional[str] = None,
        type: Optional[QuestionType] = None,
        status: Optional[Status] = None,
    ) -> List[Question]:
        """Active questions, newest first."""

    async def find_by_lesson_id(self, lesson_id: str) -> List[Question]:
        return await self.list(lesson_id=lesson_id)

    async def find_by_phrase_id(self, phrase_id: str) -> List[Question]:
        return await self.list(phrase_id=phrase_id)


class ProfileRepository(ABC, Generic[P]):
    @abstractmethod
    async def find_by_user_id(self, user_id: str) -> Optional[P]:
        """Profile for ``user_id`` or None."""

    @abstractmethod
    async def create(self, profile: P) -> P:
        """Persist a profile."""

    @abstractmethod
    async def update_active(self, profile_id: str, is_active: bool) -> Optional[P]:
        """Toggle a profile's active flag."""


class TutorProfileRepository(ProfileRepository[TutorProfile]):
    pass


class VoiceArtistProfileRepository(ProfileRepository[VoiceArtistProfile]):
    pass


class VoiceSubmissionRepository(ABC):
    """Voice-audio submissions. Reviews are updates; submissions are never deleted."""

    @abstractmethod
    async def create(self, submission: VoiceAudioSubmission) -> VoiceAudioSubmission:
        """Persist a new submission."""

    @abstractmethod
    async def find_by_id(self, submission_id: str) -> Optional[VoiceAudioSubmission]:
        """Submission by id or None."""

    @abstractmethod
    async def list(
        self,
        status: Optional[SubmissionStatus] = None,
        voice_artist_user_id: Optional[str] = None,
        phrase_id: Optional[str] = None,
        language: Optional[Language] = None,
    ) -> List[VoiceAudioSubmission]:
        """Submissions matching every given filter, newest first."""

    @abstractmethod
    async def update_by_id(
        self,
        submission_id: str,
        changes: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> Optional[VoiceAudioSubmission]:
        """Apply ``changes`` if ``expected`` still holds.

        Returns None when the submission is missing.

        Raises:
            PreconditionFailedError: if an expected field changed
        """


@dataclass
class EntityStore:
    """The single shared mutable resource: one repository per entity."""

    lessons: LessonRepository
    phrases: PhraseRepository
    proverbs: ProverbRepository
    questions: QuestionRepository
    tutor_profiles: TutorProfileRepository
    voice_profiles: VoiceArtistProfileRepository
    voice_submissions: VoiceSubmissionRepository
