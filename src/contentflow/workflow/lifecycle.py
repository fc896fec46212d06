"""
Draft, finished and published transitions for every authored entity.

Transitions are checked against the status the caller last read and then
written as a conditional update that expects that same status, so two
writers racing on one entity cannot both succeed.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from contentflow.errors import NotFoundError, Reason, StateConflictError
from contentflow.storage.base import EntityStore, Repository
from contentflow.validators.schema import (
    Lesson,
    Phrase,
    Proverb,
    Question,
    Status,
    utc_now,
)

logger = logging.getLogger(__name__)

Authored = Union[Lesson, Phrase, Proverb, Question]
Reusable = Union[Phrase, Proverb]

NOT_FOUND_REASONS = {
    Lesson: Reason.LESSON_NOT_FOUND,
    Phrase: Reason.PHRASE_NOT_FOUND,
    Proverb: Reason.PROVERB_NOT_FOUND,
    Question: Reason.QUESTION_NOT_FOUND,
}

NOT_FINISHED_REASONS = {
    Lesson: Reason.NOT_FINISHED,
    Phrase: Reason.PHRASE_NOT_FINISHED,
    Proverb: Reason.PROVERB_NOT_FINISHED,
    Question: Reason.QUESTION_NOT_FINISHED,
}


class LifecycleStateMachine:
    """Enforces transition rules and cross-entity publish gating."""

    def __init__(self, store: EntityStore):
        self.store = store

    def _repository(self, entity: Authored) -> Repository:
        repositories = {
            Lesson: self.store.lessons,
            Phrase: self.store.phrases,
            Proverb: self.store.proverbs,
            Question: self.store.questions,
        }
        return repositories[type(entity)]

    async def _transition(
        self,
        entity: Authored,
        changes: Dict[str, Any],
        action: str,
    ) -> Authored:
        updated = await self._repository(entity).update_by_id(
            entity.id, changes, expected={"status": entity.status}
        )
        if updated is None:
            raise NotFoundError(NOT_FOUND_REASONS[type(entity)], f"{type(entity).__name__} {entity.id} not found")
        logger.info(
            f"{type(entity).__name__} {entity.id}: {action} "
            f"({entity.status.value} -> {updated.status.value})"
        )
        return updated

    @staticmethod
    def _reject_published(entity: Authored) -> None:
        if entity.status == Status.PUBLISHED:
            raise StateConflictError(
                Reason.ALREADY_PUBLISHED, f"{type(entity).__name__} {entity.id} is already published"
            )

    async def finish(self, entity: Authored) -> Authored:
        """Move a draft entity to finished.

        Raises:
            StateConflictError: already_finished or already_published
            NotFoundError: If the entity vanished before the write
        """
        self._reject_published(entity)
        if entity.status == Status.FINISHED:
            raise StateConflictError(
                Reason.ALREADY_FINISHED, f"{type(entity).__name__} {entity.id} is already finished"
            )
        return await self._transition(entity, {"status": Status.FINISHED}, "finish")

    async def publish_lesson(self, lesson: Lesson, now: Optional[datetime] = None) -> Lesson:
        """Publish a draft or finished lesson and stamp published_at.

        Lessons publish regardless of the status of their phrases, proverbs and
        questions; draft content stays visible to authors only.
        """
        self._reject_published(lesson)
        changes = {"status": Status.PUBLISHED, "published_at": now or utc_now()}
        return await self._transition(lesson, changes, "publish")

    async def _publish_reusable(self, entity: Reusable, reviewed_by_admin: Optional[bool]) -> Reusable:
        self._reject_published(entity)
        if entity.status != Status.FINISHED:
            raise StateConflictError(
                NOT_FINISHED_REASONS[type(entity)],
                f"{type(entity).__name__} {entity.id} must be finished before publishing",
            )
        changes: Dict[str, Any] = {"status": Status.PUBLISHED}
        if entity.ai_meta.generated_by_ai:
            changes["ai_meta"] = entity.ai_meta.model_copy(
                update={"reviewed_by_admin": bool(reviewed_by_admin)}
            )
        return await self._transition(entity, changes, "publish")

    async def publish_phrase(self, phrase: Phrase, reviewed_by_admin: Optional[bool] = None) -> Phrase:
        """Publish a finished phrase.

        Args:
            phrase: Phrase as last read by the caller
            reviewed_by_admin: Reviewer flag recorded on AI-generated phrases

        Raises:
            StateConflictError: phrase_not_finished or already_published
        """
        return await self._publish_reusable(phrase, reviewed_by_admin)

    async def publish_proverb(self, proverb: Proverb, reviewed_by_admin: Optional[bool] = None) -> Proverb:
        return await self._publish_reusable(proverb, reviewed_by_admin)

    async def publish_question(self, question: Question) -> Question:
        """Publish a finished question whose phrase is already published.

        Raises:
            StateConflictError: question_not_finished when the question itself is
                not ready, linked_phrase_must_be_published when its phrase is not
            NotFoundError: phrase_not_found when the linked phrase is gone
        """
        self._reject_published(question)
        if question.status != Status.FINISHED:
            raise StateConflictError(
                Reason.QUESTION_NOT_FINISHED, f"Question {question.id} must be finished before publishing"
            )

        phrase = await self.store.phrases.find_by_id(question.phrase_id)
        if phrase is None:
            raise NotFoundError(Reason.PHRASE_NOT_FOUND, f"Phrase {question.phrase_id} not found")
        if phrase.status != Status.PUBLISHED:
            raise StateConflictError(
                Reason.LINKED_PHRASE_MUST_BE_PUBLISHED,
                f"Phrase {phrase.id} must be published before question {question.id}",
            )
        return await self._transition(question, {"status": Status.PUBLISHED}, "publish")

    async def send_back_to_tutor(self, question: Question) -> Question:
        """Return a finished question to draft for rework."""
        if question.status != Status.FINISHED:
            raise StateConflictError(
                Reason.QUESTION_MUST_BE_FINISHED,
                f"Question {question.id} must be finished to send it back",
            )
        return await self._transition(question, {"status": Status.DRAFT}, "send back to tutor")

    async def reopen(self, entity: Reusable) -> Reusable:
        """Explicitly return a finished phrase or proverb to draft."""
        self._reject_published(entity)
        if entity.status != Status.FINISHED:
            raise StateConflictError(
                NOT_FINISHED_REASONS[type(entity)],
                f"{type(entity).__name__} {entity.id} is not finished",
            )
        return await self._transition(entity, {"status": Status.DRAFT}, "reopen")

    def edit_changes(self, entity: Authored) -> Dict[str, Any]:
        """Status changes implied by a content edit of ``entity``.

        Editing a finished phrase or proverb reopens it; published content is
        read-only.

        Raises:
            StateConflictError: already_published
        """
        self._reject_published(entity)
        if isinstance(entity, (Phrase, Proverb)) and entity.status == Status.FINISHED:
            return {"status": Status.DRAFT}
        return {}
