"""Question use cases."""

import logging
from typing import Any, Dict, List, Optional, Union

from contentflow.errors import NotFoundError, Reason, StateConflictError, ValidationFailedError
from contentflow.services.base import changes_from, converting_validation_errors, parse_input
from contentflow.storage.base import EntityStore
from contentflow.validators.schema import (
    Lesson,
    Phrase,
    Question,
    QuestionCreate,
    QuestionType,
    QuestionUpdate,
    Status,
    utc_now,
)
from contentflow.workflow.lifecycle import LifecycleStateMachine
from contentflow.workflow.scope import Scope

logger = logging.getLogger(__name__)


class QuestionService:
    """Question operations; a question's phrase must be linked to its lesson."""

    def __init__(self, store: EntityStore, lifecycle: LifecycleStateMachine):
        self.store = store
        self.lifecycle = lifecycle

    async def _lesson_in_scope(self, lesson_id: str, scope: Scope) -> Lesson:
        lesson = await self.store.lessons.find_by_id(lesson_id)
        if lesson is None:
            raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lesson {lesson_id} not found")
        scope.ensure(lesson.language, Reason.LESSON_NOT_FOUND, lesson_id)
        return lesson

    async def _linked_phrase(self, phrase_id: str, lesson: Lesson) -> Phrase:
        phrase = await self.store.phrases.find_by_id(phrase_id)
        if phrase is None or phrase.language != lesson.language:
            raise NotFoundError(Reason.PHRASE_NOT_FOUND, f"Phrase {phrase_id} not found")
        if lesson.id not in phrase.lesson_ids:
            raise ValidationFailedError(
                Reason.PHRASE_NOT_IN_LESSON,
                f"Phrase {phrase_id} is not linked to lesson {lesson.id}",
            )
        return phrase

    async def create(self, data: Union[QuestionCreate, Dict[str, Any]], scope: Scope) -> Question:
        """
        Create a draft question for a (lesson, phrase) pair.

        Raises:
            NotFoundError: lesson_not_found or phrase_not_found
            StateConflictError: cannot_add_draft_to_published_lesson
            ValidationFailedError: phrase_not_in_lesson or invalid_input
        """
        question_input = parse_input(QuestionCreate, data)
        lesson = await self._lesson_in_scope(question_input.lesson_id, scope)
        if lesson.status == Status.PUBLISHED:
            raise StateConflictError(
                Reason.CANNOT_ADD_DRAFT_TO_PUBLISHED_LESSON,
                f"Lesson {lesson.id} is published",
            )
        await self._linked_phrase(question_input.phrase_id, lesson)

        with converting_validation_errors():
            question = await self.store.questions.create(
                Question(**question_input.model_dump(), status=Status.DRAFT)
            )
        logger.info(f"Created question {question.id} ({question.subtype.value}) in lesson {lesson.id}")
        return question

    async def list(
        self,
        scope: Scope,
        lesson_id: Optional[str] = None,
        type: Optional[QuestionType] = None,
        status: Optional[Status] = None,
    ) -> List[Question]:
        if lesson_id is not None:
            lesson = await self._lesson_in_scope(lesson_id, scope)
            return await self.store.questions.list(lesson_id=lesson.id, type=type, status=status)
        if scope.is_unrestricted:
            return await self.store.questions.list(type=type, status=status)
        lessons = await self.store.lessons.list_by_language(scope.language)
        return await self.store.questions.list(
            lesson_ids=[lesson.id for lesson in lessons], type=type, status=status
        )

    async def get(self, question_id: str, scope: Scope) -> Question:
        """Fetch a question whose lesson is active and in scope."""
        question = await self.store.questions.find_by_id(question_id)
        if question is None:
            raise NotFoundError(Reason.QUESTION_NOT_FOUND, f"Question {question_id} not found")
        lesson = await self.store.lessons.find_by_id(question.lesson_id)
        if lesson is None or not scope.allows(lesson.language):
            raise NotFoundError(Reason.QUESTION_NOT_FOUND, f"Question {question_id} not found")
        return question

    async def update(
        self,
        question_id: str,
        data: Union[QuestionUpdate, Dict[str, Any]],
        scope: Scope,
    ) -> Question:
        """Edit a draft or finished question; relinking checks the new phrase."""
        update = parse_input(QuestionUpdate, data)
        question = await self.get(question_id, scope)
        changes = changes_from(update)
        changes.update(self.lifecycle.edit_changes(question))

        if "phrase_id" in changes:
            lesson = await self._lesson_in_scope(question.lesson_id, scope)
            await self._linked_phrase(changes["phrase_id"], lesson)

        with converting_validation_errors():
            updated = await self.store.questions.update_by_id(
                question.id, changes, expected={"status": question.status}
            )
        if updated is None:
            raise NotFoundError(Reason.QUESTION_NOT_FOUND, f"Question {question_id} not found")
        return updated

    async def delete(self, question_id: str, scope: Scope) -> Question:
        question = await self.get(question_id, scope)
        deleted = await self.store.questions.soft_delete_by_id(question.id, utc_now())
        if deleted is None:
            raise NotFoundError(Reason.QUESTION_NOT_FOUND, f"Question {question_id} not found")
        return deleted

    async def finish(self, question_id: str, scope: Scope) -> Question:
        return await self.lifecycle.finish(await self.get(question_id, scope))

    async def publish(self, question_id: str, scope: Scope) -> Question:
        return await self.lifecycle.publish_question(await self.get(question_id, scope))

    async def send_back_to_tutor(self, question_id: str, scope: Scope) -> Question:
        return await self.lifecycle.send_back_to_tutor(await self.get(question_id, scope))
