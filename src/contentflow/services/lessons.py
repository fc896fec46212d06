"""Lesson use cases: authoring, ordering, lifecycle and deletion."""

import logging
from typing import Any, Dict, List, Optional, Union

from contentflow.errors import NotFoundError, Reason, StateConflictError
from contentflow.services.base import (
    changes_from,
    converting_validation_errors,
    parse_input,
    resolve_language,
)
from contentflow.storage.base import EntityStore
from contentflow.validators.schema import (
    CascadeReport,
    Language,
    Lesson,
    LessonCreate,
    LessonUpdate,
    Status,
)
from contentflow.workflow.cascade import CascadeDeletionCoordinator
from contentflow.workflow.lifecycle import LifecycleStateMachine
from contentflow.workflow.ordering import OrderIndexManager
from contentflow.workflow.partitions import PartitionSerializer, partition_guard
from contentflow.workflow.scope import Scope

logger = logging.getLogger(__name__)


class LessonService:
    """Lesson operations narrowed by the caller's scope."""

    def __init__(
        self,
        store: EntityStore,
        ordering: OrderIndexManager,
        lifecycle: LifecycleStateMachine,
        cascade: CascadeDeletionCoordinator,
        partitions: Optional[PartitionSerializer] = None,
    ):
        self.store = store
        self.ordering = ordering
        self.lifecycle = lifecycle
        self.cascade = cascade
        self.partitions = partition_guard(partitions)

    async def create(self, data: Union[LessonCreate, Dict[str, Any]], scope: Scope) -> Lesson:
        """
        Create a draft lesson appended to the end of its language partition.

        Args:
            data: LessonCreate or its dict form
            scope: Caller scope

        Returns:
            Created lesson
        """
        lesson_input = parse_input(LessonCreate, data)
        language = resolve_language(scope, lesson_input.language)

        async with self.partitions.hold(language):
            order_index = await self.ordering.next_index(language)
            with converting_validation_errors():
                lesson = await self.store.lessons.create(
                    Lesson(
                        title=lesson_input.title,
                        language=language,
                        level=lesson_input.level,
                        order_index=order_index,
                        description=(lesson_input.description or "").strip(),
                        topics=lesson_input.topics,
                        status=Status.DRAFT,
                        created_by=lesson_input.created_by,
                    )
                )

        logger.info(f"Created lesson {lesson.id} ({language.value}) at index {order_index}")
        return lesson

    async def list(
        self,
        scope: Scope,
        language: Optional[Language] = None,
        status: Optional[Status] = None,
    ) -> List[Lesson]:
        return await self.store.lessons.list(language=scope.filter_language(language), status=status)

    async def get(self, lesson_id: str, scope: Scope) -> Lesson:
        """Fetch an active lesson in scope; anything else is lesson_not_found."""
        lesson = await self.store.lessons.find_by_id(lesson_id)
        if lesson is None:
            raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lesson {lesson_id} not found")
        scope.ensure(lesson.language, Reason.LESSON_NOT_FOUND, lesson_id)
        return lesson

    async def update(
        self,
        lesson_id: str,
        data: Union[LessonUpdate, Dict[str, Any]],
        scope: Scope,
    ) -> Lesson:
        """
        Update editable lesson fields.

        A language change moves the lesson to the end of the new partition and
        compacts the old one. It is refused while active phrases or proverbs
        still link the lesson, since they must share its language.

        Raises:
            NotFoundError: lesson_not_found
            StateConflictError: lesson_has_content
            ValidationFailedError: invalid_input
        """
        update = parse_input(LessonUpdate, data)
        lesson = await self.get(lesson_id, scope)
        changes = changes_from(update)
        if "title" in changes:
            changes["title"] = changes["title"].strip()

        new_language = changes.pop("language", None)
        if new_language is None or new_language == lesson.language:
            with converting_validation_errors():
                updated = await self.store.lessons.update_by_id(lesson.id, changes)
            if updated is None:
                raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lesson {lesson_id} not found")
            return updated

        return await self._move(lesson, resolve_language(scope, new_language), changes)

    async def _move(self, lesson: Lesson, new_language: Language, changes: Dict[str, Any]) -> Lesson:
        await self._ensure_no_content(lesson.id)

        async with self.partitions.hold(lesson.language, new_language):
            changes["language"] = new_language
            changes["order_index"] = await self.ordering.next_index(new_language)
            with converting_validation_errors():
                moved = await self.store.lessons.update_by_id(
                    lesson.id, changes, expected={"language": lesson.language}
                )
            if moved is None:
                raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lesson {lesson.id} not found")

            try:
                await self._ensure_no_content(lesson.id)
            except StateConflictError:
                # Content linked between the check and the write: put the lesson back
                await self.store.lessons.update_by_id(
                    lesson.id,
                    {name: getattr(lesson, name) for name in changes},
                    expected={"language": new_language},
                )
                await self.ordering.compact(new_language)
                await self.ordering.compact(lesson.language)
                logger.warning(f"Rolled back move of lesson {lesson.id}: content was linked during the move")
                raise
            await self.ordering.compact(lesson.language)

        logger.info(
            f"Moved lesson {lesson.id} from {lesson.language.value} to {new_language.value} "
            f"at index {moved.order_index}"
        )
        return moved

    async def _ensure_no_content(self, lesson_id: str) -> None:
        phrases = await self.store.phrases.find_by_lesson_id(lesson_id)
        proverbs = await self.store.proverbs.find_by_lesson_id(lesson_id)
        if phrases or proverbs:
            raise StateConflictError(
                Reason.LESSON_HAS_CONTENT,
                f"Lesson {lesson_id} still has {len(phrases)} phrases and {len(proverbs)} proverbs",
            )

    async def delete(self, lesson_id: str, scope: Scope) -> CascadeReport:
        """Soft-delete a lesson with full cascade and partition compaction."""
        lesson = await self.get(lesson_id, scope)
        async with self.partitions.hold(lesson.language):
            return await self.cascade.delete_lesson(lesson.id)

    async def bulk_delete(self, lesson_ids: List[str], scope: Scope) -> List[CascadeReport]:
        """Delete lessons sequentially; absent or out-of-scope ids are skipped."""
        reports = []
        for lesson_id in lesson_ids:
            try:
                reports.append(await self.delete(lesson_id, scope))
            except NotFoundError:
                logger.info(f"Bulk delete skipping lesson {lesson_id}: not found")
        return reports

    async def reorder(self, language: Language, ordered_ids: List[str], scope: Scope) -> List[Lesson]:
        """Reorder a whole language partition (see OrderIndexManager.reorder)."""
        scope.ensure(language, Reason.LESSON_NOT_FOUND)
        async with self.partitions.hold(language):
            return await self.ordering.reorder(language, ordered_ids)

    async def compact(self, language: Language, scope: Scope) -> int:
        scope.ensure(language, Reason.LESSON_NOT_FOUND)
        async with self.partitions.hold(language):
            return await self.ordering.compact(language)

    async def finish(self, lesson_id: str, scope: Scope) -> Lesson:
        lesson = await self.get(lesson_id, scope)
        return await self.lifecycle.finish(lesson)

    async def publish(self, lesson_id: str, scope: Scope) -> Lesson:
        lesson = await self.get(lesson_id, scope)
        return await self.lifecycle.publish_lesson(lesson)
