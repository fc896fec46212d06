"""Soft-delete propagation from lessons and phrases to dependent content."""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from contentflow.errors import NotFoundError, Reason
from contentflow.storage.base import EntityStore
from contentflow.utils.logging_config import workflow_stage_logger
from contentflow.validators.schema import (
    CascadeItemError,
    CascadeReport,
    Phrase,
    utc_now,
)
from contentflow.workflow.ordering import OrderIndexManager

logger = logging.getLogger(__name__)


class CascadeDeletionCoordinator:
    """Propagates soft-deletes using lesson reference counts.

    Phrases and proverbs shared with other lessons only lose the link; those
    left without any lesson are soft-deleted with the lesson's timestamp.
    Steps are not transactional: a failure on one dependent is recorded in the
    report and the remaining steps still run.
    """

    def __init__(self, store: EntityStore, ordering: OrderIndexManager):
        self.store = store
        self.ordering = ordering

    async def delete_lesson(self, lesson_id: str, now: Optional[datetime] = None) -> CascadeReport:
        """
        Soft-delete a lesson and everything that depends on it.

        Order: lesson, phrase links, proverb links, questions, then compaction
        of the lesson's language partition.

        Args:
            lesson_id: Lesson to delete
            now: Deletion timestamp shared by every row deleted in the cascade

        Returns:
            CascadeReport listing unlinked and deleted dependents plus per-item errors

        Raises:
            NotFoundError: If the lesson is missing or already deleted
        """
        now = now or utc_now()

        with workflow_stage_logger("cascade_delete", lesson_id=lesson_id):
            lesson = await self.store.lessons.soft_delete_by_id(lesson_id, now)
            if lesson is None:
                raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lesson {lesson_id} not found")

            report = CascadeReport(lesson=lesson)

            for phrase in await self.store.phrases.find_by_lesson_id(lesson.id):
                try:
                    updated = await self.store.phrases.unlink_lesson(phrase.id, lesson.id, now)
                except Exception as e:
                    self._record_error(report, "phrase", phrase.id, e)
                    continue
                if updated is None:
                    continue
                if updated.is_deleted:
                    report.deleted_phrase_ids.append(updated.id)
                else:
                    report.unlinked_phrase_ids.append(updated.id)

            for proverb in await self.store.proverbs.find_by_lesson_id(lesson.id):
                try:
                    updated = await self.store.proverbs.unlink_lesson(proverb.id, lesson.id, now)
                except Exception as e:
                    self._record_error(report, "proverb", proverb.id, e)
                    continue
                if updated is None:
                    continue
                if updated.is_deleted:
                    report.deleted_proverb_ids.append(updated.id)
                else:
                    report.unlinked_proverb_ids.append(updated.id)

            for question in await self.store.questions.find_by_lesson_id(lesson.id):
                try:
                    deleted = await self.store.questions.soft_delete_by_id(question.id, now)
                except Exception as e:
                    self._record_error(report, "question", question.id, e)
                    continue
                if deleted is not None:
                    report.deleted_question_ids.append(deleted.id)

            await self.ordering.compact(lesson.language)

        logger.info(
            f"Deleted lesson {lesson.id}: phrases unlinked={len(report.unlinked_phrase_ids)} "
            f"deleted={len(report.deleted_phrase_ids)}, proverbs unlinked={len(report.unlinked_proverb_ids)} "
            f"deleted={len(report.deleted_proverb_ids)}, questions deleted={len(report.deleted_question_ids)}, "
            f"errors={len(report.errors)}"
        )
        return report

    async def delete_phrase(self, phrase_id: str, now: Optional[datetime] = None) -> Tuple[Phrase, List[str]]:
        """
        Soft-delete a phrase and every question that references it.

        Returns:
            Tuple of (deleted phrase, deleted question ids)

        Raises:
            NotFoundError: If the phrase is missing or already deleted
        """
        now = now or utc_now()
        phrase = await self.store.phrases.soft_delete_by_id(phrase_id, now)
        if phrase is None:
            raise NotFoundError(Reason.PHRASE_NOT_FOUND, f"Phrase {phrase_id} not found")

        deleted_question_ids = []
        for question in await self.store.questions.find_by_phrase_id(phrase.id):
            deleted = await self.store.questions.soft_delete_by_id(question.id, now)
            if deleted is not None:
                deleted_question_ids.append(deleted.id)

        logger.info(f"Deleted phrase {phrase.id} and {len(deleted_question_ids)} questions")
        return phrase, deleted_question_ids

    @staticmethod
    def _record_error(report: CascadeReport, entity: str, entity_id: str, error: Exception) -> None:
        logger.error(f"Cascade step failed for {entity} {entity_id}: {error}")
        report.errors.append(CascadeItemError(entity=entity, entity_id=entity_id, error=str(error)))
