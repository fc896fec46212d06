"""Contiguous per-language lesson ordering."""

import logging
from typing import List

from contentflow.errors import Reason, StateConflictError
from contentflow.storage.base import LessonRepository
from contentflow.validators.schema import Language, Lesson

logger = logging.getLogger(__name__)


class OrderIndexManager:
    """Keeps order_index values of each language partition at 0..N-1.

    Every method re-reads the partition from the store; no ordering state is
    cached between calls.
    """

    def __init__(self, lessons: LessonRepository):
        self.lessons = lessons

    async def next_index(self, language: Language) -> int:
        """Index for a lesson appended to ``language`` (0 for an empty partition)."""
        last = await self.lessons.find_last_order_index(language)
        return 0 if last is None else last + 1

    async def reorder(self, language: Language, ordered_ids: List[str]) -> List[Lesson]:
        """
        Assign index ``i`` to ``ordered_ids[i]``.

        Args:
            language: Partition being reordered
            ordered_ids: Exactly the active lesson ids of the partition

        Returns:
            Partition lessons in their new order

        Raises:
            StateConflictError: reorder_set_mismatch when ``ordered_ids`` is not
                a duplicate-free permutation of the partition (nothing written)
        """
        partition = await self.lessons.list_by_language(language)
        current_ids = {lesson.id for lesson in partition}

        if len(set(ordered_ids)) != len(ordered_ids) or set(ordered_ids) != current_ids:
            missing = sorted(current_ids - set(ordered_ids))
            extra = sorted(set(ordered_ids) - current_ids)
            logger.warning(
                f"Rejected reorder of {language.value}: missing={missing} extra={extra} "
                f"submitted={len(ordered_ids)} active={len(current_ids)}"
            )
            raise StateConflictError(
                Reason.REORDER_SET_MISMATCH,
                "Lesson ids must match the current lessons of the language exactly",
                details={"missing": missing, "extra": extra},
            )

        written = await self.lessons.reorder_by_ids(list(ordered_ids))
        logger.info(f"Reordered {language.value} partition ({written} lessons moved)")
        return await self.lessons.list_by_language(language)

    async def compact(self, language: Language) -> int:
        """Close gaps left by deletions; returns the number of lessons rewritten."""
        written = await self.lessons.compact_order_indexes(language)
        if written:
            logger.info(f"Compacted {language.value} partition ({written} lessons re-indexed)")
        return written

    async def verify(self, language: Language) -> bool:
        """True when the partition's indexes are exactly 0..N-1."""
        partition = await self.lessons.list_by_language(language)
        indexes = sorted(lesson.order_index for lesson in partition)
        return indexes == list(range(len(partition)))
