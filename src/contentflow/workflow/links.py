"""Post-write check of lesson links on phrases and proverbs.

Linking validates lesson languages before the write, but a lesson can move
to another partition (or be deleted) between that read and the write. The
link is therefore re-checked after the write and undone when it went stale.
"""

import logging
from typing import List, Tuple, Union

from contentflow.errors import NotFoundError, Reason, ValidationFailedError
from contentflow.storage.base import LessonRepository, PhraseRepository, ProverbRepository
from contentflow.validators.schema import Language, utc_now

logger = logging.getLogger(__name__)


async def stale_lesson_links(
    lessons: LessonRepository, lesson_ids: List[str], language: Language
) -> Tuple[List[str], List[str]]:
    """Return (missing, moved) lesson ids among ``lesson_ids``."""
    missing, moved = [], []
    for lesson_id in lesson_ids:
        lesson = await lessons.find_by_id(lesson_id)
        if lesson is None:
            missing.append(lesson_id)
        elif lesson.language != language:
            moved.append(lesson_id)
    return missing, moved


def raise_stale_links(missing: List[str], moved: List[str], language: Language) -> None:
    if missing:
        raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lessons {missing} were deleted while linking")
    if moved:
        raise ValidationFailedError(
            Reason.LANGUAGE_MISMATCH_WITH_LESSONS,
            f"Lessons {moved} left {language.value} while linking",
            details={"language": language.value, "moved_lesson_ids": moved},
        )


async def confirm_lesson_links(
    lessons: LessonRepository,
    links: Union[PhraseRepository, ProverbRepository],
    entity_id: str,
    added_lesson_ids: List[str],
    language: Language,
) -> None:
    """
    Re-read lessons just linked to ``entity_id`` and undo the links if any
    lesson left ``language`` or disappeared since it was validated.

    Undoing goes through ``unlink_lesson``, so a row whose every link was
    added by this write ends up soft-deleted.

    Args:
        lessons: Lesson repository
        links: Phrase or proverb repository holding ``entity_id``
        entity_id: Row that was just written
        added_lesson_ids: Lesson ids the write added to the row
        language: Language of the row

    Raises:
        NotFoundError: lesson_not_found when a linked lesson was deleted
        ValidationFailedError: language_mismatch_with_lessons when a linked
            lesson moved to another language
    """
    missing, moved = await stale_lesson_links(lessons, added_lesson_ids, language)
    if not missing and not moved:
        return

    now = utc_now()
    for lesson_id in added_lesson_ids:
        await links.unlink_lesson(entity_id, lesson_id, now)
    logger.warning(f"Undid links of {entity_id} to {added_lesson_ids}: missing={missing} moved={moved}")
    raise_stale_links(missing, moved, language)
