"""AI-assisted lesson suggestion and bulk lesson generation."""

import logging
from typing import List, Optional

from contentflow.constants import MAX_BULK_LESSONS
from contentflow.errors import Reason, UpstreamFailureError, ValidationFailedError
from contentflow.services.base import resolve_language
from contentflow.services.lessons import LessonService
from contentflow.storage.base import EntityStore
from contentflow.utils.ai_content_client import AiContentClient
from contentflow.utils.logging_config import workflow_stage_logger
from contentflow.utils.text_normalization import title_key
from contentflow.validators.schema import (
    AiMeta,
    BulkError,
    BulkGenerationReport,
    BulkSkip,
    Language,
    LessonCreate,
    LessonSuggestion,
    Level,
)
from contentflow.workflow.merger import ReusableEntityMerger
from contentflow.workflow.sanitizer import AiContentSanitizer
from contentflow.workflow.scope import Scope

logger = logging.getLogger(__name__)

SKIP_EMPTY_TITLE = "empty_title"
SKIP_DUPLICATE_TITLE = "duplicate_title"


class AiLessonService:
    """Lesson outlines from the LLM, created through the regular lesson path."""

    def __init__(
        self,
        store: EntityStore,
        lessons: LessonService,
        merger: ReusableEntityMerger,
        ai_client: AiContentClient,
        sanitizer: Optional[AiContentSanitizer] = None,
    ):
        self.store = store
        self.lessons = lessons
        self.merger = merger
        self.ai_client = ai_client
        self.sanitizer = sanitizer or AiContentSanitizer()

    async def suggest_lesson(
        self,
        language: Language,
        level: Level,
        scope: Scope,
        topic: Optional[str] = None,
    ) -> LessonSuggestion:
        """
        Ask the LLM for a sanitized lesson outline.

        Raises:
            UpstreamFailureError: llm_generation_failed, including an outline without a title
        """
        language = resolve_language(scope, language)
        raw = await self.ai_client.suggest_lesson(language, level, topic)
        suggestion = self.sanitizer.sanitize_lesson_suggestion(raw)
        if suggestion is None:
            raise UpstreamFailureError(Reason.LLM_GENERATION_FAILED, "LLM lesson suggestion has no title")
        return suggestion

    @staticmethod
    def _target_topics(count: int, topics: Optional[List[str]], title: Optional[str]) -> List[Optional[str]]:
        provided = [str(topic or "").strip() for topic in topics or []]
        provided = [topic for topic in provided if topic][:MAX_BULK_LESSONS]
        if provided:
            return (provided + [None] * count)[:count]

        fallback = (title or "").strip()
        return [f"{fallback} #{idx + 1}" if fallback else None for idx in range(count)]

    async def generate_lessons_bulk(
        self,
        language: Language,
        level: Level,
        count: int,
        created_by: str,
        scope: Scope,
        topics: Optional[List[str]] = None,
        title: Optional[str] = None,
        attach_proverbs: bool = True,
    ) -> BulkGenerationReport:
        """
        Generate up to ``count`` draft lessons, one LLM outline per lesson.

        Each item is isolated: an LLM or store failure is recorded in
        ``errors`` and the batch continues. Outlines without a title, or with a
        title already used at this language and level, are recorded in
        ``skipped``.

        Args:
            language: Target language
            level: Target level
            count: Number of lessons requested (1..MAX_BULK_LESSONS)
            created_by: Authoring user id stamped on created lessons
            scope: Caller scope
            topics: One topic per lesson, in order
            title: Base title used as "<title> #n" topics when no topics are given
            attach_proverbs: Merge proverbs suggested with each outline into the lesson

        Returns:
            BulkGenerationReport
        """
        if not 1 <= count <= MAX_BULK_LESSONS:
            raise ValidationFailedError(
                Reason.INVALID_INPUT,
                f"count must be between 1 and {MAX_BULK_LESSONS}",
                details=[{"loc": ["count"], "msg": "out of range"}],
            )
        language = resolve_language(scope, language)

        existing = await self.store.lessons.list(language=language)
        known_titles = {title_key(lesson.title) for lesson in existing if lesson.level == level}
        report = BulkGenerationReport(total_requested=count)
        ai_meta = AiMeta(generated_by_ai=True, model=self.ai_client.model_name, reviewed_by_admin=False)

        with workflow_stage_logger("ai_lesson_bulk", language=language.value, level=level.value, count=count):
            for topic in self._target_topics(count, topics, title):
                try:
                    suggestion = self.sanitizer.sanitize_lesson_suggestion(
                        await self.ai_client.suggest_lesson(language, level, topic)
                    )
                    if suggestion is None:
                        report.skipped.append(BulkSkip(reason=SKIP_EMPTY_TITLE, topic=topic))
                        continue

                    key = title_key(suggestion.title)
                    if key in known_titles:
                        report.skipped.append(
                            BulkSkip(reason=SKIP_DUPLICATE_TITLE, topic=topic, title=suggestion.title)
                        )
                        continue

                    lesson = await self.lessons.create(
                        LessonCreate(
                            title=suggestion.title,
                            language=language,
                            level=level,
                            description=suggestion.description,
                            topics=[topic] if topic else [],
                            created_by=created_by,
                        ),
                        scope,
                    )
                    known_titles.add(key)
                    report.lessons.append(lesson)

                    if attach_proverbs:
                        for proverb in suggestion.proverbs:
                            report.merged_proverbs.append(
                                await self.merger.find_or_create_proverb(
                                    language=language,
                                    text=proverb.text,
                                    lesson_ids=[lesson.id],
                                    scope=scope,
                                    translation=proverb.translation,
                                    context_note=proverb.context_note,
                                    ai_meta=ai_meta,
                                )
                            )
                except Exception as e:
                    logger.error(f"Bulk lesson generation item failed: topic={topic!r} error={e}")
                    report.errors.append(BulkError(topic=topic, error=str(e) or type(e).__name__))

        logger.info(f"Bulk lesson generation finished: {report.summary()}")
        return report
