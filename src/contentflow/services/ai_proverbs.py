"""AI-assisted proverb generation for lessons."""

import logging
from typing import List, Optional

from contentflow.constants import MAX_GENERATED_PROVERBS
from contentflow.errors import Reason, StateConflictError, ValidationFailedError
from contentflow.services.lessons import LessonService
from contentflow.storage.base import EntityStore
from contentflow.utils.ai_content_client import AiContentClient
from contentflow.validators.schema import AiMeta, LessonContext, MergeOutcome, MergeResult
from contentflow.workflow.merger import ReusableEntityMerger
from contentflow.workflow.sanitizer import AiContentSanitizer
from contentflow.workflow.scope import Scope

logger = logging.getLogger(__name__)


class AiProverbService:
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

    async def generate_for_lesson(
        self,
        lesson_id: str,
        scope: Scope,
        count: Optional[int] = None,
        extra_instructions: Optional[str] = None,
    ) -> List[MergeResult]:
        """
        Generate proverbs for a lesson and merge each into the proverb catalogue.

        Proverbs already linked to the lesson are dropped; proverbs known from
        other lessons of the language are merged (linked) rather than duplicated.

        Raises:
            ValidationFailedError: invalid_input for a count outside 1..MAX_GENERATED_PROVERBS
            StateConflictError: no_new_proverbs_generated
            UpstreamFailureError: llm_generation_failed
        """
        if count is not None and not 1 <= count <= MAX_GENERATED_PROVERBS:
            raise ValidationFailedError(
                Reason.INVALID_INPUT,
                f"count must be between 1 and {MAX_GENERATED_PROVERBS}",
                details=[{"loc": ["count"], "msg": "out of range"}],
            )

        lesson = await self.lessons.get(lesson_id, scope)
        in_lesson = await self.store.proverbs.find_by_lesson_id(lesson.id)
        in_language = await self.store.proverbs.list(language=lesson.language)

        raw_items = await self.ai_client.generate_proverbs(
            LessonContext(
                lesson_id=lesson.id,
                language=lesson.language,
                level=lesson.level,
                title=lesson.title,
                description=lesson.description,
            ),
            count=count,
            existing_proverbs=[proverb.text for proverb in in_language],
            extra_instructions=extra_instructions,
        )
        sanitized = self.sanitizer.sanitize_proverbs(raw_items, [proverb.text for proverb in in_lesson])
        if count is not None:
            sanitized = sanitized[:count]
        if not sanitized:
            raise StateConflictError(
                Reason.NO_NEW_PROVERBS_GENERATED,
                f"LLM returned no new proverbs for lesson {lesson.id}",
            )

        ai_meta = AiMeta(generated_by_ai=True, model=self.ai_client.model_name, reviewed_by_admin=False)
        results = []
        for item in sanitized:
            results.append(
                await self.merger.find_or_create_proverb(
                    language=lesson.language,
                    text=item.text,
                    lesson_ids=[lesson.id],
                    scope=scope,
                    translation=item.translation,
                    context_note=item.context_note,
                    ai_meta=ai_meta,
                )
            )

        merged = sum(1 for result in results if result.outcome == MergeOutcome.MERGED)
        logger.info(
            f"Generated proverbs for lesson {lesson.id}: created={len(results) - merged} merged={merged}"
        )
        return results
