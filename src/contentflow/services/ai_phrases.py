"""AI-assisted phrase generation and enhancement."""

import logging
from typing import List, Optional

from contentflow.constants import DEFAULT_PHRASE_DIFFICULTY
from contentflow.errors import NotFoundError, Reason, StateConflictError, ValidationFailedError
from contentflow.services.lessons import LessonService
from contentflow.services.phrases import PhraseService
from contentflow.storage.base import EntityStore
from contentflow.utils.ai_content_client import AiContentClient
from contentflow.utils.logging_config import workflow_stage_logger
from contentflow.validators.schema import (
    AiMeta,
    LessonContext,
    Phrase,
    PhraseCreate,
    Status,
)
from contentflow.workflow.sanitizer import AiContentSanitizer
from contentflow.workflow.scope import Scope

logger = logging.getLogger(__name__)


class AiPhraseService:
    """Routes LLM phrase output through the sanitizer into the regular phrase path."""

    def __init__(
        self,
        store: EntityStore,
        lessons: LessonService,
        phrases: PhraseService,
        ai_client: AiContentClient,
        sanitizer: Optional[AiContentSanitizer] = None,
    ):
        self.store = store
        self.lessons = lessons
        self.phrases = phrases
        self.ai_client = ai_client
        self.sanitizer = sanitizer or AiContentSanitizer()

    async def generate_for_lesson(
        self,
        lesson_id: str,
        scope: Scope,
        seed_words: Optional[List[str]] = None,
        extra_instructions: Optional[str] = None,
    ) -> List[Phrase]:
        """
        Generate, sanitize and store new draft phrases for a lesson.

        Args:
            lesson_id: Target lesson
            scope: Caller scope
            seed_words: Optional words to build phrases around
            extra_instructions: Optional free-form guidance for the LLM

        Returns:
            Created phrases in generation order

        Raises:
            NotFoundError: lesson_not_found
            StateConflictError: no_new_phrases_generated when nothing new survives
            UpstreamFailureError: llm_generation_failed
        """
        lesson = await self.lessons.get(lesson_id, scope)

        with workflow_stage_logger("ai_phrase_generation", lesson_id=lesson.id):
            existing = await self.store.phrases.find_by_lesson_id(lesson.id)
            raw_items = await self.ai_client.generate_phrases(
                LessonContext(
                    lesson_id=lesson.id,
                    language=lesson.language,
                    level=lesson.level,
                    title=lesson.title,
                    description=lesson.description,
                ),
                seed_words=[word.strip() for word in seed_words or [] if word and word.strip()],
                existing_phrases=[phrase.text for phrase in existing],
                extra_instructions=extra_instructions,
            )

            sanitized = self.sanitizer.sanitize_batch(
                raw_items, self.sanitizer.existing_phrase_keys(existing)
            )
            if not sanitized:
                raise StateConflictError(
                    Reason.NO_NEW_PHRASES_GENERATED,
                    f"LLM returned no new valid phrases for lesson {lesson.id}",
                    details={"raw_count": len(raw_items)},
                )

            created = []
            for item in self.sanitizer.tag(sanitized, self.ai_client.model_name):
                created.append(
                    await self.phrases.create(
                        PhraseCreate(
                            lesson_ids=[lesson.id],
                            text=item.text,
                            translation=item.translation,
                            pronunciation=item.pronunciation or "",
                            explanation=item.explanation or "",
                            examples=item.examples or [],
                            difficulty=item.difficulty or DEFAULT_PHRASE_DIFFICULTY,
                            ai_meta=item.ai_meta,
                        ),
                        scope,
                    )
                )

        logger.info(f"Generated {len(created)} phrases for lesson {lesson.id} ({len(raw_items)} raw)")
        return created

    async def enhance_phrase(self, phrase_id: str, scope: Scope) -> Phrase:
        """
        Fill in pronunciation, explanation, examples and difficulty of a draft phrase.

        Raises:
            StateConflictError: cannot_edit_non_draft
            ValidationFailedError: phrase_has_no_lessons or no_valid_phrase_updates
            UpstreamFailureError: llm_generation_failed
        """
        phrase = await self.phrases.get(phrase_id, scope)
        if phrase.status != Status.DRAFT:
            raise StateConflictError(
                Reason.CANNOT_EDIT_NON_DRAFT, f"Phrase {phrase.id} is {phrase.status.value}"
            )

        lessons = await self.store.lessons.find_by_ids(phrase.lesson_ids)
        if not lessons:
            raise ValidationFailedError(
                Reason.PHRASE_HAS_NO_LESSONS, f"Phrase {phrase.id} has no active lessons"
            )

        raw_update = await self.ai_client.enhance_phrase(
            phrase.text, phrase.translation, phrase.language, lessons[0].level
        )
        updates = self.sanitizer.sanitize_enhancement(phrase, raw_update)
        if updates is None:
            raise ValidationFailedError(
                Reason.NO_VALID_PHRASE_UPDATES, f"LLM returned no usable fields for phrase {phrase.id}"
            )

        updates["ai_meta"] = AiMeta(
            generated_by_ai=True, model=self.ai_client.model_name, reviewed_by_admin=False
        )
        updated = await self.store.phrases.update_by_id(
            phrase.id, updates, expected={"status": Status.DRAFT}
        )
        if updated is None:
            raise NotFoundError(Reason.PHRASE_NOT_FOUND, f"Phrase {phrase_id} not found")

        logger.info(f"Enhanced phrase {phrase.id}: {sorted(key for key in updates if key != 'ai_meta')}")
        return updated
