"""Phrase use cases."""

import logging
from typing import Any, Dict, List, Optional, Union

from contentflow.constants import DEFAULT_PHRASE_DIFFICULTY
from contentflow.errors import NotFoundError, Reason, ValidationFailedError
from contentflow.services.base import changes_from, converting_validation_errors, parse_input
from contentflow.storage.base import EntityStore
from contentflow.utils.logging_config import workflow_stage_logger
from contentflow.validators.schema import (
    AiMeta,
    Language,
    Lesson,
    Phrase,
    PhraseAudio,
    PhraseCreate,
    PhraseUpdate,
    Status,
    utc_now,
)
from contentflow.workflow.cascade import CascadeDeletionCoordinator
from contentflow.workflow.lifecycle import LifecycleStateMachine
from contentflow.workflow.links import confirm_lesson_links, raise_stale_links, stale_lesson_links
from contentflow.workflow.scope import Scope

logger = logging.getLogger(__name__)


class PhraseService:
    """Phrase operations; a phrase always shares the language of its lessons."""

    def __init__(
        self,
        store: EntityStore,
        lifecycle: LifecycleStateMachine,
        cascade: CascadeDeletionCoordinator,
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.cascade = cascade

    async def load_lessons(self, lesson_ids: List[str], scope: Scope) -> List[Lesson]:
        """
        Load lessons for linking and check they share one language.

        Raises:
            NotFoundError: lesson_not_found for missing or out-of-scope lessons
            ValidationFailedError: language_mismatch_with_lessons
        """
        lessons = []
        for lesson_id in dict.fromkeys(lesson_ids):
            lesson = await self.store.lessons.find_by_id(lesson_id)
            if lesson is None:
                raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lesson {lesson_id} not found")
            scope.ensure(lesson.language, Reason.LESSON_NOT_FOUND, lesson_id)
            lessons.append(lesson)

        languages = {lesson.language for lesson in lessons}
        if len(languages) != 1:
            raise ValidationFailedError(
                Reason.LANGUAGE_MISMATCH_WITH_LESSONS,
                "Linked lessons must share one language",
                details={"lesson_languages": sorted(language.value for language in languages)},
            )
        return lessons

    @staticmethod
    def _require_language(lessons: List[Lesson], language: Language) -> None:
        if lessons[0].language != language:
            raise ValidationFailedError(
                Reason.LANGUAGE_MISMATCH_WITH_LESSONS,
                f"Lessons use {lessons[0].language.value}, phrase uses {language.value}",
            )

    async def create(self, data: Union[PhraseCreate, Dict[str, Any]], scope: Scope) -> Phrase:
        """
        Create a draft phrase linked to one or more lessons of one language.

        Args:
            data: PhraseCreate or its dict form
            scope: Caller scope

        Returns:
            Created phrase
        """
        phrase_input = parse_input(PhraseCreate, data)
        lessons = await self.load_lessons(phrase_input.lesson_ids, scope)

        with converting_validation_errors():
            phrase = await self.store.phrases.create(
                Phrase(
                    lesson_ids=[lesson.id for lesson in lessons],
                    language=lessons[0].language,
                    text=phrase_input.text.strip(),
                    translation=phrase_input.translation.strip(),
                    pronunciation=phrase_input.pronunciation.strip(),
                    explanation=phrase_input.explanation.strip(),
                    examples=phrase_input.examples,
                    difficulty=phrase_input.difficulty or DEFAULT_PHRASE_DIFFICULTY,
                    ai_meta=phrase_input.ai_meta or AiMeta(),
                    status=Status.DRAFT,
                )
            )
        await confirm_lesson_links(
            self.store.lessons, self.store.phrases, phrase.id, phrase.lesson_ids, phrase.language
        )
        logger.info(f"Created phrase {phrase.id} in lessons {phrase.lesson_ids}")
        return phrase

    async def list(
        self,
        scope: Scope,
        lesson_id: Optional[str] = None,
        status: Optional[Status] = None,
    ) -> List[Phrase]:
        if lesson_id is not None:
            lesson = await self.store.lessons.find_by_id(lesson_id)
            if lesson is None:
                raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lesson {lesson_id} not found")
            scope.ensure(lesson.language, Reason.LESSON_NOT_FOUND, lesson_id)
            return await self.store.phrases.list(status=status, lesson_id=lesson.id)
        return await self.store.phrases.list(status=status, language=scope.language)

    async def get(self, phrase_id: str, scope: Scope) -> Phrase:
        phrase = await self.store.phrases.find_by_id(phrase_id)
        if phrase is None:
            raise NotFoundError(Reason.PHRASE_NOT_FOUND, f"Phrase {phrase_id} not found")
        scope.ensure(phrase.language, Reason.PHRASE_NOT_FOUND, phrase_id)
        return phrase

    async def update(
        self,
        phrase_id: str,
        data: Union[PhraseUpdate, Dict[str, Any]],
        scope: Scope,
    ) -> Phrase:
        """
        Edit a phrase.

        Editing a finished phrase returns it to draft; published phrases are
        read-only. Relinking lessons drops questions of lessons no longer
        linked.

        Raises:
            NotFoundError: phrase_not_found or lesson_not_found
            StateConflictError: already_published or concurrent_modification
            ValidationFailedError: invalid_input or language_mismatch_with_lessons
        """
        update = parse_input(PhraseUpdate, data)
        phrase = await self.get(phrase_id, scope)
        changes = changes_from(update)
        changes.update(self.lifecycle.edit_changes(phrase))

        for name in ("text", "translation", "pronunciation", "explanation"):
            if isinstance(changes.get(name), str):
                changes[name] = changes[name].strip()

        if "lesson_ids" in changes:
            lessons = await self.load_lessons(changes["lesson_ids"], scope)
            self._require_language(lessons, phrase.language)
            changes["lesson_ids"] = [lesson.id for lesson in lessons]

        with converting_validation_errors():
            updated = await self.store.phrases.update_by_id(
                phrase.id, changes, expected={"status": phrase.status}
            )
        if updated is None:
            raise NotFoundError(Reason.PHRASE_NOT_FOUND, f"Phrase {phrase_id} not found")

        if "lesson_ids" in changes:
            await self._confirm_relink(phrase, updated, changes)
            await self._drop_unlinked_questions(updated)
        return updated

    async def _confirm_relink(self, before: Phrase, updated: Phrase, changes: Dict[str, Any]) -> None:
        """Revert the whole edit if a newly linked lesson moved or vanished meanwhile."""
        added = [lesson_id for lesson_id in updated.lesson_ids if lesson_id not in before.lesson_ids]
        missing, moved = await stale_lesson_links(self.store.lessons, added, updated.language)
        if not missing and not moved:
            return
        await self.store.phrases.update_by_id(
            updated.id,
            {name: getattr(before, name) for name in changes},
            expected={"lesson_ids": updated.lesson_ids},
        )
        logger.warning(f"Reverted relink of phrase {updated.id}: missing={missing} moved={moved}")
        raise_stale_links(missing, moved, updated.language)

    async def _drop_unlinked_questions(self, phrase: Phrase) -> List[str]:
        now = utc_now()
        dropped = []
        for question in await self.store.questions.find_by_phrase_id(phrase.id):
            if question.lesson_id in phrase.lesson_ids:
                continue
            deleted = await self.store.questions.soft_delete_by_id(question.id, now)
            if deleted is not None:
                dropped.append(deleted.id)
        if dropped:
            logger.info(f"Phrase {phrase.id} relinked: deleted {len(dropped)} questions of unlinked lessons")
        return dropped

    async def link_lessons(self, phrase_id: str, lesson_ids: List[str], scope: Scope) -> Phrase:
        """Reuse a phrase in more lessons of its language."""
        phrase = await self.get(phrase_id, scope)
        lessons = await self.load_lessons(lesson_ids, scope)
        self._require_language(lessons, phrase.language)

        merged = list(dict.fromkeys(phrase.lesson_ids + [lesson.id for lesson in lessons]))
        updated = await self.store.phrases.update_by_id(
            phrase.id, {"lesson_ids": merged}, expected={"lesson_ids": phrase.lesson_ids}
        )
        if updated is None:
            raise NotFoundError(Reason.PHRASE_NOT_FOUND, f"Phrase {phrase_id} not found")
        added = [lesson_id for lesson_id in merged if lesson_id not in phrase.lesson_ids]
        await confirm_lesson_links(self.store.lessons, self.store.phrases, updated.id, added, updated.language)
        return updated

    async def delete(self, phrase_id: str, scope: Scope) -> Phrase:
        """Soft-delete a phrase and its questions."""
        phrase = await self.get(phrase_id, scope)
        with workflow_stage_logger("phrase_delete", phrase_id=phrase.id):
            deleted, _ = await self.cascade.delete_phrase(phrase.id)
        return deleted

    async def finish(self, phrase_id: str, scope: Scope) -> Phrase:
        return await self.lifecycle.finish(await self.get(phrase_id, scope))

    async def publish(self, phrase_id: str, scope: Scope, reviewed_by_admin: Optional[bool] = None) -> Phrase:
        return await self.lifecycle.publish_phrase(await self.get(phrase_id, scope), reviewed_by_admin)

    async def reopen(self, phrase_id: str, scope: Scope) -> Phrase:
        return await self.lifecycle.reopen(await self.get(phrase_id, scope))

    async def attach_audio(
        self,
        phrase_id: str,
        audio: Union[PhraseAudio, Dict[str, Any]],
        scope: Scope,
    ) -> Phrase:
        """Store an uploaded audio descriptor verbatim; allowed in any status."""
        descriptor = parse_input(PhraseAudio, audio)
        phrase = await self.get(phrase_id, scope)
        updated = await self.store.phrases.update_by_id(phrase.id, {"audio": descriptor})
        if updated is None:
            raise NotFoundError(Reason.PHRASE_NOT_FOUND, f"Phrase {phrase_id} not found")
        logger.info(f"Attached audio to phrase {phrase.id}: {descriptor.storage_key or descriptor.url}")
        return updated
