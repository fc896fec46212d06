"""Find-or-create of reusable proverbs keyed by normalized text."""

import logging
from typing import Dict, List, Optional

from contentflow.errors import NotFoundError, Reason, ValidationFailedError
from contentflow.storage.base import EntityStore, PreconditionFailedError
from contentflow.utils.text_normalization import proverb_key
from contentflow.validators.schema import (
    AiMeta,
    Language,
    MergeOutcome,
    MergeResult,
    Proverb,
    Status,
    utc_now,
)
from contentflow.workflow.links import confirm_lesson_links
from contentflow.workflow.scope import Scope

logger = logging.getLogger(__name__)

MAX_MERGE_ATTEMPTS = 5


class ReusableEntityMerger:
    """Keeps at most one active proverb per (language, normalized text)."""

    def __init__(self, store: EntityStore):
        self.store = store

    async def validate_lessons(self, lesson_ids: List[str], language: Language, scope: Scope) -> None:
        """
        Check that every lesson exists, is in scope and uses ``language``.

        Raises:
            NotFoundError: lesson_not_found for a missing or out-of-scope lesson
            ValidationFailedError: language_mismatch_with_lessons when the lesson
                languages are not exactly {language} (an empty list included)
        """
        languages = set()
        for lesson_id in dict.fromkeys(lesson_ids):
            lesson = await self.store.lessons.find_by_id(lesson_id)
            if lesson is None:
                raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lesson {lesson_id} not found")
            scope.ensure(lesson.language, Reason.LESSON_NOT_FOUND, lesson_id)
            languages.add(lesson.language)

        if languages != {language}:
            raise ValidationFailedError(
                Reason.LANGUAGE_MISMATCH_WITH_LESSONS,
                f"Lessons {lesson_ids} do not all use {language.value}",
                details={"language": language.value, "lesson_languages": sorted(item.value for item in languages)},
            )

    async def find_or_create_proverb(
        self,
        language: Language,
        text: str,
        lesson_ids: List[str],
        scope: Scope,
        translation: Optional[str] = None,
        context_note: Optional[str] = None,
        ai_meta: Optional[AiMeta] = None,
    ) -> MergeResult:
        """
        Merge a proverb submission into the existing record or create a new one.

        Args:
            language: Proverb language
            text: Submitted text (any case, spacing or tone marking)
            lesson_ids: Lessons the submission should be linked to
            scope: Caller scope
            translation: Overwrites the stored translation when non-empty
            context_note: Overwrites the stored context note when non-empty
            ai_meta: Overwrites the stored provenance when provided

        Returns:
            MergeResult with outcome ``merged`` or ``created``
        """
        await self.validate_lessons(lesson_ids, language, scope)

        key = proverb_key(text)
        for attempt in range(1, MAX_MERGE_ATTEMPTS + 1):
            existing = await self.store.proverbs.find_reusable(language, text)
            if existing is None:
                break
            try:
                merged = await self._merge_into(existing, lesson_ids, translation, context_note, ai_meta)
            except PreconditionFailedError:
                logger.info(f"Proverb {existing.id} changed during merge (attempt {attempt}), retrying")
                continue
            if merged is not None:
                await self._confirm_links(existing, merged, lesson_ids)
                logger.info(f"Merged proverb submission into {merged.id} (key={key!r})")
                return MergeResult(proverb=merged, outcome=MergeOutcome.MERGED)
        else:
            raise PreconditionFailedError(existing.id, "lesson_ids", existing.lesson_ids, "changed")

        created = await self.store.proverbs.create(
            Proverb(
                lesson_ids=lesson_ids,
                language=language,
                text=text.strip(),
                translation=(translation or "").strip(),
                context_note=(context_note or "").strip(),
                ai_meta=ai_meta or AiMeta(),
                status=Status.DRAFT,
            )
        )
        await confirm_lesson_links(self.store.lessons, self.store.proverbs, created.id, created.lesson_ids, language)
        return await self._settle_concurrent_create(created)

    async def _merge_into(
        self,
        existing: Proverb,
        lesson_ids: List[str],
        translation: Optional[str],
        context_note: Optional[str],
        ai_meta: Optional[AiMeta],
    ) -> Optional[Proverb]:
        changes: Dict[str, object] = {
            "lesson_ids": list(dict.fromkeys(existing.lesson_ids + list(lesson_ids))),
        }
        if translation and translation.strip():
            changes["translation"] = translation.strip()
        if context_note and context_note.strip():
            changes["context_note"] = context_note.strip()
        if ai_meta is not None:
            changes["ai_meta"] = ai_meta
        return await self.store.proverbs.update_by_id(
            existing.id, changes, expected={"lesson_ids": existing.lesson_ids}
        )

    async def _confirm_links(self, before: Proverb, merged: Proverb, lesson_ids: List[str]) -> None:
        added = [lesson_id for lesson_id in dict.fromkeys(lesson_ids) if lesson_id not in before.lesson_ids]
        if added:
            await confirm_lesson_links(self.store.lessons, self.store.proverbs, merged.id, added, merged.language)

    async def _settle_concurrent_create(self, created: Proverb) -> MergeResult:
        """
        Fold ``created`` into an older twin inserted by a concurrent submission.

        The oldest active twin survives. Folding re-reads the survivor after
        every lost write, and ``created`` is soft-deleted on every exit except
        the one where it is itself the survivor.
        """
        kept = False
        try:
            survivor = None
            for attempt in range(1, MAX_MERGE_ATTEMPTS + 1):
                survivor = await self.store.proverbs.find_reusable(created.language, created.text)
                if survivor is None or survivor.id == created.id:
                    kept = True
                    logger.info(f"Created proverb {created.id} ({created.language.value})")
                    return MergeResult(proverb=created, outcome=MergeOutcome.CREATED)

                logger.warning(
                    f"Concurrent proverb create detected: folding {created.id} into {survivor.id} (attempt {attempt})"
                )
                try:
                    merged = await self._merge_into(
                        survivor,
                        created.lesson_ids,
                        created.translation,
                        created.context_note,
                        created.ai_meta if created.ai_meta.generated_by_ai else None,
                    )
                except PreconditionFailedError:
                    continue
                if merged is not None:
                    await self._confirm_links(survivor, merged, created.lesson_ids)
                    return MergeResult(proverb=merged, outcome=MergeOutcome.MERGED)

            raise PreconditionFailedError(survivor.id, "lesson_ids", survivor.lesson_ids, "changed")
        finally:
            if not kept:
                await self.store.proverbs.soft_delete_by_id(created.id, utc_now())
