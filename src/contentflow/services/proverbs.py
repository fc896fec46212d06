"""Proverb use cases."""

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
    Language,
    MergeResult,
    Proverb,
    ProverbCreate,
    ProverbUpdate,
    Status,
    utc_now,
)
from contentflow.workflow.lifecycle import LifecycleStateMachine
from contentflow.workflow.links import raise_stale_links, stale_lesson_links
from contentflow.workflow.merger import ReusableEntityMerger
from contentflow.workflow.scope import Scope

logger = logging.getLogger(__name__)


class ProverbService:
    def __init__(
        self,
        store: EntityStore,
        lifecycle: LifecycleStateMachine,
        merger: ReusableEntityMerger,
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.merger = merger

    async def create(self, data: Union[ProverbCreate, Dict[str, Any]], scope: Scope) -> MergeResult:
        """
        Submit a proverb; an existing proverb with the same normalized text absorbs it.

        Returns:
            MergeResult with outcome ``created`` or ``merged``
        """
        proverb_input = parse_input(ProverbCreate, data)
        language = resolve_language(scope, proverb_input.language)
        return await self.merger.find_or_create_proverb(
            language=language,
            text=proverb_input.text,
            lesson_ids=proverb_input.lesson_ids,
            scope=scope,
            translation=proverb_input.translation,
            context_note=proverb_input.context_note,
            ai_meta=proverb_input.ai_meta,
        )

    async def list(
        self,
        scope: Scope,
        lesson_id: Optional[str] = None,
        status: Optional[Status] = None,
        language: Optional[Language] = None,
    ) -> List[Proverb]:
        if lesson_id is not None:
            lesson = await self.store.lessons.find_by_id(lesson_id)
            if lesson is None:
                raise NotFoundError(Reason.LESSON_NOT_FOUND, f"Lesson {lesson_id} not found")
            scope.ensure(lesson.language, Reason.LESSON_NOT_FOUND, lesson_id)
        return await self.store.proverbs.list(
            status=status, language=scope.filter_language(language), lesson_id=lesson_id
        )

    async def get(self, proverb_id: str, scope: Scope) -> Proverb:
        proverb = await self.store.proverbs.find_by_id(proverb_id)
        if proverb is None:
            raise NotFoundError(Reason.PROVERB_NOT_FOUND, f"Proverb {proverb_id} not found")
        scope.ensure(proverb.language, Reason.PROVERB_NOT_FOUND, proverb_id)
        return proverb

    async def update(
        self,
        proverb_id: str,
        data: Union[ProverbUpdate, Dict[str, Any]],
        scope: Scope,
    ) -> Proverb:
        """
        Edit a proverb.

        A text change recomputes the dedup key; if another active proverb of the
        language already owns that key the edit is refused rather than merged.

        Raises:
            StateConflictError: proverb_text_conflict, already_published or
                concurrent_modification
        """
        update = parse_input(ProverbUpdate, data)
        proverb = await self.get(proverb_id, scope)
        changes = changes_from(update)
        changes.update(self.lifecycle.edit_changes(proverb))

        for name in ("text", "translation", "context_note"):
            if isinstance(changes.get(name), str):
                changes[name] = changes[name].strip()

        if "text" in changes:
            owner = await self.store.proverbs.find_reusable(proverb.language, changes["text"])
            if owner is not None and owner.id != proverb.id:
                raise StateConflictError(
                    Reason.PROVERB_TEXT_CONFLICT,
                    f"Proverb {owner.id} already uses this text",
                    details={"conflicting_id": owner.id},
                )

        if "lesson_ids" in changes:
            await self.merger.validate_lessons(changes["lesson_ids"], proverb.language, scope)

        with converting_validation_errors():
            updated = await self.store.proverbs.update_by_id(
                proverb.id, changes, expected={"status": proverb.status}
            )
        if updated is None:
            raise NotFoundError(Reason.PROVERB_NOT_FOUND, f"Proverb {proverb_id} not found")

        if "lesson_ids" in changes:
            added = [lesson_id for lesson_id in updated.lesson_ids if lesson_id not in proverb.lesson_ids]
            missing, moved = await stale_lesson_links(self.store.lessons, added, updated.language)
            if missing or moved:
                await self.store.proverbs.update_by_id(
                    updated.id,
                    {name: getattr(proverb, name) for name in changes},
                    expected={"lesson_ids": updated.lesson_ids},
                )
                logger.warning(f"Reverted relink of proverb {updated.id}: missing={missing} moved={moved}")
                raise_stale_links(missing, moved, updated.language)
        return updated

    async def delete(self, proverb_id: str, scope: Scope) -> Proverb:
        proverb = await self.get(proverb_id, scope)
        deleted = await self.store.proverbs.soft_delete_by_id(proverb.id, utc_now())
        if deleted is None:
            raise NotFoundError(Reason.PROVERB_NOT_FOUND, f"Proverb {proverb_id} not found")
        logger.info(f"Deleted proverb {deleted.id}")
        return deleted

    async def finish(self, proverb_id: str, scope: Scope) -> Proverb:
        return await self.lifecycle.finish(await self.get(proverb_id, scope))

    async def publish(self, proverb_id: str, scope: Scope, reviewed_by_admin: Optional[bool] = None) -> Proverb:
        return await self.lifecycle.publish_proverb(await self.get(proverb_id, scope), reviewed_by_admin)

    async def reopen(self, proverb_id: str, scope: Scope) -> Proverb:
        return await self.lifecycle.reopen(await self.get(proverb_id, scope))
