"""Shared fixtures for workflow unit tests."""

from typing import List, Optional

import pytest

from contentflow.services import Services, build_services
from contentflow.storage import create_memory_store
from contentflow.validators.schema import (
    Language,
    Lesson,
    Level,
    Phrase,
    Proverb,
    Question,
    QuestionSubtype,
    QuestionType,
)
from contentflow.workflow.scope import Scope


class ContentFactory:
    """Creates content through the services, the way authors would."""

    def __init__(self, services: Services):
        self.services = services
        self.admin = Scope.unrestricted()

    async def lesson(self, title: str = "Greetings", language: Language = Language.YORUBA, **kwargs) -> Lesson:
        data = {"title": title, "language": language, "level": Level.BEGINNER, "created_by": "admin-1"}
        data.update(kwargs)
        return await self.services.lessons.create(data, self.admin)

    async def phrase(
        self,
        lesson_ids: List[str],
        text: str = "Ẹ káàárọ̀",
        translation: str = "Good morning",
        **kwargs,
    ) -> Phrase:
        data = {"lesson_ids": lesson_ids, "text": text, "translation": translation}
        data.update(kwargs)
        return await self.services.phrases.create(data, self.admin)

    async def proverb(
        self,
        lesson_ids: List[str],
        text: str = "Ìwà l'ẹwà",
        language: Language = Language.YORUBA,
        **kwargs,
    ) -> Proverb:
        data = {"lesson_ids": lesson_ids, "text": text, "language": language}
        data.update(kwargs)
        result = await self.services.proverbs.create(data, self.admin)
        return result.proverb

    async def question(self, lesson_id: str, phrase_id: str, prompt: Optional[str] = None) -> Question:
        return await self.services.questions.create(
            {
                "lesson_id": lesson_id,
                "phrase_id": phrase_id,
                "type": QuestionType.MULTIPLE_CHOICE,
                "subtype": QuestionSubtype.MC_SELECT_TRANSLATION,
                "prompt_template": prompt or "What does this phrase mean?",
                "options": ["Good morning", "Good night", "Thank you"],
                "correct_index": 0,
            },
            self.admin,
        )


@pytest.fixture
def store():
    """Empty in-memory entity store."""
    return create_memory_store()


@pytest.fixture
def services(store):
    """Services wired over the in-memory store, without AI."""
    return build_services(store)


@pytest.fixture
def factory(services):
    return ContentFactory(services)


@pytest.fixture
def admin():
    return Scope.unrestricted()
