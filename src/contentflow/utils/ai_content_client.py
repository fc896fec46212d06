"""Authoring-level LLM contract on top of the Instructor client.

Response models here are deliberately loose: every field is optional and
extra keys are kept, so a partially malformed answer still reaches the
sanitizer, which decides item by item what survives.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from contentflow.errors import Reason, UpstreamFailureError
from contentflow.prompts.content_prompts import (
    build_authoring_system_prompt,
    build_lesson_suggestion_prompt,
    build_phrase_enhancement_prompt,
    build_phrase_generation_prompt,
    build_proverb_generation_prompt,
)
from contentflow.utils.language_utils import get_language_name
from contentflow.utils.llm_client import LLMClient
from contentflow.validators.schema import Language, LessonContext, Level

logger = logging.getLogger(__name__)


class RawPhrase(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None
    translation: Optional[str] = None
    pronunciation: Optional[str] = None
    explanation: Optional[str] = None
    examples: Optional[List[Dict[str, Any]]] = None
    difficulty: Optional[Union[int, float, str]] = None


class RawPhraseBatch(BaseModel):
    phrases: List[RawPhrase] = Field(default_factory=list)


class RawPhraseEnhancement(BaseModel):
    model_config = ConfigDict(extra="allow")

    pronunciation: Optional[str] = None
    explanation: Optional[str] = None
    examples: Optional[List[Dict[str, Any]]] = None
    difficulty: Optional[Union[int, float, str]] = None


class RawProverb(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None
    translation: Optional[str] = None
    context_note: Optional[str] = None


class RawProverbBatch(BaseModel):
    proverbs: List[RawProverb] = Field(default_factory=list)


class RawLessonSuggestion(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    description: Optional[str] = None
    objectives: List[str] = Field(default_factory=list)
    seed_phrases: List[str] = Field(default_factory=list)
    proverbs: List[Union[str, RawProverb]] = Field(default_factory=list)


class AiContentClient:
    """Generates raw authoring content; results must go through the sanitizer."""

    def __init__(self, llm_client: LLMClient, temperature: float = 0.7):
        self.llm_client = llm_client
        self.temperature = temperature

    @property
    def model_name(self) -> str:
        return self.llm_client.model

    async def _generate(self, prompt: str, response_model, language: Language, level: Level, operation: str):
        system_prompt = build_authoring_system_prompt(get_language_name(language), Level(level).value)
        try:
            return await self.llm_client.generate(
                prompt=prompt,
                response_model=response_model,
                system_prompt=system_prompt,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.error(f"LLM {operation} failed for {language.value}/{Level(level).value}: {e}")
            raise UpstreamFailureError(
                Reason.LLM_GENERATION_FAILED,
                f"LLM {operation} failed: {str(e)[:200]}",
                details={"operation": operation, "model": self.model_name},
            ) from e

    async def generate_phrases(
        self,
        context: LessonContext,
        seed_words: Optional[List[str]] = None,
        existing_phrases: Optional[List[str]] = None,
        extra_instructions: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Generate candidate phrases for a lesson.

        Args:
            context: Lesson facts (language, level, title, description)
            seed_words: Words the phrases should be built around
            existing_phrases: Texts already in the lesson
            extra_instructions: Free-form author guidance

        Returns:
            Raw phrase dicts (unsanitized)

        Raises:
            UpstreamFailureError: llm_generation_failed
        """
        prompt = build_phrase_generation_prompt(
            context.title, context.description, seed_words, existing_phrases, extra_instructions
        )
        batch = await self._generate(prompt, RawPhraseBatch, context.language, context.level, "generate_phrases")
        return [item.model_dump() for item in batch.phrases]

    async def enhance_phrase(
        self,
        text: str,
        translation: str,
        language: Language,
        level: Level,
    ) -> Dict[str, Any]:
        """Generate pronunciation, explanation, examples and difficulty for one phrase."""
        prompt = build_phrase_enhancement_prompt(text, translation)
        result = await self._generate(prompt, RawPhraseEnhancement, language, level, "enhance_phrase")
        return result.model_dump()

    async def suggest_lesson(
        self,
        language: Language,
        level: Level,
        topic: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Suggest a lesson outline for ``topic``."""
        prompt = build_lesson_suggestion_prompt(topic)
        result = await self._generate(prompt, RawLessonSuggestion, language, level, "suggest_lesson")
        return result.model_dump()

    async def generate_proverbs(
        self,
        context: LessonContext,
        count: Optional[int] = None,
        existing_proverbs: Optional[List[str]] = None,
        extra_instructions: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Generate candidate proverbs for a lesson (unsanitized dicts)."""
        prompt = build_proverb_generation_prompt(
            context.title, context.description, count, existing_proverbs, extra_instructions
        )
        batch = await self._generate(prompt, RawProverbBatch, context.language, context.level, "generate_proverbs")
        return [item.model_dump() for item in batch.proverbs]
