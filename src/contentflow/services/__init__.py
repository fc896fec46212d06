"""
Use-case services wired over one EntityStore.

``build_services`` assembles the workflow components and services the same
way for the CLI and for tests.
"""

from dataclasses import dataclass
from typing import Optional

from contentflow.services.ai_lessons import AiLessonService
from contentflow.services.ai_phrases import AiPhraseService
from contentflow.services.ai_proverbs import AiProverbService
from contentflow.services.lessons import LessonService
from contentflow.services.phrases import PhraseService
from contentflow.services.proverbs import ProverbService
from contentflow.services.questions import QuestionService
from contentflow.services.voice_audio import VoiceAudioService
from contentflow.storage.base import EntityStore
from contentflow.utils.ai_content_client import AiContentClient
from contentflow.workflow import (
    AiContentSanitizer,
    CascadeDeletionCoordinator,
    LifecycleStateMachine,
    OrderIndexManager,
    PartitionSerializer,
    ReusableEntityMerger,
    ScopeGuard,
)


@dataclass
class Services:
    store: EntityStore
    ordering: OrderIndexManager
    scope_guard: ScopeGuard
    lessons: LessonService
    phrases: PhraseService
    proverbs: ProverbService
    questions: QuestionService
    voice_audio: VoiceAudioService
    ai_phrases: Optional[AiPhraseService] = None
    ai_lessons: Optional[AiLessonService] = None
    ai_proverbs: Optional[AiProverbService] = None


def build_services(
    store: EntityStore,
    ai_client: Optional[AiContentClient] = None,
    serialize_partitions: bool = False,
) -> Services:
    """
    Wire workflow components and services over ``store``.

    Args:
        store: Entity store shared by every service
        ai_client: LLM contract; AI services are only built when provided
        serialize_partitions: Hold a per-language lock around lesson ordering operations

    Returns:
        Services container
    """
    ordering = OrderIndexManager(store.lessons)
    lifecycle = LifecycleStateMachine(store)
    cascade = CascadeDeletionCoordinator(store, ordering)
    merger = ReusableEntityMerger(store)
    sanitizer = AiContentSanitizer()
    partitions = PartitionSerializer() if serialize_partitions else None

    lessons = LessonService(store, ordering, lifecycle, cascade, partitions)
    phrases = PhraseService(store, lifecycle, cascade)
    scope_guard = ScopeGuard(store.tutor_profiles, store.voice_profiles)
    services = Services(
        store=store,
        ordering=ordering,
        scope_guard=scope_guard,
        lessons=lessons,
        phrases=phrases,
        proverbs=ProverbService(store, lifecycle, merger),
        questions=QuestionService(store, lifecycle),
        voice_audio=VoiceAudioService(store, scope_guard, phrases),
    )

    if ai_client is not None:
        services.ai_phrases = AiPhraseService(store, lessons, phrases, ai_client, sanitizer)
        services.ai_lessons = AiLessonService(store, lessons, merger, ai_client, sanitizer)
        services.ai_proverbs = AiProverbService(store, lessons, merger, ai_client, sanitizer)

    return services


__all__ = [
    "AiLessonService",
    "AiPhraseService",
    "AiProverbService",
    "LessonService",
    "PhraseService",
    "ProverbService",
    "QuestionService",
    "Services",
    "VoiceAudioService",
    "build_services",
]
