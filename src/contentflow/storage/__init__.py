"""Entity store contracts and implementations."""

from contentflow.storage.base import (
    EntityStore,
    LessonRepository,
    PhraseRepository,
    PreconditionFailedError,
    ProverbRepository,
    QuestionRepository,
    TutorProfileRepository,
    VoiceArtistProfileRepository,
    VoiceSubmissionRepository,
)
from contentflow.storage.memory import create_memory_store

__all__ = [
    "EntityStore",
    "LessonRepository",
    "PhraseRepository",
    "PreconditionFailedError",
    "ProverbRepository",
    "QuestionRepository",
    "TutorProfileRepository",
    "VoiceArtistProfileRepository",
    "VoiceSubmissionRepository",
    "create_memory_store",
]
