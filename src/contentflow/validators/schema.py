"""Pydantic models for all workflow entities.

This module defines the entities the workflow engine reads and writes
(lessons, phrases, proverbs, questions, tutor and voice artist profiles,
voice-audio submissions), the inputs accepted from authors, and the result
shapes returned by bulk, merge and review operations.
All models include validation rules that mirror the entity invariants.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from contentflow.utils.text_normalization import proverb_key


# ============================================================================
# Enums
# ============================================================================


class Language(str, Enum):
    """Lesson language partition."""

    YORUBA = "yoruba"
    IGBO = "igbo"
    HAUSA = "hausa"


class Level(str, Enum):
    """Learner proficiency level."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Status(str, Enum):
    """Lifecycle status shared by every authored entity."""

    DRAFT = "draft"
    FINISHED = "finished"
    PUBLISHED = "published"


class Role(str, Enum):
    """Authenticated actor role."""

    ADMIN = "admin"
    TUTOR = "tutor"
    VOICE_ARTIST = "voice_artist"
    LEARNER = "learner"
    AI = "ai"


class QuestionType(str, Enum):
    """Exercise family."""

    MULTIPLE_CHOICE = "multiple-choice"
    FILL_IN_THE_GAP = "fill-in-the-gap"
    LISTENING = "listening"


class QuestionSubtype(str, Enum):
    """Concrete exercise interaction."""

    MC_SELECT_TRANSLATION = "mc-select-translation"
    MC_SELECT_MISSING_WORD = "mc-select-missing-word"
    FG_WORD_ORDER = "fg-word-order"
    FG_GAP_FILL = "fg-gap-fill"
    LS_MC_SELECT_TRANSLATION = "ls-mc-select-translation"
    LS_MC_SELECT_MISSING_WORD = "ls-mc-select-missing-word"
    LS_FG_WORD_ORDER = "ls-fg-word-order"
    LS_FG_GAP_FILL = "ls-fg-gap-fill"
    LS_DICTATION = "ls-dictation"
    LS_TONE_RECOGNITION = "ls-tone-recognition"


SUBTYPE_PREFIXES = {
    QuestionType.MULTIPLE_CHOICE: "mc-",
    QuestionType.FILL_IN_THE_GAP: "fg-",
    QuestionType.LISTENING: "ls-",
}


class MergeOutcome(str, Enum):
    """Result of a find-or-create on a reusable entity."""

    CREATED = "created"
    MERGED = "merged"


class SubmissionStatus(str, Enum):
    """Review state of a voice-audio submission."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


def utc_now() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Embedded Values
# ============================================================================


class PhraseExample(BaseModel):
    """Usage example with translation."""

    original: str = Field(..., description="Example in the target language")
    translation: str = Field(..., description="English translation of the example")


class AiMeta(BaseModel):
    """Provenance of AI-generated content."""

    generated_by_ai: bool = Field(default=False)
    model: str = Field(default="", description="LLM model name that produced the content")
    reviewed_by_admin: bool = Field(default=False)


class PhraseAudio(BaseModel):
    """Descriptor of an already-uploaded audio recording, stored verbatim."""

    provider: str = ""
    model: str = ""
    voice: str = ""
    locale: str = ""
    format: str = ""
    url: str = ""
    storage_key: str = ""

    model_config = {
        "json_schema_extra": {
            "example": {
                "provider": "voice-artist",
                "model": "",
                "voice": "adeola",
                "locale": "yo-NG",
                "format": "mp3",
                "url": "https://cdn.example.com/audio/phrases/abc.mp3",
                "storage_key": "audio/phrases/abc.mp3",
            }
        }
    }


class QuestionReviewData(BaseModel):
    """Word-order payload used by review exercises.

    Validation Rules:
    - correct_order must be a permutation of range(len(words))
    """

    sentence: str
    words: List[str] = Field(..., min_length=1)
    correct_order: List[int]
    meaning: str = ""

    @model_validator(mode="after")
    def validate_correct_order(self) -> "QuestionReviewData":
        """Ensure correct_order is a permutation of the word positions."""
        if sorted(self.correct_order) != list(range(len(self.words))):
            raise ValueError(
                "correct_order must be a permutation of 0..len(words)-1"
            )
        return self


# ============================================================================
# Core Entities
# ============================================================================


class SoftDeletable(BaseModel):
    """Identity, audit and soft-delete fields shared by stored entities."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID v4")
    is_deleted: bool = Field(default=False)
    deleted_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Lesson(SoftDeletable):
    """Ordered unit of study within one language partition."""

    title: str = Field(..., min_length=1)
    language: Language
    level: Level
    order_index: int = Field(..., ge=0, description="Position within the language partition")
    description: str = Field(default="")
    topics: List[str] = Field(default_factory=list)
    status: Status = Field(default=Status.DRAFT)
    created_by: str = Field(..., description="User id of the authoring actor")
    published_at: Optional[datetime] = Field(default=None)

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "title": "Greetings",
                "language": "yoruba",
                "level": "beginner",
                "order_index": 0,
                "description": "Everyday greetings",
                "topics": ["greetings"],
                "status": "draft",
                "created_by": "admin-1",
                "published_at": None,
            }
        }
    }


class Phrase(SoftDeletable):
    """Vocabulary item shared by one or more lessons of the same language.

    Validation Rules:
    - difficulty within [1, 5]
    - an active phrase belongs to at least one lesson
    """

    lesson_ids: List[str] = Field(default_factory=list)
    language: Language
    text: str = Field(..., min_length=1)
    translation: str = Field(..., min_length=1)
    pronunciation: str = Field(default="")
    explanation: str = Field(default="")
    examples: List[PhraseExample] = Field(default_factory=list)
    difficulty: int = Field(default=1, ge=1, le=5)
    ai_meta: AiMeta = Field(default_factory=AiMeta)
    audio: PhraseAudio = Field(default_factory=PhraseAudio)
    status: Status = Field(default=Status.DRAFT)

    @field_validator("lesson_ids")
    @classmethod
    def dedupe_lesson_ids(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(str(item) for item in v if item))

    @model_validator(mode="after")
    def validate_active_has_lessons(self) -> "Phrase":
        if not self.is_deleted and not self.lesson_ids:
            raise ValueError("Active phrase must belong to at least one lesson")
        return self

    model_config = {
        "json_schema_extra": {
            "example": {
                "lesson_ids": ["550e8400-e29b-41d4-a716-446655440000"],
                "language": "yoruba",
                "text": "Ẹ káàárọ̀",
                "translation": "Good morning",
                "pronunciation": "eh kaa-roh",
                "explanation": "Respectful morning greeting",
                "examples": [
                    {"original": "Ẹ káàárọ̀, màmá", "translation": "Good morning, mother"}
                ],
                "difficulty": 1,
                "status": "draft",
            }
        }
    }


class Proverb(SoftDeletable):
    """Reusable proverb, unique per (language, normalized_text) among active rows."""

    lesson_ids: List[str] = Field(default_factory=list)
    language: Language
    text: str = Field(..., min_length=1)
    normalized_text: str = Field(default="", description="Derived dedup key")
    translation: str = Field(default="")
    context_note: str = Field(default="")
    ai_meta: AiMeta = Field(default_factory=AiMeta)
    status: Status = Field(default=Status.DRAFT)

    @field_validator("lesson_ids")
    @classmethod
    def dedupe_lesson_ids(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(str(item) for item in v if item))

    @model_validator(mode="after")
    def derive_normalized_text(self) -> "Proverb":
        """normalized_text always tracks text."""
        self.normalized_text = proverb_key(self.text)
        if not self.is_deleted and not self.lesson_ids:
            raise ValueError("Active proverb must belong to at least one lesson")
        return self


class Question(SoftDeletable):
    """Exercise owned by exactly one (lesson, phrase) pair.

    Validation Rules:
    - at least 2 options
    - correct_index is a valid index into options
    - subtype belongs to the question type family
    """

    lesson_id: str
    phrase_id: str
    type: QuestionType
    subtype: QuestionSubtype
    prompt_template: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=2)
    correct_index: int = Field(..., ge=0)
    review_data: Optional[QuestionReviewData] = Field(default=None)
    explanation: str = Field(default="")
    status: Status = Field(default=Status.DRAFT)

    @model_validator(mode="after")
    def validate_question_constraints(self) -> "Question":
        if self.correct_index >= len(self.options):
            raise ValueError("correct_index must be a valid index into options")
        if not self.subtype.value.startswith(SUBTYPE_PREFIXES[self.type]):
            raise ValueError(
                f"Subtype {self.subtype.value} does not belong to type {self.type.value}"
            )
        return self


class LanguageProfile(BaseModel):
    """Profile binding a user to one language partition."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    language: Language
    display_name: str = ""
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class TutorProfile(LanguageProfile):
    """Tutor profile carrying the tutor's language partition."""


class VoiceArtistProfile(LanguageProfile):
    """Voice artist profile; the artist records audio for phrases of one language."""


class VoiceAudioSubmission(BaseModel):
    """Audio recorded by a voice artist for a phrase, awaiting admin review.

    Status flow: pending -> accepted | rejected. Reviewed submissions are final.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    phrase_id: str
    voice_artist_user_id: str
    voice_artist_profile_id: str
    language: Language
    audio: PhraseAudio
    status: SubmissionStatus = Field(default=SubmissionStatus.PENDING)
    rejection_reason: str = Field(default="")
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Actor(BaseModel):
    """Authenticated actor resolved upstream."""

    id: str
    role: Role


# ============================================================================
# Inputs
# ============================================================================


class LessonCreate(BaseModel):
    title: str = Field(..., min_length=1)
    language: Optional[Language] = Field(
        default=None, description="Required for unrestricted scope; tutors use their own"
    )
    level: Level
    description: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    created_by: str

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class LessonUpdate(BaseModel):
    """Editable lesson fields. order_index only changes through reorder."""

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    language: Optional[Language] = None
    level: Optional[Level] = None
    topics: Optional[List[str]] = None


class PhraseCreate(BaseModel):
    lesson_ids: List[str] = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    translation: str = Field(..., min_length=1)
    pronunciation: str = ""
    explanation: str = ""
    examples: List[PhraseExample] = Field(default_factory=list)
    difficulty: int = Field(default=1, ge=1, le=5)
    ai_meta: Optional[AiMeta] = None


class PhraseUpdate(BaseModel):
    lesson_ids: Optional[List[str]] = Field(default=None, min_length=1)
    text: Optional[str] = Field(default=None, min_length=1)
    translation: Optional[str] = Field(default=None, min_length=1)
    pronunciation: Optional[str] = None
    explanation: Optional[str] = None
    examples: Optional[List[PhraseExample]] = None
    difficulty: Optional[int] = Field(default=None, ge=1, le=5)


class ProverbCreate(BaseModel):
    lesson_ids: List[str] = Field(default_factory=list)
    language: Optional[Language] = Field(
        default=None, description="Required for unrestricted scope; tutors use their own"
    )
    text: str = Field(..., min_length=1)
    translation: Optional[str] = None
    context_note: Optional[str] = None
    ai_meta: Optional[AiMeta] = None


class ProverbUpdate(BaseModel):
    lesson_ids: Optional[List[str]] = Field(default=None, min_length=1)
    text: Optional[str] = Field(default=None, min_length=1)
    translation: Optional[str] = None
    context_note: Optional[str] = None


class QuestionCreate(BaseModel):
    lesson_id: str
    phrase_id: str
    type: QuestionType
    subtype: QuestionSubtype
    prompt_template: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=2)
    correct_index: int = Field(..., ge=0)
    review_data: Optional[QuestionReviewData] = None
    explanation: str = ""


class QuestionUpdate(BaseModel):
    phrase_id: Optional[str] = None
    type: Optional[QuestionType] = None
    subtype: Optional[QuestionSubtype] = None
    prompt_template: Optional[str] = Field(default=None, min_length=1)
    options: Optional[List[str]] = Field(default=None, min_length=2)
    correct_index: Optional[int] = Field(default=None, ge=0)
    review_data: Optional[QuestionReviewData] = None
    explanation: Optional[str] = None


class VoiceAudioSubmissionCreate(BaseModel):
    phrase_id: str = Field(..., min_length=1)
    audio: PhraseAudio


# ============================================================================
# AI Payloads
# ============================================================================


class SanitizedPhrase(BaseModel):
    """LLM phrase after sanitization; optional fields are absent when invalid."""

    text: str
    translation: str
    pronunciation: Optional[str] = None
    explanation: Optional[str] = None
    examples: Optional[List[PhraseExample]] = None
    difficulty: Optional[int] = None
    ai_meta: Optional[AiMeta] = None


class SanitizedProverb(BaseModel):
    text: str
    translation: str = ""
    context_note: str = ""


class LessonSuggestion(BaseModel):
    """Sanitized lesson outline suggested by the LLM."""

    title: str
    description: str = ""
    objectives: List[str] = Field(default_factory=list)
    seed_phrases: List[str] = Field(default_factory=list)
    proverbs: List[SanitizedProverb] = Field(default_factory=list)


class LessonContext(BaseModel):
    """Lesson facts handed to the LLM when generating phrases or proverbs."""

    lesson_id: Optional[str] = None
    language: Language
    level: Level
    title: Optional[str] = None
    description: Optional[str] = None


# ============================================================================
# Results
# ============================================================================


class MergeResult(BaseModel):
    """Outcome of find-or-create; ``merged`` is a success, not an error."""

    proverb: Proverb
    outcome: MergeOutcome


class VoiceQueueEntry(BaseModel):
    """Phrase still lacking audio, with the artist's most recent submission for it."""

    phrase: Phrase
    latest_submission: Optional[VoiceAudioSubmission] = None


class SubmissionEntry(BaseModel):
    submission: VoiceAudioSubmission
    phrase: Optional[Phrase] = None


class CascadeItemError(BaseModel):
    entity: str
    entity_id: str
    error: str


class CascadeReport(BaseModel):
    """Everything touched by a lesson soft-delete."""

    lesson: Lesson
    unlinked_phrase_ids: List[str] = Field(default_factory=list)
    deleted_phrase_ids: List[str] = Field(default_factory=list)
    unlinked_proverb_ids: List[str] = Field(default_factory=list)
    deleted_proverb_ids: List[str] = Field(default_factory=list)
    deleted_question_ids: List[str] = Field(default_factory=list)
    errors: List[CascadeItemError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class BulkSkip(BaseModel):
    reason: str
    topic: Optional[str] = None
    title: Optional[str] = None


class BulkError(BaseModel):
    topic: Optional[str] = None
    error: str


class BulkGenerationReport(BaseModel):
    """Per-item outcome of bulk AI lesson generation."""

    total_requested: int
    lessons: List[Lesson] = Field(default_factory=list)
    skipped: List[BulkSkip] = Field(default_factory=list)
    errors: List[BulkError] = Field(default_factory=list)
    merged_proverbs: List[MergeResult] = Field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.lessons)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary(self) -> Dict[str, Any]:
        return {
            "total_requested": self.total_requested,
            "created_count": self.created_count,
            "skipped_count": self.skipped_count,
            "error_count": self.error_count,
        }
