"""Voice-audio submissions: recording queue, submission and admin review.

Voice artists record audio for phrases of their profile language and submit
it for review. An accepted submission copies its descriptor onto the phrase
through ``PhraseService.attach_audio``; a rejected one keeps the reason.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from contentflow.errors import (
    NoScopeError,
    NotFoundError,
    Reason,
    ScopeViolationError,
    StateConflictError,
    ValidationFailedError,
)
from contentflow.services.base import parse_input
from contentflow.services.phrases import PhraseService
from contentflow.storage.base import EntityStore, PreconditionFailedError
from contentflow.validators.schema import (
    Language,
    SubmissionEntry,
    SubmissionStatus,
    VoiceArtistProfile,
    VoiceAudioSubmission,
    VoiceAudioSubmissionCreate,
    VoiceQueueEntry,
    utc_now,
)
from contentflow.workflow.scope import Scope, ScopeGuard

logger = logging.getLogger(__name__)


class VoiceAudioService:
    def __init__(self, store: EntityStore, scope_guard: ScopeGuard, phrases: PhraseService):
        self.store = store
        self.scope_guard = scope_guard
        self.phrases = phrases

    async def _active_profile(self, user_id: str) -> VoiceArtistProfile:
        profile = await self.scope_guard.voice_artist_profile(user_id)
        if profile is None:
            raise NoScopeError(f"Voice artist {user_id} has no active profile", reason=Reason.PROFILE_INACTIVE)
        return profile

    async def _with_phrases(self, submissions: List[VoiceAudioSubmission]) -> List[SubmissionEntry]:
        phrases = await self.store.phrases.find_by_ids([item.phrase_id for item in submissions])
        phrase_by_id = {phrase.id: phrase for phrase in phrases}
        return [SubmissionEntry(submission=item, phrase=phrase_by_id.get(item.phrase_id)) for item in submissions]

    # --- voice artist --------------------------------------------------------

    async def list_queue(self, user_id: str) -> List[VoiceQueueEntry]:
        """
        Phrases of the artist's language that still have no audio url.

        Each entry carries the artist's most recent submission for the phrase,
        so a pending or rejected take is visible next to the phrase.

        Raises:
            NoScopeError: profile_inactive when the artist has no active profile
        """
        profile = await self._active_profile(user_id)
        lessons = await self.store.lessons.list_by_language(profile.language)
        phrases = await self.store.phrases.list(
            lesson_ids=[lesson.id for lesson in lessons], language=profile.language
        )
        submissions = await self.store.voice_submissions.list(
            voice_artist_user_id=user_id, language=profile.language
        )

        latest: Dict[str, VoiceAudioSubmission] = {}
        for submission in submissions:
            latest.setdefault(submission.phrase_id, submission)

        return [
            VoiceQueueEntry(phrase=phrase, latest_submission=latest.get(phrase.id))
            for phrase in phrases
            if not phrase.audio.url
        ]

    async def submit(
        self,
        user_id: str,
        data: Union[VoiceAudioSubmissionCreate, Dict[str, Any]],
    ) -> VoiceAudioSubmission:
        """
        Submit a recording for a phrase of the artist's language.

        Args:
            user_id: Voice artist user id
            data: VoiceAudioSubmissionCreate or its dict form

        Returns:
            Pending submission

        Raises:
            NoScopeError: profile_inactive
            NotFoundError: phrase_not_found
            ScopeViolationError: phrase_out_of_scope when the phrase uses another language
        """
        submission_input = parse_input(VoiceAudioSubmissionCreate, data)
        profile = await self._active_profile(user_id)

        phrase = await self.store.phrases.find_by_id(submission_input.phrase_id)
        if phrase is None:
            raise NotFoundError(Reason.PHRASE_NOT_FOUND, f"Phrase {submission_input.phrase_id} not found")
        if phrase.language != profile.language:
            raise ScopeViolationError(
                Reason.PHRASE_OUT_OF_SCOPE,
                f"Phrase {phrase.id} is {phrase.language.value}, voice artist records {profile.language.value}",
            )

        submission = await self.store.voice_submissions.create(
            VoiceAudioSubmission(
                phrase_id=phrase.id,
                voice_artist_user_id=user_id,
                voice_artist_profile_id=profile.id,
                language=profile.language,
                audio=submission_input.audio,
            )
        )
        logger.info(f"Voice artist {user_id} submitted audio {submission.id} for phrase {phrase.id}")
        return submission

    async def list_own(self, user_id: str, status: Optional[SubmissionStatus] = None) -> List[SubmissionEntry]:
        """The artist's submissions in their profile language, newest first."""
        profile = await self._active_profile(user_id)
        submissions = await self.store.voice_submissions.list(
            status=status, voice_artist_user_id=user_id, language=profile.language
        )
        return await self._with_phrases(submissions)

    # --- admin review --------------------------------------------------------

    async def list(
        self,
        scope: Scope,
        status: Optional[SubmissionStatus] = None,
        voice_artist_user_id: Optional[str] = None,
        phrase_id: Optional[str] = None,
        language: Optional[Language] = None,
    ) -> List[SubmissionEntry]:
        submissions = await self.store.voice_submissions.list(
            status=status,
            voice_artist_user_id=voice_artist_user_id,
            phrase_id=phrase_id,
            language=scope.filter_language(language),
        )
        return await self._with_phrases(submissions)

    async def _pending(self, submission_id: str, scope: Scope) -> VoiceAudioSubmission:
        submission = await self.store.voice_submissions.find_by_id(submission_id)
        if submission is None:
            raise NotFoundError(Reason.SUBMISSION_NOT_FOUND, f"Submission {submission_id} not found")
        scope.ensure(submission.language, Reason.SUBMISSION_NOT_FOUND, submission_id)
        if submission.status != SubmissionStatus.PENDING:
            raise StateConflictError(
                Reason.SUBMISSION_ALREADY_REVIEWED,
                f"Submission {submission_id} is already {submission.status.value}",
            )
        return submission

    async def _review(self, submission: VoiceAudioSubmission, changes: Dict[str, Any]) -> VoiceAudioSubmission:
        try:
            reviewed = await self.store.voice_submissions.update_by_id(
                submission.id, changes, expected={"status": SubmissionStatus.PENDING}
            )
        except PreconditionFailedError as e:
            raise StateConflictError(
                Reason.SUBMISSION_ALREADY_REVIEWED,
                f"Submission {submission.id} was reviewed concurrently",
            ) from e
        if reviewed is None:
            raise NotFoundError(Reason.SUBMISSION_NOT_FOUND, f"Submission {submission.id} not found")
        return reviewed

    async def accept(self, submission_id: str, reviewer_id: str, scope: Scope) -> SubmissionEntry:
        """
        Accept a pending submission and copy its audio onto the phrase.

        Raises:
            NotFoundError: submission_not_found, or phrase_not_found when the
                phrase was deleted (the submission then stays pending)
            StateConflictError: submission_already_reviewed
        """
        submission = await self._pending(submission_id, scope)
        await self.phrases.get(submission.phrase_id, scope)

        reviewed = await self._review(
            submission,
            {"status": SubmissionStatus.ACCEPTED, "reviewed_by": reviewer_id, "reviewed_at": utc_now()},
        )
        try:
            phrase = await self.phrases.attach_audio(reviewed.phrase_id, reviewed.audio, scope)
        except NotFoundError:
            await self.store.voice_submissions.update_by_id(
                reviewed.id,
                {"status": SubmissionStatus.PENDING, "reviewed_by": None, "reviewed_at": None},
                expected={"status": SubmissionStatus.ACCEPTED},
            )
            raise

        logger.info(f"Accepted voice audio {reviewed.id} for phrase {phrase.id} (reviewer {reviewer_id})")
        return SubmissionEntry(submission=reviewed, phrase=phrase)

    async def reject(self, submission_id: str, reviewer_id: str, reason: str, scope: Scope) -> VoiceAudioSubmission:
        """
        Reject a pending submission; the phrase audio is left untouched.

        Raises:
            ValidationFailedError: reason_required for a blank reason
            NotFoundError: submission_not_found
            StateConflictError: submission_already_reviewed
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailedError(Reason.REASON_REQUIRED, "A rejection reason is required")

        submission = await self._pending(submission_id, scope)
        reviewed = await self._review(
            submission,
            {
                "status": SubmissionStatus.REJECTED,
                "reviewed_by": reviewer_id,
                "reviewed_at": utc_now(),
                "rejection_reason": reason,
            },
        )
        logger.info(f"Rejected voice audio {reviewed.id} for phrase {reviewed.phrase_id}: {reason}")
        return reviewed
