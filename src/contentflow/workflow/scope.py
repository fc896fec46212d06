"""Language scoping of actors.

Tutors and voice artists are restricted to one language partition. Content
outside the caller's partition is reported as not found, never as forbidden,
so callers cannot tell out-of-scope rows from missing ones. Submitting voice
audio for a phrase of another language is the exception: it is a
scope_violation with reason phrase_out_of_scope.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from contentflow.errors import NoScopeError, NotFoundError, Reason
from contentflow.storage.base import TutorProfileRepository, VoiceArtistProfileRepository
from contentflow.validators.schema import Actor, Language, Role, VoiceArtistProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scope:
    """Language partition an operation is narrowed to (None = unrestricted)."""

    language: Optional[Language] = None

    @classmethod
    def unrestricted(cls) -> "Scope":
        return cls(language=None)

    @property
    def is_unrestricted(self) -> bool:
        return self.language is None

    def allows(self, language: Language) -> bool:
        return self.language is None or self.language == language

    def ensure(self, language: Language, reason: Reason, entity_id: Optional[str] = None) -> None:
        """Raise ``NotFoundError(reason)`` when ``language`` is outside the scope."""
        if not self.allows(language):
            logger.debug(f"Out-of-scope access to {entity_id} ({language.value} not in {self.language.value})")
            raise NotFoundError(reason, f"{reason.value}: {entity_id}" if entity_id else None)

    def filter_language(self, language: Optional[Language]) -> Optional[Language]:
        """Language filter for list queries; a scoped caller always lists its own partition."""
        if self.language is None:
            return language
        return self.language


class ScopeGuard:
    """Resolves the language scope of an authenticated actor."""

    def __init__(self, tutor_profiles: TutorProfileRepository, voice_profiles: VoiceArtistProfileRepository):
        self.tutor_profiles = tutor_profiles
        self.voice_profiles = voice_profiles

    async def resolve_tutor_language(self, user_id: str) -> Optional[Language]:
        """Language of an active tutor profile, or None when missing or inactive."""
        profile = await self.tutor_profiles.find_by_user_id(user_id)
        if profile is None or not profile.is_active:
            return None
        return profile.language

    async def voice_artist_profile(self, user_id: str) -> Optional[VoiceArtistProfile]:
        """Active voice artist profile of ``user_id``, or None."""
        profile = await self.voice_profiles.find_by_user_id(user_id)
        if profile is None or not profile.is_active:
            return None
        return profile

    async def resolve(self, actor: Actor) -> Scope:
        """
        Resolve the scope every workflow call for ``actor`` is narrowed to.

        Args:
            actor: Authenticated actor

        Returns:
            Unrestricted scope for admins and the AI generator, a single-language
            scope for tutors and voice artists

        Raises:
            NoScopeError: If the actor has no usable language
        """
        if actor.role in (Role.ADMIN, Role.AI):
            return Scope.unrestricted()

        if actor.role == Role.TUTOR:
            language = await self.resolve_tutor_language(actor.id)
            if language is None:
                logger.warning(f"Tutor {actor.id} has no active profile")
                raise NoScopeError(f"Tutor {actor.id} has no active language scope")
            return Scope(language=language)

        if actor.role == Role.VOICE_ARTIST:
            profile = await self.voice_artist_profile(actor.id)
            if profile is None:
                logger.warning(f"Voice artist {actor.id} has no active profile")
                raise NoScopeError(f"Voice artist {actor.id} has no active profile", reason=Reason.PROFILE_INACTIVE)
            return Scope(language=profile.language)

        raise NoScopeError(f"Role {actor.role.value} has no content scope")
