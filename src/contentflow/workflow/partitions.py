"""Optional per-language serialization of ordering-sensitive lesson operations."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from contentflow.validators.schema import Language


class PartitionSerializer:
    """One asyncio.Lock per language partition.

    Lesson create, delete, reorder and language moves read the partition and
    then write several rows. Two of them interleaving in one partition can
    leave duplicate or missing indexes until the next compaction. Holding the
    partition lock for the whole operation rules that out within one process.
    """

    def __init__(self):
        self._locks: Dict[Language, asyncio.Lock] = {}

    def _lock(self, language: Language) -> asyncio.Lock:
        if language not in self._locks:
            self._locks[language] = asyncio.Lock()
        return self._locks[language]

    @asynccontextmanager
    async def hold(self, *languages: Optional[Language]) -> AsyncIterator[None]:
        """Hold the locks of ``languages``, acquired in a fixed order."""
        ordered: List[Language] = sorted({lang for lang in languages if lang is not None}, key=lambda lang: lang.value)
        acquired: List[asyncio.Lock] = []
        try:
            for language in ordered:
                lock = self._lock(language)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def is_held(self, language: Language) -> bool:
        return language in self._locks and self._locks[language].locked()


class _NoSerialization:
    """Stand-in used when partition serialization is disabled."""

    @asynccontextmanager
    async def hold(self, *languages: Optional[Language]) -> AsyncIterator[None]:
        yield

    def is_held(self, language: Language) -> bool:
        return False


NO_SERIALIZATION = _NoSerialization()


def partition_guard(serializer: Optional[PartitionSerializer]):
    return serializer if serializer is not None else NO_SERIALIZATION
