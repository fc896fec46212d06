"""
JSON snapshot persistence for the in-process store.

The CLI works on a single JSON file: the snapshot is loaded into an in-memory
EntityStore, the command runs against it, and the snapshot is written back.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Union

from contentflow.storage.base import EntityStore
from contentflow.storage.memory import create_memory_store
from contentflow.utils.file_io import read_json, write_json

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

_COLLECTIONS = (
    "lessons",
    "phrases",
    "proverbs",
    "questions",
    "tutor_profiles",
    "voice_profiles",
    "voice_submissions",
)


class JsonSnapshotStore:
    """Load and save an in-memory EntityStore as one JSON document."""

    def __init__(self, snapshot_file: Union[str, Path]):
        """
        Initialize snapshot store.

        Args:
            snapshot_file: Path to the snapshot JSON file
        """
        self.snapshot_file = Path(snapshot_file)

    def load(self) -> EntityStore:
        """
        Build an EntityStore from the snapshot file.

        A missing file yields an empty store. A corrupt file is an error:
        silently starting empty would overwrite it on the next save.

        Returns:
            EntityStore populated from the snapshot

        Raises:
            ValueError: If the snapshot cannot be parsed
        """
        store = create_memory_store()
        if not self.snapshot_file.exists():
            logger.info(f"Snapshot not found: {self.snapshot_file}. Starting with an empty store.")
            return store

        try:
            data = read_json(self.snapshot_file)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse snapshot file: {e}")
            raise ValueError(f"Corrupt snapshot file {self.snapshot_file}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Snapshot {self.snapshot_file} must contain a JSON object")

        for name in _COLLECTIONS:
            getattr(store, name).load_rows(data.get(name, []))

        logger.info(f"Loaded snapshot from {self.snapshot_file}: {self.counts(store)}")
        return store

    def save(self, store: EntityStore) -> None:
        """Write every row of ``store`` (deleted rows included) to the snapshot file."""
        data = {"version": SNAPSHOT_VERSION}
        for name in _COLLECTIONS:
            data[name] = getattr(store, name).dump_rows()

        write_json(data, self.snapshot_file)
        logger.info(f"Saved snapshot to {self.snapshot_file}: {self.counts(store)}")

    @staticmethod
    def counts(store: EntityStore) -> Dict[str, int]:
        return {name: len(getattr(store, name).dump_rows()) for name in _COLLECTIONS}
