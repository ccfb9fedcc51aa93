"""
Durable snapshot cache - a single JSON file holding the last good index snapshot.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

from .serialization import deserialize_snapshot, serialize_snapshot
from .types import VectorIndexSnapshot


class SnapshotCache:
    """Loads and atomically replaces the on-disk snapshot file."""

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[VectorIndexSnapshot]:
        """
        Load the persisted snapshot.

        Returns:
            The snapshot, or None if no cache file exists yet

        Raises:
            CorruptSnapshot: if the file cannot be parsed or has the wrong shape
        """
        if not self.exists():
            return None
        return deserialize_snapshot(self.path.read_bytes())

    def save(self, snapshot: VectorIndexSnapshot) -> None:
        """Write to a temp file in the same directory, then rename over the cache file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = serialize_snapshot(snapshot)

        fd, tmp_path = tempfile.mkstemp(prefix=".snapshot-", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def delete(self) -> None:
        if self.exists():
            self.path.unlink()
