import json
import logging
import os
import time
import fcntl
from pathlib import Path
from typing import Iterable, Optional
from .models import BookKey, SnapshotState, SourceStatus

logger = logging.getLogger(__name__)

class StateManager:
    """Persists the last known book set per source, used to tell deletions from offline devices."""

    def __init__(self, path: Optional[str], persist: bool = True):
        self.path = Path(path) if path else None
        self.persist = persist and self.path is not None
        self.state = SnapshotState()
        self.read_only = False
        self._load()

    def _load(self):
        if self.path is None:
            return
        if not self.path.exists():
            logger.info(f"No snapshot cache found at {self.path}, creating new.")
            return

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
                self.state = SnapshotState(**data)
        except Exception as e:
            logger.error(f"Failed to load snapshot cache: {e}. Starting fresh.", exc_info=True)

    def save(self):
        if not self.persist or self.read_only:
            return

        tmp_path = self.path.with_suffix('.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w') as f:
                try:
                    fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    logger.warning("Could not acquire lock for snapshot cache save. Skipping save cycle.")
                    return

                try:
                    json.dump(self.state.model_dump(mode="json"), f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f, fcntl.LOCK_UN)

            os.rename(tmp_path, self.path)

        except OSError as e:
            logger.error(f"Failed to save snapshot cache to {self.path}: {e}")
            # keep computing, stop writing for this run
            self.read_only = True

    def get_source_status(self, source_id: str) -> SourceStatus:
        if source_id not in self.state.sources:
            self.state.sources[source_id] = SourceStatus(source_id=source_id)
        return self.state.sources[source_id]

    def record_read(self, source_id: str, books: Iterable[BookKey]):
        status = self.get_source_status(source_id)
        status.books = sorted(set(books), key=lambda k: (k.title, k.authors, k.md5))
        status.last_read_at = time.time()
        status.last_result = "ok"
        status.error_count = 0

    def record_failure(self, source_id: str, reason: str):
        status = self.get_source_status(source_id)
        status.last_result = reason
        status.error_count += 1

    def mark_deleted(self, keys: Iterable[BookKey]):
        current = set(self.state.deleted)
        current.update(keys)
        self.state.deleted = sorted(current, key=lambda k: (k.title, k.authors, k.md5))
