"""Local persistence of the timer snapshot."""
import json
import logging
import os
import tempfile

import tracker

logger = logging.getLogger(__name__)

STORAGE_KEY = "doomscroll-timer"


class SnapshotStore:
    """A JSON file holding snapshots under a fixed storage key."""

    def __init__(self, path: str, key: str = STORAGE_KEY):
        self.path = path
        self.key = key

    def _read_all(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable timer state {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> dict | None:
        snapshot = self._read_all().get(self.key)
        return snapshot if isinstance(snapshot, dict) else None

    def save(self, snapshot: dict) -> None:
        data = self._read_all()
        data[self.key] = snapshot

        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".timer-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            os.unlink(tmp_path)
            raise


def load_session(store: SnapshotStore, now_ms: int) -> tuple[tracker.TimerState, int]:
    """Timer state and sync point from the store.

    Snapshots written without a sync point count as fully synced, so nothing
    already on the server is sent twice.
    """
    snapshot = store.load()
    state = tracker.from_snapshot(snapshot, now_ms)
    last_synced = (snapshot or {}).get("lastSyncedTime")
    if isinstance(last_synced, bool) or not isinstance(last_synced, (int, float)) or last_synced < 0:
        last_synced = state.elapsed_ms
    return state, int(last_synced)


def save_session(store: SnapshotStore, state: tracker.TimerState, last_synced_ms: int) -> None:
    snapshot = tracker.to_snapshot(state)
    snapshot["lastSyncedTime"] = last_synced_ms
    store.save(snapshot)
