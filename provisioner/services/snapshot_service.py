"""
Snapshot service for resumable workflow sessions.

Stores workflow snapshots in-memory, keyed by session id, with TTL expiration.
"""

import time
import copy
from typing import Optional, Dict, Any
from datetime import datetime, timedelta

from provisioner.core.config import config


class SnapshotService:
    """
    In-memory snapshot storage with TTL.

    One snapshot per session; a save replaces the previous one (last write wins).
    """

    def __init__(self, ttl_hours: Optional[int] = None):
        """
        Initialize snapshot service.

        Args:
            ttl_hours: Time-to-live in hours (default: SNAPSHOT_TTL_HOURS)
        """
        self._snapshots: Dict[str, Dict[str, Any]] = {}
        self._ttl_seconds = (config.SNAPSHOT_TTL_HOURS if ttl_hours is None else ttl_hours) * 3600
        self._cleanup_interval = 3600  # Clean up every hour
        self._last_cleanup = time.time()

    def save_snapshot(self, session_id: str, state: Dict[str, Any]) -> None:
        """
        Store the snapshot for a session, replacing any previous one.

        Args:
            session_id: Opaque session key
            state: Serialized workflow state (already stripped of secrets)
        """
        now = datetime.utcnow()
        self._snapshots[session_id] = copy.deepcopy({
            'session_id': session_id,
            'state': state,
            'metadata': {
                'saved_at': now.isoformat(),
                'expires_at': (now + timedelta(seconds=self._ttl_seconds)).isoformat()
            }
        })

        self._maybe_cleanup()

    def get_snapshot(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve the snapshot state of a session.

        Args:
            session_id: Opaque session key

        Returns:
            Serialized state if found and not expired, None otherwise (deep copy)
        """
        self._maybe_cleanup()
        if not self.has_snapshot(session_id):
            return None
        return copy.deepcopy(self._snapshots[session_id]['state'])

    def has_snapshot(self, session_id: str) -> bool:
        """Whether the session has an unexpired snapshot, without copying it."""
        snapshot = self._snapshots.get(session_id)
        if not snapshot:
            return False
        if datetime.utcnow() > datetime.fromisoformat(snapshot['metadata']['expires_at']):
            del self._snapshots[session_id]
            return False
        return True

    def delete_snapshot(self, session_id: str) -> None:
        self._snapshots.pop(session_id, None)

    def _maybe_cleanup(self):
        """
        Clean up expired snapshots periodically.
        """
        now = time.time()
        if now - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = now
        current_time = datetime.utcnow()

        expired_ids = [
            session_id for session_id, snapshot in self._snapshots.items()
            if current_time > datetime.fromisoformat(snapshot['metadata']['expires_at'])
        ]
        for session_id in expired_ids:
            del self._snapshots[session_id]


# Global singleton instance
_snapshot_service: Optional[SnapshotService] = None


def get_snapshot_service() -> SnapshotService:
    """
    Get the global snapshot service instance.

    Returns:
        SnapshotService instance
    """
    global _snapshot_service
    if _snapshot_service is None:
        _snapshot_service = SnapshotService()
    return _snapshot_service
