"""
Start / ping / end state machine for gameplay sessions.

Each (user, device, game) triple is Absent, Active or Closed. A closed
session is never reopened; a later start creates a new one. Sessions that
stop sending heartbeats stay active until the device ends them.
"""
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
from uuid import UUID
import logging

from app.errors import StorageError, ValidationError, NotFoundError
from app.models import utcnow
from app.services.device_registry import DeviceRegistry
from app.services.session_store import SessionStore

logger = logging.getLogger(__name__)


def session_duration(start_time: datetime, end_time: datetime) -> int:
    """Whole seconds between two timestamps, never negative."""
    return max(0, (end_time - start_time) // timedelta(seconds=1))


def _require_triple(device_id: Optional[str], game_name: Optional[str]) -> None:
    if not device_id or not device_id.strip() or not game_name or not game_name.strip():
        raise ValidationError("deviceId and gameName are required")


class SessionLifecycleManager:
    def __init__(
        self,
        store: SessionStore,
        devices: Optional[DeviceRegistry] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.devices = devices
        self.clock = clock

    def start(
        self,
        user_id: UUID,
        device_id: Optional[str],
        game_name: Optional[str],
        platform: Optional[str] = None,
        core: Optional[str] = None
    ) -> UUID:
        """Open a session, or heartbeat the one already active for the triple."""
        _require_triple(device_id, game_name)
        now = self.clock()

        session, created = self.store.open_or_refresh(
            user_id, device_id, game_name, platform or "", core or "", now
        )
        if created:
            logger.info(f"Session {session.id} started: {game_name} on {device_id}")
        else:
            logger.debug(f"Session {session.id} already active, heartbeat refreshed")

        if self.devices is not None:
            try:
                self.devices.upsert_last_seen(user_id, device_id, None, now)
            except StorageError as e:
                logger.warning(f"Could not update last seen for device {device_id}: {e.message}")

        return session.id

    def end(self, user_id: UUID, device_id: Optional[str], game_name: Optional[str]) -> Tuple[UUID, int]:
        """Close the active session of the triple. Returns (session_id, duration)."""
        _require_triple(device_id, game_name)

        session = self.store.find_active(user_id, device_id, game_name, for_update=True)
        if session is None:
            self.store.release()
            raise NotFoundError("No active session found")

        now = self.clock()
        duration = session_duration(session.start_time, now)
        self.store.close(session, now, duration)

        logger.info(f"Session {session.id} ended: {game_name} on {device_id}, {duration}s")
        return session.id, duration

    def ping(self, user_id: UUID, device_id: Optional[str], game_name: Optional[str]) -> bool:
        """Heartbeat. Returns whether an active session was found and refreshed."""
        if not device_id or not game_name:
            return False
        return self.store.touch_active(user_id, device_id, game_name, self.clock())
