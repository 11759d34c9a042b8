from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple
from uuid import UUID
from datetime import datetime
import logging

from app.errors import StorageError
from app.models import GameplaySession

logger = logging.getLogger(__name__)


class SessionStore:
    """Persistence of gameplay sessions over an explicit database handle."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _storage(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise StorageError(f"Failed to {action}") from e

    def _active_query(self, user_id: UUID, device_id: str, game_name: str):
        return self.db.query(GameplaySession).filter(
            GameplaySession.user_id == user_id,
            GameplaySession.device_id == device_id,
            GameplaySession.game_name == game_name,
            GameplaySession.is_active == True,
        )

    def find_active(
        self,
        user_id: UUID,
        device_id: str,
        game_name: str,
        for_update: bool = False
    ) -> Optional[GameplaySession]:
        """Get the active session of a triple, optionally row-locked."""
        with self._storage("load active session"):
            query = self._active_query(user_id, device_id, game_name)
            if for_update:
                query = query.with_for_update()
            return query.first()

    def open_or_refresh(
        self,
        user_id: UUID,
        device_id: str,
        game_name: str,
        platform: str,
        core: str,
        now: datetime
    ) -> Tuple[GameplaySession, bool]:
        """
        Find-or-create the active session of a triple in one transaction.

        An existing active session only gets its heartbeat refreshed. When a
        concurrent start inserts first, the partial unique index rejects our
        insert and the winner's row is heartbeated instead.
        Returns (session, created).
        """
        try:
            session = self._active_query(user_id, device_id, game_name).with_for_update().first()
            created = session is None
            if created:
                session = GameplaySession(
                    user_id=user_id,
                    device_id=device_id,
                    game_name=game_name,
                    platform=platform,
                    core=core,
                    start_time=now,
                    date=now.strftime("%Y-%m-%d"),
                    is_active=True,
                    last_ping=now,
                )
                self.db.add(session)
            else:
                session.last_ping = now
            self.db.commit()
            return session, created
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Concurrent start for {device_id}/{game_name}, reusing active session")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to open session: {str(e)}")
            raise StorageError("Failed to open session") from e

        with self._storage("refresh concurrent session"):
            session = self._active_query(user_id, device_id, game_name).with_for_update().first()
            if session is None:
                raise StorageError("Active session disappeared during concurrent start")
            session.last_ping = now
            self.db.commit()
            return session, False

    def close(self, session: GameplaySession, end_time: datetime, duration: int) -> GameplaySession:
        with self._storage("close session"):
            session.end_time = end_time
            session.duration = duration
            session.is_active = False
            self.db.commit()
            return session

    def release(self) -> None:
        """End the current transaction without changes, dropping row locks."""
        with self._storage("release transaction"):
            self.db.rollback()

    def touch_active(self, user_id: UUID, device_id: str, game_name: str, now: datetime) -> bool:
        """Refresh last_ping of the active session of a triple, if any."""
        with self._storage("record heartbeat"):
            updated = self._active_query(user_id, device_id, game_name).update(
                {GameplaySession.last_ping: now},
                synchronize_session=False
            )
            self.db.commit()
            return updated > 0

    def iter_closed(
        self,
        user_id: UUID,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        batch_size: int = 500
    ) -> Iterator[GameplaySession]:
        """Stream closed sessions of a user, newest first, optionally date-bounded."""
        query = self.db.query(GameplaySession).filter(
            GameplaySession.user_id == user_id,
            GameplaySession.is_active == False
        )
        if start_date:
            query = query.filter(GameplaySession.date >= start_date)
        if end_date:
            query = query.filter(GameplaySession.date <= end_date)

        with self._storage("load sessions"):
            for session in query.order_by(GameplaySession.start_time.desc()).yield_per(batch_size):
                yield session

    def recent_closed(self, user_id: UUID, limit: int) -> List[GameplaySession]:
        with self._storage("load recent sessions"):
            return self.db.query(GameplaySession).filter(
                GameplaySession.user_id == user_id,
                GameplaySession.is_active == False
            ).order_by(GameplaySession.start_time.desc()).limit(limit).all()
