from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.auth import get_api_key_user, get_current_user
from app.database import get_db
from app.models import User
from app.schemas import (
    SessionStartRequest, SessionKeyRequest, SessionStartResponse, SessionEndResponse,
    PingResponse, OwnerStatsResponse, PublicStatsResponse
)
from app.services.device_registry import DeviceRegistry
from app.services.session_lifecycle import SessionLifecycleManager
from app.services.session_store import SessionStore
from app.services.stats_aggregator import StatsAggregator
from app.services.user_service import UserService

router = APIRouter(prefix="/gameplay", tags=["Gameplay"])


def get_lifecycle(db: Session = Depends(get_db)) -> SessionLifecycleManager:
    return SessionLifecycleManager(SessionStore(db), DeviceRegistry(db))


def get_aggregator(db: Session = Depends(get_db)) -> StatsAggregator:
    return StatsAggregator(SessionStore(db), UserService(db))


@router.post("/start", response_model=SessionStartResponse)
def start_session(
    payload: SessionStartRequest,
    user: User = Depends(get_api_key_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle)
):
    """Start a gameplay session. Repeating it while active acts as a heartbeat."""
    session_id = lifecycle.start(
        user.id, payload.device_id, payload.game_name, payload.platform, payload.core
    )
    return SessionStartResponse(message="Session started", session_id=session_id)


@router.post("/end", response_model=SessionEndResponse)
def end_session(
    payload: SessionKeyRequest,
    user: User = Depends(get_api_key_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle)
):
    """End the active gameplay session of a device and game."""
    session_id, duration = lifecycle.end(user.id, payload.device_id, payload.game_name)
    return SessionEndResponse(message="Session ended", session_id=session_id, duration=duration)


@router.post("/ping", response_model=PingResponse)
def ping_session(
    payload: SessionKeyRequest,
    user: User = Depends(get_api_key_user),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle)
):
    """Heartbeat from the device while a game is running."""
    updated = lifecycle.ping(user.id, payload.device_id, payload.game_name)
    return PingResponse(updated=updated)


@router.get("/stats", response_model=OwnerStatsResponse)
def get_stats(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user: User = Depends(get_current_user),
    aggregator: StatsAggregator = Depends(get_aggregator)
):
    """Playtime statistics of the current user over closed sessions."""
    return aggregator.owner_stats(user.id, start_date, end_date)


@router.get("/public/{username}", response_model=PublicStatsResponse)
def get_public_stats(username: str, aggregator: StatsAggregator = Depends(get_aggregator)):
    """Statistics of a user who made their profile public."""
    return aggregator.public_stats(username)
