from typing import Any, Dict, Iterable, Optional
from uuid import UUID
from datetime import datetime

from app.config import settings
from app.errors import ValidationError
from app.models import GameplaySession
from app.schemas import GameplaySessionResponse, OwnerStatsResponse, PublicStatsResponse
from app.services.session_store import SessionStore
from app.services.user_service import UserService


DATE_FORMAT = "%Y-%m-%d"


def summarize_sessions(
    sessions: Iterable[GameplaySession],
    by_date: bool = True,
    keep: Optional[int] = None
) -> Dict[str, Any]:
    """
    Fold closed sessions into totals and per-game / per-date buckets.

    Sessions are expected newest first, so a game's platform comes from its
    most recent session. Only the first `keep` sessions are returned in
    full (all of them when keep is None); every session counts toward the
    totals.
    """
    total_sessions = 0
    total_playtime = 0
    kept = []
    games: Dict[str, Dict[str, Any]] = {}
    dates: Dict[str, Dict[str, Any]] = {}

    for session in sessions:
        duration = session.duration or 0
        total_sessions += 1
        total_playtime += duration

        if keep is None or len(kept) < keep:
            kept.append(GameplaySessionResponse.model_validate(session))

        game = games.get(session.game_name)
        if game is None:
            game = games[session.game_name] = {
                "game_name": session.game_name,
                "platform": session.platform,
                "total_playtime": 0,
                "session_count": 0
            }
        game["total_playtime"] += duration
        game["session_count"] += 1

        if by_date:
            day = dates.get(session.date)
            if day is None:
                day = dates[session.date] = {
                    "date": session.date,
                    "total_playtime": 0,
                    "session_count": 0
                }
            day["total_playtime"] += duration
            day["session_count"] += 1

    summary = {
        "total_sessions": total_sessions,
        "total_playtime": total_playtime,
        "games_played": len(games),
        "sessions": kept,
        "by_game": games,
    }
    if by_date:
        summary["by_date"] = dates
    return summary


def _date_bound(value: Optional[str], name: str) -> Optional[str]:
    if not value:
        return None
    try:
        datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")
    # strptime also accepts unpadded months and days, which break string ordering
    if len(value) != 10:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")
    return value


class StatsAggregator:
    """Owner and public playtime reports, recomputed on every call."""

    def __init__(self, store: SessionStore, profiles: UserService):
        self.store = store
        self.profiles = profiles

    def owner_stats(
        self,
        user_id: UUID,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> OwnerStatsResponse:
        start_date = _date_bound(start_date, "startDate")
        end_date = _date_bound(end_date, "endDate")

        summary = summarize_sessions(self.store.iter_closed(user_id, start_date, end_date))
        return OwnerStatsResponse(**summary)

    def public_stats(self, username: str) -> PublicStatsResponse:
        user = self.profiles.get_public_profile(username)

        sessions = self.store.recent_closed(user.id, settings.public_session_limit)
        summary = summarize_sessions(sessions, by_date=False, keep=settings.public_recent_limit)

        return PublicStatsResponse(
            username=user.username,
            display_name=user.display_name or "",
            total_sessions=summary["total_sessions"],
            total_playtime=summary["total_playtime"],
            games_played=summary["games_played"],
            recent_sessions=summary["sessions"],
            by_game=summary["by_game"],
        )
