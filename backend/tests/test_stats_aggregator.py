from datetime import datetime, timedelta
from types import SimpleNamespace
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from app.errors import ForbiddenError, NotFoundError, StorageError, ValidationError
from app.models import GameplaySession
from app.services.session_lifecycle import SessionLifecycleManager
from app.services.session_store import SessionStore
from app.services.stats_aggregator import StatsAggregator, summarize_sessions
from app.services.user_service import UserService


@pytest.fixture
def aggregator(db_session):
    return StatsAggregator(SessionStore(db_session), UserService(db_session))


@pytest.fixture
def add_session(db_session):
    def _add_session(user, game, start, duration, platform="gba", device="dev1", active=False):
        session = GameplaySession(
            user_id=user.id,
            device_id=device,
            game_name=game,
            platform=platform,
            core="",
            start_time=start,
            end_time=None if active else start + timedelta(seconds=duration),
            duration=0 if active else duration,
            date=start.strftime("%Y-%m-%d"),
            is_active=active,
            last_ping=start,
        )
        db_session.add(session)
        db_session.commit()
        return session

    return _add_session


def fake_session(game, date, duration, platform="snes"):
    start = datetime.strptime(date, "%Y-%m-%d")
    return SimpleNamespace(
        id=uuid.uuid4(), device_id="dev1", game_name=game, platform=platform, core="",
        start_time=start, end_time=start + timedelta(seconds=duration), duration=duration,
        date=date, is_active=False, last_ping=start,
    )


class TestSummarizeSessions:
    def test_empty(self):
        summary = summarize_sessions([])

        assert summary["total_sessions"] == 0
        assert summary["total_playtime"] == 0
        assert summary["games_played"] == 0
        assert summary["sessions"] == []
        assert summary["by_game"] == {}
        assert summary["by_date"] == {}

    def test_buckets_add_up_to_totals(self):
        sessions = [
            fake_session("Zelda", "2024-03-02", 300),
            fake_session("Metroid", "2024-03-02", 120),
            fake_session("Zelda", "2024-03-01", 60),
            fake_session("Tetris", "2024-02-28", 45),
        ]

        summary = summarize_sessions(sessions)

        assert summary["total_sessions"] == 4
        assert summary["total_playtime"] == 525
        assert summary["games_played"] == 3
        assert summary["by_game"]["Zelda"] == {
            "game_name": "Zelda", "platform": "snes", "total_playtime": 360, "session_count": 2
        }
        assert summary["by_date"]["2024-03-02"]["total_playtime"] == 420
        for buckets in (summary["by_game"], summary["by_date"]):
            assert sum(b["session_count"] for b in buckets.values()) == summary["total_sessions"]
            assert sum(b["total_playtime"] for b in buckets.values()) == summary["total_playtime"]

    def test_platform_comes_from_first_session_of_game(self):
        sessions = [
            fake_session("Doom", "2024-03-02", 10, platform="gba"),
            fake_session("Doom", "2024-03-01", 10, platform="psx"),
        ]

        assert summarize_sessions(sessions)["by_game"]["Doom"]["platform"] == "gba"

    def test_keep_limits_listed_sessions_but_not_totals(self):
        sessions = [fake_session("Zelda", "2024-03-01", 10) for _ in range(5)]

        summary = summarize_sessions(sessions, by_date=False, keep=2)

        assert len(summary["sessions"]) == 2
        assert summary["total_sessions"] == 5
        assert summary["total_playtime"] == 50
        assert "by_date" not in summary

    def test_accepts_a_generator(self):
        summary = summarize_sessions(fake_session("Zelda", "2024-03-01", 7) for _ in range(3))

        assert summary["total_playtime"] == 21


class TestOwnerStats:
    def test_start_then_end_scenario(self, db_session, aggregator, make_user, clock):
        user = make_user("u1")
        lifecycle = SessionLifecycleManager(SessionStore(db_session), clock=clock)

        lifecycle.start(user.id, "dev1", "Zelda")
        stats = aggregator.owner_stats(user.id)
        assert stats.total_sessions == 0
        assert stats.total_playtime == 0

        clock.advance(seconds=125)
        lifecycle.end(user.id, "dev1", "Zelda")
        stats = aggregator.owner_stats(user.id)

        assert stats.total_sessions == 1
        assert stats.total_playtime == 125
        assert stats.games_played == 1
        assert stats.by_game["Zelda"].session_count == 1
        assert stats.by_game["Zelda"].total_playtime == 125
        assert stats.by_date["2024-03-09"].total_playtime == 125

    def test_active_sessions_never_count(self, aggregator, add_session, make_user):
        user = make_user()
        add_session(user, "Zelda", datetime(2024, 3, 1, 10), 600)
        add_session(user, "Metroid", datetime(2024, 3, 2, 10), 0, active=True)

        stats = aggregator.owner_stats(user.id)

        assert stats.total_sessions == 1
        assert stats.total_playtime == 600
        assert "Metroid" not in stats.by_game

    def test_sessions_sorted_newest_first(self, aggregator, add_session, make_user):
        user = make_user()
        add_session(user, "A", datetime(2024, 3, 1, 10), 10)
        add_session(user, "B", datetime(2024, 3, 3, 10), 10)
        add_session(user, "C", datetime(2024, 3, 2, 10), 10)

        stats = aggregator.owner_stats(user.id)

        assert [s.game_name for s in stats.sessions] == ["B", "C", "A"]

    def test_only_own_sessions(self, aggregator, add_session, make_user):
        user = make_user("player1")
        other = make_user("player2")
        add_session(user, "Zelda", datetime(2024, 3, 1, 10), 100)
        add_session(other, "Zelda", datetime(2024, 3, 1, 10), 999)

        assert aggregator.owner_stats(user.id).total_playtime == 100

    def test_date_range_is_inclusive(self, aggregator, add_session, make_user):
        user = make_user()
        add_session(user, "Zelda", datetime(2024, 2, 29, 23, 0), 1)
        add_session(user, "Zelda", datetime(2024, 3, 1, 0, 0), 10)
        add_session(user, "Zelda", datetime(2024, 3, 15, 12, 0), 100)
        add_session(user, "Zelda", datetime(2024, 3, 31, 23, 59), 1000)
        add_session(user, "Zelda", datetime(2024, 4, 1, 0, 0), 10000)

        stats = aggregator.owner_stats(user.id, "2024-03-01", "2024-03-31")

        assert stats.total_sessions == 3
        assert stats.total_playtime == 1110
        assert set(stats.by_date) == {"2024-03-01", "2024-03-15", "2024-03-31"}

    def test_open_ended_date_bounds(self, aggregator, add_session, make_user):
        user = make_user()
        add_session(user, "Zelda", datetime(2024, 1, 1), 1)
        add_session(user, "Zelda", datetime(2024, 6, 1), 10)

        assert aggregator.owner_stats(user.id, start_date="2024-03-01").total_playtime == 10
        assert aggregator.owner_stats(user.id, end_date="2024-03-01").total_playtime == 1

    @pytest.mark.parametrize("bad", ["2024-3-01", "03/01/2024", "yesterday", "2024-02-30"])
    def test_malformed_date_bound(self, aggregator, make_user, bad):
        user = make_user()

        with pytest.raises(ValidationError):
            aggregator.owner_stats(user.id, start_date=bad)

    def test_bucket_sums_match_totals(self, aggregator, add_session, make_user):
        user = make_user()
        games = ["Zelda", "Metroid", "Tetris"]
        for i in range(12):
            add_session(user, games[i % 3], datetime(2024, 3, 1 + i % 4, 10, i), 60 * (i + 1))

        stats = aggregator.owner_stats(user.id)

        assert sum(g.session_count for g in stats.by_game.values()) == stats.total_sessions
        assert sum(g.total_playtime for g in stats.by_game.values()) == stats.total_playtime
        assert sum(d.session_count for d in stats.by_date.values()) == stats.total_sessions
        assert sum(d.total_playtime for d in stats.by_date.values()) == stats.total_playtime


class TestPublicStats:
    def test_unknown_user(self, aggregator):
        with pytest.raises(NotFoundError):
            aggregator.public_stats("nobody")

    def test_private_profile_is_forbidden(self, aggregator, add_session, make_user):
        user = make_user("hidden", public=False)
        add_session(user, "Zelda", datetime(2024, 3, 1, 10), 100)

        with pytest.raises(ForbiddenError):
            aggregator.public_stats("hidden")

    def test_public_profile(self, aggregator, add_session, make_user):
        user = make_user("shown", public=True)
        add_session(user, "Zelda", datetime(2024, 3, 1, 10), 100)
        add_session(user, "Metroid", datetime(2024, 3, 2, 10), 0, active=True)

        stats = aggregator.public_stats("shown")

        assert stats.username == "shown"
        assert stats.display_name == "Shown"
        assert stats.total_sessions == 1
        assert stats.total_playtime == 100
        assert list(stats.by_game) == ["Zelda"]
        assert not hasattr(stats, "by_date")

    def test_storage_failure_is_surfaced(self, aggregator, db_session, make_user, monkeypatch):
        make_user("shown", public=True)

        def failing_query(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection lost"))

        monkeypatch.setattr(db_session, "query", failing_query)

        with pytest.raises(StorageError):
            aggregator.public_stats("shown")

    def test_capped_to_most_recent_sessions(self, aggregator, add_session, make_user):
        user = make_user("u2", public=True)
        base = datetime(2024, 1, 1)
        for i in range(150):
            # oldest sessions are the longest, so including them would change the total
            add_session(user, "Zelda", base + timedelta(hours=i), 1000 if i < 50 else 10)

        stats = aggregator.public_stats("u2")

        assert stats.total_sessions == 100
        assert stats.total_playtime == 100 * 10
        assert len(stats.recent_sessions) == 20
        assert stats.recent_sessions[0].start_time == base + timedelta(hours=149)
        assert stats.by_game["Zelda"].session_count == 100
