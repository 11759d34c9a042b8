from sqlalchemy import (
    Column, String, Integer, BigInteger, Boolean, DateTime, Text, ForeignKey, Index, Uuid, text
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import secrets
import uuid

from app.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_api_key() -> str:
    return secrets.token_hex(32)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(255), default="")
    profile_public = Column(Boolean, default=False, nullable=False)
    api_key = Column(String(64), unique=True, nullable=False, index=True, default=generate_api_key)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    devices = relationship("Device", back_populates="user", cascade="all, delete-orphan")
    sessions = relationship("GameplaySession", back_populates="user", cascade="all, delete-orphan")
    backups = relationship("SaveBackup", back_populates="user", cascade="all, delete-orphan")


class Device(Base):
    __tablename__ = "devices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String(255), nullable=False)
    device_name = Column(String(255), default="R36S Device")
    last_seen = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="devices")

    __table_args__ = (
        Index("idx_device_user_device", "user_id", "device_id", unique=True),
    )


class GameplaySession(Base):
    """
    One play interval of a game on a device.

    A row is active (is_active, no end_time) until the device ends it; the
    partial unique index keeps at most one active row per
    (user, device, game) triple.
    """
    __tablename__ = "gameplay_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String(255), nullable=False)
    game_name = Column(String(500), nullable=False, index=True)
    platform = Column(String(100), default="")
    core = Column(String(100), default="")
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime)
    duration = Column(Integer, default=0, nullable=False)  # in seconds
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD, UTC
    is_active = Column(Boolean, default=False, nullable=False)
    last_ping = Column(DateTime)

    # Relationships
    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index(
            "uq_active_session_triple",
            "user_id", "device_id", "game_name",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("idx_session_user_closed_start", "user_id", "is_active", "start_time"),
    )


class SaveBackup(Base):
    __tablename__ = "save_backups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String(255), nullable=False)
    backup_date = Column(DateTime, nullable=False, index=True)
    file_path = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="backups")
