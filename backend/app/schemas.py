from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict
from datetime import datetime
from uuid import UUID


class CamelModel(BaseModel):
    """Base schema: snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# Generic
class SuccessResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None


# User Schemas
class RegisterRequest(CamelModel):
    username: str
    email: str
    password: str
    display_name: Optional[str] = None


class LoginRequest(CamelModel):
    username: str  # username or email
    password: str


class ProfileUpdate(CamelModel):
    display_name: Optional[str] = None
    profile_public: Optional[bool] = None


class UserResponse(CamelModel):
    id: UUID
    username: str
    email: str
    display_name: str = ""
    profile_public: bool = False
    api_key: Optional[str] = None


class AuthResponse(SuccessResponse):
    token: str
    user: UserResponse


class MeResponse(CamelModel):
    user: UserResponse


class ProfileResponse(SuccessResponse):
    user: UserResponse


class ApiKeyResponse(SuccessResponse):
    api_key: str


# Device Schemas
class DeviceRegisterRequest(CamelModel):
    device_id: Optional[str] = None
    device_name: Optional[str] = None


class DeviceResponse(CamelModel):
    id: UUID
    device_id: str
    device_name: str
    last_seen: Optional[datetime] = None
    created_at: Optional[datetime] = None


class DeviceRegisterResponse(SuccessResponse):
    device: DeviceResponse


class DeviceListResponse(CamelModel):
    devices: List[DeviceResponse] = []


# Gameplay Session Schemas
class SessionStartRequest(CamelModel):
    device_id: Optional[str] = None
    game_name: Optional[str] = None
    platform: Optional[str] = None
    core: Optional[str] = None


class SessionKeyRequest(CamelModel):
    device_id: Optional[str] = None
    game_name: Optional[str] = None


class SessionStartResponse(SuccessResponse):
    session_id: UUID


class SessionEndResponse(SuccessResponse):
    session_id: UUID
    duration: int


class PingResponse(SuccessResponse):
    updated: bool


class GameplaySessionResponse(CamelModel):
    id: UUID
    device_id: str
    game_name: str
    platform: Optional[str] = ""
    core: Optional[str] = ""
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int = 0
    date: str
    is_active: bool
    last_ping: Optional[datetime] = None


# Stats Schemas
class GameSummary(CamelModel):
    game_name: str
    platform: Optional[str] = ""
    total_playtime: int = 0
    session_count: int = 0


class DateSummary(CamelModel):
    date: str
    total_playtime: int = 0
    session_count: int = 0


class OwnerStatsResponse(CamelModel):
    total_sessions: int = 0
    total_playtime: int = 0
    games_played: int = 0
    sessions: List[GameplaySessionResponse] = []
    by_game: Dict[str, GameSummary] = {}
    by_date: Dict[str, DateSummary] = {}


class PublicStatsResponse(CamelModel):
    username: str
    display_name: str = ""
    total_sessions: int = 0
    total_playtime: int = 0
    games_played: int = 0
    recent_sessions: List[GameplaySessionResponse] = []
    by_game: Dict[str, GameSummary] = {}


# Backup Schemas
class BackupResponse(CamelModel):
    id: UUID
    device_id: str
    backup_date: datetime
    file_name: str
    file_size: int
    created_at: Optional[datetime] = None


class BackupUploadResponse(SuccessResponse):
    backup_id: UUID


class BackupListResponse(CamelModel):
    backups: List[BackupResponse] = []
