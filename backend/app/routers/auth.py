from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth import create_access_token, get_current_user
from app.database import get_db
from app.models import User
from app.schemas import (
    RegisterRequest, LoginRequest, ProfileUpdate, AuthResponse, MeResponse, ProfileResponse,
    ApiKeyResponse, UserResponse
)
from app.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    """Create an account and return a token for it."""
    user = UserService(db).register(
        payload.username, payload.email, payload.password, payload.display_name
    )
    return AuthResponse(
        message="User registered successfully",
        token=create_access_token(user.id),
        user=UserResponse.model_validate(user)
    )


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """Log in with a username or email."""
    user = UserService(db).authenticate(payload.username, payload.password)
    return AuthResponse(
        token=create_access_token(user.id),
        user=UserResponse.model_validate(user)
    )


@router.get("/me", response_model=MeResponse)
def get_me(user: User = Depends(get_current_user)):
    return MeResponse(user=UserResponse.model_validate(user))


@router.patch("/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change display name or public profile visibility."""
    user = UserService(db).update_profile(user, payload.display_name, payload.profile_public)
    return ProfileResponse(user=UserResponse.model_validate(user))


@router.post("/regenerate-api-key", response_model=ApiKeyResponse)
def regenerate_api_key(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Replace the API key used by devices. The old key stops working."""
    api_key = UserService(db).regenerate_api_key(user)
    return ApiKeyResponse(api_key=api_key)
