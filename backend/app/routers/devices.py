from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth import get_api_key_user, get_current_user
from app.database import get_db
from app.models import User
from app.schemas import DeviceRegisterRequest, DeviceRegisterResponse, DeviceListResponse, DeviceResponse
from app.services.device_registry import DeviceRegistry

router = APIRouter(prefix="/devices", tags=["Devices"])


@router.post("/register", response_model=DeviceRegisterResponse)
def register_device(
    payload: DeviceRegisterRequest,
    user: User = Depends(get_api_key_user),
    db: Session = Depends(get_db)
):
    """Register a device or refresh its name and last-seen time."""
    device = DeviceRegistry(db).register(user.id, payload.device_id, payload.device_name)
    return DeviceRegisterResponse(device=DeviceResponse.model_validate(device))


@router.get("", response_model=DeviceListResponse)
def list_devices(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    devices = DeviceRegistry(db).list_for_user(user.id)
    return DeviceListResponse(devices=[DeviceResponse.model_validate(d) for d in devices])
