from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import List, Optional
from uuid import UUID
from datetime import datetime
import logging

from app.config import settings
from app.errors import StorageError, ValidationError
from app.models import Device, utcnow

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Devices of a user and when each was last seen."""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, user_id: UUID, device_id: str) -> Optional[Device]:
        return self.db.query(Device).filter(
            Device.user_id == user_id,
            Device.device_id == device_id
        ).first()

    def _apply(self, user_id: UUID, device_id: str, name: Optional[str], timestamp: datetime) -> Device:
        device = self._get(user_id, device_id)
        if device is None:
            device = Device(
                user_id=user_id,
                device_id=device_id,
                device_name=name or settings.default_device_name,
                last_seen=timestamp
            )
            self.db.add(device)
        else:
            device.last_seen = timestamp
            if name:
                device.device_name = name
        self.db.commit()
        return device

    def upsert_last_seen(
        self,
        user_id: UUID,
        device_id: str,
        name: Optional[str],
        timestamp: datetime
    ) -> Device:
        """
        Create or update a device record.

        The name is only written when given; an unnamed new device gets the
        default name.
        """
        try:
            try:
                return self._apply(user_id, device_id, name, timestamp)
            except IntegrityError:
                # Registered concurrently; the row exists now
                self.db.rollback()
                return self._apply(user_id, device_id, name, timestamp)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to upsert device {device_id}: {str(e)}")
            raise StorageError("Failed to update device") from e

    def register(self, user_id: UUID, device_id: Optional[str], device_name: Optional[str] = None) -> Device:
        if not device_id or not device_id.strip():
            raise ValidationError("deviceId is required")

        device = self.upsert_last_seen(
            user_id, device_id, device_name or settings.default_device_name, utcnow()
        )
        logger.info(f"Registered device {device_id} for user {user_id}")
        return device

    def list_for_user(self, user_id: UUID) -> List[Device]:
        try:
            return self.db.query(Device).filter(
                Device.user_id == user_id
            ).order_by(Device.created_at).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list devices: {str(e)}")
            raise StorageError("Failed to list devices") from e
