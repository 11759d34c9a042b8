from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, List, Optional
from uuid import UUID
import logging
import secrets
import time

from app.config import settings
from app.errors import NotFoundError, StorageError, ValidationError
from app.models import SaveBackup, utcnow

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class BackupService:
    """Save-file archives uploaded by devices, kept on local disk."""

    def __init__(self, db: Session, upload_dir: Optional[str] = None, max_bytes: Optional[int] = None):
        self.db = db
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.max_bytes = max_bytes if max_bytes is not None else settings.max_backup_bytes

    @contextmanager
    def _storage(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise StorageError(f"Failed to {action}") from e

    def _write(self, user_id: UUID, source: BinaryIO) -> Path:
        user_dir = self.upload_dir / str(user_id)
        user_dir.mkdir(parents=True, exist_ok=True)

        file_name = f"backup_{int(time.time() * 1000)}_{secrets.token_hex(8)}.tar.gz"
        target = user_dir / file_name

        written = 0
        with open(target, "wb") as out:
            while True:
                chunk = source.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_bytes:
                    break
                out.write(chunk)

        if written > self.max_bytes:
            target.unlink()
            raise ValidationError(f"Backup exceeds the {self.max_bytes} byte limit")
        return target

    def store(self, user_id: UUID, device_id: Optional[str], source: BinaryIO) -> SaveBackup:
        if not device_id or not device_id.strip():
            raise ValidationError("deviceId is required")

        path = self._write(user_id, source)
        backup = SaveBackup(
            user_id=user_id,
            device_id=device_id,
            backup_date=utcnow(),
            file_path=str(path),
            file_name=path.name,
            file_size=path.stat().st_size,
        )
        self.db.add(backup)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            path.unlink(missing_ok=True)
            logger.error(f"Failed to record backup: {str(e)}")
            raise StorageError("Failed to record backup") from e

        self.db.refresh(backup)
        logger.info(f"Stored backup {backup.file_name} ({backup.file_size} bytes) from {device_id}")
        return backup

    def list_for_user(self, user_id: UUID) -> List[SaveBackup]:
        with self._storage("list backups"):
            return self.db.query(SaveBackup).filter(
                SaveBackup.user_id == user_id
            ).order_by(SaveBackup.backup_date.desc()).all()

    def get_for_user(self, user_id: UUID, backup_id: UUID) -> SaveBackup:
        with self._storage("load backup"):
            backup = self.db.query(SaveBackup).filter(
                SaveBackup.id == backup_id,
                SaveBackup.user_id == user_id
            ).first()
        if not backup:
            raise NotFoundError("Backup not found")
        return backup

    def get_file(self, user_id: UUID, backup_id: UUID) -> SaveBackup:
        """A backup whose archive is still on disk."""
        backup = self.get_for_user(user_id, backup_id)
        if not Path(backup.file_path).is_file():
            raise NotFoundError("Backup file not found on disk")
        return backup

    def delete(self, user_id: UUID, backup_id: UUID) -> None:
        """Drop the record, then its archive. A failed commit keeps both."""
        backup = self.get_for_user(user_id, backup_id)
        path = Path(backup.file_path)

        with self._storage("delete backup"):
            self.db.delete(backup)
            self.db.commit()

        path.unlink(missing_ok=True)
        logger.info(f"Deleted backup {backup_id}")
