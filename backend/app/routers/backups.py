from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.auth import get_api_key_user, get_current_user
from app.database import get_db
from app.models import User
from app.schemas import BackupUploadResponse, BackupListResponse, BackupResponse, SuccessResponse
from app.services.backup_service import BackupService

router = APIRouter(prefix="/backups", tags=["Backups"])


@router.post("", response_model=BackupUploadResponse)
def upload_backup(
    backup: UploadFile = File(...),
    device_id: Optional[str] = Form(None, alias="deviceId"),
    user: User = Depends(get_api_key_user),
    db: Session = Depends(get_db)
):
    """Upload a save-file archive from a device."""
    record = BackupService(db).store(user.id, device_id, backup.file)
    return BackupUploadResponse(message="Backup uploaded successfully", backup_id=record.id)


@router.get("", response_model=BackupListResponse)
def list_backups(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Backups of the current user, newest first."""
    backups = BackupService(db).list_for_user(user.id)
    return BackupListResponse(backups=[BackupResponse.model_validate(b) for b in backups])


@router.get("/{backup_id}/download")
def download_backup(
    backup_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Download the archive of one of the current user's backups."""
    backup = BackupService(db).get_file(user.id, backup_id)
    return FileResponse(backup.file_path, filename=backup.file_name, media_type="application/gzip")


@router.delete("/{backup_id}", response_model=SuccessResponse)
def delete_backup(
    backup_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a backup record and its archive."""
    BackupService(db).delete(user.id, backup_id)
    return SuccessResponse(message="Backup deleted")
