from fastapi import APIRouter, Depends

from core.errors import ValidationError
from core.tenancy import get_current_user
from models.user import User
from schemas.upload import UploadOut, UploadRequest
from services.cloudinary import cloudinary_service

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("/", response_model=UploadOut, status_code=201)
def upload(data: UploadRequest, user: User = Depends(get_current_user)):
    ok, asset, error = cloudinary_service.upload(data.file, data.folder)
    if not ok:
        raise ValidationError(error or "Upload failed")
    return asset


@router.delete("/{public_id:path}")
def delete_upload(public_id: str, user: User = Depends(get_current_user)):
    ok, error = cloudinary_service.delete(public_id)
    if not ok:
        raise ValidationError(error or "Delete failed", id=public_id)
    return {"success": True}
