import logging
import re
from typing import Dict, Optional, Tuple

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from core.config import settings

logger = logging.getLogger(__name__)

DATA_URI = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,", re.IGNORECASE)
ALLOWED_FOLDERS = {"payment_proofs", "products", "stores", "categories"}


class CloudinaryService:
    def __init__(self):
        cloudinary.config(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            secure=True,
        )

    def upload(self, data_uri: str, folder: str = "payment_proofs") -> Tuple[bool, Optional[Dict[str, str]], Optional[str]]:
        """
        Upload a base64 data URI to Cloudinary.

        Args:
            data_uri: ``data:<mime>;base64,<payload>`` string
            folder: Target folder below the configured root folder

        Returns:
            Tuple of (success: bool, {"url", "id"} or None, error: Optional[str])
        """
        if not DATA_URI.match(data_uri or ""):
            return False, None, "File must be a base64 data URI"
        if folder not in ALLOWED_FOLDERS:
            return False, None, f"Unknown upload folder: {folder}"

        try:
            result = cloudinary.uploader.upload(
                data_uri,
                folder=f"{settings.CLOUDINARY_ROOT_FOLDER}/{folder}",
                resource_type="auto",
            )
        except CloudinaryError as e:
            logger.error("Cloudinary upload to %s failed: %s", folder, e)
            return False, None, str(e)

        return True, {"url": result.get("secure_url"), "id": result.get("public_id")}, None

    def delete(self, public_id: str) -> Tuple[bool, Optional[str]]:
        """
        Delete an uploaded asset.

        Returns:
            Tuple of (success: bool, error: Optional[str])
        """
        try:
            result = cloudinary.uploader.destroy(public_id)
        except CloudinaryError as e:
            logger.error("Cloudinary delete of %s failed: %s", public_id, e)
            return False, str(e)

        # Cloudinary returns {"result": "ok"} or {"result": "not found"}
        if result.get("result") in ("ok", "not found"):
            return True, None
        return False, f"Failed to delete: {result.get('result')}"


# Global instance
cloudinary_service = CloudinaryService()
