from fastapi import UploadFile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import secrets

from tradevault.core.config import settings
from tradevault.core.exceptions import DomainError, PayloadTooLarge

ALLOWED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp', '.pdf'}


class UnsupportedFileType(DomainError):
    default_detail = "File type not allowed"


async def save_upload(
    file: Optional[UploadFile],
    owner_id: int,
    folder: str,
    label: str
) -> Optional[str]:
    """
    Persist an uploaded image under LOCAL_STORAGE_PATH/<folder>.

    Returns the stored path, or None when no file was sent. Files above
    MAX_UPLOAD_BYTES raise PayloadTooLarge before anything is written.
    """
    if file is None or not file.filename:
        return None

    file_ext = Path(file.filename).suffix.lower()
    if file_ext not in ALLOWED_EXTENSIONS:
        raise UnsupportedFileType(
            f"File type {file_ext or '(none)'} not allowed. Allowed types: {sorted(ALLOWED_EXTENSIONS)}"
        )

    # Read one byte past the cap so oversized uploads are detected without buffering them whole
    content = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise PayloadTooLarge(
            f"File exceeds the {settings.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit"
        )

    timestamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')
    filename = f"{owner_id}_{label}_{timestamp}_{secrets.token_hex(4)}{file_ext}"

    upload_dir = Path(settings.LOCAL_STORAGE_PATH) / folder
    upload_dir.mkdir(parents=True, exist_ok=True)

    file_path = upload_dir / filename
    with open(file_path, "wb") as f:
        f.write(content)

    return str(file_path)
