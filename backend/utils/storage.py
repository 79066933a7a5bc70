# backend/utils/storage.py
import shutil
import uuid
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urljoin

from fastapi import HTTPException, Request, UploadFile

from config import settings

ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/webp"]
BUCKETS = {"products", "user-avatars"}

# Files are served by the StaticFiles mount in main.py
PUBLIC_PREFIX = "/uploads"


def upload_root() -> Path:
    return Path(settings.UPLOAD_DIR)


def ensure_buckets() -> None:
    for bucket in BUCKETS:
        (upload_root() / bucket).mkdir(parents=True, exist_ok=True)


def save_image(bucket: str, file: UploadFile, name: Optional[str] = None, upsert: bool = True) -> str:
    """Store an uploaded image in a bucket and return its storage path ("<bucket>/<file>")."""
    if bucket not in BUCKETS:
        raise ValueError(f"Unknown bucket: {bucket}")
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Invalid file type")

    ext = (file.filename or "").rsplit(".", 1)[-1].lower() if "." in (file.filename or "") else "bin"
    filename = f"{name}.{ext}" if name else f"{uuid.uuid4()}.{ext}"
    target = upload_root() / bucket / filename
    target.parent.mkdir(parents=True, exist_ok=True)

    if target.exists() and not upsert:
        raise HTTPException(status_code=409, detail="File already exists")

    try:
        with open(target, "wb") as buffer:
            shutil.copyfileobj(file.file, buffer)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"File save error: {e}")
    finally:
        file.file.close()

    return f"{bucket}/{filename}"


def public_url(request: Request, path: Union[str, None]) -> Union[str, None]:
    """Absolute URL for a stored path; full URLs are passed through unchanged."""
    if not path:
        return None
    if path.startswith("http://") or path.startswith("https://"):
        return path
    return urljoin(str(request.base_url), f"{PUBLIC_PREFIX}/{path.lstrip('/')}")
