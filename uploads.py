"""
File uploads to local disk.

Files land in UPLOAD_DIR/<folder>/<ms timestamp>-<random><ext> and are served back
by the /uploads static mount in main.py. No dedup, no processing.
"""
import os
import re
import time
import random
import logging
from typing import List

from fastapi import APIRouter, HTTPException, Depends, UploadFile, File, Request, Query

from responses import ok
from auth import admin_only

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["upload"])

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_BYTES = 5 * 1024 * 1024
MAX_FILES = 10
IMAGE_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
# Lab reports are delivered as PDFs as well as scanned images
FOLDER_EXTENSIONS = {"reports": IMAGE_EXTENSIONS | {".pdf"}}
FOLDER_RE = re.compile(r"^[A-Za-z0-9_-]{1,50}$")


def allowed_extensions(folder: str) -> set:
    return FOLDER_EXTENSIONS.get(folder, IMAGE_EXTENSIONS)


def unique_filename(original: str, prefix: str = "") -> str:
    ext = os.path.splitext(original or "")[1].lower()
    return f"{prefix}{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"


def save_upload(file: UploadFile, folder: str, request: Request, prefix: str = "") -> dict:
    if not FOLDER_RE.match(folder):
        raise HTTPException(status_code=400, detail="Invalid upload folder")
    ext = os.path.splitext(file.filename or "")[1].lower()
    allowed = allowed_extensions(folder)
    if ext not in allowed:
        kinds = ", ".join(sorted(e.lstrip(".") for e in allowed))
        raise HTTPException(status_code=400, detail=f"Only these file types are allowed: {kinds}")
    content = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too large (max 5MB)")

    directory = os.path.join(UPLOAD_DIR, folder)
    os.makedirs(directory, exist_ok=True)
    filename = unique_filename(file.filename, prefix)
    with open(os.path.join(directory, filename), "wb") as fh:
        fh.write(content)

    path = f"uploads/{folder}/{filename}"
    logger.info("Stored upload %s (%d bytes)", path, len(content))
    return {
        "filename": filename,
        "path": path,
        "url": f"{str(request.base_url).rstrip('/')}/{path}",
    }


@router.post("")
def upload_file(request: Request, file: UploadFile = File(...),
                folder: str = Query("general"), _: dict = Depends(admin_only)):
    return ok(save_upload(file, folder, request), message="File uploaded successfully")


@router.post("/multiple")
def upload_files(request: Request, files: List[UploadFile] = File(...),
                 folder: str = Query("general"), _: dict = Depends(admin_only)):
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(files) > MAX_FILES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_FILES} files per upload")
    stored = [save_upload(f, folder, request) for f in files]
    return ok(stored, message="Files uploaded successfully")
