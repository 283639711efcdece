"""Storage of multipart uploads under the configured upload directory."""

import logging
import re
import time
from pathlib import Path
from typing import Optional

import aiofiles
from fastapi import UploadFile

logger = logging.getLogger(__name__)

TRACKS = 'tracks'
COVERS = 'covers'
AVATARS = 'avatars'
KINDS = (TRACKS, COVERS, AVATARS)

CHUNK_SIZE = 1024 * 1024
MAX_NAME_LENGTH = 100
UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9._-]+')

def safe_filename(filename: Optional[str]) -> str:
    """Reduce a client-supplied name to a harmless basename."""
    name = Path(filename or '').name
    name = UNSAFE_CHARS.sub('-', name).strip('-.')
    return name[-MAX_NAME_LENGTH:] or 'file'

async def save_upload(upload: UploadFile, upload_dir: str, kind: str) -> str:
    """Write an upload to <upload_dir>/<kind>/<timestamp>-<name>.

    Returns:
        The /uploads/... reference stored on the entity
    """
    if kind not in KINDS:
        raise ValueError(f"Unknown upload kind {kind}")

    directory = Path(upload_dir) / kind
    directory.mkdir(parents=True, exist_ok=True)
    filename = f"{int(time.time() * 1000)}-{safe_filename(upload.filename)}"

    async with aiofiles.open(directory / filename, 'wb') as f:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            await f.write(chunk)

    logger.info(f"Stored upload {kind}/{filename}")
    return f"/uploads/{kind}/{filename}"
