"""
Local disk storage for uploaded car images, vehicle documents and
incident photos.  Files live under ``settings.upload_dir`` and are served
by the app at ``/uploads``.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from backoffice.config import settings
from backoffice.domain.errors import PayloadTooLarge, ValidationFailed

URL_PREFIX = "/uploads"


@dataclass(frozen=True)
class StoredFile:
    url_path: str
    size: int


def upload_root() -> Path:
    return Path(settings.upload_dir)


def safe_name(filename: str | None) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "_", filename or "file")


async def save_upload(
    file: UploadFile, subdir: str, max_bytes: int, prefix: str = ""
) -> StoredFile:
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise PayloadTooLarge(
            f"{file.filename} exceeds the {max_bytes // (1024 * 1024)} MB limit"
        )
    if not data:
        raise ValidationFailed(f"{file.filename} is empty", field="file")

    name = f"{prefix}{int(time.time() * 1000)}-{safe_name(file.filename)}"
    target_dir = upload_root() / subdir
    target = target_dir / name

    def _write() -> None:
        target_dir.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    await run_in_threadpool(_write)
    return StoredFile(url_path=f"{URL_PREFIX}/{subdir}/{name}", size=len(data))


async def delete_stored(url_path: str) -> None:
    """Remove a stored file; a file already gone is not an error."""
    relative = url_path.removeprefix(URL_PREFIX).lstrip("/")
    target = (upload_root() / relative).resolve()
    if upload_root().resolve() not in target.parents:
        return
    await run_in_threadpool(target.unlink, missing_ok=True)
