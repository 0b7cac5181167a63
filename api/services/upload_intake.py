"""
Upload intake for the visualize endpoint.

Saves multipart file parts to the upload directory after type/size validation, resolves
pre-seeded render images under the public directory, and removes every saved upload when
the request finishes.
"""
import asyncio
import logging
import os
import random
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union
from urllib.parse import unquote

from fastapi import UploadFile

from core.exceptions import InputError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
MAX_LISTED_ENTRIES = 100
_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,5}$")


@dataclass(frozen=True)
class SavedUpload:
    field: str
    path: Path
    original_name: str
    content_type: str
    size: int


def is_image_upload(filename: Optional[str], content_type: Optional[str], allowed_extensions: Sequence[str]) -> bool:
    """Accept by MIME type or by a recognized image extension."""
    if content_type and content_type.lower().startswith("image/"):
        return True
    suffix = Path(filename or "").suffix.lower()
    return suffix in {ext.lower() for ext in allowed_extensions}


class UploadIntake:
    """
    Saves and tracks uploaded files for one request.

    Use as an async context manager; every file saved through it is deleted on exit.
    """

    def __init__(self, upload_dir: Union[str, Path], max_file_size: int, allowed_extensions: Sequence[str]):
        self.upload_dir = Path(upload_dir)
        self.max_file_size = max_file_size
        self.allowed_extensions = list(allowed_extensions)
        self.saved: Dict[str, SavedUpload] = {}

    async def __aenter__(self) -> "UploadIntake":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await asyncio.to_thread(self.cleanup)

    async def save(self, field: str, upload: Optional[UploadFile]) -> Optional[SavedUpload]:
        """
        Validate and persist one file part.

        Returns:
            SavedUpload, or None when the part is absent

        Raises:
            InputError: not an image, or larger than the size limit
        """
        if upload is None or not upload.filename:
            return None

        if not is_image_upload(upload.filename, upload.content_type, self.allowed_extensions):
            logger.error(f"File rejected: field={field}, filename={upload.filename}, mimetype={upload.content_type}")
            raise InputError(
                "Only image files are allowed",
                message=f"{field}: only image files are allowed! Received: {upload.content_type or 'unknown type'}",
                details={"field": field, "filename": upload.filename, "mimetype": upload.content_type},
            )

        await asyncio.to_thread(self.upload_dir.mkdir, parents=True, exist_ok=True)
        suffix = Path(upload.filename).suffix
        if not _SAFE_SUFFIX.match(suffix):
            suffix = ""
        target = self.upload_dir / f"{field}-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"

        size = 0
        try:
            out = await asyncio.to_thread(open, target, "xb")
            with out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_file_size:
                        raise InputError(
                            "File too large",
                            message=f"{field} exceeds the {self.max_file_size // (1024 * 1024)}MB limit",
                            details={"field": field, "maxBytes": self.max_file_size},
                        )
                    await asyncio.to_thread(out.write, chunk)
        except BaseException:
            target.unlink(missing_ok=True)
            raise

        saved = SavedUpload(
            field=field,
            path=target.resolve(),
            original_name=upload.filename,
            content_type=upload.content_type or "",
            size=size,
        )
        self.saved[field] = saved
        logger.info(f"Saved upload {field}: {upload.filename} ({upload.content_type}, {size} bytes) -> {target.name}")
        return saved

    def cleanup(self):
        """Delete every saved upload. Safe to call more than once."""
        for saved in list(self.saved.values()):
            try:
                saved.path.unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Error cleaning up {saved.field} upload {saved.path}: {e}")
        self.saved.clear()


def _nearest_existing_dir(path: Path) -> Optional[Path]:
    for candidate in [path, *path.parents]:
        if candidate.is_dir():
            return candidate
    return None


def _list_dir(path: Optional[Path]) -> List[str]:
    if path is None:
        return []
    try:
        return sorted(os.listdir(path))[:MAX_LISTED_ENTRIES]
    except OSError:
        return ["(cannot read directory)"]


def resolve_render_path(raw_path: str, public_dir: Union[str, Path], cwd: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve a pre-seeded render image such as "/room_renders/kitchen/kitchen%201.jpg".

    The primary public directory is tried first, then <cwd>/public, to tolerate deployments
    where the process working directory and the configured server root differ.

    Raises:
        InputError: path escapes the public directory, or the image exists under neither base
    """
    render_path = unquote(raw_path).strip().lstrip("/\\")
    if "\x00" in render_path:
        raise InputError("Invalid render image path", message=f"Render path contains a null byte: {raw_path!r}")
    bases = [Path(public_dir).resolve(), (Path(cwd) if cwd else Path(os.getcwd())).resolve() / "public"]

    attempted: List[str] = []
    for base in bases:
        try:
            candidate = (base / render_path).resolve()
            exists = candidate.is_file()
        except (OSError, ValueError) as e:
            raise InputError("Invalid render image path", message=f"Cannot resolve render path {raw_path!r}: {e}")
        if not candidate.is_relative_to(base):
            raise InputError(
                "Invalid render image path",
                message=f"Render path must stay inside the public directory: {raw_path}",
            )
        if str(candidate) in attempted:
            continue
        attempted.append(str(candidate))
        logger.debug(f"Render image lookup: {candidate} exists={exists}")
        if exists:
            return candidate

    nearest = _nearest_existing_dir(Path(attempted[0]).parent)
    logger.error(f"Render image not found: {raw_path} (tried {attempted})")
    raise InputError(
        "Render image not found",
        message=f"Render image not found: {render_path}",
        details={
            "renderPath": raw_path,
            "attemptedPaths": attempted,
            "publicDir": str(bases[0]),
            "altPublicDir": str(bases[1]),
            "nearestExistingDir": str(nearest) if nearest else None,
            "directoryContents": _list_dir(nearest),
            "processCwd": os.getcwd(),
        },
    )


def ensure_readable_image(path: Path, label: str = "Room image") -> int:
    """Fail fast with a 400 when a source image is missing or empty; returns its size."""
    if not path.is_file():
        raise InputError(
            f"{label} file not found",
            details={"path": str(path), "currentWorkingDir": os.getcwd()},
        )
    try:
        size = path.stat().st_size
    except OSError as e:
        raise InputError(f"Cannot read {label.lower()} file", details={"path": str(path), "reason": str(e)})
    if size == 0:
        raise InputError(f"{label} file is empty", details={"path": str(path)})
    return size
