"""
Generated artifact storage under the public directory.

Names are <prefix><epoch ms>_<random hex>.jpg and files are opened with exclusive create, so
concurrent requests never overwrite each other. Artifacts are served from here and can be
swept by age when the cleanup task is enabled.
"""
import asyncio
import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import List, Optional, Tuple, Union

from PIL import Image

logger = logging.getLogger(__name__)


class ArtifactStore:
    def __init__(self, public_dir: Union[str, Path], prefix: str = "temp_resized_"):
        self.public_dir = Path(public_dir)
        self.prefix = prefix
        self._pattern = re.compile(rf"^{re.escape(prefix)}\d+(?:_[0-9a-f]+)?\.jpg$")

    def new_name(self) -> str:
        return f"{self.prefix}{int(time.time() * 1000)}_{secrets.token_hex(4)}.jpg"

    def is_artifact_name(self, name: str) -> bool:
        return bool(self._pattern.match(name))

    @staticmethod
    def public_url(name: str) -> str:
        return f"/{name}"

    def save(self, image: Image.Image, quality: int = 95) -> Tuple[str, Path]:
        """Write image as an optimized JPEG without EXIF; returns (name, path)."""
        if not self.public_dir.exists():
            logger.warning(f"Public directory not found at {self.public_dir}, creating it")
        self.public_dir.mkdir(parents=True, exist_ok=True)

        if image.mode != "RGB":
            image = image.convert("RGB")

        while True:
            name = self.new_name()
            path = self.public_dir / name
            try:
                with open(path, "xb") as out:
                    image.save(out, "JPEG", quality=quality, optimize=True)
            except FileExistsError:
                continue
            logger.info(f"Artifact written: {path} ({image.size[0]}x{image.size[1]})")
            return name, path

    def candidate_dirs(self) -> List[Path]:
        dirs = [self.public_dir.resolve()]
        alt = (Path(os.getcwd()) / "public").resolve()
        if alt not in dirs:
            dirs.append(alt)
        return dirs

    def resolve(self, name: str) -> Optional[Path]:
        """Locate a previously generated artifact by name, or None."""
        if not self.is_artifact_name(name):
            return None
        for directory in self.candidate_dirs():
            path = directory / name
            if path.is_file():
                return path
        return None

    def sweep(self, max_age_seconds: float, now: Optional[float] = None) -> int:
        """Delete artifacts older than max_age_seconds. Returns the number removed."""
        if not self.public_dir.is_dir():
            return 0
        now = time.time() if now is None else now
        removed = 0
        for entry in self.public_dir.iterdir():
            if not entry.is_file() or not self.is_artifact_name(entry.name):
                continue
            try:
                if now - entry.stat().st_mtime > max_age_seconds:
                    entry.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Could not remove old artifact {entry}: {e}")
        if removed:
            logger.info(f"Artifact sweep removed {removed} file(s) older than {max_age_seconds}s")
        return removed


async def run_artifact_sweeper(store: ArtifactStore, max_age_seconds: float, interval_seconds: float):
    """Background loop for the optional age-based cleanup; cancelled on shutdown."""
    logger.info(f"Artifact sweeper started (max age {max_age_seconds}s, every {interval_seconds}s)")
    while True:
        try:
            await asyncio.to_thread(store.sweep, max_age_seconds)
        except Exception as e:
            logger.error(f"Artifact sweep failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)
