"""
Per-request staging directory for a transform job.

The directory holds copies of the material images under fixed names, the corrected room
image written by the worker, and job.json. It is removed when the StagingJob context (sync or async) exits,
whatever the outcome.
"""
import asyncio
import logging
import random
import shutil
import time
from pathlib import Path
from typing import Optional, Union

from core.exceptions import InputError
from schemas.visualization import TransformJob
from services.material_resolver import ResolvedMaterials

logger = logging.getLogger(__name__)

FLOOR_TILE_NAME = "tile"
WALL_TILE_NAME = "wall_tile"
JOB_FILE_NAME = "job.json"


class StagingJob:
    """Owns one uniquely named temporary directory."""

    def __init__(self, path: Path):
        self.path = path
        self.floor_tile_path: Optional[Path] = None
        self.wall_tile_path: Optional[Path] = None
        self.job_file: Optional[Path] = None

    @property
    def job_id(self) -> str:
        return self.path.name

    @classmethod
    def create(cls, root: Union[str, Path]) -> "StagingJob":
        """Create temp_<ms>_<random> under root; a name collision just draws a new name."""
        root = Path(root)
        root.mkdir(parents=True, exist_ok=True)
        while True:
            path = root / f"temp_{int(time.time() * 1000)}_{random.randint(0, 10**9 - 1):09d}"
            try:
                path.mkdir()
            except FileExistsError:
                continue
            logger.info(f"Created staging directory {path}")
            return cls(path.resolve())

    def __enter__(self) -> "StagingJob":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()

    async def __aenter__(self) -> "StagingJob":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await asyncio.to_thread(self.cleanup)

    def _copy_material(self, source: Path, name: str, label: str) -> Path:
        if not source.is_file():
            raise InputError(f"{label} image not found", details={"path": str(source)})
        if source.stat().st_size == 0:
            raise InputError(f"{label} image is empty", details={"path": str(source)})
        target = self.path / f"{name}{source.suffix.lower() or '.jpg'}"
        shutil.copyfile(source, target)
        return target

    def stage_materials(self, materials: ResolvedMaterials):
        """Copy resolved materials in before any provider call is made."""
        if materials.floor is not None:
            self.floor_tile_path = self._copy_material(materials.floor, FLOOR_TILE_NAME, "Tile")
        if materials.wall is not None:
            self.wall_tile_path = self._copy_material(materials.wall, WALL_TILE_NAME, "Wall tile")

    def write_job(self, job: TransformJob) -> Path:
        self.job_file = self.path / JOB_FILE_NAME
        self.job_file.write_text(job.model_dump_json(indent=2), encoding="utf-8")
        return self.job_file

    def cleanup(self):
        if self.path.exists():
            shutil.rmtree(self.path, ignore_errors=True)
            logger.info(f"Removed staging directory {self.path}")
