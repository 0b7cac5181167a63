"""
Visualization orchestration for POST /api/visualize.

Validating -> Resolving -> Staging -> Invoking (worker subprocess) -> Responding. Uploaded
files and the staging directory are removed on every exit path by their context managers;
catalog and render images are never touched.
"""
import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from fastapi import UploadFile

from config.material_catalog import MaterialCatalog
from core.config import Settings
from core.exceptions import ConfigurationError, InputError
from middleware.logging_middleware import get_logger
from schemas.visualization import TransformJob, TransformOutcome, VisualizationMode, VisualizeResponse
from services.job_staging import StagingJob
from services.material_resolver import ResolvedMaterials, resolve_materials
from services.upload_intake import SavedUpload, UploadIntake, ensure_readable_image, resolve_render_path

logger = get_logger(__name__)


@dataclass
class VisualizationForm:
    """Raw multipart fields of a visualize request."""

    tile_id: Optional[str] = None
    visualization_type: Optional[str] = None
    render_image_path: Optional[str] = None
    room_image: Optional[UploadFile] = None
    custom_tile_file: Optional[UploadFile] = None
    wall_tile_file: Optional[UploadFile] = None


class JobRunner(Protocol):
    async def run(self, job_file: Path) -> TransformOutcome: ...


class VisualizationService:
    def __init__(self, settings: Settings, catalog: MaterialCatalog, job_runner: JobRunner):
        self.settings = settings
        self.catalog = catalog
        self.job_runner = job_runner

    def _resolve_room_image(self, room_upload: Optional[SavedUpload], render_image_path: Optional[str]) -> Path:
        if room_upload is not None:
            logger.info(f"Room image source: custom upload {room_upload.original_name} ({room_upload.size} bytes)")
            return room_upload.path
        if render_image_path:
            path = resolve_render_path(render_image_path, self.settings.resolved_public_dir)
            logger.info(f"Room image source: render {render_image_path} -> {path}")
            return path
        raise InputError("No room image uploaded or render path provided")

    def _build_job(self, staging: StagingJob, mode: VisualizationMode, room_path: Path) -> TransformJob:
        s = self.settings
        return TransformJob(
            job_id=staging.job_id,
            mode=mode,
            room_image_path=str(room_path),
            floor_material_path=str(staging.floor_tile_path) if staging.floor_tile_path else None,
            wall_material_path=str(staging.wall_tile_path) if staging.wall_tile_path else None,
            staging_dir=str(staging.path),
            output_dir=str(s.resolved_public_dir),
            artifact_prefix=s.artifact_prefix,
            model=s.replicate_model,
            provider_max_attempts=s.provider_max_attempts,
            provider_retry_delay=s.provider_retry_delay,
            download_max_attempts=s.download_max_attempts,
            download_retry_delay=s.download_retry_delay,
            download_timeout_seconds=s.download_timeout_seconds,
            watermark_crop_margin=s.watermark_crop_margin,
            jpeg_quality=s.jpeg_quality,
        )

    async def _invoke(self, mode: VisualizationMode, room_path: Path, materials: ResolvedMaterials) -> TransformOutcome:
        # File copies and removal run off the event loop
        staging = await asyncio.to_thread(StagingJob.create, self.settings.resolved_staging_dir)
        async with staging:
            await asyncio.to_thread(staging.stage_materials, materials)
            job_file = await asyncio.to_thread(staging.write_job, self._build_job(staging, mode, room_path))
            return await self.job_runner.run(job_file)

    async def visualize(self, form: VisualizationForm) -> VisualizeResponse:
        started = time.time()
        logger.info(
            f"New visualization request: tileId={form.tile_id}, type={form.visualization_type}, "
            f"renderImagePath={form.render_image_path}, hasRoomImage={form.room_image is not None}, "
            f"hasCustomTileFile={form.custom_tile_file is not None}, hasWallTileFile={form.wall_tile_file is not None}"
        )

        mode = VisualizationMode.parse(form.visualization_type)

        async with UploadIntake(
            self.settings.resolved_upload_dir, self.settings.max_file_size, self.settings.allowed_image_extensions
        ) as intake:
            room_upload = await intake.save("roomImage", form.room_image)
            custom_tile = await intake.save("customTileFile", form.custom_tile_file)
            wall_tile = await intake.save("wallTileFile", form.wall_tile_file)

            room_path = self._resolve_room_image(room_upload, form.render_image_path)
            materials = resolve_materials(
                mode,
                form.tile_id,
                self.catalog,
                custom_tile_path=custom_tile.path if custom_tile else None,
                wall_tile_path=wall_tile.path if wall_tile else None,
            )
            if materials.wall is not None:
                ensure_readable_image(materials.wall, "Wall tile")
            ensure_readable_image(room_path, "Room image")

            if not self.settings.replicate_api_token:
                raise ConfigurationError("REPLICATE_API_TOKEN is not set as an environment variable.")

            outcome = await self._invoke(mode, room_path, materials)

        logger.info(f"Visualization completed in {time.time() - started:.1f}s: {outcome.image_url}")
        return VisualizeResponse(imageUrl=outcome.image_url)
