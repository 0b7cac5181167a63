"""
Pydantic schemas for the visualize endpoint and the transform worker contract.

The worker receives a TransformJob as JSON (job.json in its staging directory) and answers
with a single TransformOutcome JSON line on stdout plus a WorkerExitCode.
"""

from enum import Enum, IntEnum
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from core.exceptions import InputError


class VisualizationMode(str, Enum):
    """Which surfaces the provider is asked to replace."""

    FLOOR = "floor"
    WALLS = "walls"
    BOTH = "both"

    @property
    def needs_floor(self) -> bool:
        return self in (VisualizationMode.FLOOR, VisualizationMode.BOTH)

    @property
    def needs_wall(self) -> bool:
        return self in (VisualizationMode.WALLS, VisualizationMode.BOTH)

    @classmethod
    def parse(cls, raw: Optional[str]) -> "VisualizationMode":
        """Parse the `visualizationType` form field; empty means floor."""
        if raw is None or not raw.strip():
            return cls.FLOOR
        try:
            return cls(raw.strip().lower())
        except ValueError:
            raise InputError(
                "Invalid visualization type",
                message=f"visualizationType must be one of floor, walls, both (got '{raw}')",
            )


class VisualizeResponse(BaseModel):
    """Successful visualization."""

    success: bool = True
    imageUrl: str
    message: str = "Visualization completed successfully"


class ErrorResponse(BaseModel):
    """Failure payload shared by every error path."""

    success: bool = False
    error: str
    message: str
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    status: str = "OK"
    message: str = "Tile visualization server is running"


class TransformJob(BaseModel):
    """Parameters for one transform worker run."""

    job_id: str
    mode: VisualizationMode
    room_image_path: str
    floor_material_path: Optional[str] = None
    wall_material_path: Optional[str] = None
    staging_dir: str
    output_dir: Optional[str] = Field(None, description="Public directory receiving the artifact; defaults to $SERVER_ROOT/public")
    artifact_prefix: str = "temp_resized_"
    model: str = "google/nano-banana"
    provider_max_attempts: int = 3
    provider_retry_delay: float = 2.0
    download_max_attempts: int = 3
    download_retry_delay: float = 2.0
    download_timeout_seconds: float = 30.0
    watermark_crop_margin: int = 80
    jpeg_quality: int = 95


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    INVALID_JOB = "invalid_job"
    PROVIDER_ERROR = "provider_error"
    NO_OUTPUT = "no_output"
    PROCESSING_ERROR = "processing_error"
    UNEXPECTED = "unexpected"


class WorkerExitCode(IntEnum):
    SUCCESS = 0
    UNEXPECTED = 1
    INVALID_JOB = 2
    PROVIDER_ERROR = 3
    NO_OUTPUT = 4
    PROCESSING_ERROR = 5

    @classmethod
    def for_outcome(cls, kind: OutcomeKind) -> "WorkerExitCode":
        return {
            OutcomeKind.SUCCESS: cls.SUCCESS,
            OutcomeKind.INVALID_JOB: cls.INVALID_JOB,
            OutcomeKind.PROVIDER_ERROR: cls.PROVIDER_ERROR,
            OutcomeKind.NO_OUTPUT: cls.NO_OUTPUT,
            OutcomeKind.PROCESSING_ERROR: cls.PROCESSING_ERROR,
        }.get(kind, cls.UNEXPECTED)


class TransformOutcome(BaseModel):
    """What the worker reports back on stdout."""

    kind: OutcomeKind
    image_url: Optional[str] = None
    artifact_path: Optional[str] = None
    provider_url: Optional[str] = None
    attempts: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    error: Optional[str] = None
    traceback: Optional[str] = None
    warnings: List[str] = []

    @property
    def success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS
