"""
Pytest configuration and fixtures for the Tile Visualizer API tests.

Nothing here talks to Replicate: the provider is replaced by a runner callable that returns
a fake result URL, and the download step by a fetch coroutine that returns a JPEG rendered
with Pillow.
"""
import io
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
from PIL import Image

from config.material_catalog import DEFAULT_TILE_FILES, MaterialCatalog, default_catalog
from core.config import Settings
from core.retry import RetryPolicy
from schemas.visualization import TransformJob, TransformOutcome
from services.artifact_store import ArtifactStore
from services.job_runner import outcome_to_error
from services.post_processor import PostProcessor
from services.transform_client import ReplicateTransformClient
from services.transform_worker import resolve_output_dir, run_job

FAKE_RESULT_URL = "https://replicate.delivery/pbxt/fake/output.jpg"


def make_jpeg(size: Tuple[int, int] = (100, 100), color: str = "beige", exif=None) -> bytes:
    """Render a solid JPEG of the given size."""
    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    if exif is not None:
        img.save(buffer, format="JPEG", exif=exif)
    else:
        img.save(buffer, format="JPEG")
    return buffer.getvalue()


async def no_sleep(_delay: float):
    return None


class FakeProvider:
    """Stands in for replicate.Client.run; records what each call received."""

    def __init__(self, output: Any = FAKE_RESULT_URL, failures: int = 0, error: str = "Replicate is unavailable"):
        self.output = output
        self.failures = failures
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, model: str, model_input: Dict[str, Any]) -> Any:
        self.calls.append(
            {
                "model": model,
                "prompt": model_input["prompt"],
                "images": [Path(f.name).name for f in model_input["image_input"]],
            }
        )
        if len(self.calls) <= self.failures:
            raise RuntimeError(self.error)
        return self.output


class FakeFetch:
    """Stands in for the aiohttp download; returns a generated image of a fixed size."""

    def __init__(self, size: Tuple[int, int] = (1280, 880), failures: int = 0):
        self.payload = make_jpeg(size, color="lightblue")
        self.failures = failures
        self.urls: List[str] = []

    async def __call__(self, url: str) -> bytes:
        self.urls.append(url)
        if len(self.urls) <= self.failures:
            raise ConnectionError("connection reset by peer")
        return self.payload


class InProcessJobRunner:
    """
    Runs the worker pipeline in the test process with fake provider and download.

    Mirrors SubprocessJobRunner: a failed outcome is raised as the mapped error.
    """

    def __init__(self, provider: Optional[FakeProvider] = None, fetch: Optional[FakeFetch] = None):
        self.provider = provider or FakeProvider()
        self.fetch = fetch or FakeFetch()
        self.jobs: List[TransformJob] = []
        self.staged_files: List[List[str]] = []

    async def run(self, job_file: Path) -> TransformOutcome:
        job = TransformJob.model_validate_json(job_file.read_text(encoding="utf-8"))
        self.jobs.append(job)
        self.staged_files.append(sorted(p.name for p in job_file.parent.iterdir()))

        client = ReplicateTransformClient(
            api_token="r8_test",
            model=job.model,
            retry_policy=RetryPolicy(max_attempts=job.provider_max_attempts, delay=0, sleep=no_sleep),
            runner=self.provider,
        )
        post_processor = PostProcessor(
            store=ArtifactStore(resolve_output_dir(job), job.artifact_prefix),
            download_policy=RetryPolicy(max_attempts=job.download_max_attempts, delay=0, sleep=no_sleep),
            watermark_margin=job.watermark_crop_margin,
            jpeg_quality=job.jpeg_quality,
            fetch=self.fetch,
        )
        outcome = await run_job(job, client=client, post_processor=post_processor)
        if not outcome.success:
            raise outcome_to_error(outcome)
        return outcome


@pytest.fixture
def jpeg_bytes():
    """Raw JPEG bytes for file-upload endpoints."""
    return make_jpeg()


@pytest.fixture
def room_jpeg_bytes():
    """A 1200x800 room photo."""
    return make_jpeg((1200, 800), color="white")


@pytest.fixture
def test_settings(tmp_path):
    """Settings rooted in a temporary directory, with no retry delays."""
    return Settings(
        _env_file=None,
        server_root=str(tmp_path),
        replicate_api_token="r8_test_token",
        provider_retry_delay=0,
        download_retry_delay=0,
        job_timeout_seconds=30,
        environment="test",
    )


@pytest.fixture
def catalog(test_settings) -> MaterialCatalog:
    """Default catalog with every swatch present on disk."""
    tiles_dir = test_settings.resolved_tiles_dir
    tiles_dir.mkdir(parents=True, exist_ok=True)
    for filename in DEFAULT_TILE_FILES.values():
        (tiles_dir / filename).write_bytes(make_jpeg((64, 64), color="gray"))
    return default_catalog(tiles_dir)


@pytest.fixture
def job_runner():
    return InProcessJobRunner()
