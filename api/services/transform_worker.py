"""
Transform worker: runs one visualization job in its own process.

    python -m services.transform_worker /path/to/staging/job.json

The job is a TransformJob JSON document written by the API process; nothing from the request
is interpolated into code. stdout carries exactly one TransformOutcome JSON line, logs go to
stderr, and the exit status is a WorkerExitCode.
"""
import asyncio
import os
import sys
import traceback
from pathlib import Path
from typing import List, Optional

import structlog
from pydantic import ValidationError

from core.exceptions import ConfigurationError, ProcessingError, ProviderError
from core.logging import setup_logging
from core.retry import RetryPolicy
from schemas.visualization import OutcomeKind, TransformJob, TransformOutcome, WorkerExitCode
from services.artifact_store import ArtifactStore
from services.post_processor import PostProcessor, prepare_room_image
from services.prompts import VisualizationPrompts, input_images
from services.transform_client import ReplicateTransformClient

log = structlog.get_logger(__name__)

CORRECTED_ROOM_NAME = "room.jpg"


def resolve_output_dir(job: TransformJob) -> Path:
    """Job output dir, else $SERVER_ROOT/public, else <cwd>/public."""
    if job.output_dir:
        return Path(job.output_dir)
    server_root = os.environ.get("SERVER_ROOT") or os.getcwd()
    return Path(server_root) / "public"


def build_client(job: TransformJob) -> ReplicateTransformClient:
    token = os.environ.get("REPLICATE_API_TOKEN", "")
    if not token:
        raise ConfigurationError("REPLICATE_API_TOKEN environment variable is not set.")
    return ReplicateTransformClient(
        api_token=token,
        model=job.model,
        retry_policy=RetryPolicy(max_attempts=job.provider_max_attempts, delay=job.provider_retry_delay),
    )


def build_post_processor(job: TransformJob) -> PostProcessor:
    return PostProcessor(
        store=ArtifactStore(resolve_output_dir(job), job.artifact_prefix),
        download_policy=RetryPolicy(max_attempts=job.download_max_attempts, delay=job.download_retry_delay),
        download_timeout=job.download_timeout_seconds,
        watermark_margin=job.watermark_crop_margin,
        jpeg_quality=job.jpeg_quality,
    )


async def execute_job(
    job: TransformJob,
    client: Optional[ReplicateTransformClient] = None,
    post_processor: Optional[PostProcessor] = None,
) -> TransformOutcome:
    """Run the pipeline; provider and processing failures propagate as exceptions."""
    log.info("job_started", job_id=job.job_id, mode=job.mode.value)

    # Orientation is fixed before the provider sees the room, and the artifact is fitted to this size
    room_path, room_size = prepare_room_image(job.room_image_path, Path(job.staging_dir) / CORRECTED_ROOM_NAME)
    log.info("room_prepared", path=str(room_path), width=room_size[0], height=room_size[1])

    prompt = VisualizationPrompts.for_mode(job.mode)
    images = input_images(job.mode, room_path, job.floor_material_path, job.wall_material_path)

    client = client or build_client(job)
    result = await client.transform(prompt, images)
    if result.image_url is None:
        log.error("no_output", attempts=result.attempts, output_type=result.raw_output_type)
        return TransformOutcome(kind=OutcomeKind.NO_OUTPUT, error="No output generated", attempts=result.attempts)

    log.info("provider_result", url=result.image_url, attempts=result.attempts)
    post_processor = post_processor or build_post_processor(job)
    artifact = await post_processor.process(result.image_url, room_size)

    log.info("job_finished", image_url=artifact.url, width=artifact.size[0], height=artifact.size[1])
    return TransformOutcome(
        kind=OutcomeKind.SUCCESS,
        image_url=artifact.url,
        artifact_path=str(artifact.path),
        provider_url=result.image_url,
        attempts=result.attempts,
        width=artifact.size[0],
        height=artifact.size[1],
        warnings=artifact.warnings,
    )


def _failure(kind: OutcomeKind, error: BaseException) -> TransformOutcome:
    return TransformOutcome(
        kind=kind,
        error=str(error),
        traceback="".join(traceback.format_exception(type(error), error, error.__traceback__)),
    )


async def run_job(
    job: TransformJob,
    client: Optional[ReplicateTransformClient] = None,
    post_processor: Optional[PostProcessor] = None,
) -> TransformOutcome:
    """Run the pipeline and report every failure as an outcome instead of raising."""
    try:
        return await execute_job(job, client=client, post_processor=post_processor)
    except ConfigurationError as e:
        log.error("invalid_job", error=str(e))
        return _failure(OutcomeKind.INVALID_JOB, e)
    except ProviderError as e:
        log.error("provider_failed", error=str(e))
        return _failure(OutcomeKind.PROVIDER_ERROR, e)
    except ProcessingError as e:
        log.error("processing_failed", error=str(e))
        return _failure(OutcomeKind.PROCESSING_ERROR, e)
    except Exception as e:
        log.exception("job_crashed", error=str(e))
        return _failure(OutcomeKind.UNEXPECTED, e)


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging(stream=sys.stderr, log_files=False)
    structlog.contextvars.bind_contextvars(request_id=os.environ.get("REQUEST_ID", ""), worker_pid=os.getpid())
    args = sys.argv[1:] if argv is None else argv

    if len(args) != 1:
        outcome = TransformOutcome(kind=OutcomeKind.INVALID_JOB, error="usage: transform_worker <job.json>")
    else:
        try:
            job = TransformJob.model_validate_json(Path(args[0]).read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            outcome = _failure(OutcomeKind.INVALID_JOB, e)
        else:
            outcome = asyncio.run(run_job(job))

    sys.stdout.write(outcome.model_dump_json() + "\n")
    sys.stdout.flush()
    return int(WorkerExitCode.for_outcome(outcome.kind))


if __name__ == "__main__":
    sys.exit(main())
