"""
Runs the transform worker as a non-blocking subprocess per request.

The worker reads job.json from its staging directory and prints one TransformOutcome JSON
line. A hard wall-clock ceiling terminates the process (SIGTERM, then SIGKILL) and turns the
request into a timeout failure.
"""
import asyncio
import json
import os
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from core.config import Settings
from core.exceptions import ConfigurationError, JobTimeoutError, ProcessingError, ProviderError, VisualizationError
from middleware.logging_middleware import get_logger, get_request_id
from schemas.visualization import OutcomeKind, TransformOutcome

logger = get_logger(__name__)

API_DIR = Path(__file__).resolve().parents[1]
WORKER_MODULE = "services.transform_worker"
TERMINATE_GRACE_SECONDS = 5.0
OUTPUT_TAIL_CHARS = 1000


def parse_outcome(stdout: str) -> Optional[TransformOutcome]:
    """Return the last stdout line that parses as a TransformOutcome, if any."""
    for line in reversed(stdout.strip().splitlines()):
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            return TransformOutcome.model_validate_json(line)
        except (ValidationError, json.JSONDecodeError):
            continue
    return None


def outcome_to_error(outcome: TransformOutcome) -> VisualizationError:
    """Map a failed worker outcome to the error surfaced to the client."""
    message = outcome.error or "An unknown error occurred"
    if outcome.kind == OutcomeKind.PROVIDER_ERROR:
        return ProviderError(message, details=outcome.traceback)
    if outcome.kind == OutcomeKind.NO_OUTPUT:
        return ProviderError("No output generated", details=outcome.traceback)
    if outcome.kind == OutcomeKind.INVALID_JOB:
        return ConfigurationError(message, details=outcome.traceback)
    return ProcessingError(message, details=outcome.traceback)


class SubprocessJobRunner:
    """Launches `python -m services.transform_worker <job.json>` and waits for its outcome."""

    def __init__(self, settings: Settings, command: Optional[Sequence[str]] = None):
        self.settings = settings
        self.timeout = settings.job_timeout_seconds
        # Override for tests; the job path is appended as the last argument
        self._command = list(command) if command is not None else None

    def build_command(self, job_file: Path) -> List[str]:
        base = self._command or [self.settings.python_executable, "-m", WORKER_MODULE]
        return [*base, str(job_file)]

    def build_env(self) -> dict:
        env = dict(os.environ)
        env["REPLICATE_API_TOKEN"] = self.settings.replicate_api_token
        env["SERVER_ROOT"] = str(self.settings.resolved_server_root)
        env["REQUEST_ID"] = get_request_id()
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(API_DIR), env.get("PYTHONPATH")]))
        return env

    async def _terminate(self, process: asyncio.subprocess.Process):
        if process.returncode is not None:
            return
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"Worker {process.pid} ignored SIGTERM, killing")
            process.kill()
            await process.wait()

    async def run(self, job_file: Path) -> TransformOutcome:
        """
        Run one job to completion.

        Raises:
            JobTimeoutError: the worker exceeded the wall-clock ceiling
            ProviderError, ProcessingError, ConfigurationError: the worker reported a failure
        """
        command = self.build_command(job_file)
        logger.info(f"Executing transform worker: {' '.join(command)}")

        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(API_DIR),
            env=self.build_env(),
        )

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Transform worker {process.pid} timed out after {self.timeout:.0f}s, terminating")
            await self._terminate(process)
            raise JobTimeoutError(f"Visualization timed out after {self.timeout:g} seconds")
        except asyncio.CancelledError:
            await self._terminate(process)
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        for line in stderr.splitlines():
            if line.strip():
                logger.debug(f"[worker] {line}")

        outcome = parse_outcome(stdout)
        if outcome is None:
            tail = (stderr or stdout)[-OUTPUT_TAIL_CHARS:]
            logger.error(f"Transform worker exited with code {process.returncode} without an outcome")
            raise ProcessingError(
                f"Transform worker failed with code {process.returncode}: {tail.strip() or 'Unknown error'}",
                details={"exitCode": process.returncode, "stdoutTail": stdout[-OUTPUT_TAIL_CHARS:], "stderrTail": stderr[-OUTPUT_TAIL_CHARS:]},
            )

        if not outcome.success:
            logger.error(f"Transform worker reported {outcome.kind.value} (exit {process.returncode}): {outcome.error}")
            raise outcome_to_error(outcome)

        for warning in outcome.warnings:
            logger.warning(f"Worker warning: {warning}")
        if outcome.artifact_path and not Path(outcome.artifact_path).is_file():
            logger.warning(f"Reported artifact not found on disk: {outcome.artifact_path}")

        logger.info(f"Transform worker finished: {outcome.image_url} after {outcome.attempts} provider attempt(s)")
        return outcome
