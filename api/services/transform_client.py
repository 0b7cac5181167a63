"""
Replicate client for the image-to-image material replacement model (google/nano-banana).
"""
import asyncio
import logging
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Union

import replicate

from core.exceptions import ProviderError
from core.retry import RetryPolicy

logger = logging.getLogger(__name__)

# (model, input) -> raw provider output
ModelRunner = Callable[[str, Dict[str, Any]], Any]


@dataclass
class TransformResult:
    """Outcome of the provider call; image_url is None when the output had no usable URL."""

    image_url: Optional[str]
    attempts: int
    raw_output_type: str


def parse_output(output: Any) -> Optional[str]:
    """
    Extract the result URL from a provider response.

    Accepts a URL string, a list whose first element is a URL, or any object whose str() is a
    URL (replicate FileOutput). Anything else is logged and yields None.
    """
    if isinstance(output, str):
        if output.startswith("http"):
            return output
    elif isinstance(output, (list, tuple)):
        if len(output) > 0 and str(output[0]).startswith("http"):
            return str(output[0])
    elif output is not None and str(output).startswith("http"):
        return str(output)

    logger.warning(f"No usable output returned (type={type(output).__name__}): {str(output)[:200]}")
    return None


class ReplicateTransformClient:
    """Runs the transform model with bounded retries."""

    def __init__(
        self,
        api_token: str,
        model: str = "google/nano-banana",
        retry_policy: Optional[RetryPolicy] = None,
        runner: Optional[ModelRunner] = None,
    ):
        self.api_token = api_token
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self._runner = runner
        self._client: Optional[replicate.Client] = None

    def _default_runner(self, model: str, model_input: Dict[str, Any]) -> Any:
        if self._client is None:
            self._client = replicate.Client(api_token=self.api_token)
        return self._client.run(model, input=model_input)

    def _run_model(self, prompt: str, image_paths: Sequence[Path]) -> Any:
        # Fresh handles per attempt; a handle consumed by a failed upload cannot be re-sent
        with ExitStack() as stack:
            files = [stack.enter_context(open(path, "rb")) for path in image_paths]
            model_input = {"prompt": prompt, "image_input": files}
            runner = self._runner or self._default_runner
            return runner(self.model, model_input)

    async def transform(self, prompt: str, image_paths: Sequence[Union[str, Path]]) -> TransformResult:
        """
        Call the model with the prompt and ordered input images.

        Raises:
            ProviderError: every attempt failed; carries the last underlying error text
        """
        paths = [Path(p) for p in image_paths]
        logger.info(f"Sending request to Replicate ({self.model}) with {len(paths)} images")

        async def attempt():
            return await asyncio.to_thread(self._run_model, prompt, paths)

        try:
            output = await self.retry_policy.call(attempt, label="Replicate call")
        except Exception as e:
            raise ProviderError(
                f"Replicate call failed after {self.retry_policy.attempts} attempts: {e}",
            ) from e

        logger.info(f"Raw Replicate output: type={type(output).__name__}, value={str(output)[:200]}")
        return TransformResult(
            image_url=parse_output(output),
            attempts=self.retry_policy.attempts,
            raw_output_type=type(output).__name__,
        )
