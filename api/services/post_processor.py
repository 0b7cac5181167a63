"""
Post-processing of the generated image.

Pipeline: download the provider result (bounded retries), crop the provider watermark from
the bottom-right corner, fit to the orientation-corrected room image's exact size without
stretching, and save it as an artifact in the public directory.
"""
import asyncio
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple, Union

import aiohttp
from PIL import Image, ImageOps

from core.exceptions import ProcessingError
from core.retry import RetryPolicy
from services.artifact_store import ArtifactStore

logger = logging.getLogger(__name__)

ImageFetcher = Callable[[str], Awaitable[bytes]]


async def fetch_with_aiohttp(url: str, timeout: float = 30.0) -> bytes:
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.read()


async def download_image(
    url: str,
    retry_policy: RetryPolicy,
    timeout: float = 30.0,
    fetch: Optional[ImageFetcher] = None,
) -> bytes:
    """
    Download the generated image.

    Raises:
        ProcessingError: all attempts failed (fatal for the request)
    """

    async def attempt() -> bytes:
        if fetch is not None:
            return await fetch(url)
        return await fetch_with_aiohttp(url, timeout)

    try:
        data = await retry_policy.call(attempt, label="Image download")
    except Exception as e:
        raise ProcessingError(
            f"Image download failed after {retry_policy.attempts} attempts: {e}",
            error="Failed to download generated image",
        ) from e

    logger.info(f"Downloaded generated image ({len(data)} bytes) from {url[:100]}")
    return data


def correct_orientation(image: Image.Image) -> Image.Image:
    """Apply EXIF orientation; on any failure keep the image as it is."""
    try:
        return ImageOps.exif_transpose(image)
    except Exception as e:
        logger.warning(f"No EXIF orientation applied: {e}")
        return image


def prepare_room_image(source: Union[str, Path], target: Union[str, Path]) -> Tuple[Path, Tuple[int, int]]:
    """
    Write an orientation-corrected RGB JPEG copy of the room photo.

    Returns:
        (target path, corrected (width, height))

    Raises:
        ProcessingError: the file is not a readable image
    """
    source, target = Path(source), Path(target)
    try:
        with Image.open(source) as probe:
            probe.verify()
        room = Image.open(source)
        room.load()
    except Exception as e:
        size = source.stat().st_size if source.exists() else 0
        raise ProcessingError(
            f"Cannot identify image file '{source}': {e}. File size: {size} bytes",
            error="Invalid room image",
        ) from e

    logger.info(f"Opened room image: format={room.format}, size={room.size}, mode={room.mode}")
    room = correct_orientation(room)
    if room.mode != "RGB":
        room = room.convert("RGB")
    room.save(target, "JPEG", quality=95)
    return target, room.size


def crop_watermark(image: Image.Image, margin: int = 80) -> Image.Image:
    """Remove `margin` px from the bottom and right edges when both dimensions exceed it."""
    width, height = image.size
    if margin <= 0 or width <= margin or height <= margin:
        return image
    logger.debug(f"Cropping watermark area: removing {margin}px from bottom-right")
    return image.crop((0, 0, width - margin, height - margin))


def fit_to_size(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Crop to the target aspect ratio around the center, then resample to exactly `size`."""
    return ImageOps.fit(image, size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))


@dataclass
class ProcessedArtifact:
    url: str
    path: Path
    size: Tuple[int, int]
    warnings: List[str] = field(default_factory=list)


class PostProcessor:
    def __init__(
        self,
        store: ArtifactStore,
        download_policy: Optional[RetryPolicy] = None,
        download_timeout: float = 30.0,
        watermark_margin: int = 80,
        jpeg_quality: int = 95,
        fetch: Optional[ImageFetcher] = None,
    ):
        self.store = store
        self.download_policy = download_policy or RetryPolicy()
        self.download_timeout = download_timeout
        self.watermark_margin = watermark_margin
        self.jpeg_quality = jpeg_quality
        self.fetch = fetch

    async def process(self, image_url: str, target_size: Tuple[int, int]) -> ProcessedArtifact:
        data = await download_image(image_url, self.download_policy, self.download_timeout, self.fetch)

        try:
            generated = Image.open(io.BytesIO(data))
            generated.load()
        except Exception as e:
            raise ProcessingError(f"Downloaded result is not a readable image: {e}") from e
        logger.info(f"Generated image size: {generated.size}, format: {generated.format}")

        warnings: List[str] = []
        generated = crop_watermark(generated, self.watermark_margin)

        try:
            result = fit_to_size(generated, target_size)
            logger.info(f"Resized generated image from {generated.size} to {target_size}")
        except Exception as e:
            warnings.append(f"Could not resize image: {e}")
            logger.warning(f"Could not resize image, using generated size {generated.size}: {e}")
            result = generated

        try:
            name, path = await asyncio.to_thread(self.store.save, result, self.jpeg_quality)
        except OSError as e:
            raise ProcessingError(f"Could not write artifact: {e}") from e

        return ProcessedArtifact(url=self.store.public_url(name), path=path, size=result.size, warnings=warnings)
