"""
Artifacts Router

Serves generated images (GET /temp_resized_<ms>_<hex>.jpg) with headers that defeat
browser and proxy caching. Included last so it never shadows other routes.
"""

import logging
import uuid
from email.utils import formatdate

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, JSONResponse

from core.config import Settings, get_settings
from services.artifact_store import ArtifactStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["artifacts"])


def get_artifact_store(settings: Settings = Depends(get_settings)) -> ArtifactStore:
    return ArtifactStore(settings.resolved_public_dir, settings.artifact_prefix)


def no_cache_headers() -> dict:
    return {
        "Cache-Control": "no-cache, no-store, must-revalidate",
        "Pragma": "no-cache",
        "Expires": "0",
        "ETag": f'"{uuid.uuid4().hex}"',
        "Last-Modified": formatdate(usegmt=True),
    }


@router.get("/{artifact_name}", include_in_schema=False)
async def serve_artifact(artifact_name: str, store: ArtifactStore = Depends(get_artifact_store)):
    if not artifact_name.startswith(store.prefix):
        return JSONResponse(status_code=404, content={"success": False, "error": "Not Found", "message": "Not Found"})

    path = store.resolve(artifact_name)
    if path is None:
        logger.error(f"Resized image not found: {artifact_name} (searched {[str(d) for d in store.candidate_dirs()]})")
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "Resized image not found", "message": artifact_name},
        )

    logger.info(f"Serving resized image: {path}")
    return FileResponse(path, media_type="image/jpeg", headers=no_cache_headers())
