"""
Visualize Router

POST /api/visualize takes a room photo (or a pre-seeded render path) plus floor/wall
materials and returns the URL of the generated artifact.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from config.material_catalog import MaterialCatalog, default_catalog
from core.config import Settings, get_settings
from schemas.visualization import ErrorResponse, VisualizeResponse
from services.job_runner import SubprocessJobRunner
from services.visualization_service import VisualizationForm, VisualizationService

router = APIRouter(tags=["visualization"])


def get_material_catalog(settings: Settings = Depends(get_settings)) -> MaterialCatalog:
    return default_catalog(settings.resolved_tiles_dir)


def get_visualization_service(
    settings: Settings = Depends(get_settings),
    catalog: MaterialCatalog = Depends(get_material_catalog),
) -> VisualizationService:
    return VisualizationService(settings=settings, catalog=catalog, job_runner=SubprocessJobRunner(settings))


@router.post(
    "/visualize",
    response_model=VisualizeResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def visualize(
    tileId: Optional[str] = Form(None),
    visualizationType: Optional[str] = Form("floor"),
    renderImagePath: Optional[str] = Form(None),
    roomImage: Optional[UploadFile] = File(None),
    customTileFile: Optional[UploadFile] = File(None),
    wallTileFile: Optional[UploadFile] = File(None),
    service: VisualizationService = Depends(get_visualization_service),
):
    """
    Replace the floor, the walls, or both in a room photo.

    Either `roomImage` or `renderImagePath` must be given. `wallTileFile` is required when
    `visualizationType` is `walls` or `both`. Errors come back as
    `{success: false, error, message, details?}` with 400 for input problems and 500 for
    provider or processing failures.
    """
    form = VisualizationForm(
        tile_id=tileId,
        visualization_type=visualizationType,
        render_image_path=renderImagePath,
        room_image=roomImage,
        custom_tile_file=customTileFile,
        wall_tile_file=wallTileFile,
    )
    return await service.visualize(form)
