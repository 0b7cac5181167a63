"""
Material resolution: maps the requested mode and tile ID to floor/wall source images.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config.material_catalog import MaterialCatalog, is_custom_tile_id
from core.exceptions import InputError
from schemas.visualization import VisualizationMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedMaterials:
    """Absolute source paths for the materials a job needs."""

    floor: Optional[Path] = None
    wall: Optional[Path] = None
    floor_source: str = "none"  # "catalog", "custom" or "none"


def resolve_materials(
    mode: VisualizationMode,
    tile_id: Optional[str],
    catalog: MaterialCatalog,
    custom_tile_path: Optional[Path] = None,
    wall_tile_path: Optional[Path] = None,
) -> ResolvedMaterials:
    """
    Resolve floor and wall material images for a visualization request.

    Args:
        mode: Requested visualization mode
        tile_id: Floor tile ID from the form (catalog ID or custom-tile-*)
        catalog: Read-only floor tile catalog
        custom_tile_path: Saved upload of a custom floor tile, if any
        wall_tile_path: Saved upload of the wall material, if any

    Returns:
        ResolvedMaterials with only the paths the mode needs

    Raises:
        InputError: wall material missing for a wall mode, tile ID missing or unknown
    """
    if mode.needs_wall and wall_tile_path is None:
        raise InputError(
            "Wall tile image is required for wall visualization",
            message=f"A wallTileFile upload is required when visualizationType is '{mode.value}'",
        )

    floor: Optional[Path] = None
    floor_source = "none"
    if mode.needs_floor:
        if not tile_id:
            raise InputError("No tile ID provided", message="tileId is required for floor visualization")

        if custom_tile_path is not None and is_custom_tile_id(tile_id):
            floor = custom_tile_path
            floor_source = "custom"
        else:
            floor = catalog.lookup(tile_id)
            if floor is None:
                raise InputError("Invalid tile ID", message=f"Unknown tile ID '{tile_id}'")
            floor_source = "catalog"
        logger.info(f"Floor material resolved from {floor_source}: {floor}")
    else:
        logger.info("Walls-only visualization, no floor tile needed")

    wall = wall_tile_path if mode.needs_wall else None
    return ResolvedMaterials(floor=floor, wall=wall, floor_source=floor_source)
