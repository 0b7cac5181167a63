"""
Floor material catalog.

Maps the tile IDs the frontend gallery sends to swatch images shipped under public/tiles.
Wall materials are always user uploads, so they have no catalog.
"""
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Union

# Tile ID -> swatch filename under the tiles directory
DEFAULT_TILE_FILES: Dict[str, str] = {
    "marble-white-001": "marble-tile.jpg",
    "oak-wood-002": "oak-wood.webp",
    "oak-wood-001": "wooden-tile.jpg",
    "slate-grey-003": "design-tile.jpg",
    "terracotta-004": "terracotta-004.jpg",
    "black-granite-005": "black-granite-005.jpg",
    "hexagon-white-006": "hexagon-white-006.jpg",
}

# Prefix the frontend uses for tiles the user uploaded themselves
CUSTOM_TILE_PREFIX = "custom-tile-"


class MaterialCatalog(Mapping[str, Path]):
    """Read-only tile ID -> image path mapping."""

    def __init__(self, entries: Mapping[str, Union[str, Path]]):
        self._entries = MappingProxyType({tile_id: Path(path) for tile_id, path in entries.items()})

    def __getitem__(self, tile_id: str) -> Path:
        return self._entries[tile_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, tile_id: str) -> Optional[Path]:
        return self._entries.get(tile_id)

    def missing_files(self) -> Dict[str, Path]:
        """Entries whose image is not on disk (logged at startup)."""
        return {tile_id: path for tile_id, path in self._entries.items() if not path.is_file()}


def default_catalog(tiles_dir: Union[str, Path]) -> MaterialCatalog:
    tiles_dir = Path(tiles_dir)
    return MaterialCatalog({tile_id: tiles_dir / filename for tile_id, filename in DEFAULT_TILE_FILES.items()})


def is_custom_tile_id(tile_id: Optional[str]) -> bool:
    return bool(tile_id) and tile_id.startswith(CUSTOM_TILE_PREFIX)
