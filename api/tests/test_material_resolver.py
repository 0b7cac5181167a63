"""
Tests for visualization mode parsing and material resolution.
"""
from pathlib import Path

import pytest

from config.material_catalog import DEFAULT_TILE_FILES, MaterialCatalog, default_catalog, is_custom_tile_id
from core.exceptions import InputError
from schemas.visualization import VisualizationMode
from services.material_resolver import resolve_materials


@pytest.fixture
def tiles():
    return default_catalog("/srv/public/tiles")


class TestVisualizationMode:
    @pytest.mark.parametrize("raw", [None, "", "   ", "floor", "FLOOR"])
    def test_floor_is_default(self, raw):
        assert VisualizationMode.parse(raw) == VisualizationMode.FLOOR

    def test_walls_and_both(self):
        assert VisualizationMode.parse("walls") == VisualizationMode.WALLS
        assert VisualizationMode.parse("both") == VisualizationMode.BOTH

    def test_unknown_mode_is_input_error(self):
        with pytest.raises(InputError) as exc_info:
            VisualizationMode.parse("ceiling")
        assert exc_info.value.status_code == 400
        assert exc_info.value.error == "Invalid visualization type"

    def test_material_needs(self):
        assert VisualizationMode.FLOOR.needs_floor and not VisualizationMode.FLOOR.needs_wall
        assert VisualizationMode.WALLS.needs_wall and not VisualizationMode.WALLS.needs_floor
        assert VisualizationMode.BOTH.needs_floor and VisualizationMode.BOTH.needs_wall


class TestMaterialCatalog:
    def test_default_catalog_entries(self, tiles):
        assert set(tiles) == set(DEFAULT_TILE_FILES)
        assert tiles["marble-white-001"] == Path("/srv/public/tiles/marble-tile.jpg")
        assert tiles["oak-wood-002"].suffix == ".webp"

    def test_catalog_is_read_only(self, tiles):
        with pytest.raises(TypeError):
            tiles._entries["new-tile"] = Path("x.jpg")

    def test_missing_files(self, tmp_path):
        (tmp_path / "present.jpg").write_bytes(b"x")
        catalog = MaterialCatalog({"a": tmp_path / "present.jpg", "b": tmp_path / "absent.jpg"})
        assert catalog.missing_files() == {"b": tmp_path / "absent.jpg"}

    def test_custom_tile_prefix(self):
        assert is_custom_tile_id("custom-tile-1712345")
        assert not is_custom_tile_id("marble-white-001")
        assert not is_custom_tile_id(None)


class TestResolveMaterials:
    def test_floor_from_catalog(self, tiles):
        materials = resolve_materials(VisualizationMode.FLOOR, "slate-grey-003", tiles)
        assert materials.floor == Path("/srv/public/tiles/design-tile.jpg")
        assert materials.wall is None
        assert materials.floor_source == "catalog"

    def test_unknown_tile_id(self, tiles):
        with pytest.raises(InputError) as exc_info:
            resolve_materials(VisualizationMode.FLOOR, "no-such-tile", tiles)
        assert exc_info.value.error == "Invalid tile ID"

    def test_floor_without_tile_id(self, tiles):
        with pytest.raises(InputError) as exc_info:
            resolve_materials(VisualizationMode.FLOOR, None, tiles)
        assert exc_info.value.error == "No tile ID provided"

    def test_custom_tile_upload_wins(self, tiles):
        upload = Path("/tmp/uploads/customTileFile-1.png")
        materials = resolve_materials(VisualizationMode.FLOOR, "custom-tile-99", tiles, custom_tile_path=upload)
        assert materials.floor == upload
        assert materials.floor_source == "custom"

    def test_custom_id_without_upload_falls_back_to_catalog(self, tiles):
        with pytest.raises(InputError) as exc_info:
            resolve_materials(VisualizationMode.FLOOR, "custom-tile-99", tiles)
        assert exc_info.value.error == "Invalid tile ID"

    def test_catalog_id_ignores_custom_upload(self, tiles):
        upload = Path("/tmp/uploads/customTileFile-1.png")
        materials = resolve_materials(VisualizationMode.FLOOR, "oak-wood-001", tiles, custom_tile_path=upload)
        assert materials.floor == Path("/srv/public/tiles/wooden-tile.jpg")

    @pytest.mark.parametrize("mode", [VisualizationMode.WALLS, VisualizationMode.BOTH])
    def test_wall_required(self, tiles, mode):
        with pytest.raises(InputError) as exc_info:
            resolve_materials(mode, "marble-white-001", tiles)
        assert "Wall tile" in exc_info.value.error

    def test_walls_only_needs_no_tile_id(self, tiles):
        wall = Path("/tmp/uploads/wallTileFile-1.jpg")
        materials = resolve_materials(VisualizationMode.WALLS, None, tiles, wall_tile_path=wall)
        assert materials.floor is None
        assert materials.wall == wall

    def test_both_needs_tile_id(self, tiles):
        wall = Path("/tmp/uploads/wallTileFile-1.jpg")
        with pytest.raises(InputError) as exc_info:
            resolve_materials(VisualizationMode.BOTH, None, tiles, wall_tile_path=wall)
        assert exc_info.value.error == "No tile ID provided"

    def test_both_resolves_floor_and_wall(self, tiles):
        wall = Path("/tmp/uploads/wallTileFile-1.jpg")
        materials = resolve_materials(VisualizationMode.BOTH, "terracotta-004", tiles, wall_tile_path=wall)
        assert materials.floor == Path("/srv/public/tiles/terracotta-004.jpg")
        assert materials.wall == wall

    def test_floor_mode_ignores_wall_upload(self, tiles):
        wall = Path("/tmp/uploads/wallTileFile-1.jpg")
        materials = resolve_materials(VisualizationMode.FLOOR, "marble-white-001", tiles, wall_tile_path=wall)
        assert materials.wall is None
