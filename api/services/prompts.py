"""
Prompt templates for the nano-banana material replacement model.

Image order matters: the room photo is always first, then the floor material, then the
wall material. The prompts refer to the materials by that position.
"""
from pathlib import Path
from typing import List, Optional, Union

from schemas.visualization import VisualizationMode


class VisualizationPrompts:
    """Prompt text per visualization mode."""

    FLOOR = (
        "Replace only the floor in the room using the second image as the floor material. "
        "Keep the walls, ceiling, furniture, lighting, shadows, and all objects exactly the same. "
        "Do not modify room geometry or change perspective. "
        "Apply the new material realistically: "
        "- Match the original floor perspective and angle. "
        "- Blend it naturally with the room lighting. "
        "- Keep furniture shadows and contact points intact. "
        "- Do not distort or alter any objects. "
        "Do not change anything except the floor surface."
    )

    WALLS = (
        "Replace only the visible walls in the room using the second image as the wall material. "
        "Do not modify the floor, furniture, windows, ceiling, or any objects. "
        "Keep the room structure exactly the same: "
        "- Maintain original lighting and shadows on the wall. "
        "- Preserve edges around windows, doors, and ceiling lines. "
        "- Apply the new material cleanly without affecting other areas. "
        "The result should look like the new wall material was installed in the real room."
    )

    BOTH = (
        "Replace the floor using the second image, and replace the walls using the third image. "
        "Do not change any other part of the room. "
        "Keep the original room structure: "
        "- Preserve furniture, decor, windows, ceiling, lights, shadows, and reflections. "
        "- Maintain correct perspective for both floor and walls. "
        "- Keep furniture contact shadows on the floor and clean edges around windows, doors, and ceiling lines. "
        "- Blend materials naturally with room lighting. "
        "Only change the floor and wall surfaces. Everything else must remain untouched."
    )

    @classmethod
    def for_mode(cls, mode: VisualizationMode) -> str:
        if mode == VisualizationMode.WALLS:
            return cls.WALLS
        if mode == VisualizationMode.BOTH:
            return cls.BOTH
        return cls.FLOOR


def input_images(
    mode: VisualizationMode,
    room: Union[str, Path],
    floor: Optional[Union[str, Path]] = None,
    wall: Optional[Union[str, Path]] = None,
) -> List[Path]:
    """Ordered provider inputs for a mode: room, then floor material, then wall material."""
    images = [Path(room)]
    if mode.needs_floor:
        if floor is None:
            raise ValueError(f"{mode.value} visualization needs a floor material")
        images.append(Path(floor))
    if mode.needs_wall:
        if wall is None:
            raise ValueError(f"{mode.value} visualization needs a wall material")
        images.append(Path(wall))
    return images
