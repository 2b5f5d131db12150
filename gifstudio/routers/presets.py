from fastapi import APIRouter, HTTPException
from loguru import logger

from gifstudio.presets.definitions import PresetGroup, get_group, list_groups

router = APIRouter()


@router.get("/api/presets")
async def get_presets() -> list[dict[str, str]]:
    """Return list of preset groups (id + label only)."""
    return list_groups()


@router.get("/api/presets/{group_id}", response_model=PresetGroup)
async def get_preset_group(group_id: str) -> PresetGroup:
    group = get_group(group_id)
    if group is None:
        logger.warning("Unknown preset group requested: {gid}", gid=group_id)
        raise HTTPException(status_code=404, detail=f"Unknown preset group: {group_id}")
    return group
