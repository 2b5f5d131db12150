import json
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from gifstudio.config import settings


class PresetGroup(BaseModel):
    id: str
    label: str
    items: list[str]
    descriptions: dict[str, str] = {}


def load_presets(directory: str | Path) -> dict[str, PresetGroup]:
    """Load all preset JSON files from a directory.

    Each JSON file must have: id, label, items; ``descriptions`` is optional
    and maps an item to the long-form text used when building prompts.
    Returns dict keyed by group id.
    """
    dir_path = Path(directory)
    if not dir_path.is_dir():
        raise FileNotFoundError(f"Presets directory not found: {dir_path.resolve()}")

    groups: dict[str, PresetGroup] = {}
    for json_file in sorted(dir_path.glob("*.json")):
        data = json.loads(json_file.read_text())
        group = PresetGroup.model_validate(data)
        groups[group.id] = group
        logger.debug(
            "Loaded preset group: {gid} ({count} items, {file})",
            gid=group.id,
            count=len(group.items),
            file=json_file.name,
        )

    if not groups:
        raise ValueError(f"No preset JSON files found in: {dir_path.resolve()}")

    return groups


# Load presets at import time from configured directory
PRESETS = load_presets(settings.presets_dir)
logger.info("Loaded {count} preset groups total", count=len(PRESETS))


def get_group(group_id: str) -> PresetGroup | None:
    return PRESETS.get(group_id)


def list_groups() -> list[dict[str, str]]:
    """Return list of {id, label} for all loaded groups (for API response)."""
    return [{"id": g.id, "label": g.label} for g in PRESETS.values()]


def style_description(style: str) -> str | None:
    """Curated long-form description for a preset style name, if there is one."""
    group = PRESETS.get("styles")
    if group is None:
        return None
    return group.descriptions.get(style)
