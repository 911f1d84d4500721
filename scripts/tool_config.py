"""
Tool Config - Settings Shared by the Asset Tools

Defaults live in `ToolConfig`; an optional JSON file can override any of
them. The default file location is ../configs/asset_tools.json relative to
this script.

Config file format (all keys optional):
    {
        "excluded_kinds": ["script", "shader"],
        "texture_extensions": [".png", ".tga", ...],
        "default_filters": {"mesh": true, ".fbx": true, ".mat": true,
                            "texture": true, "shader": true, ".cs": true},
        "collision_policy": "report"
    }

collision_policy:
    "report" - first source wins, later same-named sources are reported
    "error"  - relocation refuses to start

Author: Scene Asset Tools
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Set

from asset_store import IMAGE_EXTENSIONS, AssetKind

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "configs" / "asset_tools.json"

# Order matters for presentation layers that render one toggle per token
DEFAULT_FILTER_TOKENS = ("mesh", ".fbx", ".mat", "texture", "shader", ".cs")

COLLISION_POLICIES = ("report", "error")


@dataclass
class ToolConfig:
    """
    Settings for relocation and dependency exploration.

    Attributes:
        excluded_kinds: Asset kinds never copied by relocation (shared program
            artifacts rather than per-instance data)
        texture_extensions: Extensions the "texture" filter token stands for
        default_filters: FilterSpec flags used when a caller passes none
        collision_policy: What relocation does with flattened name collisions
    """
    excluded_kinds: Set[AssetKind] = field(
        default_factory=lambda: {AssetKind.SCRIPT, AssetKind.SHADER})
    texture_extensions: FrozenSet[str] = IMAGE_EXTENSIONS
    default_filters: Dict[str, bool] = field(
        default_factory=lambda: {token: True for token in DEFAULT_FILTER_TOKENS})
    collision_policy: str = "report"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ToolConfig:
        """
        Build a config from parsed JSON, keeping defaults for missing keys.

        Unknown kinds and policies are logged and ignored.
        """
        config = cls()

        if "excluded_kinds" in data:
            kinds = set()
            for name in data["excluded_kinds"]:
                try:
                    kinds.add(AssetKind(str(name).lower()))
                except ValueError:
                    logger.warning(f"Ignoring unknown asset kind in config: '{name}'")
            config.excluded_kinds = kinds

        if "texture_extensions" in data:
            config.texture_extensions = frozenset(
                ext.lower() if ext.startswith(".") else f".{ext.lower()}"
                for ext in data["texture_extensions"]
            )

        if "default_filters" in data:
            config.default_filters = {str(k): bool(v) for k, v in data["default_filters"].items()}

        policy = data.get("collision_policy", config.collision_policy)
        if policy in COLLISION_POLICIES:
            config.collision_policy = policy
        else:
            logger.warning(f"Unknown collision_policy '{policy}', using '{config.collision_policy}'")

        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "excluded_kinds": sorted(k.value for k in self.excluded_kinds),
            "texture_extensions": sorted(self.texture_extensions),
            "default_filters": dict(self.default_filters),
            "collision_policy": self.collision_policy,
        }


def load_tool_config(config_path: Optional[Path] = None) -> ToolConfig:
    """
    Load tool settings from a JSON config file.

    Args:
        config_path: Path to the config (default: ../configs/asset_tools.json)

    Returns:
        ToolConfig; defaults when the file is missing or unreadable
    """
    config_path = DEFAULT_CONFIG_PATH if config_path is None else Path(config_path).resolve()

    if not config_path.exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return ToolConfig()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load config: {e}")
        return ToolConfig()

    if not isinstance(data, dict):
        logger.error(f"Config root must be an object: {config_path}")
        return ToolConfig()

    logger.info(f"Loaded tool config from {config_path}")
    return ToolConfig.from_dict(data)
