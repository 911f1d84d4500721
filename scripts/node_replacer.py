"""
Node Replacer - Swap a Scene Node for a Prefab Instance

Replaces a node in a live scene with a fresh instance of a stored prefab,
keeping the node's place in the world:

    - World position and rotation are preserved exactly
    - The target's local scale becomes the instance's world scale; the
      local transform under the parent is re-derived from it
    - Optionally the target's name and its non-Transform components move to
      the instance
    - Creation of the instance and destruction of the target form one undo
      group; a single undo brings the old node back

The instance stays linked to its prefab (`prefab_source`), so later edits to
the prefab can be pushed with `SceneGraph.propagate_prefab()`.

Usage:
    engine = ReplacementEngine(store, scene, undo_log)
    instance = engine.replace("/Props/Barrel.prefab", scene.find("Crate"))

    undo_log.undo()   # Crate is back, Barrel instance removed

Author: Scene Asset Tools
"""

from __future__ import annotations

import copy
import logging
from typing import List, Optional, Union

from asset_store import (
    Asset,
    AssetStore,
    InvalidArgumentsError,
    Prefab,
    ResolutionFailureError,
)
from scene_graph import Component, SceneGraph, SceneNode, Transform
from undo_log import UndoLog

logger = logging.getLogger(__name__)

REPLACE_UNDO_LABEL = "Replace Prefab"


class ReplacementEngine:
    """Replaces scene nodes with prefab instances, one undo group per call."""

    def __init__(self, store: AssetStore, scene: SceneGraph, undo_log: Optional[UndoLog] = None):
        self.store = store
        self.scene = scene
        self.undo_log = undo_log if undo_log is not None else UndoLog()

    def resolve_prefab(self, source: Union[str, Asset, SceneNode]) -> Prefab:
        """
        Load the prefab behind `source`.

        `source` may be an identifier, a loaded handle, or a node that lives
        inside a stored prefab.

        Raises:
            ResolutionFailureError: If `source` is not backed by a stored prefab
        """
        path = source if isinstance(source, str) else self.store.get_path(source)
        if not path:
            raise ResolutionFailureError(repr(source), "is not backed by a stored prefab")

        prefab = self.store.load(path, Prefab)
        if prefab is None:
            raise ResolutionFailureError(path, "does not resolve to a prefab")
        return prefab

    def replace(self, source: Union[str, Asset, SceneNode, None], target: Optional[SceneNode],
                copy_components: bool = True, keep_name: bool = True) -> SceneNode:
        """
        Replace `target` with a new instance of the prefab `source`.

        Args:
            source: Prefab identifier, handle, or prefab-backed node
            target: Live scene node to replace
            copy_components: Copy every non-Transform component of the target
                onto the instance
            keep_name: Give the instance the target's name

        Returns:
            The new instance root

        Raises:
            InvalidArgumentsError: Source or target missing, or target not in
                this scene (nothing is changed)
            ResolutionFailureError: Source is not a stored prefab (nothing is
                changed)
        """
        if source is None or source == "" or target is None:
            raise InvalidArgumentsError("Please assign both the prefab to use and the node to replace")
        if not self.scene.contains(target):
            raise InvalidArgumentsError(f"Node '{target.name}' is not part of scene '{self.scene.name}'")

        prefab = self.resolve_prefab(source)

        with self.undo_log.group(REPLACE_UNDO_LABEL):
            self.undo_log.record(target, REPLACE_UNDO_LABEL)

            position = target.position
            rotation = target.rotation
            local_scale = copy.copy(target.transform.local_scale)
            name = target.name
            parent = target.parent

            instance = self.scene.instantiate(prefab)
            self.undo_log.register_created(self.scene, instance, "Create Prefab")

            # Instances start at the scene root, so the local scale applied here
            # is the world scale that set_parent keeps.
            instance.position = position
            instance.rotation = rotation
            instance.transform.local_scale = local_scale
            self.scene.set_parent(instance, parent, world_position_stays=True)

            if copy_components:
                copied = self.copy_components(target, instance)
                logger.debug(f"Copied {len(copied)} component(s) from '{name}'")

            if keep_name:
                instance.name = name

            self.undo_log.destroy(self.scene, target, "Destroy Original")

        logger.info(f"Replaced '{name}' with an instance of '{prefab.path}'")
        return instance

    def copy_components(self, original: SceneNode, destination: SceneNode) -> List[Component]:
        """
        Paste copies of all of `original`'s components onto `destination`,
        except its Transform. Existing components on the destination are kept.
        """
        copied = []
        for component in original.components:
            if isinstance(component, Transform):
                continue
            copied.append(self.scene.copy_component(component, destination))
        return copied
