"""
Undo Log - Append-Only Record of Reversible Scene Edits

Scene edits made by the tools are written to an explicit log instead of a
host editor's global undo stack. The host decides when to flush the log and
what to do with the entries.

Operations are collected into groups; one group corresponds to one
user-visible action, and a single `undo()` reverses a whole group in the
reverse of the order it was recorded. Recording order must mirror execution
order.

Operations:
    - record(node):            before-state snapshot (after-state taken at commit)
    - register_created(node):  node that was just created
    - destroy(node):           detaches the node now, remembering where it was

Usage:
    log = UndoLog()
    with log.group("Replace Crate"):
        log.record(target)
        ...
        log.register_created(scene, instance)
        log.destroy(scene, target)

    log.undo()   # target back, instance gone, target state restored

Author: Scene Asset Tools
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from scene_graph import SceneGraph, SceneNode

logger = logging.getLogger(__name__)


# =============================================================================
# Operations
# =============================================================================

def capture_state(node: SceneNode) -> Dict[str, Any]:
    """Snapshot of a node's own editable state (not its children)."""
    return {
        "name": node.name,
        "active": node.active,
        "components": [copy.deepcopy(c) for c in node.components],
    }


def apply_state(node: SceneNode, state: Dict[str, Any]) -> None:
    node.name = state["name"]
    node.active = state["active"]
    node.components = [copy.deepcopy(c) for c in state["components"]]


class UndoOperation:
    """One reversible step."""

    def __init__(self, label: str = ""):
        self.label = label

    def revert(self) -> None:
        raise NotImplementedError

    def reapply(self) -> None:
        raise NotImplementedError

    def commit(self) -> None:
        """Called when the owning group closes."""
        pass


class RecordOperation(UndoOperation):
    """Before/after state of an existing node."""

    def __init__(self, node: SceneNode, label: str = ""):
        super().__init__(label)
        self.node = node
        self.before = capture_state(node)
        self.after: Optional[Dict[str, Any]] = None

    def commit(self) -> None:
        self.after = capture_state(self.node)

    def revert(self) -> None:
        apply_state(self.node, self.before)

    def reapply(self) -> None:
        if self.after is not None:
            apply_state(self.node, self.after)

    def __repr__(self) -> str:
        return f"RecordOperation({self.node.name})"


class CreateOperation(UndoOperation):
    """A node created by a tool; undo removes it again."""

    def __init__(self, scene: SceneGraph, node: SceneNode, label: str = ""):
        super().__init__(label)
        self.scene = scene
        self.node = node
        self._parent: Optional[SceneNode] = None
        self._index = 0

    def revert(self) -> None:
        self._parent, self._index = self.scene.destroy(self.node)

    def reapply(self) -> None:
        self.scene.restore(self.node, self._parent, self._index)

    def __repr__(self) -> str:
        return f"CreateOperation({self.node.name})"


class DestroyOperation(UndoOperation):
    """A node removed by a tool; undo puts it back where it was."""

    def __init__(self, scene: SceneGraph, node: SceneNode, label: str = ""):
        super().__init__(label)
        self.scene = scene
        self.node = node
        self._parent: Optional[SceneNode] = None
        self._index = 0

    def execute(self) -> None:
        self._parent, self._index = self.scene.destroy(self.node)

    def revert(self) -> None:
        self.scene.restore(self.node, self._parent, self._index)

    def reapply(self) -> None:
        self.execute()

    def __repr__(self) -> str:
        return f"DestroyOperation({self.node.name})"


@dataclass
class UndoGroup:
    """Operations that undo and redo as one step."""
    label: str
    operations: List[UndoOperation] = field(default_factory=list)
    committed: bool = False

    def commit(self) -> None:
        for op in self.operations:
            op.commit()
        self.committed = True

    def __repr__(self) -> str:
        return f"UndoGroup({self.label!r}, operations={len(self.operations)})"


# =============================================================================
# Log
# =============================================================================

class UndoLog:
    """
    Append-only undo/redo log.

    Operations registered outside an open group form their own single-step
    group. Appending a new group discards anything that could be redone.
    """

    def __init__(self) -> None:
        self._groups: List[UndoGroup] = []
        self._redo: List[UndoGroup] = []
        self._open: Optional[UndoGroup] = None

    def __len__(self) -> int:
        return len(self._groups)

    def __repr__(self) -> str:
        return f"UndoLog(groups={len(self._groups)}, redo={len(self._redo)})"

    @property
    def groups(self) -> List[UndoGroup]:
        return list(self._groups)

    @property
    def can_undo(self) -> bool:
        return bool(self._groups)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @contextmanager
    def group(self, label: str) -> Iterator[UndoGroup]:
        """
        Collect every operation registered inside the block into one group.

        Nested groups fold into the outermost one. The group is committed even
        when the block raises: operations already executed stay in the log so
        the log never disagrees with the scene.
        """
        if self._open is not None:
            yield self._open
            return

        self._open = UndoGroup(label)
        try:
            yield self._open
        finally:
            opened, self._open = self._open, None
            if opened.operations:
                self._push(opened)

    def record(self, node: SceneNode, label: str = "") -> RecordOperation:
        return self._append(RecordOperation(node, label))  # type: ignore[return-value]

    def register_created(self, scene: SceneGraph, node: SceneNode, label: str = "") -> CreateOperation:
        return self._append(CreateOperation(scene, node, label))  # type: ignore[return-value]

    def destroy(self, scene: SceneGraph, node: SceneNode, label: str = "") -> DestroyOperation:
        """Destroy `node` now and log it."""
        op = DestroyOperation(scene, node, label)
        op.execute()
        return self._append(op)  # type: ignore[return-value]

    def undo(self) -> Optional[str]:
        """
        Reverse the most recent group.

        Returns:
            Label of the undone group, or None if there was nothing to undo
        """
        if self._open is not None:
            raise RuntimeError("Cannot undo while a group is open")
        if not self._groups:
            return None
        group = self._groups.pop()
        for op in reversed(group.operations):
            op.revert()
        self._redo.append(group)
        logger.debug(f"Undo: {group.label}")
        return group.label

    def redo(self) -> Optional[str]:
        if self._open is not None:
            raise RuntimeError("Cannot redo while a group is open")
        if not self._redo:
            return None
        group = self._redo.pop()
        for op in group.operations:
            op.reapply()
        self._groups.append(group)
        logger.debug(f"Redo: {group.label}")
        return group.label

    def flush(self) -> List[UndoGroup]:
        """Hand all committed groups to the host and clear the log."""
        flushed = list(self._groups)
        self._groups.clear()
        self._redo.clear()
        return flushed

    def _append(self, op: UndoOperation) -> UndoOperation:
        if self._open is not None:
            self._open.operations.append(op)
        else:
            self._push(UndoGroup(op.label, [op]))
        return op

    def _push(self, group: UndoGroup) -> None:
        group.commit()
        self._groups.append(group)
        self._redo.clear()
