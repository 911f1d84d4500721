"""
Scene Graph - Spatial Node Hierarchy for Asset Tools

This module provides the in-process scene model the asset tools operate on:
nodes with a transform, attached components and children, plus the scene-level
operations the replacement workflow needs (prefab instancing, reparenting that
keeps world space, component copies, destruction and restoration).

Architecture:
    - Vec3 / Quaternion: Minimal math for TRS transforms
    - Component: Base record for everything attached to a node
        - Transform: Intrinsic local position/rotation/scale (exactly one per node)
        - Renderer: Ordered material references
        - MeshFilter: Single mesh reference
        - Behaviour: Script reference plus serialized fields
    - SceneNode: One entity in the hierarchy
    - SceneGraph: Root list plus instancing and reparenting operations

Coordinate Convention:
    World transforms compose parent-first: a point p local to a node maps to
    parent space as  local_position + local_rotation * (local_scale * p).
    Scale under rotated parents is reported as a lossy (component-wise) scale.

Usage:
    scene = SceneGraph("Level01")
    crate = scene.create_node("Crate")
    crate.position = Vec3(1, 0, 2)

    instance = scene.instantiate(prefab)          # prefab from an AssetStore
    scene.set_parent(instance, crate, world_position_stays=True)

Author: Scene Asset Tools
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

_EPSILON = 1e-6

C = TypeVar("C", bound="Component")


# =============================================================================
# Math Types
# =============================================================================

@dataclass
class Vec3:
    """3D vector used for positions and scales."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: Vec3) -> Vec3:
        """Vector addition."""
        return Vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vec3) -> Vec3:
        """Vector subtraction."""
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, scalar: float) -> Vec3:
        """Scalar multiplication."""
        return Vec3(self.x * scalar, self.y * scalar, self.z * scalar)

    def __neg__(self) -> Vec3:
        return Vec3(-self.x, -self.y, -self.z)

    def scaled(self, other: Vec3) -> Vec3:
        """Component-wise multiplication."""
        return Vec3(self.x * other.x, self.y * other.y, self.z * other.z)

    def divided(self, other: Vec3) -> Vec3:
        """Component-wise division; a zero divisor axis yields zero."""
        return Vec3(
            self.x / other.x if abs(other.x) > _EPSILON else 0.0,
            self.y / other.y if abs(other.y) > _EPSILON else 0.0,
            self.z / other.z if abs(other.z) > _EPSILON else 0.0,
        )

    def dot(self, other: Vec3) -> float:
        """Dot product."""
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Vec3) -> Vec3:
        """Cross product."""
        return Vec3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x
        )

    def magnitude(self) -> float:
        """Euclidean magnitude."""
        return math.sqrt(self.x**2 + self.y**2 + self.z**2)

    def approx_equal(self, other: Vec3, tolerance: float = 1e-5) -> bool:
        return (abs(self.x - other.x) <= tolerance
                and abs(self.y - other.y) <= tolerance
                and abs(self.z - other.z) <= tolerance)

    def to_list(self) -> List[float]:
        return [self.x, self.y, self.z]

    @classmethod
    def from_list(cls, coords: List[float]) -> Vec3:
        """Create from [x, y, z] list."""
        return cls(coords[0], coords[1], coords[2])

    @classmethod
    def one(cls) -> Vec3:
        return cls(1.0, 1.0, 1.0)

    def __repr__(self) -> str:
        return f"Vec3({self.x:.4f}, {self.y:.4f}, {self.z:.4f})"


@dataclass
class Quaternion:
    """
    Unit quaternion rotation (w, x, y, z).

    Euler construction uses the Z, then X, then Y application order common to
    game engines, in degrees.
    """
    w: float = 1.0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def identity(cls) -> Quaternion:
        return cls(1.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_axis_angle(cls, axis: Vec3, degrees: float) -> Quaternion:
        """Rotation of `degrees` around `axis` (normalized internally)."""
        mag = axis.magnitude()
        if mag < _EPSILON:
            return cls.identity()
        half = math.radians(degrees) / 2.0
        s = math.sin(half) / mag
        return cls(math.cos(half), axis.x * s, axis.y * s, axis.z * s)

    @classmethod
    def from_euler(cls, x: float, y: float, z: float) -> Quaternion:
        qx = cls.from_axis_angle(Vec3(1, 0, 0), x)
        qy = cls.from_axis_angle(Vec3(0, 1, 0), y)
        qz = cls.from_axis_angle(Vec3(0, 0, 1), z)
        return qy * qx * qz

    def __mul__(self, other: Quaternion) -> Quaternion:
        """Hamilton product: applying `other` first, then `self`."""
        return Quaternion(
            self.w * other.w - self.x * other.x - self.y * other.y - self.z * other.z,
            self.w * other.x + self.x * other.w + self.y * other.z - self.z * other.y,
            self.w * other.y - self.x * other.z + self.y * other.w + self.z * other.x,
            self.w * other.z + self.x * other.y - self.y * other.x + self.z * other.w,
        )

    def norm(self) -> float:
        return math.sqrt(self.w**2 + self.x**2 + self.y**2 + self.z**2)

    def normalized(self) -> Quaternion:
        n = self.norm()
        if n < _EPSILON:
            return Quaternion.identity()
        return Quaternion(self.w / n, self.x / n, self.y / n, self.z / n)

    def inverse(self) -> Quaternion:
        n2 = self.w**2 + self.x**2 + self.y**2 + self.z**2
        if n2 < _EPSILON:
            return Quaternion.identity()
        return Quaternion(self.w / n2, -self.x / n2, -self.y / n2, -self.z / n2)

    def rotate(self, v: Vec3) -> Vec3:
        """Rotate a vector by this (unit) quaternion."""
        u = Vec3(self.x, self.y, self.z)
        t = u.cross(v) * 2.0
        return v + t * self.w + u.cross(t)

    def approx_equal(self, other: Quaternion, tolerance: float = 1e-5) -> bool:
        """Equality up to sign (q and -q are the same rotation)."""
        d = abs(self.w * other.w + self.x * other.x + self.y * other.y + self.z * other.z)
        return abs(d - self.norm() * other.norm()) <= tolerance

    def to_list(self) -> List[float]:
        return [self.w, self.x, self.y, self.z]

    @classmethod
    def from_list(cls, values: List[float]) -> Quaternion:
        return cls(values[0], values[1], values[2], values[3])

    def __repr__(self) -> str:
        return f"Quaternion({self.w:.4f}, {self.x:.4f}, {self.y:.4f}, {self.z:.4f})"


# =============================================================================
# Components
# =============================================================================

@dataclass(eq=False)
class Component:
    """
    Base record for anything attached to a SceneNode.

    Attributes:
        enabled: Whether the component is active
        prefab_origin: True when the component was created from a prefab
            template (instance data that prefab edits may overwrite)
    """
    enabled: bool = True
    prefab_origin: bool = field(default=False, repr=False)

    TYPE_NAME: ClassVar[str] = "component"

    def references(self) -> List[str]:
        """Asset identifiers this component points at."""
        return []

    def clone(self) -> Component:
        """Detached copy, no longer marked as coming from a prefab."""
        duplicate = copy.deepcopy(self)
        duplicate.prefab_origin = False
        return duplicate

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TYPE_NAME, "enabled": self.enabled}


@dataclass(eq=False)
class Transform(Component):
    """Local TRS of a node, relative to its parent."""
    local_position: Vec3 = field(default_factory=Vec3)
    local_rotation: Quaternion = field(default_factory=Quaternion.identity)
    local_scale: Vec3 = field(default_factory=Vec3.one)

    TYPE_NAME: ClassVar[str] = "transform"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "position": self.local_position.to_list(),
            "rotation": self.local_rotation.to_list(),
            "scale": self.local_scale.to_list(),
        })
        return data


@dataclass(eq=False)
class Renderer(Component):
    """Draws the node's geometry with an ordered list of materials."""
    materials: List[Optional[str]] = field(default_factory=list)

    TYPE_NAME: ClassVar[str] = "renderer"

    def references(self) -> List[str]:
        return [m for m in self.materials if m]

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["materials"] = list(self.materials)
        return data


@dataclass(eq=False)
class MeshFilter(Component):
    """Binds a mesh asset to the node."""
    mesh: Optional[str] = None

    TYPE_NAME: ClassVar[str] = "mesh_filter"

    def references(self) -> List[str]:
        return [self.mesh] if self.mesh else []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["mesh"] = self.mesh
        return data


@dataclass(eq=False)
class Behaviour(Component):
    """Scripted behaviour: a compiled script reference plus serialized fields."""
    script: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)

    TYPE_NAME: ClassVar[str] = "behaviour"

    def references(self) -> List[str]:
        return [self.script] if self.script else []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["script"] = self.script
        data["fields"] = dict(self.fields)
        return data


COMPONENT_TYPES: Dict[str, Type[Component]] = {
    Transform.TYPE_NAME: Transform,
    Renderer.TYPE_NAME: Renderer,
    MeshFilter.TYPE_NAME: MeshFilter,
    Behaviour.TYPE_NAME: Behaviour,
}


def component_from_dict(data: Dict[str, Any]) -> Component:
    """
    Rebuild a component from its `to_dict()` form.

    Raises:
        ValueError: If the component type is unknown
    """
    type_name = data.get("type", "")
    enabled = data.get("enabled", True)
    if type_name == Transform.TYPE_NAME:
        return Transform(
            enabled=enabled,
            local_position=Vec3.from_list(data.get("position", [0, 0, 0])),
            local_rotation=Quaternion.from_list(data.get("rotation", [1, 0, 0, 0])),
            local_scale=Vec3.from_list(data.get("scale", [1, 1, 1])),
        )
    if type_name == Renderer.TYPE_NAME:
        return Renderer(enabled=enabled, materials=list(data.get("materials", [])))
    if type_name == MeshFilter.TYPE_NAME:
        return MeshFilter(enabled=enabled, mesh=data.get("mesh"))
    if type_name == Behaviour.TYPE_NAME:
        return Behaviour(enabled=enabled, script=data.get("script"),
                         fields=dict(data.get("fields", {})))
    if type_name == Component.TYPE_NAME:
        return Component(enabled=enabled)
    raise ValueError(f"Unknown component type: '{type_name}'")


# =============================================================================
# Scene Node
# =============================================================================

@dataclass(eq=False)
class SceneNode:
    """
    A single entity in the spatial hierarchy.

    Nodes compare and hash by identity so they can key result mappings.

    Attributes:
        name: Display name (may differ from the asset it came from)
        components: Attached components; a Transform is always first
        children: Child nodes in sibling order
        parent: Parent node (None for scene roots and detached nodes)
        active: Inactive nodes are still traversed by tools
        asset_path: Identifier of the stored prefab this node lives in, if any
        prefab_source: Prefab identifier this node was instantiated from
            (set on instance roots)
        prefab_origin: True for instance descendants created from the template
    """
    name: str
    components: List[Component] = field(default_factory=list)
    children: List['SceneNode'] = field(default_factory=list)
    parent: Optional['SceneNode'] = field(default=None, repr=False)
    active: bool = True
    asset_path: Optional[str] = None
    prefab_source: Optional[str] = None
    prefab_origin: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        transforms = [c for c in self.components if isinstance(c, Transform)]
        if not transforms:
            self.components.insert(0, Transform())
        elif len(transforms) > 1:
            raise ValueError(f"Node '{self.name}' has {len(transforms)} transforms")
        elif self.components[0] is not transforms[0]:
            self.components.remove(transforms[0])
            self.components.insert(0, transforms[0])
        for child in self.children:
            child.parent = self

    def __repr__(self) -> str:
        return (f"SceneNode({self.name}, components={len(self.components)}, "
                f"children={len(self.children)})")

    # --- Structure ---------------------------------------------------------

    @property
    def transform(self) -> Transform:
        return self.components[0]  # type: ignore[return-value]

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def root(self) -> 'SceneNode':
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def sibling_index(self) -> int:
        if self.parent is None:
            return 0
        return next(i for i, c in enumerate(self.parent.children) if c is self)

    def add_child(self, child: 'SceneNode', index: Optional[int] = None) -> None:
        """Attach `child` keeping its local transform values."""
        if child.parent is not None:
            child.parent.remove_child(child)
        if index is None:
            self.children.append(child)
        else:
            self.children.insert(index, child)
        child.parent = self

    def remove_child(self, child: 'SceneNode') -> bool:
        for i, existing in enumerate(self.children):
            if existing is child:
                del self.children[i]
                child.parent = None
                return True
        return False

    def iter_hierarchy(self) -> Iterator['SceneNode']:
        """This node and all descendants, depth-first pre-order."""
        yield self
        for child in self.children:
            yield from child.iter_hierarchy()

    def get_path(self) -> str:
        """Slash-separated name path from the hierarchy root."""
        names = []
        node: Optional[SceneNode] = self
        while node is not None:
            names.append(node.name)
            node = node.parent
        return "/".join(reversed(names))

    def find_prefab_source(self) -> Optional[str]:
        """Prefab identifier of the nearest instance root at or above this node."""
        node: Optional[SceneNode] = self
        while node is not None:
            if node.prefab_source:
                return node.prefab_source
            node = node.parent
        return None

    # --- Components --------------------------------------------------------

    def get_component(self, component_type: Type[C]) -> Optional[C]:
        for component in self.components:
            if isinstance(component, component_type):
                return component
        return None

    def get_components(self, component_type: Type[C]) -> List[C]:
        return [c for c in self.components if isinstance(c, component_type)]

    def get_components_in_children(self, component_type: Type[C],
                                   include_inactive: bool = False) -> List[C]:
        found: List[C] = []
        for node in self.iter_hierarchy():
            if not include_inactive and not node.active:
                continue
            found.extend(node.get_components(component_type))
        return found

    def add_component(self, component: C) -> C:
        if isinstance(component, Transform):
            raise ValueError(f"Node '{self.name}' already has a Transform")
        self.components.append(component)
        return component

    def remove_component(self, component: Component) -> bool:
        if isinstance(component, Transform):
            raise ValueError("The Transform of a node cannot be removed")
        for i, existing in enumerate(self.components):
            if existing is component:
                del self.components[i]
                return True
        return False

    # --- World space -------------------------------------------------------

    def transform_point(self, point: Vec3) -> Vec3:
        """Map a point from this node's local space to world space."""
        t = self.transform
        in_parent = t.local_position + t.local_rotation.rotate(t.local_scale.scaled(point))
        if self.parent is None:
            return in_parent
        return self.parent.transform_point(in_parent)

    def inverse_transform_point(self, point: Vec3) -> Vec3:
        """Map a world-space point into this node's local space."""
        in_parent = point if self.parent is None else self.parent.inverse_transform_point(point)
        t = self.transform
        return t.local_rotation.inverse().rotate(in_parent - t.local_position).divided(t.local_scale)

    @property
    def position(self) -> Vec3:
        """World-space position."""
        if self.parent is None:
            return copy.copy(self.transform.local_position)
        return self.parent.transform_point(self.transform.local_position)

    @position.setter
    def position(self, value: Vec3) -> None:
        if self.parent is None:
            self.transform.local_position = copy.copy(value)
        else:
            self.transform.local_position = self.parent.inverse_transform_point(value)

    @property
    def rotation(self) -> Quaternion:
        """World-space rotation."""
        local = self.transform.local_rotation
        if self.parent is None:
            return copy.copy(local)
        return (self.parent.rotation * local).normalized()

    @rotation.setter
    def rotation(self, value: Quaternion) -> None:
        if self.parent is None:
            self.transform.local_rotation = value.normalized()
        else:
            self.transform.local_rotation = (self.parent.rotation.inverse() * value).normalized()

    @property
    def lossy_scale(self) -> Vec3:
        """Approximate world scale (exact when no rotated non-uniform parents)."""
        local = self.transform.local_scale
        if self.parent is None:
            return copy.copy(local)
        return self.parent.lossy_scale.scaled(local)

    # --- Copies and serialization -----------------------------------------

    def clone(self) -> 'SceneNode':
        """Deep copy of this subtree, detached from any parent."""
        parent = self.parent
        self.parent = None
        try:
            duplicate = copy.deepcopy(self)
        finally:
            self.parent = parent
        return duplicate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "active": self.active,
            "components": [c.to_dict() for c in self.components],
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SceneNode':
        return cls(
            name=data.get("name", ""),
            active=data.get("active", True),
            components=[component_from_dict(c) for c in data.get("components", [])],
            children=[cls.from_dict(child) for child in data.get("children", [])],
        )


# =============================================================================
# Scene Graph
# =============================================================================

class SceneGraph:
    """
    A live scene: ordered root nodes plus the editing operations tools need.

    Prefab instances keep a link to their source prefab identifier so later
    edits to the prefab can be pushed to them with `propagate_prefab()`.
    """

    def __init__(self, name: str = "Scene"):
        self.name = name
        self.roots: List[SceneNode] = []

    def __repr__(self) -> str:
        return f"SceneGraph({self.name}, roots={len(self.roots)})"

    def add_root(self, node: SceneNode, index: Optional[int] = None) -> SceneNode:
        if node.parent is not None:
            node.parent.remove_child(node)
        if index is None:
            self.roots.append(node)
        else:
            self.roots.insert(index, node)
        return node

    def create_node(self, name: str, parent: Optional[SceneNode] = None,
                    components: Optional[List[Component]] = None) -> SceneNode:
        node = SceneNode(name=name, components=list(components or []))
        if parent is None:
            self.add_root(node)
        else:
            parent.add_child(node)
        return node

    def contains(self, node: SceneNode) -> bool:
        root = node.root
        return any(r is root for r in self.roots)

    def iter_nodes(self) -> Iterator[SceneNode]:
        for root in self.roots:
            yield from root.iter_hierarchy()

    def find(self, name: str) -> Optional[SceneNode]:
        """First node with `name`, depth-first across roots."""
        for node in self.iter_nodes():
            if node.name == name:
                return node
        return None

    # --- Instancing --------------------------------------------------------

    def instantiate(self, prefab: Any, parent: Optional[SceneNode] = None) -> SceneNode:
        """
        Create a live instance of a prefab asset at the scene root (or under
        `parent`, keeping the template's local transform).

        Args:
            prefab: Loaded prefab handle (anything with `.path` and `.root`)
            parent: Optional parent node

        Returns:
            The instance root, linked to the prefab via `prefab_source`
        """
        instance = prefab.root.clone()
        for node in instance.iter_hierarchy():
            node.asset_path = None
            node.prefab_source = None
            node.prefab_origin = node is not instance
            for component in node.components:
                component.prefab_origin = True
        instance.prefab_source = prefab.path

        if parent is None:
            self.add_root(instance)
        else:
            parent.add_child(instance)
        logger.debug(f"Instantiated '{prefab.path}' as '{instance.name}'")
        return instance

    def instances_of(self, prefab_path: str) -> List[SceneNode]:
        return [n for n in self.iter_nodes() if n.prefab_source == prefab_path]

    def propagate_prefab(self, prefab: Any) -> int:
        """
        Push the current state of a prefab asset to all of its instances.

        Instance overrides survive: the root's name, transform, parent and any
        component or child added in the scene. Everything that originally came
        from the template is replaced with a fresh copy.

        Returns:
            Number of instances updated
        """
        updated = 0
        for instance in self.instances_of(prefab.path):
            template = prefab.root.clone()

            added = [c for c in instance.components[1:] if not c.prefab_origin]
            fresh = template.components[1:]
            for component in fresh:
                component.prefab_origin = True
            instance.components[1:] = fresh + added

            scene_children = [c for c in instance.children if not c.prefab_origin]
            for child in list(instance.children):
                instance.remove_child(child)
            for child in list(template.children):
                for node in child.iter_hierarchy():
                    node.asset_path = None
                    node.prefab_origin = True
                    for component in node.components:
                        component.prefab_origin = True
                instance.add_child(child)
            for child in scene_children:
                instance.add_child(child)
            updated += 1

        if updated:
            logger.info(f"Propagated '{prefab.path}' to {updated} instance(s)")
        return updated

    # --- Editing -----------------------------------------------------------

    def set_parent(self, node: SceneNode, parent: Optional[SceneNode],
                   world_position_stays: bool = True) -> None:
        """
        Move `node` under `parent` (None = scene root).

        With `world_position_stays` the local transform is re-derived so the
        node keeps its world position, rotation and (lossy) scale.
        """
        if parent is not None and any(n is parent for n in node.iter_hierarchy()):
            raise ValueError(f"Cannot parent '{node.name}' under its own descendant '{parent.name}'")

        if world_position_stays:
            position = node.position
            rotation = node.rotation
            scale = node.lossy_scale

        self._detach(node)
        if parent is None:
            self.add_root(node)
        else:
            parent.add_child(node)

        if world_position_stays:
            node.position = position
            node.rotation = rotation
            parent_scale = parent.lossy_scale if parent is not None else Vec3.one()
            node.transform.local_scale = scale.divided(parent_scale)

    def copy_component(self, component: Component, destination: SceneNode) -> Component:
        """Paste a copy of `component` onto `destination` as a new component."""
        return destination.add_component(component.clone())

    def destroy(self, node: SceneNode) -> Tuple[Optional[SceneNode], int]:
        """
        Remove `node` (and its subtree) from the scene.

        Returns:
            (former parent, former sibling index) so the node can be restored
        """
        parent = node.parent
        index = self._detach(node)
        logger.debug(f"Destroyed node '{node.name}'")
        return parent, index

    def restore(self, node: SceneNode, parent: Optional[SceneNode], index: int) -> None:
        """Re-attach a destroyed node at its former place."""
        if parent is None:
            self.add_root(node, min(index, len(self.roots)))
        else:
            parent.add_child(node, min(index, len(parent.children)))

    def _detach(self, node: SceneNode) -> int:
        if node.parent is not None:
            index = node.sibling_index
            node.parent.remove_child(node)
            return index
        for i, root in enumerate(self.roots):
            if root is node:
                del self.roots[i]
                return i
        return 0
