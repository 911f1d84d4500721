"""
Asset Store - Asset Records, Store Contract and Dependency Resolution

This module defines what the asset tools know about stored content: the asset
records they load and rewrite, the store capability they are handed, and the
dependency traversal every store shares.

Architecture:
    - AssetKind: Classification of an identifier by file extension
    - Asset records: Texture, Mesh, Script, Shader, Material, Prefab
    - AssetStore: Protocol the relocation/replacement/explorer engines require
    - AssetStoreBase: Shared dependency traversal and path lookup
    - InMemoryAssetStore: Dictionary-backed store (tests, previews, tooling)

Identifiers:
    Assets are addressed by POSIX-style path strings ("/Art/Hero/Hero.model").
    References between assets are stored as identifiers, so a copied asset
    still points at the originals until its bindings are rewritten.

Usage:
    store = InMemoryAssetStore()
    store.put("/Art/Skin.png", Texture())
    store.put("/Art/Hero.mat", Material(properties=[
        ShaderProperty("_MainTex", PropertyType.TEXTURE, "/Art/Skin.png"),
    ]))

    store.list_dependencies("/Art/Hero.mat", recursive=True)
    # ['/Art/Hero.mat', '/Art/Skin.png']

Author: Scene Asset Tools
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, ClassVar, Dict, List, Optional, Protocol, Set, Tuple, Type, TypeVar, runtime_checkable

from scene_graph import SceneNode

logger = logging.getLogger(__name__)

A = TypeVar("A", bound="Asset")


# =============================================================================
# Custom Exceptions
# =============================================================================

class AssetToolError(Exception):
    """Base exception for asset tool operations."""
    pass


class InvalidArgumentsError(AssetToolError):
    """Raised when a required input is missing or empty. No work is performed."""
    pass


class ResolutionFailureError(AssetToolError):
    """Raised when an identifier does not resolve to a live asset."""
    def __init__(self, path: str, reason: str = "does not resolve to a stored asset"):
        super().__init__(f"'{path}' {reason}")
        self.path = path
        self.reason = reason


class NameCollisionError(AssetToolError):
    """Raised when distinct sources would flatten onto the same file name."""
    def __init__(self, collisions: Dict[str, List[str]]):
        names = ", ".join(sorted(collisions))
        super().__init__(f"Relocation would collide on file name(s): {names}")
        self.collisions = collisions


class StoreWriteError(AssetToolError):
    """Raised when the store refuses a copy or save in the middle of a run."""
    def __init__(self, path: str, reason: str, plans: Optional[List[Any]] = None):
        super().__init__(f"Store write failed for '{path}': {reason}")
        self.path = path
        self.reason = reason
        self.plans = plans or []


# =============================================================================
# Path Utilities
# =============================================================================

def normalize_path(path: str) -> str:
    """Forward slashes, no trailing slash (root "/" is kept)."""
    cleaned = str(path).replace("\\", "/")
    if cleaned in ("", "."):
        return ""
    return str(PurePosixPath(cleaned))


def join_path(folder: str, name: str) -> str:
    """Join a folder identifier and a file/folder name."""
    folder = normalize_path(folder)
    if not folder:
        return name
    return str(PurePosixPath(folder) / name)


def parent_folder(path: str) -> str:
    parent = str(PurePosixPath(normalize_path(path)).parent)
    return "" if parent == "." else parent


def file_name(path: str) -> str:
    """File name with extension ("Skin.png")."""
    return PurePosixPath(normalize_path(path)).name


def base_name(path: str) -> str:
    """File name without extension ("Skin")."""
    return PurePosixPath(normalize_path(path)).stem


def extension(path: str) -> str:
    """Lower-cased extension including the dot (".png")."""
    return PurePosixPath(normalize_path(path)).suffix.lower()


# =============================================================================
# Enums
# =============================================================================

class AssetKind(Enum):
    """Kind of stored asset, derived from its extension."""
    MODEL = "model"            # Prefab / model hierarchy
    MESH = "mesh"              # Geometry
    MATERIAL = "material"
    TEXTURE = "texture"
    SHADER = "shader"          # Shared shader program
    SCRIPT = "script"          # Compiled behaviour source
    OTHER = "other"


class PropertyType(Enum):
    """Shader property kinds. Only TEXTURE properties carry asset references."""
    TEXTURE = "texture"        # Texture / environment binding
    FLOAT = "float"
    RANGE = "range"
    COLOR = "color"
    VECTOR = "vector"


IMAGE_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".tga", ".bmp", ".psd", ".gif", ".hdr", ".exr", ".tif", ".tiff",
})

EXTENSION_KINDS: Dict[str, AssetKind] = {
    ".prefab": AssetKind.MODEL,
    ".model": AssetKind.MODEL,
    ".fbx": AssetKind.MESH,
    ".obj": AssetKind.MESH,
    ".dae": AssetKind.MESH,
    ".mesh": AssetKind.MESH,
    ".mat": AssetKind.MATERIAL,
    ".shader": AssetKind.SHADER,
    ".cs": AssetKind.SCRIPT,
}
EXTENSION_KINDS.update({ext: AssetKind.TEXTURE for ext in IMAGE_EXTENSIONS})


def classify_path(path: str) -> AssetKind:
    """Classify an identifier by its extension."""
    return EXTENSION_KINDS.get(extension(path), AssetKind.OTHER)


# =============================================================================
# Asset Records
# =============================================================================

@dataclass(eq=False)
class Asset:
    """
    A loaded asset handle.

    `path` is the identifier the handle was loaded from; two handles may alias
    the same identifier. Handles compare by identity.
    """
    path: str = ""

    KIND: ClassVar[AssetKind] = AssetKind.OTHER

    @property
    def name(self) -> str:
        return base_name(self.path)

    def bind(self, path: str) -> None:
        """Attach this handle to the identifier it was loaded from / saved to."""
        self.path = path

    def references(self) -> List[str]:
        """Direct asset identifiers this asset points at, in order."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.KIND.value}


@dataclass(eq=False)
class Texture(Asset):
    KIND: ClassVar[AssetKind] = AssetKind.TEXTURE


@dataclass(eq=False)
class Mesh(Asset):
    KIND: ClassVar[AssetKind] = AssetKind.MESH


@dataclass(eq=False)
class Script(Asset):
    KIND: ClassVar[AssetKind] = AssetKind.SCRIPT


@dataclass(eq=False)
class Shader(Asset):
    KIND: ClassVar[AssetKind] = AssetKind.SHADER


@dataclass
class ShaderProperty:
    """
    One material property.

    Attributes:
        name: Shader property name (e.g. "_MainTex")
        type: Property kind
        value: Texture identifier (or None) for TEXTURE; plain data otherwise
    """
    name: str
    type: PropertyType
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ShaderProperty:
        return cls(name=data["name"], type=PropertyType(data["type"]), value=data.get("value"))


@dataclass(eq=False)
class Material(Asset):
    """Shader reference plus ordered shader properties."""
    shader: Optional[str] = None
    properties: List[ShaderProperty] = field(default_factory=list)

    KIND: ClassVar[AssetKind] = AssetKind.MATERIAL

    def get_property(self, name: str) -> Optional[ShaderProperty]:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def texture_properties(self) -> List[ShaderProperty]:
        return [p for p in self.properties if p.type == PropertyType.TEXTURE]

    def get_texture(self, name: str) -> Optional[str]:
        prop = self.get_property(name)
        if prop is None or prop.type != PropertyType.TEXTURE:
            return None
        return prop.value

    def set_texture(self, name: str, texture: Optional[str]) -> None:
        """
        Bind a texture identifier to a property, creating the property if
        the material does not declare it yet.

        Raises:
            ValueError: If `name` is declared with a non-texture type
        """
        prop = self.get_property(name)
        if prop is None:
            self.properties.append(ShaderProperty(name, PropertyType.TEXTURE, texture))
            return
        if prop.type != PropertyType.TEXTURE:
            raise ValueError(f"Property '{name}' on '{self.path}' is {prop.type.value}, not texture")
        prop.value = texture

    def references(self) -> List[str]:
        refs = [self.shader] if self.shader else []
        for prop in self.texture_properties():
            if prop.value and prop.value not in refs:
                refs.append(prop.value)
        return refs

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["shader"] = self.shader
        data["properties"] = [p.to_dict() for p in self.properties]
        return data


@dataclass(eq=False)
class Prefab(Asset):
    """
    A stored scene-node hierarchy (prefab or imported model).

    Every node of a loaded prefab is backed by the prefab identifier.
    """
    root: SceneNode = field(default_factory=lambda: SceneNode(name=""))

    KIND: ClassVar[AssetKind] = AssetKind.MODEL

    def bind(self, path: str) -> None:
        super().bind(path)
        if not self.root.name:
            self.root.name = base_name(path)
        for node in self.root.iter_hierarchy():
            node.asset_path = path

    def references(self) -> List[str]:
        refs: List[str] = []
        for node in self.root.iter_hierarchy():
            for component in node.components:
                for ref in component.references():
                    if ref not in refs:
                        refs.append(ref)
        return refs

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["root"] = self.root.to_dict()
        return data


ASSET_TYPES: Dict[AssetKind, Type[Asset]] = {
    AssetKind.TEXTURE: Texture,
    AssetKind.MESH: Mesh,
    AssetKind.SCRIPT: Script,
    AssetKind.SHADER: Shader,
    AssetKind.MATERIAL: Material,
    AssetKind.MODEL: Prefab,
    AssetKind.OTHER: Asset,
}


def asset_from_dict(data: Dict[str, Any], path: str = "") -> Asset:
    """
    Rebuild an asset record from its `to_dict()` form.

    Raises:
        ValueError: If the asset type is unknown or the payload is malformed
    """
    try:
        kind = AssetKind(data.get("type", AssetKind.OTHER.value))
    except ValueError:
        raise ValueError(f"Unknown asset type: '{data.get('type')}'")

    if kind == AssetKind.MATERIAL:
        asset: Asset = Material(
            shader=data.get("shader"),
            properties=[ShaderProperty.from_dict(p) for p in data.get("properties", [])],
        )
    elif kind == AssetKind.MODEL:
        asset = Prefab(root=SceneNode.from_dict(data.get("root", {})))
    else:
        asset = ASSET_TYPES[kind]()

    if path:
        asset.bind(path)
    return asset


# =============================================================================
# Store Protocol
# =============================================================================

@runtime_checkable
class AssetStore(Protocol):
    """
    Capability the asset tools are handed instead of a global asset database.

    Identifiers are plain strings. `list_dependencies` returns the queried
    asset first, then its dependencies in discovery order, deduplicated.
    """

    def get_path(self, obj: Any) -> Optional[str]:
        """Identifier backing a handle or prefab node, or None."""
        ...

    def copy(self, source: str, destination: str) -> bool:
        """Copy a stored asset. Returns False when the store refuses."""
        ...

    def exists(self, path: str) -> bool:
        ...

    def is_folder(self, path: str) -> bool:
        ...

    def create_folder(self, parent: str, name: str) -> str:
        ...

    def load(self, path: str, expected_type: Optional[Type[A]] = None) -> Optional[A]:
        ...

    def save(self, asset: Asset) -> None:
        ...

    def list_dependencies(self, path: str, recursive: bool = True) -> List[str]:
        ...


# =============================================================================
# Shared Store Behaviour
# =============================================================================

class AssetStoreBase:
    """
    Dependency traversal and handle lookup shared by concrete stores.

    Subclasses implement storage (`_read`, `exists`, `is_folder`,
    `create_folder`, `copy`, `save`).
    """

    def _read(self, path: str) -> Optional[Asset]:
        """Return a fresh, bound handle for `path`, or None."""
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def get_path(self, obj: Any) -> Optional[str]:
        if isinstance(obj, Asset):
            return obj.path or None
        if isinstance(obj, SceneNode):
            return obj.asset_path or None
        return None

    def load(self, path: str, expected_type: Optional[Type[A]] = None) -> Optional[A]:
        """
        Load a handle for `path`.

        Returns:
            The handle, or None when the path is missing or the stored asset
            is not an instance of `expected_type`
        """
        if not path:
            return None
        asset = self._read(normalize_path(path))
        if asset is None:
            return None
        if expected_type is not None and not isinstance(asset, expected_type):
            logger.debug(f"'{path}' is {type(asset).__name__}, not {expected_type.__name__}")
            return None
        return asset  # type: ignore[return-value]

    def list_dependencies(self, path: str, recursive: bool = True) -> List[str]:
        """
        Dependencies of `path`, breadth-first.

        The queried asset comes first. Each identifier appears once even when
        referenced repeatedly or through a cycle. References to identifiers
        that no longer exist are skipped.

        Args:
            path: Asset identifier
            recursive: If False, only direct references are returned

        Returns:
            Ordered list of identifiers (empty if `path` does not exist)
        """
        path = normalize_path(path)
        if not path or not self.exists(path):
            return []

        ordered = [path]
        seen: Set[str] = {path}
        pending = [path]
        while pending:
            current = pending.pop(0)
            asset = self._read(current)
            if asset is None:
                continue
            for ref in asset.references():
                ref = normalize_path(ref)
                if ref in seen:
                    continue
                seen.add(ref)
                if not self.exists(ref):
                    logger.debug(f"Skipping stale reference '{ref}' from '{current}'")
                    continue
                ordered.append(ref)
                if recursive:
                    pending.append(ref)
        return ordered


# =============================================================================
# In-Memory Store
# =============================================================================

class InMemoryAssetStore(AssetStoreBase):
    """
    Dictionary-backed asset store.

    Stored records are private copies: handles returned by `load()` are
    independent until passed back to `save()`.

    Attributes:
        copy_log: (source, destination) for every successful copy
        save_log: Identifiers passed to `save()`, in order
    """

    _ROOT_FOLDERS = ("", "/")

    def __init__(self) -> None:
        self._assets: Dict[str, Asset] = {}
        self._folders: Set[str] = set(self._ROOT_FOLDERS)
        self.copy_log: List[Tuple[str, str]] = []
        self.save_log: List[str] = []

    def __repr__(self) -> str:
        return f"InMemoryAssetStore(assets={len(self._assets)}, folders={len(self._folders)})"

    def __contains__(self, path: str) -> bool:
        return self.exists(path)

    def put(self, path: str, asset: Optional[Asset] = None) -> str:
        """
        Store an asset (creating parent folders), overwriting any existing one.

        Args:
            path: Identifier to store under
            asset: Record to store; defaults to the record type for the
                path's kind

        Returns:
            The normalized identifier
        """
        path = normalize_path(path)
        if not path:
            raise InvalidArgumentsError("Cannot store an asset without a path")
        if asset is None:
            asset = ASSET_TYPES[classify_path(path)]()
        self._ensure_parents(path)
        stored = copy.deepcopy(asset)
        stored.bind(path)
        self._assets[path] = stored
        return path

    def files(self, folder: str = "") -> List[str]:
        """Sorted identifiers, optionally limited to those directly inside `folder`."""
        if not folder:
            return sorted(self._assets)
        folder = normalize_path(folder)
        return sorted(p for p in self._assets if parent_folder(p) == folder)

    def exists(self, path: str) -> bool:
        return normalize_path(path) in self._assets

    def is_folder(self, path: str) -> bool:
        return normalize_path(path) in self._folders

    def create_folder(self, parent: str, name: str) -> str:
        parent = normalize_path(parent)
        if not self.is_folder(parent):
            raise ResolutionFailureError(parent, "is not an existing folder")
        path = join_path(parent, name)
        if path not in self._folders:
            self._folders.add(path)
            logger.debug(f"Created folder '{path}'")
        return path

    def copy(self, source: str, destination: str) -> bool:
        source = normalize_path(source)
        destination = normalize_path(destination)
        if source not in self._assets:
            logger.debug(f"Copy refused: source '{source}' missing")
            return False
        if destination in self._assets:
            logger.debug(f"Copy refused: destination '{destination}' exists")
            return False
        if not self.is_folder(parent_folder(destination)):
            logger.debug(f"Copy refused: folder for '{destination}' missing")
            return False
        duplicate = copy.deepcopy(self._assets[source])
        duplicate.bind(destination)
        self._assets[destination] = duplicate
        self.copy_log.append((source, destination))
        return True

    def save(self, asset: Asset) -> None:
        path = normalize_path(asset.path)
        if not path:
            raise InvalidArgumentsError("Cannot save an asset handle that has no path")
        if not self.is_folder(parent_folder(path)):
            raise StoreWriteError(path, "parent folder does not exist")
        stored = copy.deepcopy(asset)
        stored.bind(path)
        self._assets[path] = stored
        self.save_log.append(path)

    def delete(self, path: str) -> bool:
        return self._assets.pop(normalize_path(path), None) is not None

    def _read(self, path: str) -> Optional[Asset]:
        stored = self._assets.get(path)
        if stored is None:
            return None
        handle = copy.deepcopy(stored)
        handle.bind(path)
        return handle

    def _ensure_parents(self, path: str) -> None:
        folder = parent_folder(path)
        while folder not in self._folders:
            self._folders.add(folder)
            folder = parent_folder(folder)
