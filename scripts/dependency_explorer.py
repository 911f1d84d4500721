"""
Dependency Explorer - Inspect What Assets a Selection Depends On

Two read-only lookups over an AssetStore:

1. Source finder: for any object (identifier, asset handle or scene node),
   report the stored file it comes from and whether the object has been
   renamed relative to that file.

2. Dependency explorer: for each selected item, gather every asset it depends
   on, filtered by file type, grouped by a display name.

    Route A - item backed by a stored asset:
        full transitive dependencies, grouped by base file name
    Route B - scene-only node:
        walk down to the leaf nodes; for each leaf, the assets its components
        reference (plus their dependencies), grouped by leaf name

Filtering:
    A FilterSpec maps a category token (".fbx", ".mat", "mesh", "texture",
    "shader", ".cs", ...) to an enabled flag. An extension is shown when it
    contains any enabled token; "texture" additionally stands for every
    image extension. If every flag is off, nothing is filtered out.

Usage:
    explorer = DependencyExplorer(store)
    results = explorer.explore(["/Art/Hero/Hero.model", scene.find("Props")],
                               FilterSpec.only(".mat", "texture"))
    print(explorer.format_report(results))

    info = explorer.describe_source(scene.find("Hero (1)"))
    info.is_renamed   # True

Author: Scene Asset Tools
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Set, Union

from asset_store import (
    IMAGE_EXTENSIONS,
    Asset,
    AssetStore,
    base_name,
    extension,
    normalize_path,
)
from scene_graph import SceneNode
from tool_config import DEFAULT_FILTER_TOKENS, ToolConfig

logger = logging.getLogger(__name__)

TEXTURE_TOKEN = "texture"


# =============================================================================
# Filtering
# =============================================================================

class FilterSpec(Mapping[str, bool]):
    """
    Category token -> enabled flag.

    Tokens are open-ended: any extension fragment works, not only the defaults.
    """

    def __init__(self, flags: Optional[Mapping[str, bool]] = None):
        self._flags: Dict[str, bool] = {}
        source = flags if flags is not None else {t: True for t in DEFAULT_FILTER_TOKENS}
        for token, enabled in source.items():
            self._flags[str(token).lower()] = bool(enabled)

    @classmethod
    def defaults(cls) -> FilterSpec:
        return cls()

    @classmethod
    def only(cls, *tokens: str) -> FilterSpec:
        """Default tokens all off except `tokens` (unknown tokens are added)."""
        flags = {t: False for t in DEFAULT_FILTER_TOKENS}
        for token in tokens:
            flags[token.lower()] = True
        return cls(flags)

    def __getitem__(self, token: str) -> bool:
        return self._flags[token]

    def __iter__(self) -> Iterator[str]:
        return iter(self._flags)

    def __len__(self) -> int:
        return len(self._flags)

    def __repr__(self) -> str:
        return f"FilterSpec({self._flags})"

    def set(self, token: str, enabled: bool) -> None:
        self._flags[token.lower()] = bool(enabled)

    @property
    def enabled_tokens(self) -> List[str]:
        return [t for t, on in self._flags.items() if on]

    @property
    def all_disabled(self) -> bool:
        return not any(self._flags.values())

    def to_dict(self) -> Dict[str, bool]:
        return dict(self._flags)


def should_display(ext: str, filters: Mapping[str, bool],
                   texture_extensions: Iterable[str] = IMAGE_EXTENSIONS) -> bool:
    """
    Whether a dependency with extension `ext` passes `filters`.

    Args:
        ext: Extension including the dot (case-insensitive)
        filters: Token -> enabled flags
        texture_extensions: Extensions the "texture" token stands for

    Returns:
        True when every flag is off, when "texture" is on and `ext` is an
        image extension, or when `ext` contains any enabled token (so ".mat"
        also admits ".matx")
    """
    ext = ext.lower()
    if not any(filters.values()):
        return True
    if filters.get(TEXTURE_TOKEN) and ext in texture_extensions:
        return True
    return any(enabled and token in ext for token, enabled in filters.items())


# =============================================================================
# Results
# =============================================================================

class DependencyClosure(Mapping[str, FrozenSet[str]]):
    """
    Immutable display name -> identifiers grouping.

    Several identifiers may share one display name (same base name in
    different folders, or same-named leaves).
    """

    def __init__(self, groups: Optional[Mapping[str, Iterable[str]]] = None):
        self._groups: Dict[str, FrozenSet[str]] = {
            name: frozenset(paths) for name, paths in (groups or {}).items() if paths
        }

    @classmethod
    def from_paths(cls, paths: Iterable[str]) -> DependencyClosure:
        """Group identifiers by base file name (extension stripped)."""
        groups: Dict[str, Set[str]] = {}
        for path in paths:
            groups.setdefault(base_name(path), set()).add(path)
        return cls(groups)

    def __getitem__(self, name: str) -> FrozenSet[str]:
        return self._groups[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def __repr__(self) -> str:
        return f"DependencyClosure({len(self._groups)} group(s), {len(self.all_paths)} path(s))"

    @property
    def all_paths(self) -> FrozenSet[str]:
        paths: Set[str] = set()
        for group in self._groups.values():
            paths |= group
        return frozenset(paths)

    def to_dict(self) -> Dict[str, List[str]]:
        return {name: sorted(paths) for name, paths in self._groups.items()}


@dataclass
class SourceInfo:
    """Where an object comes from, as shown by the source finder."""
    object_name: str
    path: Optional[str] = None

    @property
    def file_name(self) -> str:
        """Source file name without extension ("" when there is no source)."""
        return base_name(self.path) if self.path else ""

    @property
    def is_renamed(self) -> bool:
        return bool(self.file_name) and self.object_name != self.file_name

    @property
    def status_label(self) -> str:
        return "Scene object has been renamed" if self.is_renamed else "Normal Naming"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "object_name": self.object_name,
            "path": self.path,
            "file_name": self.file_name,
            "is_renamed": self.is_renamed,
        }


SelectedItem = Union[str, Asset, SceneNode]


# =============================================================================
# Explorer
# =============================================================================

class DependencyExplorer:
    """
    Read-only dependency lookups. Never mutates the store.

    The most recent `explore()` results are kept in `results` until the next
    call or `clear()`.
    """

    def __init__(self, store: AssetStore, config: Optional[ToolConfig] = None):
        self.store = store
        self.config = config or ToolConfig()
        self.results: Dict[Any, DependencyClosure] = {}

    def default_filters(self) -> FilterSpec:
        return FilterSpec(self.config.default_filters)

    def clear(self) -> None:
        self.results = {}

    def _displayable(self, path: str, filters: Mapping[str, bool]) -> bool:
        return should_display(extension(path), filters, self.config.texture_extensions)

    # --- Source finder -----------------------------------------------------

    def find_source(self, obj: Optional[SelectedItem]) -> Optional[str]:
        """
        Stored identifier an object comes from.

        Direct backing identifier first; for scene nodes created from a
        prefab, the prefab's identifier. None otherwise.
        """
        if obj is None:
            return None
        if isinstance(obj, str):
            path = normalize_path(obj)
            return path if path and self.store.exists(path) else None

        path = self.store.get_path(obj)
        if path:
            return path
        if isinstance(obj, SceneNode) and (obj.prefab_source or obj.prefab_origin):
            return obj.find_prefab_source()
        return None

    def describe_source(self, obj: SelectedItem) -> SourceInfo:
        return SourceInfo(object_name=self._display_name(obj), path=self.find_source(obj))

    # --- Dependency explorer -----------------------------------------------

    def explore(self, selected: Iterable[SelectedItem],
                filters: Optional[Mapping[str, bool]] = None) -> Dict[Any, DependencyClosure]:
        """
        Filtered dependency closures for every selected item.

        Items that do not resolve, and items whose filtered closure is empty,
        are left out of the result.
        """
        filters = self.default_filters() if filters is None else filters
        results: Dict[Any, DependencyClosure] = {}

        for item in selected:
            if item is None:
                continue
            path = item if isinstance(item, str) else self.store.get_path(item)
            if path:
                closure = self.closure_for_path(path, filters)
            elif isinstance(item, SceneNode):
                closure = self.closure_for_node(item, filters)
            else:
                logger.debug(f"Skipping unresolvable selection {item!r}")
                continue

            if closure:
                results[item] = closure
            else:
                logger.debug(f"No displayable dependencies for {self._display_name(item)}")

        self.results = results
        logger.info(f"Found dependencies for {len(results)} of the selected object(s)")
        return results

    def closure_for_path(self, path: str, filters: Mapping[str, bool]) -> DependencyClosure:
        """Transitive dependencies of a stored asset, grouped by base name."""
        dependencies = self.store.list_dependencies(path, recursive=True)
        if not dependencies:
            logger.debug(f"'{path}' does not resolve to a stored asset")
        return DependencyClosure.from_paths(p for p in dependencies if self._displayable(p, filters))

    def closure_for_node(self, node: SceneNode, filters: Mapping[str, bool]) -> DependencyClosure:
        """
        Dependencies of the leaves under a scene-only node, grouped by leaf
        name. Interior nodes are not inspected; same-named leaves are merged.
        """
        groups: Dict[str, Set[str]] = {}
        for leaf in self.collect_leaves(node):
            paths = {p for p in self.collect_node_dependencies(leaf) if self._displayable(p, filters)}
            if paths:
                groups.setdefault(leaf.name, set()).update(paths)
        return DependencyClosure(groups)

    def collect_leaves(self, node: SceneNode) -> List[SceneNode]:
        """Nodes without children under `node` (inactive ones included)."""
        return [n for n in node.iter_hierarchy() if n.is_leaf]

    def collect_node_dependencies(self, node: SceneNode) -> Set[str]:
        """
        Stored assets one node's components reference, with their transitive
        dependencies. Nodes and components themselves are never included.
        """
        paths: Set[str] = set()
        for component in node.components:
            for ref in component.references():
                paths.update(self.store.list_dependencies(ref, recursive=True))
        return paths

    # --- Presentation ------------------------------------------------------

    def format_report(self, results: Optional[Mapping[Any, DependencyClosure]] = None,
                      filters: Optional[Mapping[str, bool]] = None) -> str:
        """
        Plain-text listing: one block per selected item, one sub-block per
        dependency node, one line per identifier passing `filters`.
        """
        results = self.results if results is None else results
        if not results:
            return "No dependencies found."

        filters = FilterSpec({}) if filters is None else filters
        lines = []
        for item, closure in results.items():
            lines.append(f"Selected Object Name: {self._display_name(item)}")
            for name, paths in closure.items():
                lines.append(f"  Dependency Node: {name}")
                for path in sorted(paths):
                    if self._displayable(path, filters):
                        lines.append(f"    {path}")
            lines.append("")
        return "\n".join(lines).rstrip("\n")

    def _display_name(self, obj: SelectedItem) -> str:
        if isinstance(obj, str):
            return base_name(obj)
        if isinstance(obj, SceneNode):
            return obj.name
        return getattr(obj, "name", repr(obj))
