"""
Asset Relocator - Copy an Asset and Its Dependencies, Rebinding References

This module copies a root asset (typically a prefab/model) and its full
dependency closure into one destination folder, then rewrites the references
inside the copies so they point at each other instead of the originals.

RELOCATION STRATEGY:
    - Closure: every transitive dependency of the root, minus excluded kinds
      (compiled scripts and shader programs are shared, never copied)
    - Layout: flattened; every copy lands directly in the destination folder
      under its original file name
    - Idempotent: an existing destination file is never overwritten, so a
      re-run copies nothing new and an interrupted run can simply be resumed
    - Rebinding: renderer material lists, mesh filter meshes and each
      material's texture properties are pointed at the relocated copies
    - Stale references: any reference in the closure that does not resolve
      aborts the run before a folder is created or a file copied

Usage:
    engine = RelocationEngine(store)

    # Preview (no folders created, nothing copied)
    result = engine.relocate("/Art/Hero/Hero.model", "/Exported/Hero", dry_run=True)

    # Execute
    result = engine.relocate("/Art/Hero/Hero.model", "/Exported/Hero")
    print(result.get_summary())

Author: Scene Asset Tools
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Union

from asset_store import (
    Asset,
    AssetKind,
    AssetStore,
    InvalidArgumentsError,
    Material,
    NameCollisionError,
    Prefab,
    ResolutionFailureError,
    StoreWriteError,
    Texture,
    classify_path,
    file_name,
    join_path,
    normalize_path,
)
from scene_graph import MeshFilter, Renderer
from tool_config import ToolConfig

logger = logging.getLogger(__name__)


# ============================================================================
# ENUMS
# ============================================================================

class CopyStatus(Enum):
    """Status of a copy operation."""
    PENDING = "pending"
    SUCCESS = "success"
    SKIPPED = "skipped"        # Destination already exists
    FAILED = "failed"
    DRY_RUN = "dry_run"
    COLLISION = "collision"    # Another source already claimed this file name


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class CopyPlan:
    """
    Plan for copying a single asset.

    Attributes:
        source: Identifier of the original asset
        destination: Identifier of the copy in the destination folder
        kind: Asset kind of the source
        status: Current status of the copy
        error: Error message if failed
    """
    source: str
    destination: str
    kind: AssetKind
    status: CopyStatus = CopyStatus.PENDING
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting."""
        return {
            "source": self.source,
            "destination": self.destination,
            "kind": self.kind.value,
            "status": self.status.value,
            "error": self.error,
        }


@dataclass
class BindingRewrite:
    """One reference inside a copied asset that was pointed at a new copy."""
    owner: str          # Identifier of the rewritten asset
    slot: str           # e.g. "Body/Renderer.materials[0]" or "_MainTex"
    old: Optional[str]
    new: Optional[str]

    def __repr__(self) -> str:
        return f"BindingRewrite({self.owner} {self.slot}: {self.old} -> {self.new})"


@dataclass
class RelocationResult:
    """
    Result of one relocation run.

    Attributes:
        root: Identifier of the original root asset
        destination_dir: Folder the closure was copied into
        new_root_path: Identifier of the root's copy
        new_root: Handle of the rewritten root copy (None for dry runs)
        mapping: Original identifier -> relocated identifier
        copy_plans: One entry per planned copy, in copy order
        collisions: File name -> every distinct source that wanted it
        rewrites: Every reference pointed at a relocated copy
        excluded: Dependencies left out by kind
        dry_run: Whether this was a preview
    """
    root: str
    destination_dir: str
    new_root_path: str = ""
    new_root: Optional[Asset] = None
    mapping: Dict[str, str] = field(default_factory=dict)
    copy_plans: List[CopyPlan] = field(default_factory=list)
    collisions: Dict[str, List[str]] = field(default_factory=dict)
    rewrites: List[BindingRewrite] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    dry_run: bool = False

    def _count(self, status: CopyStatus) -> int:
        return sum(1 for plan in self.copy_plans if plan.status == status)

    @property
    def copied(self) -> int:
        return self._count(CopyStatus.SUCCESS)

    @property
    def skipped(self) -> int:
        return self._count(CopyStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(CopyStatus.FAILED)

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def collided_sources(self) -> List[str]:
        """Sources that were not copied because their file name was taken."""
        return [p.source for p in self.copy_plans if p.status == CopyStatus.COLLISION]

    def get_summary(self) -> str:
        """Generate human-readable summary."""
        mode = "[DRY RUN] " if self.dry_run else ""
        status = "SUCCESS" if self.success else "FAILED"

        lines = [
            f"{mode}Relocation {status}: {self.root} -> {self.destination_dir}",
            f"  Total files: {len(self.copy_plans)}",
            f"  Copied: {self._count(CopyStatus.DRY_RUN) if self.dry_run else self.copied}",
            f"  Skipped: {self.skipped}",
            f"  Excluded: {len(self.excluded)}",
            f"  Rebound references: {len(self.rewrites)}",
        ]

        if self.collisions:
            lines.append("\nName collisions (first source kept):")
            for name, sources in sorted(self.collisions.items()):
                lines.append(f"  - {name}: {', '.join(sources)}")

        return "\n".join(lines)

    def get_by_kind(self) -> Dict[str, int]:
        """Get counts of copied files by asset kind."""
        counts: Dict[str, int] = {}
        for plan in self.copy_plans:
            if plan.status == CopyStatus.SUCCESS:
                counts[plan.kind.value] = counts.get(plan.kind.value, 0) + 1
        return counts


# ============================================================================
# MAIN RELOCATOR CLASS
# ============================================================================

class RelocationEngine:
    """
    Copies an asset's dependency closure into a folder and rebinds references.

    The store is injected; nothing here touches global state, so an
    InMemoryAssetStore can stand in for a real project.
    """

    def __init__(self, store: AssetStore, config: Optional[ToolConfig] = None):
        """
        Initialize the relocation engine.

        Args:
            store: Asset store to read from and write to
            config: Tool settings (excluded kinds, collision policy)
        """
        self.store = store
        self.config = config or ToolConfig()
        self._rebound_materials: Dict[str, str] = {}

    def is_excluded(self, path: str) -> bool:
        """Whether `path` is a kind relocation never copies."""
        return classify_path(path) in self.config.excluded_kinds

    def relocate(self, root: Union[str, Asset], destination_dir: str,
                 dry_run: bool = False) -> RelocationResult:
        """
        Relocate `root` and its dependency closure into `destination_dir`.

        Args:
            root: Identifier or loaded handle of the root asset
            destination_dir: Destination folder; missing segments are created
            dry_run: If True, only report what would be copied

        Returns:
            RelocationResult with per-file status and the rewritten root

        Raises:
            InvalidArgumentsError: Root or destination missing
            ResolutionFailureError: Root or any reference in its closure does
                not resolve (nothing mutated)
            NameCollisionError: Collisions under the "error" policy
            StoreWriteError: The store refused a copy mid-run; the
                destination is left partially populated and a re-run resumes
        """
        root_path = self._resolve_root(root)
        folder = normalize_path(destination_dir or "")
        if not folder:
            raise InvalidArgumentsError("You must specify both a valid root asset and a destination path")

        self.check_references(root_path)

        result = RelocationResult(root=root_path, destination_dir=folder, dry_run=dry_run)
        dependencies = self.collect_dependencies(root_path, result)
        self.plan_copies(root_path, dependencies, result)

        if result.collisions and self.config.collision_policy == "error":
            raise NameCollisionError(result.collisions)

        if dry_run:
            for plan in result.copy_plans:
                if plan.status == CopyStatus.PENDING:
                    plan.status = CopyStatus.SKIPPED if self.store.exists(plan.destination) else CopyStatus.DRY_RUN
            logger.info(f"[DRY RUN] {len(result.copy_plans)} file(s) planned for {folder}")
            return result

        created = self.ensure_folder(folder)
        if created:
            logger.info(f"Created folder(s): {', '.join(created)}")

        self._rebound_materials = {}
        for plan in result.copy_plans:
            self._execute_plan(plan, result)

        self._rewrite_root(result)
        logger.info(f"{file_name(root_path)} and its dependencies have been rebound to {folder}.")
        logger.info(f"  Copied {result.copied}, skipped {result.skipped}, "
                    f"rebound {len(result.rewrites)} reference(s)")
        return result

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def check_references(self, root_path: str) -> None:
        """
        Verify that every reference held by the root or a closure member
        resolves, excluded kinds included.

        Raises:
            ResolutionFailureError: On the first reference that does not exist
        """
        for owner in self.store.list_dependencies(root_path, recursive=True):
            asset = self.store.load(owner)
            if asset is None:
                continue
            for ref in asset.references():
                if not self.store.exists(ref):
                    logger.error(f"'{owner}' references missing asset '{ref}'")
                    raise ResolutionFailureError(ref, f"is referenced by '{owner}' but does not exist")

    def collect_dependencies(self, root_path: str,
                             result: Optional[RelocationResult] = None) -> List[str]:
        """
        Transitive dependencies of `root_path` that relocation copies.

        The root itself and excluded kinds are left out.
        """
        dependencies = []
        for path in self.store.list_dependencies(root_path, recursive=True):
            if path == root_path:
                continue
            if self.is_excluded(path):
                logger.debug(f"Excluding {classify_path(path).value} dependency '{path}'")
                if result is not None:
                    result.excluded.append(path)
                continue
            dependencies.append(path)
        return dependencies

    def plan_copies(self, root_path: str, dependencies: List[str],
                    result: RelocationResult) -> List[CopyPlan]:
        """
        Build the copy plan: root first, then dependencies in closure order.

        Distinct sources that flatten to the same destination are marked as
        COLLISION; the first one keeps the name.
        """
        claimed: Dict[str, str] = {}
        for source in [root_path] + dependencies:
            destination = join_path(result.destination_dir, file_name(source))
            plan = CopyPlan(source=source, destination=destination, kind=classify_path(source))

            owner = claimed.get(destination)
            if owner is not None and owner != source:
                plan.status = CopyStatus.COLLISION
                plan.error = f"File name already taken by {owner}"
                sources = result.collisions.setdefault(file_name(source), [owner])
                sources.append(source)
                logger.warning(f"Name collision: '{source}' and '{owner}' both map to {destination}")
            else:
                claimed[destination] = source

            result.copy_plans.append(plan)

        result.new_root_path = result.copy_plans[0].destination
        logger.info(f"Planned {len(result.copy_plans)} copies "
                    f"({len(result.excluded)} excluded dependencies)")
        return result.copy_plans

    # ------------------------------------------------------------------
    # Folders and copies
    # ------------------------------------------------------------------

    def ensure_folder(self, folder: str) -> List[str]:
        """
        Create `folder` one segment at a time, checking each before creating.

        Returns:
            Identifiers of the folders that had to be created
        """
        parts = PurePosixPath(normalize_path(folder)).parts
        parent = ""
        if parts and parts[0] == "/":
            parent, parts = "/", parts[1:]

        created = []
        for part in parts:
            candidate = join_path(parent, part)
            if not self.store.is_folder(candidate):
                self.store.create_folder(parent, part)
                created.append(candidate)
            parent = candidate
        return created

    def _execute_plan(self, plan: CopyPlan, result: RelocationResult) -> None:
        if plan.status == CopyStatus.COLLISION:
            return

        if self.store.exists(plan.destination):
            plan.status = CopyStatus.SKIPPED
            result.mapping[plan.source] = plan.destination
            logger.debug(f"Skipped (exists): {plan.destination}")
            return

        try:
            copied = self.store.copy(plan.source, plan.destination)
        except OSError as e:
            copied = False
            plan.error = str(e)

        if not copied:
            plan.status = CopyStatus.FAILED
            plan.error = plan.error or "store refused the copy"
            logger.error(f"Failed to copy {plan.source}: {plan.error}")
            raise StoreWriteError(plan.source, plan.error, plans=result.copy_plans)

        plan.status = CopyStatus.SUCCESS
        result.mapping[plan.source] = plan.destination
        logger.debug(f"Copied: {plan.source} -> {plan.destination}")

    def _copy_once(self, source: str, result: RelocationResult) -> str:
        """
        Relocated identifier for `source`, copying it if no copy exists yet.

        Sources outside the planned closure get their own plan entry.
        """
        source = normalize_path(source)
        if source in result.mapping:
            return result.mapping[source]
        if source in result.collided_sources:
            logger.warning(f"Keeping reference to '{source}': its file name is taken in {result.destination_dir}")
            return source

        destination = join_path(result.destination_dir, file_name(source))
        if source == destination:
            result.mapping[source] = destination
            return destination

        plan = CopyPlan(source=source, destination=destination, kind=classify_path(source))
        result.copy_plans.append(plan)
        self._execute_plan(plan, result)
        return destination

    # ------------------------------------------------------------------
    # Rebinding
    # ------------------------------------------------------------------

    def _rewrite_root(self, result: RelocationResult) -> None:
        new_root = self.store.load(result.new_root_path)
        if new_root is None:
            raise ResolutionFailureError(result.new_root_path, "could not be reloaded after copying")

        if isinstance(new_root, Prefab):
            self._rewrite_prefab(new_root, result)
        elif isinstance(new_root, Material):
            original = self.store.load(result.root, Material)
            if original is None:
                raise ResolutionFailureError(result.root, "is no longer a loadable material")
            self._rebind_textures(original, new_root, result)

        self.store.save(new_root)
        result.new_root = new_root

    def _rewrite_prefab(self, prefab: Prefab, result: RelocationResult) -> None:
        for node in prefab.root.iter_hierarchy():
            node_path = node.get_path()

            for renderer in node.get_components(Renderer):
                new_materials = []
                for i, material in enumerate(renderer.materials):
                    relocated = self._relocate_material(material, result)
                    if relocated != material:
                        result.rewrites.append(BindingRewrite(
                            result.new_root_path, f"{node_path}/Renderer.materials[{i}]",
                            material, relocated))
                    new_materials.append(relocated)
                renderer.materials = new_materials

            for mesh_filter in node.get_components(MeshFilter):
                relocated = self._relocate_reference(mesh_filter.mesh, result)
                if relocated != mesh_filter.mesh:
                    result.rewrites.append(BindingRewrite(
                        result.new_root_path, f"{node_path}/MeshFilter.mesh",
                        mesh_filter.mesh, relocated))
                mesh_filter.mesh = relocated

    def _relocate_reference(self, path: Optional[str], result: RelocationResult) -> Optional[str]:
        if not path or self.is_excluded(path):
            return path
        if not self.store.exists(path):
            raise ResolutionFailureError(path, "disappeared from the store during relocation")
        return self._copy_once(path, result)

    def _relocate_material(self, path: Optional[str], result: RelocationResult) -> Optional[str]:
        """Relocated copy of a material with its texture bindings rewritten (once per run)."""
        if not path:
            return path
        path = normalize_path(path)
        if path in self._rebound_materials:
            return self._rebound_materials[path]

        new_path = self._relocate_reference(path, result)
        if new_path == path:
            # Already relocated or lost a name collision
            self._rebound_materials[path] = path
            return path
        original = self.store.load(path, Material)
        new_material = self.store.load(new_path, Material)
        if original is None or new_material is None:
            raise ResolutionFailureError(path, "does not resolve to a material")

        self._rebind_textures(original, new_material, result)
        self.store.save(new_material)
        self._rebound_materials[path] = new_path
        return new_path

    def _rebind_textures(self, original: Material, new_material: Material,
                         result: RelocationResult) -> None:
        """
        Point every texture property of `new_material` at the relocated copy
        of the texture bound on `original`. Other property types carry no
        references and are left alone.
        """
        for prop in new_material.texture_properties():
            original_texture = original.get_texture(prop.name)
            if not original_texture:
                continue

            new_texture_path = self._relocate_reference(original_texture, result)
            if not self.store.exists(new_texture_path):
                continue
            texture = self.store.load(new_texture_path, Texture)
            if texture is None:
                raise ResolutionFailureError(new_texture_path, "does not resolve to a texture")

            bound = self.store.get_path(texture)
            if bound != prop.value:
                result.rewrites.append(BindingRewrite(new_material.path, prop.name, prop.value, bound))
            new_material.set_texture(prop.name, bound)

    def _resolve_root(self, root: Union[str, Asset, None]) -> str:
        if root is None or root == "":
            raise InvalidArgumentsError("You must specify both a valid root asset and a destination path")
        if isinstance(root, Asset):
            path = self.store.get_path(root)
            if not path:
                raise ResolutionFailureError(repr(root), "is not backed by a stored asset")
        else:
            path = normalize_path(root)
        if not self.store.exists(path):
            raise ResolutionFailureError(path)
        return path
