"""
Directory Store - AssetStore Backed by a Folder on Disk

Maps asset identifiers onto files under a root directory:

    "/Art/Hero/Hero.model"  ->  <root>/Art/Hero/Hero.model

Storage format:
    - Materials (.mat) and models (.prefab, .model) are JSON documents holding
      the record's `to_dict()` form, so their references can be read and
      rewritten
    - Everything else (textures, meshes, scripts, shaders) is an opaque file;
      it has no outgoing references and is only ever copied byte-for-byte

Copies never overwrite an existing file.

Usage:
    store = DirectoryAssetStore("project/Assets")
    store.write_asset("/Art/Hero/Hero.mat", Material(properties=[...]))
    store.add_file("/Art/Hero/Skin.png", png_bytes)

    engine = RelocationEngine(store)
    engine.relocate("/Art/Hero/Hero.model", "/Exported/Hero")

Author: Scene Asset Tools
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import List, Optional, Union

from asset_store import (
    ASSET_TYPES,
    Asset,
    AssetKind,
    AssetStoreBase,
    InvalidArgumentsError,
    ResolutionFailureError,
    StoreWriteError,
    asset_from_dict,
    classify_path,
    join_path,
    normalize_path,
)

logger = logging.getLogger(__name__)

# Kinds stored as JSON documents
STRUCTURED_KINDS = {AssetKind.MATERIAL, AssetKind.MODEL}


class DirectoryAssetStore(AssetStoreBase):
    """
    Asset store over a directory tree.

    Identifiers are POSIX paths relative to `root`; a leading "/" is
    optional ("/Art/Skin.png" and "Art/Skin.png" address the same file).
    """

    def __init__(self, root: Union[str, Path], create: bool = True):
        """
        Args:
            root: Directory that identifiers are resolved against
            create: Create `root` if it does not exist

        Raises:
            FileNotFoundError: If `root` is missing and `create` is False
        """
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            if not create:
                raise FileNotFoundError(f"Asset root not found: {self.root}")
            self.root.mkdir(parents=True)
            logger.info(f"Created asset root {self.root}")

    def __repr__(self) -> str:
        return f"DirectoryAssetStore({self.root})"

    def resolve(self, path: str) -> Path:
        """Filesystem path for an identifier."""
        relative = normalize_path(path).lstrip("/")
        return self.root / relative if relative else self.root

    # --- Writing helpers ---------------------------------------------------

    def write_asset(self, path: str, asset: Asset) -> str:
        """Store a structured asset at `path`, creating parent folders."""
        path = normalize_path(path)
        if not path:
            raise InvalidArgumentsError("Cannot store an asset without a path")
        self.resolve(path).parent.mkdir(parents=True, exist_ok=True)
        asset.bind(path)
        self.save(asset)
        return path

    def add_file(self, path: str, data: bytes = b"") -> str:
        """Store an opaque file at `path`, creating parent folders."""
        path = normalize_path(path)
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def files(self, folder: str = "") -> List[str]:
        """Sorted identifiers of every file under `folder` (recursively)."""
        base = self.resolve(folder)
        if not base.is_dir():
            return []
        prefix = "/" if normalize_path(folder).startswith("/") else ""
        return sorted(
            prefix + p.relative_to(self.root).as_posix()
            for p in base.rglob("*") if p.is_file()
        )

    # --- AssetStore --------------------------------------------------------

    def exists(self, path: str) -> bool:
        return bool(normalize_path(path)) and self.resolve(path).is_file()

    def is_folder(self, path: str) -> bool:
        return self.resolve(path).is_dir()

    def create_folder(self, parent: str, name: str) -> str:
        if not self.is_folder(parent):
            raise ResolutionFailureError(parent, "is not an existing folder")
        path = join_path(parent, name)
        target = self.resolve(path)
        if not target.is_dir():
            target.mkdir()
            logger.debug(f"Created folder '{path}'")
        return path

    def copy(self, source: str, destination: str) -> bool:
        src = self.resolve(source)
        dst = self.resolve(destination)
        if not src.is_file() or dst.exists() or not dst.parent.is_dir():
            logger.debug(f"Copy refused: {source} -> {destination}")
            return False
        shutil.copy2(src, dst)
        return True

    def save(self, asset: Asset) -> None:
        path = normalize_path(asset.path)
        if not path:
            raise InvalidArgumentsError("Cannot save an asset handle that has no path")
        target = self.resolve(path)
        if not target.parent.is_dir():
            raise StoreWriteError(path, "parent folder does not exist")

        try:
            if classify_path(path) in STRUCTURED_KINDS:
                with open(target, 'w', encoding='utf-8') as f:
                    json.dump(asset.to_dict(), f, indent=2)
            elif not target.exists():
                target.touch()
        except OSError as e:
            raise StoreWriteError(path, str(e))

    def _read(self, path: str) -> Optional[Asset]:
        target = self.resolve(path)
        if not path or not target.is_file():
            return None

        kind = classify_path(path)
        if kind not in STRUCTURED_KINDS:
            asset = ASSET_TYPES[kind]()
            asset.bind(path)
            return asset

        try:
            with open(target, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return asset_from_dict(data, path)
        except (OSError, json.JSONDecodeError, ValueError, KeyError, AttributeError) as e:
            logger.warning(f"Could not read '{path}': {e}")
            return None
