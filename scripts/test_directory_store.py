#!/usr/bin/env python3
"""Directory Store Integration Tests

Tests cover:
  - Identifier <-> file mapping (leading slash optional)
  - JSON storage of materials and models, opaque storage of everything else
  - Copies keep bytes and never overwrite
  - Malformed documents load as None with a warning
  - A full relocation against a real folder tree
"""

import json
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from asset_relocator import RelocationEngine
from asset_store import (
    AssetStore, InvalidArgumentsError, Material, Prefab, PropertyType, ResolutionFailureError,
    ShaderProperty, StoreWriteError, Texture,
)
from directory_store import DirectoryAssetStore
from scene_graph import MeshFilter, Renderer, SceneNode


class TestDirectoryStore(unittest.TestCase):
    """Test file-backed storage."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name) / "Assets"
        self.store = DirectoryAssetStore(self.root)

    def tearDown(self):
        self.tmp.cleanup()

    def test_root_created_on_demand(self):
        self.assertTrue(self.root.is_dir())
        with self.assertRaises(FileNotFoundError):
            DirectoryAssetStore(Path(self.tmp.name) / "Nope", create=False)

    def test_satisfies_protocol(self):
        self.assertIsInstance(self.store, AssetStore)

    def test_opaque_file(self):
        self.store.add_file("/Art/Skin.png", b"\x89PNG")
        self.assertTrue(self.store.exists("/Art/Skin.png"))
        self.assertTrue(self.store.exists("Art/Skin.png"))
        self.assertTrue(self.store.is_folder("/Art"))
        self.assertIsInstance(self.store.load("/Art/Skin.png"), Texture)

    def test_material_round_trip(self):
        self.store.write_asset("/Art/Skin.mat", Material(properties=[
            ShaderProperty("_MainTex", PropertyType.TEXTURE, "/Art/Skin.png"),
        ]))
        data = json.loads((self.root / "Art" / "Skin.mat").read_text(encoding="utf-8"))
        self.assertEqual(data["type"], "material")
        loaded = self.store.load("/Art/Skin.mat", Material)
        self.assertEqual(loaded.get_texture("_MainTex"), "/Art/Skin.png")
        self.assertEqual(loaded.path, "/Art/Skin.mat")

    def test_prefab_round_trip(self):
        root = SceneNode("Lamp", children=[SceneNode("Bulb", components=[Renderer(materials=["/Art/Glow.mat"])])])
        self.store.write_asset("/Props/Lamp.prefab", Prefab(root=root))
        loaded = self.store.load("/Props/Lamp.prefab", Prefab)
        self.assertEqual(loaded.root.children[0].get_component(Renderer).materials, ["/Art/Glow.mat"])
        self.assertEqual(loaded.root.children[0].asset_path, "/Props/Lamp.prefab")

    def test_malformed_document(self):
        self.store.add_file("/Art/Broken.mat", b"{oops")
        with self.assertLogs("directory_store", level="WARNING"):
            self.assertIsNone(self.store.load("/Art/Broken.mat"))
        self.assertEqual(self.store.list_dependencies("/Art/Broken.mat"), ["/Art/Broken.mat"])

    def test_copy_keeps_bytes_and_never_overwrites(self):
        self.store.add_file("/Art/Skin.png", b"first")
        self.store.add_file("/Out/Skin.png", b"existing")
        self.assertFalse(self.store.copy("/Art/Skin.png", "/Out/Skin.png"))
        self.assertEqual((self.root / "Out" / "Skin.png").read_bytes(), b"existing")

        self.store.create_folder("/", "Fresh")
        self.assertTrue(self.store.copy("/Art/Skin.png", "/Fresh/Skin.png"))
        self.assertEqual((self.root / "Fresh" / "Skin.png").read_bytes(), b"first")

    def test_copy_requires_destination_folder(self):
        self.store.add_file("/Art/Skin.png")
        self.assertFalse(self.store.copy("/Art/Skin.png", "/Missing/Skin.png"))

    def test_create_folder_requires_parent(self):
        with self.assertRaises(ResolutionFailureError):
            self.store.create_folder("/Missing", "Child")

    def test_save_errors(self):
        with self.assertRaises(InvalidArgumentsError):
            self.store.save(Material())
        with self.assertRaises(StoreWriteError):
            self.store.save(Material(path="/Missing/X.mat"))

    def test_files_listing(self):
        self.store.add_file("/Art/B.png")
        self.store.add_file("/Art/Sub/A.png")
        self.assertEqual(self.store.files("/Art"), ["/Art/B.png", "/Art/Sub/A.png"])


class TestRelocationOnDisk(unittest.TestCase):
    """End-to-end relocation into a real folder."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.store = DirectoryAssetStore(self.root)
        self.store.add_file("/Art/Hero/Skin.png", b"pixels")
        self.store.add_file("/Art/Hero/Hero.fbx", b"vertices")
        self.store.add_file("/Code/Hero.cs", b"class Hero {}")
        self.store.write_asset("/Art/Hero/Hero.mat", Material(properties=[
            ShaderProperty("_MainTex", PropertyType.TEXTURE, "/Art/Hero/Skin.png"),
        ]))
        self.store.write_asset("/Art/Hero/Hero.model", Prefab(root=SceneNode("Hero", components=[
            MeshFilter(mesh="/Art/Hero/Hero.fbx"),
            Renderer(materials=["/Art/Hero/Hero.mat"]),
        ])))

    def tearDown(self):
        self.tmp.cleanup()

    def test_relocate_to_nested_folder(self):
        result = RelocationEngine(self.store).relocate("/Art/Hero/Hero.model", "/Exported/Characters")
        self.assertTrue(result.success)
        out = self.root / "Exported" / "Characters"
        self.assertEqual(sorted(p.name for p in out.iterdir()),
                         ["Hero.fbx", "Hero.mat", "Hero.model", "Skin.png"])
        self.assertEqual((out / "Skin.png").read_bytes(), b"pixels")

        material = json.loads((out / "Hero.mat").read_text(encoding="utf-8"))
        self.assertEqual(material["properties"][0]["value"], "/Exported/Characters/Skin.png")
        prefab = self.store.load("/Exported/Characters/Hero.model", Prefab)
        self.assertEqual(prefab.root.get_component(MeshFilter).mesh, "/Exported/Characters/Hero.fbx")
        self.assertEqual(prefab.root.get_component(Renderer).materials, ["/Exported/Characters/Hero.mat"])

    def test_relocate_twice_copies_nothing_new(self):
        engine = RelocationEngine(self.store)
        engine.relocate("/Art/Hero/Hero.model", "/Exported")
        again = engine.relocate("/Art/Hero/Hero.model", "/Exported")
        self.assertEqual(again.copied, 0)
        self.assertEqual(again.skipped, 4)


# =========================================================================
# Run
# =========================================================================

if __name__ == '__main__':
    unittest.main(verbosity=2)
