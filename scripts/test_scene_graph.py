#!/usr/bin/env python3
"""Scene Graph Unit Tests

Tests cover:
  - Vec3 / Quaternion math (rotation, inverse, euler order)
  - SceneNode structure (single Transform invariant, leaves, paths)
  - World-space transforms (position/rotation setters, lossy scale)
  - SceneGraph editing (set_parent keeping world space, destroy/restore)
  - Prefab instancing and propagation of prefab edits to instances
  - Serialization round trip of a node hierarchy
"""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from scene_graph import (
    Behaviour, Component, MeshFilter, Quaternion, Renderer, SceneGraph, SceneNode,
    Transform, Vec3, component_from_dict,
)


class _PrefabStub:
    """Anything with `.path` and `.root` can be instantiated."""

    def __init__(self, path, root):
        self.path = path
        self.root = root


def _mock_crate_prefab() -> _PrefabStub:
    lid = SceneNode("Lid", components=[Renderer(materials=["/Art/Wood.mat"])])
    body = SceneNode("Body", components=[MeshFilter(mesh="/Art/Crate.fbx"),
                                         Renderer(materials=["/Art/Wood.mat"])])
    root = SceneNode("Crate", children=[body, lid])
    return _PrefabStub("/Props/Crate.prefab", root)


# =========================================================================
# Unit Tests - Math
# =========================================================================

class TestMath(unittest.TestCase):
    """Test Vec3 and Quaternion helpers."""

    def test_axis_angle_rotates_vector(self):
        q = Quaternion.from_axis_angle(Vec3(0, 1, 0), 90)
        rotated = q.rotate(Vec3(1, 0, 0))
        self.assertTrue(rotated.approx_equal(Vec3(0, 0, -1)), rotated)

    def test_inverse_undoes_rotation(self):
        q = Quaternion.from_euler(30, 45, 60)
        v = Vec3(1, 2, 3)
        self.assertTrue(q.inverse().rotate(q.rotate(v)).approx_equal(v))

    def test_euler_applies_z_then_x_then_y(self):
        q = Quaternion.from_euler(90, 90, 0)
        expected = Quaternion.from_axis_angle(Vec3(0, 1, 0), 90) * Quaternion.from_axis_angle(Vec3(1, 0, 0), 90)
        self.assertTrue(q.approx_equal(expected))

    def test_negated_quaternion_is_same_rotation(self):
        q = Quaternion.from_euler(10, 20, 30)
        self.assertTrue(q.approx_equal(Quaternion(-q.w, -q.x, -q.y, -q.z)))

    def test_divided_by_zero_axis(self):
        self.assertEqual(Vec3(2, 4, 6).divided(Vec3(2, 0, 3)), Vec3(1, 0, 2))


# =========================================================================
# Unit Tests - Node Structure
# =========================================================================

class TestSceneNodeStructure(unittest.TestCase):
    """Test hierarchy bookkeeping and the Transform invariant."""

    def test_transform_created_and_first(self):
        node = SceneNode("A", components=[Renderer()])
        self.assertIsInstance(node.components[0], Transform)
        self.assertEqual(len(node.get_components(Transform)), 1)

    def test_transform_moved_to_front(self):
        t = Transform(local_position=Vec3(1, 2, 3))
        node = SceneNode("A", components=[Renderer(), t])
        self.assertIs(node.transform, t)

    def test_two_transforms_rejected(self):
        with self.assertRaises(ValueError):
            SceneNode("A", components=[Transform(), Transform()])

    def test_cannot_add_or_remove_transform(self):
        node = SceneNode("A")
        with self.assertRaises(ValueError):
            node.add_component(Transform())
        with self.assertRaises(ValueError):
            node.remove_component(node.transform)

    def test_children_get_parent(self):
        child = SceneNode("Child")
        parent = SceneNode("Parent", children=[child])
        self.assertIs(child.parent, parent)
        self.assertFalse(parent.is_leaf)
        self.assertTrue(child.is_leaf)
        self.assertEqual(child.get_path(), "Parent/Child")

    def test_nodes_compare_by_identity(self):
        self.assertNotEqual(SceneNode("Same"), SceneNode("Same"))

    def test_components_in_children_skip_inactive_by_default(self):
        hidden = SceneNode("Hidden", components=[Renderer()], active=False)
        root = SceneNode("Root", components=[Renderer()], children=[hidden])
        self.assertEqual(len(root.get_components_in_children(Renderer)), 1)
        self.assertEqual(len(root.get_components_in_children(Renderer, include_inactive=True)), 2)

    def test_clone_is_detached_deep_copy(self):
        child = SceneNode("Child", components=[Renderer(materials=["/a.mat"])])
        root = SceneNode("Root", children=[child])
        duplicate = child.clone()
        self.assertIsNone(duplicate.parent)
        self.assertIs(child.parent, root)
        duplicate.get_component(Renderer).materials.append("/b.mat")
        self.assertEqual(child.get_component(Renderer).materials, ["/a.mat"])

    def test_find_prefab_source_walks_up(self):
        child = SceneNode("Child")
        root = SceneNode("Root", children=[child], prefab_source="/P.prefab")
        self.assertEqual(child.find_prefab_source(), "/P.prefab")
        self.assertIsNone(SceneNode("Loose").find_prefab_source())
        self.assertEqual(root.find_prefab_source(), "/P.prefab")


# =========================================================================
# Unit Tests - World Space
# =========================================================================

class TestWorldSpace(unittest.TestCase):
    """Test world position/rotation/scale derivation."""

    def setUp(self):
        self.parent = SceneNode("Parent", components=[Transform(
            local_position=Vec3(10, 0, 0),
            local_rotation=Quaternion.from_axis_angle(Vec3(0, 1, 0), 90),
            local_scale=Vec3(2, 2, 2),
        )])
        self.child = SceneNode("Child", components=[Transform(local_position=Vec3(1, 0, 0))])
        self.parent.add_child(self.child)

    def test_child_world_position(self):
        self.assertTrue(self.child.position.approx_equal(Vec3(10, 0, -2)), self.child.position)

    def test_position_setter_round_trip(self):
        self.child.position = Vec3(3, 4, 5)
        self.assertTrue(self.child.position.approx_equal(Vec3(3, 4, 5)))

    def test_rotation_setter_round_trip(self):
        target = Quaternion.from_euler(15, 30, 45)
        self.child.rotation = target
        self.assertTrue(self.child.rotation.approx_equal(target))

    def test_lossy_scale(self):
        self.child.transform.local_scale = Vec3(1, 3, 1)
        self.assertTrue(self.child.lossy_scale.approx_equal(Vec3(2, 6, 2)))

    def test_inverse_transform_point(self):
        world = self.child.transform_point(Vec3(0.5, 1, -1))
        self.assertTrue(self.child.inverse_transform_point(world).approx_equal(Vec3(0.5, 1, -1)))


# =========================================================================
# Unit Tests - Scene Editing
# =========================================================================

class TestSceneGraphEditing(unittest.TestCase):
    """Test reparenting, destruction and restoration."""

    def setUp(self):
        self.scene = SceneGraph("Level")
        self.holder = self.scene.create_node("Holder")
        self.holder.transform.local_position = Vec3(5, 0, 0)
        self.holder.transform.local_rotation = Quaternion.from_axis_angle(Vec3(0, 0, 1), 45)
        self.holder.transform.local_scale = Vec3(2, 2, 2)
        self.item = self.scene.create_node("Item")
        self.item.transform.local_position = Vec3(1, 2, 3)

    def test_set_parent_keeps_world_position(self):
        self.scene.set_parent(self.item, self.holder, world_position_stays=True)
        self.assertIs(self.item.parent, self.holder)
        self.assertTrue(self.item.position.approx_equal(Vec3(1, 2, 3)))
        self.assertTrue(self.item.rotation.approx_equal(Quaternion.identity()))
        self.assertTrue(self.item.lossy_scale.approx_equal(Vec3(1, 1, 1)))
        self.assertNotIn(self.item, self.scene.roots)

    def test_set_parent_without_world_stays_keeps_local(self):
        self.scene.set_parent(self.item, self.holder, world_position_stays=False)
        self.assertEqual(self.item.transform.local_position, Vec3(1, 2, 3))

    def test_set_parent_rejects_cycle(self):
        self.scene.set_parent(self.item, self.holder)
        with self.assertRaises(ValueError):
            self.scene.set_parent(self.holder, self.item)

    def test_destroy_and_restore_root(self):
        parent, index = self.scene.destroy(self.holder)
        self.assertIsNone(parent)
        self.assertEqual(index, 0)
        self.assertFalse(self.scene.contains(self.holder))
        self.scene.restore(self.holder, parent, index)
        self.assertIs(self.scene.roots[0], self.holder)

    def test_destroy_and_restore_child_index(self):
        first = self.scene.create_node("First", parent=self.holder)
        second = self.scene.create_node("Second", parent=self.holder)
        parent, index = self.scene.destroy(first)
        self.assertEqual(index, 0)
        self.assertEqual(self.holder.children, [second])
        self.scene.restore(first, parent, index)
        self.assertEqual([c.name for c in self.holder.children], ["First", "Second"])

    def test_copy_component_is_independent(self):
        renderer = self.item.add_component(Renderer(materials=["/a.mat"]))
        pasted = self.scene.copy_component(renderer, self.holder)
        self.assertIsNot(pasted, renderer)
        pasted.materials[0] = "/b.mat"
        self.assertEqual(renderer.materials, ["/a.mat"])


# =========================================================================
# Unit Tests - Prefab Instances
# =========================================================================

class TestPrefabInstances(unittest.TestCase):
    """Test instancing and propagation of prefab edits."""

    def setUp(self):
        self.scene = SceneGraph("Level")
        self.prefab = _mock_crate_prefab()

    def test_instantiate_links_source(self):
        instance = self.scene.instantiate(self.prefab)
        self.assertEqual(instance.prefab_source, "/Props/Crate.prefab")
        self.assertIn(instance, self.scene.roots)
        self.assertIsNot(instance, self.prefab.root)
        self.assertTrue(all(c.prefab_origin for c in instance.children))
        self.assertEqual(self.scene.instances_of("/Props/Crate.prefab"), [instance])

    def test_propagate_replaces_template_content(self):
        instance = self.scene.instantiate(self.prefab)
        instance.transform.local_position = Vec3(7, 0, 0)
        instance.name = "Crate (renamed)"
        self.prefab.root.children[0].get_component(Renderer).materials = ["/Art/Metal.mat"]

        updated = self.scene.propagate_prefab(self.prefab)

        self.assertEqual(updated, 1)
        self.assertEqual(instance.children[0].get_component(Renderer).materials, ["/Art/Metal.mat"])
        self.assertEqual(instance.name, "Crate (renamed)")
        self.assertEqual(instance.transform.local_position, Vec3(7, 0, 0))

    def test_propagate_keeps_scene_additions(self):
        instance = self.scene.instantiate(self.prefab)
        extra = self.scene.create_node("Sticker", parent=instance)
        behaviour = instance.add_component(Behaviour(script="/Code/Spin.cs"))
        self.prefab.root.add_child(SceneNode("Hinge"))

        self.scene.propagate_prefab(self.prefab)

        self.assertEqual([c.name for c in instance.children], ["Body", "Lid", "Hinge", "Sticker"])
        self.assertIs(instance.children[-1], extra)
        self.assertIn(behaviour, instance.components)

    def test_propagate_reaches_every_template_child(self):
        instance = self.scene.instantiate(self.prefab)
        lid = next(c for c in self.prefab.root.children if c.name == "Lid")
        lid.get_component(Renderer).materials = ["/Art/Glass.mat"]

        self.scene.propagate_prefab(self.prefab)

        self.assertEqual([c.name for c in instance.children], ["Body", "Lid"])
        self.assertEqual(instance.children[1].get_component(Renderer).materials, ["/Art/Glass.mat"])
        self.assertEqual([c.name for c in self.prefab.root.children], ["Body", "Lid"])


# =========================================================================
# Unit Tests - Serialization
# =========================================================================

class TestSerialization(unittest.TestCase):
    """Test node dictionaries."""

    def test_round_trip_hierarchy(self):
        root = _mock_crate_prefab().root
        root.transform.local_rotation = Quaternion.from_euler(0, 90, 0)
        rebuilt = SceneNode.from_dict(root.to_dict())
        self.assertEqual(rebuilt.to_dict(), root.to_dict())
        self.assertIs(rebuilt.children[0].parent, rebuilt)

    def test_unknown_component_type(self):
        with self.assertRaises(ValueError):
            component_from_dict({"type": "particle_system"})

    def test_plain_component(self):
        self.assertIsInstance(component_from_dict({"type": "component"}), Component)


# =========================================================================
# Run
# =========================================================================

if __name__ == '__main__':
    unittest.main(verbosity=2)
