#!/usr/bin/env python3
"""Undo Log Unit Tests

Tests cover:
  - Grouping: one group per block, nested blocks fold into the outer one
  - record / register_created / destroy reversal order
  - Redo after undo; new edits discard redo history
  - Groups are kept when the block raises
  - flush() hands groups over and clears the log
"""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from scene_graph import Renderer, SceneGraph
from undo_log import UndoLog


class TestUndoGroups(unittest.TestCase):
    """Test group bookkeeping."""

    def setUp(self):
        self.scene = SceneGraph()
        self.node = self.scene.create_node("Crate")
        self.log = UndoLog()

    def test_operations_in_block_form_one_group(self):
        with self.log.group("Edit"):
            self.log.record(self.node)
            self.log.register_created(self.scene, self.scene.create_node("Extra"))
        self.assertEqual(len(self.log), 1)
        self.assertEqual(len(self.log.groups[0].operations), 2)
        self.assertTrue(self.log.groups[0].committed)

    def test_nested_group_folds_into_outer(self):
        with self.log.group("Outer"):
            self.log.record(self.node)
            with self.log.group("Inner"):
                self.log.record(self.node)
        self.assertEqual(len(self.log), 1)
        self.assertEqual(self.log.groups[0].label, "Outer")

    def test_empty_group_not_logged(self):
        with self.log.group("Nothing"):
            pass
        self.assertFalse(self.log.can_undo)

    def test_operation_outside_group_is_own_group(self):
        self.log.record(self.node, "Rename")
        self.assertEqual(self.log.groups[0].label, "Rename")

    def test_group_kept_when_block_raises(self):
        with self.assertRaises(RuntimeError):
            with self.log.group("Broken"):
                self.log.destroy(self.scene, self.node)
                raise RuntimeError("boom")
        self.assertEqual(len(self.log), 1)
        self.log.undo()
        self.assertTrue(self.scene.contains(self.node))

    def test_undo_inside_open_group_rejected(self):
        with self.log.group("Open"):
            self.log.record(self.node)
            with self.assertRaises(RuntimeError):
                self.log.undo()


class TestUndoRedo(unittest.TestCase):
    """Test reversal of recorded scene edits."""

    def setUp(self):
        self.scene = SceneGraph()
        self.node = self.scene.create_node("Crate", components=[Renderer(materials=["/a.mat"])])
        self.log = UndoLog()

    def test_record_restores_state(self):
        with self.log.group("Rename"):
            self.log.record(self.node)
            self.node.name = "Box"
            self.node.get_component(Renderer).materials[0] = "/b.mat"

        self.assertEqual(self.log.undo(), "Rename")
        self.assertEqual(self.node.name, "Crate")
        self.assertEqual(self.node.get_component(Renderer).materials, ["/a.mat"])

        self.assertEqual(self.log.redo(), "Rename")
        self.assertEqual(self.node.name, "Box")
        self.assertEqual(self.node.get_component(Renderer).materials, ["/b.mat"])

    def test_create_then_destroy_undone_together(self):
        with self.log.group("Swap"):
            created = self.scene.create_node("New")
            self.log.register_created(self.scene, created)
            self.log.destroy(self.scene, self.node)

        self.assertEqual(self.scene.roots, [created])
        self.log.undo()
        self.assertEqual(self.scene.roots, [self.node])
        self.log.redo()
        self.assertEqual(self.scene.roots, [created])

    def test_new_edit_clears_redo(self):
        self.log.record(self.node, "First")
        self.log.undo()
        self.assertTrue(self.log.can_redo)
        self.log.record(self.node, "Second")
        self.assertFalse(self.log.can_redo)
        self.assertIsNone(self.log.redo())

    def test_undo_on_empty_log(self):
        self.assertIsNone(self.log.undo())

    def test_flush(self):
        self.log.record(self.node, "One")
        self.log.record(self.node, "Two")
        flushed = self.log.flush()
        self.assertEqual([g.label for g in flushed], ["One", "Two"])
        self.assertEqual(len(self.log), 0)
        self.assertFalse(self.log.can_undo)


# =========================================================================
# Run
# =========================================================================

if __name__ == '__main__':
    unittest.main(verbosity=2)
