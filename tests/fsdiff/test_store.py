# Copyright Red Hat
#
# tests/fsdiff/test_store.py - Snapshot store tests.
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import MagicMock, patch
import tempfile
import json
import stat
import os

from modcheck import (
    ModcheckArgumentError,
    ModcheckBusyError,
    ModcheckParseError,
    ModcheckWriteError,
)
from modcheck.fsdiff.snapshot import Snapshot
from modcheck.fsdiff.store import (
    MalformedPolicy,
    SnapshotStore,
    load_snapshot,
    save_snapshot,
    state_lock,
)


class TestSnapshotStore(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.state_dir = self._tmp.name
        self.path = os.path.join(self.state_dir, "files.txt")

    def tearDown(self):
        self._tmp.cleanup()

    def _write_state(self, text):
        with open(self.path, "w", encoding="utf8") as fp:
            fp.write(text)

    def test_save_then_load(self):
        snap = Snapshot({"/a/b.txt": 1700000000000, "/a/é.txt": 1, "/big": 2**53 + 1})
        save_snapshot(self.path, snap)
        loaded = load_snapshot(self.path)
        self.assertEqual(loaded, snap)
        self.assertEqual(loaded["/big"], 2**53 + 1)

    def test_saved_document_format(self):
        save_snapshot(self.path, Snapshot({"/a/b.txt": 1700000000000}))
        with open(self.path, "r", encoding="utf8") as fp:
            doc = json.load(fp)
        self.assertEqual(doc, {"files": {"/a/b.txt": 1700000000000}})
        self.assertEqual(stat.S_IMODE(os.stat(self.path).st_mode), 0o644)

    def test_save_empty_snapshot(self):
        save_snapshot(self.path, Snapshot())
        loaded = load_snapshot(self.path)
        self.assertEqual(len(loaded), 0)
        self.assertFalse(loaded.missing)

    def test_save_replaces_previous_state(self):
        save_snapshot(self.path, Snapshot({"/a": 1}))
        save_snapshot(self.path, Snapshot({"/b": 2}))
        self.assertEqual(load_snapshot(self.path), Snapshot({"/b": 2}))
        # No temporary files are left behind.
        self.assertEqual(os.listdir(self.state_dir), ["files.txt"])

    def test_save_creates_state_dir(self):
        path = os.path.join(self.state_dir, "nested", "state", "files.txt")
        save_snapshot(path, Snapshot({"/a": 1}))
        self.assertTrue(os.path.exists(path))

    def test_save_failure_keeps_previous_state(self):
        save_snapshot(self.path, Snapshot({"/a": 1}))
        with patch("modcheck.fsdiff.store.os.replace", side_effect=OSError(28, "No space left")):
            with self.assertRaises(ModcheckWriteError):
                save_snapshot(self.path, Snapshot({"/b": 2}))
        self.assertEqual(load_snapshot(self.path), Snapshot({"/a": 1}))
        self.assertEqual(os.listdir(self.state_dir), ["files.txt"])

    def test_save_to_directory_fails(self):
        with self.assertRaises(ModcheckWriteError):
            save_snapshot(self.state_dir, Snapshot({"/a": 1}))

    def test_load_missing(self):
        reporter = MagicMock()
        snap = load_snapshot(self.path, reporter=reporter)
        self.assertEqual(len(snap), 0)
        self.assertTrue(snap.missing)
        reporter.no_baseline.assert_called_once_with(self.path)

    def test_load_directory_is_missing(self):
        reporter = MagicMock()
        snap = load_snapshot(self.state_dir, reporter=reporter)
        self.assertTrue(snap.missing)
        reporter.no_baseline.assert_called_once_with(self.state_dir)

    def test_load_empty_files_object(self):
        self._write_state('{"files": {}}')
        snap = load_snapshot(self.path)
        self.assertEqual(len(snap), 0)
        self.assertFalse(snap.missing)

    def test_load_malformed_fails(self):
        for text in ("", "not json", '{"files": [1]}', '{"other": {}}',
                     '{"files": {"/a": "soon"}}', "[]"):
            with self.subTest(text=text):
                self._write_state(text)
                with self.assertRaises(ModcheckParseError):
                    load_snapshot(self.path)

    def test_load_malformed_does_not_touch_file(self):
        self._write_state("not json")
        with self.assertRaises(ModcheckParseError):
            load_snapshot(self.path)
        with open(self.path, "r", encoding="utf8") as fp:
            self.assertEqual(fp.read(), "not json")

    def test_load_malformed_empty_policy(self):
        self._write_state("not json")
        reporter = MagicMock()
        snap = load_snapshot(self.path, reporter=reporter, malformed=MalformedPolicy.EMPTY)
        self.assertTrue(snap.missing)
        reporter.malformed_baseline.assert_called_once()
        self.assertEqual(reporter.malformed_baseline.call_args[0][0], self.path)
        reporter.no_baseline.assert_not_called()

    def test_load_deeply_nested(self):
        self._write_state('{"files": ' + "[" * 200000 + "]" * 200000 + "}")
        with self.assertRaises(ModcheckParseError):
            load_snapshot(self.path)
        snap = load_snapshot(self.path, malformed=MalformedPolicy.EMPTY)
        self.assertTrue(snap.missing)

    def test_load_invalid_utf8(self):
        with open(self.path, "wb") as fp:
            fp.write(b'{"files": {"/\xff": 1}}')
        with self.assertRaises(ModcheckParseError):
            load_snapshot(self.path)

    def test_state_lock(self):
        with state_lock(self.path) as fd:
            self.assertIsInstance(fd, int)
            with self.assertRaises(ModcheckBusyError):
                with state_lock(self.path):
                    pass
        # Released on exit.
        with state_lock(self.path):
            pass
        self.assertTrue(os.path.exists(self.path + ".lock"))

    def test_state_lock_released_on_error(self):
        with self.assertRaises(RuntimeError):
            with state_lock(self.path):
                raise RuntimeError("boom")
        with state_lock(self.path):
            pass

    def test_SnapshotStore(self):
        store = SnapshotStore(self.path)
        self.assertEqual(store.malformed, MalformedPolicy.FAIL)
        self.assertTrue(store.locking)
        self.assertIn("files.txt", repr(store))
        store.save(Snapshot({"/a": 1}))
        self.assertEqual(store.load(), Snapshot({"/a": 1}))

    def test_SnapshotStore_owns(self):
        store = SnapshotStore(self.path)
        self.assertTrue(store.owns(self.path))
        self.assertTrue(store.owns(self.path + ".lock"))
        self.assertTrue(store.owns(os.path.join(self.state_dir, ".tmp_abc123")))
        self.assertFalse(store.owns(os.path.join(self.state_dir, "other.txt")))
        self.assertFalse(store.owns(os.path.join(self.state_dir, "sub", ".tmp_abc")))

    def test_SnapshotStore_empty_path(self):
        with self.assertRaises(ModcheckArgumentError):
            SnapshotStore("")

    def test_SnapshotStore_no_locking(self):
        store = SnapshotStore(self.path, locking=False)
        with store.lock():
            with store.lock():
                pass
        self.assertFalse(os.path.exists(self.path + ".lock"))

    def test_SnapshotStore_locking(self):
        store = SnapshotStore(self.path)
        with store.lock():
            with self.assertRaises(ModcheckBusyError):
                with store.lock():
                    pass
