# Copyright Red Hat
#
# tests/fsdiff/test_treewalk.py - TreeWalker tests.
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import os
from unittest.mock import MagicMock, patch
from io import StringIO

from modcheck import (
    ModcheckAccessError,
    ModcheckNotFoundError,
    ModcheckSystemError,
)
from modcheck.fsdiff.options import ScanOptions
from modcheck.fsdiff.treewalk import TreeWalker, _walk_error, mtime_msecs, scan

from .._util import BASE_MSECS, write_file


class TestTreeWalker(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = self._tmp.name
        self.quiet = ScanOptions(quiet=True)

    def tearDown(self):
        self._tmp.cleanup()

    def test_TreeWalker(self):
        """Test TreeWalker.__init__()"""
        walker = TreeWalker(ScanOptions(exclude_patterns=("build/*",)))
        self.assertEqual(walker.exclude_patterns, ("build/*",))
        self.assertEqual(walker.file_patterns, ())
        self.assertFalse(TreeWalker().options.follow_symlinks)

    def test_mtime_msecs(self):
        st = MagicMock()
        st.st_mtime_ns = 1700000000123456789
        self.assertEqual(mtime_msecs(st), 1700000000123)

    def test_scan_records_regular_files(self):
        a = write_file(self.root, "a.txt", mtime_ms=BASE_MSECS)
        b = write_file(self.root, "sub/dir/b.txt", mtime_ms=BASE_MSECS + 5)
        os.mkdir(os.path.join(self.root, "empty"))

        snap = TreeWalker(self.quiet).scan(self.root)

        self.assertEqual(len(snap), 2)
        self.assertEqual(snap[a], BASE_MSECS)
        self.assertEqual(snap[b], BASE_MSECS + 5)
        # Directories are traversed but never recorded.
        self.assertNotIn(os.path.join(self.root, "sub"), snap)
        self.assertNotIn(os.path.join(self.root, "empty"), snap)

    def test_scan_empty_root(self):
        snap = TreeWalker(self.quiet).scan(self.root)
        self.assertEqual(len(snap), 0)
        self.assertFalse(snap.missing)

    def test_scan_relative_root_is_made_absolute(self):
        write_file(self.root, "a.txt")
        cwd = os.getcwd()
        os.chdir(self.root)
        try:
            expected = os.path.join(os.getcwd(), "a.txt")
            snap = TreeWalker(self.quiet).scan(".")
        finally:
            os.chdir(cwd)
        self.assertEqual(list(snap), [expected])

    def test_scan_relative_paths(self):
        write_file(self.root, "a.txt")
        write_file(self.root, "sub/b.txt")
        snap = TreeWalker(ScanOptions(relative_paths=True, quiet=True)).scan(self.root)
        self.assertEqual(set(snap), {"a.txt", "sub/b.txt"})

    def test_scan_bad_root(self):
        walker = TreeWalker(self.quiet)
        with self.assertRaises(ModcheckNotFoundError):
            walker.scan("")
        with self.assertRaises(ModcheckNotFoundError):
            walker.scan(os.path.join(self.root, "nonexistent"))
        path = write_file(self.root, "file.txt")
        with self.assertRaises(ModcheckNotFoundError):
            walker.scan(path)

    def test_scan_exclude_patterns(self):
        write_file(self.root, "keep.txt")
        write_file(self.root, "skip.o")
        write_file(self.root, "build/out.txt")
        options = ScanOptions(exclude_patterns=("*.o", "build"), quiet=True)
        snap = TreeWalker(options).scan(self.root)
        self.assertEqual(set(snap), {os.path.join(self.root, "keep.txt")})

    def test_scan_include_patterns(self):
        write_file(self.root, "a.c")
        write_file(self.root, "a.h")
        write_file(self.root, "src/b.c")
        options = ScanOptions(file_patterns=("*.c",), relative_paths=True, quiet=True)
        snap = TreeWalker(options).scan(self.root)
        self.assertEqual(set(snap), {"a.c", "src/b.c"})

    def test_scan_symlinks(self):
        target = write_file(self.root, "target.txt", mtime_ms=BASE_MSECS + 1)
        os.symlink(target, os.path.join(self.root, "link.txt"))
        os.symlink(os.path.join(self.root, "nowhere"), os.path.join(self.root, "dangling"))
        snap = TreeWalker(ScanOptions(relative_paths=True, quiet=True)).scan(self.root)
        # Links to regular files take the target's timestamp.
        self.assertEqual(snap["link.txt"], BASE_MSECS + 1)
        self.assertNotIn("dangling", snap)

    def test_scan_does_not_follow_directory_links_by_default(self):
        other = tempfile.TemporaryDirectory()
        self.addCleanup(other.cleanup)
        write_file(other.name, "outside.txt")
        os.symlink(other.name, os.path.join(self.root, "linked"))
        snap = TreeWalker(ScanOptions(relative_paths=True, quiet=True)).scan(self.root)
        self.assertEqual(len(snap), 0)

    def test_scan_follow_symlinks(self):
        other = tempfile.TemporaryDirectory()
        self.addCleanup(other.cleanup)
        write_file(other.name, "outside.txt")
        os.symlink(other.name, os.path.join(self.root, "linked"))
        options = ScanOptions(follow_symlinks=True, relative_paths=True, quiet=True)
        snap = TreeWalker(options).scan(self.root)
        self.assertEqual(set(snap), {"linked/outside.txt"})

    def test_scan_follow_symlinks_loop(self):
        write_file(self.root, "sub/a.txt")
        os.symlink(self.root, os.path.join(self.root, "sub", "loop"))
        options = ScanOptions(follow_symlinks=True, relative_paths=True, quiet=True)
        snap = TreeWalker(options).scan(self.root)
        self.assertEqual(set(snap), {"sub/a.txt"})

    def test_scan_skips_special_files(self):
        write_file(self.root, "a.txt")
        os.mkfifo(os.path.join(self.root, "fifo"))
        snap = TreeWalker(ScanOptions(relative_paths=True, quiet=True)).scan(self.root)
        self.assertEqual(set(snap), {"a.txt"})

    def test_scan_stat_permission_denied(self):
        target = write_file(self.root, "secret.txt")
        real_stat = os.stat

        def fake_stat(path, *args, **kwargs):
            if path == target:
                raise PermissionError(13, "Permission denied", path)
            return real_stat(path, *args, **kwargs)

        with patch("modcheck.fsdiff.treewalk.os.stat", side_effect=fake_stat):
            with self.assertRaises(ModcheckAccessError):
                TreeWalker(self.quiet).scan(self.root)

    def test_scan_stat_vanished(self):
        target = write_file(self.root, "gone.txt")
        write_file(self.root, "kept.txt")
        real_stat = os.stat

        def fake_stat(path, *args, **kwargs):
            if path == target:
                raise FileNotFoundError(2, "No such file or directory", path)
            return real_stat(path, *args, **kwargs)

        with patch("modcheck.fsdiff.treewalk.os.stat", side_effect=fake_stat):
            snap = TreeWalker(self.quiet).scan(self.root)
        self.assertEqual(set(snap), {os.path.join(self.root, "kept.txt")})

    @unittest.skipIf(os.geteuid() == 0, "Permission checks do not apply to root")
    def test_scan_unreadable_directory(self):
        write_file(self.root, "locked/a.txt")
        locked = os.path.join(self.root, "locked")
        os.chmod(locked, 0)
        self.addCleanup(os.chmod, locked, 0o755)
        with self.assertRaises(ModcheckAccessError):
            TreeWalker(self.quiet).scan(self.root)

    def test_scan_progress_on_stderr(self):
        write_file(self.root, "a.txt")
        with patch("sys.stdout", new_callable=StringIO) as stdout, \
                patch("sys.stderr", new_callable=StringIO) as stderr:
            scan(self.root)
        self.assertEqual(stdout.getvalue(), "")
        self.assertTrue(stderr.getvalue().startswith(f"Scanning {self.root}: "))
        self.assertIn("found 1 files", stderr.getvalue())

    def test_scan_module_function(self):
        write_file(self.root, "a.txt")
        snap = scan(self.root, ScanOptions(relative_paths=True, quiet=True))
        self.assertEqual(dict(snap), {"a.txt": BASE_MSECS})


class TestWalkError(unittest.TestCase):
    def test_permission_error(self):
        with self.assertRaises(ModcheckAccessError):
            _walk_error(PermissionError(13, "Permission denied", "/x"))

    def test_vanished_directory(self):
        self.assertIsNone(_walk_error(FileNotFoundError(2, "No such file", "/x")))

    def test_other_error(self):
        with self.assertRaises(ModcheckSystemError):
            _walk_error(OSError(5, "Input/output error", "/x"))
