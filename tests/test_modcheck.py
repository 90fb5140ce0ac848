# Copyright Red Hat
#
# tests/test_modcheck.py - Top-level package tests
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import logging
from io import StringIO
from unittest.mock import MagicMock

import modcheck
from modcheck import (
    MODCHECK_DEBUG_SCAN,
    MODCHECK_DEBUG_DIFF,
    MODCHECK_DEBUG_ALL,
    MODCHECK_SUBSYSTEM_SCAN,
    MODCHECK_SUBSYSTEM_DIFF,
    SubsystemFilter,
    ProgressAwareHandler,
    get_debug_mask,
    set_debug_mask,
    register_progress,
    unregister_progress,
    notify_log_output,
)


def _record(level, subsystem=None):
    record = logging.LogRecord("modcheck", level, __file__, 1, "msg", None, None)
    if subsystem:
        record.subsystem = subsystem
    return record


class ModcheckTests(unittest.TestCase):
    def tearDown(self):
        set_debug_mask(0)

    def test_set_debug_mask_round_trip(self):
        set_debug_mask(MODCHECK_DEBUG_SCAN | MODCHECK_DEBUG_DIFF)
        self.assertEqual(get_debug_mask(), MODCHECK_DEBUG_SCAN | MODCHECK_DEBUG_DIFF)
        set_debug_mask(0)
        self.assertEqual(get_debug_mask(), 0)

    def test_set_debug_mask_bad_mask(self):
        with self.assertRaises(ValueError):
            set_debug_mask(MODCHECK_DEBUG_ALL + 1)
        with self.assertRaises(ValueError):
            set_debug_mask(-1)

    def test_subsystem_filter(self):
        set_debug_mask(MODCHECK_DEBUG_SCAN)
        f = SubsystemFilter("modcheck")
        self.assertTrue(f.filter(_record(logging.DEBUG, MODCHECK_SUBSYSTEM_SCAN)))
        self.assertFalse(f.filter(_record(logging.DEBUG, MODCHECK_SUBSYSTEM_DIFF)))
        # Plain debug and non-debug records always pass.
        self.assertTrue(f.filter(_record(logging.DEBUG)))
        self.assertTrue(f.filter(_record(logging.INFO, MODCHECK_SUBSYSTEM_DIFF)))

    def test_set_debug_mask_updates_handler_filters(self):
        modcheck_log = logging.getLogger("modcheck")
        handler = logging.StreamHandler(StringIO())
        f = SubsystemFilter("modcheck")
        handler.addFilter(f)
        modcheck_log.addHandler(handler)
        try:
            set_debug_mask(MODCHECK_DEBUG_DIFF)
            self.assertEqual(f.enabled_subsystems, {MODCHECK_SUBSYSTEM_DIFF})
        finally:
            modcheck_log.removeHandler(handler)

    def test_progress_registration(self):
        progress = MagicMock()
        register_progress(progress)
        self.assertTrue(progress.registered)
        unregister_progress(progress)
        self.assertFalse(progress.registered)

    def test_notify_log_output_ignores_other_streams(self):
        progress = MagicMock()
        register_progress(progress)
        try:
            notify_log_output(StringIO())
            progress.reset_position.assert_not_called()
        finally:
            unregister_progress(progress)

    def test_progress_aware_handler_emit(self):
        stream = StringIO()
        handler = ProgressAwareHandler(stream=stream)
        handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
        handler.emit(_record(logging.WARNING))
        self.assertEqual(stream.getvalue(), "WARNING - msg\n")

    def test_exception_hierarchy(self):
        for exc in (
            modcheck.ModcheckSystemError,
            modcheck.ModcheckNotFoundError,
            modcheck.ModcheckAccessError,
            modcheck.ModcheckParseError,
            modcheck.ModcheckWriteError,
            modcheck.ModcheckBusyError,
            modcheck.ModcheckArgumentError,
        ):
            self.assertTrue(issubclass(exc, modcheck.ModcheckError))

    def test_defaults(self):
        self.assertEqual(modcheck.DEFAULT_STATE_FILE, "files.txt")
        self.assertEqual(modcheck.STATE_FILES_KEY, "files")
