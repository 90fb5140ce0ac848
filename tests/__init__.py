# Copyright Red Hat
#
# tests/__init__.py - File modification checker test package
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import time

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

os.environ["TZ"] = "UTC"
time.tzset()


class MockArgs(object):
    debug = None
    verbose = 0
    version = False
    config = None
    root = None
    state_file = None
    output_format = "report"
    pretty = False
    color = "never"
    language = None
    no_save = False
    no_lock = False
    malformed = None
    exit_status = False
    exclude_patterns = None
    file_patterns = None
    relative_paths = False
    follow_symlinks = False
    quiet = True
    json = False


def have_root():
    """Return ``True`` if the test suite is running as the root user,
    and ``False`` otherwise.
    """
    return os.geteuid() == 0 and os.getegid() == 0
