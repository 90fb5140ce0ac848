# Copyright Red Hat
#
# modcheck/__init__.py - File modification checker package initialisation
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Modcheck top-level package.
"""
from ._modcheck import *  # noqa: F401, F403
from ._modcheck import __all__  # noqa: F401

__version__ = "0.1.0"
