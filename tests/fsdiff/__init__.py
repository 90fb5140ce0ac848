# Copyright Red Hat
#
# tests/fsdiff/__init__.py - Modification check test package
#
# This file is part of the modcheck project.
#
# SPDX-License-Identifier: Apache-2.0
