#!/usr/bin/env python3
"""
hadoop
======

Submodule reading the Hadoop cluster configuration and resolving user supplied
paths against the cluster's default filesystem.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"
