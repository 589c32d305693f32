#!/usr/bin/env python3
"""
common
======

Shared building blocks: logging, the error taxonomy, HTTP request handling,
authentication handlers, Kerberos login and the delegation token codec.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"
