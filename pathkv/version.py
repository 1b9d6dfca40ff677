"""
Version for pathkv.

`PATHKV_VERSION` in the environment overrides the packaged value (release
pipelines stamp it); otherwise DEFAULT_VERSION is used.
"""

from __future__ import annotations

import os

# Bump this when making a release; use semver (MAJOR.MINOR.PATCH)
DEFAULT_VERSION = "0.1.0"

__version__ = os.environ.get("PATHKV_VERSION", "").strip() or DEFAULT_VERSION
