# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/version.py
from __future__ import annotations

import os
from importlib import metadata

_FALLBACK = "0.1.0"


def get() -> str:
    """Version of the running controller, recorded on every host it configures."""
    override = os.environ.get("NODEKEEPER_VERSION")
    if override:
        return override
    try:
        return metadata.version("nodekeeper")
    except metadata.PackageNotFoundError:
        return _FALLBACK
