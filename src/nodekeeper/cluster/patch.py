# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/cluster/patch.py
"""
JSON Patch (RFC 6902) documents for annotations and labels.

An "add" overwrites an existing value. A "remove" of a key that is not
present fails the whole document, so nothing is partially applied.
"""

from __future__ import annotations

import json
from typing import Iterable, Mapping

from nodekeeper.errors import InputError

ANNOTATIONS = "annotations"
LABELS = "labels"


def escape_key(key: str) -> str:
    # RFC 6901: "~" must be escaped before "/" so "~1" in a key survives
    return key.replace("~", "~0").replace("/", "~1")


def metadata_path(key: str, field: str = ANNOTATIONS) -> str:
    return f"/metadata/{field}/{escape_key(key)}"


def _build(op: str, items: Mapping[str, str], field: str) -> str:
    if not items:
        raise InputError(f"{field} to {op} cannot be empty")
    patches = []
    for key in sorted(items):
        entry = {"op": op, "path": metadata_path(key, field)}
        if op != "remove":
            entry["value"] = items[key]
        patches.append(entry)
    return json.dumps(patches)


def build_add_patch(mapping: Mapping[str, str], field: str = ANNOTATIONS) -> str:
    return _build("add", mapping, field)


def build_remove_patch(keys: Iterable[str], field: str = ANNOTATIONS) -> str:
    return _build("remove", {k: "" for k in keys}, field)
