# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/config/loader.py
from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from nodekeeper.errors import InputError

from .models import NodekeeperConfig

log = logging.getLogger("nodekeeper")

SECRETS_ENV = "NODEKEEPER_SECRETS_FILE"
SECRETS_FILENAME = "secrets.yaml"


def merge_secrets(config: Dict[str, Any], secrets: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay *secrets* on *config* and return a new dict; neither input
    is modified. Empty secret values (None, "") never replace a setting.
    """
    merged = copy.deepcopy(config)
    for key, value in secrets.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_secrets(current, value)
        elif value not in (None, ""):
            merged[key] = copy.deepcopy(value)
    return merged


def find_secrets_file(config_path: Path) -> Optional[Path]:
    """$NODEKEEPER_SECRETS_FILE if set, else secrets.yaml beside the config."""
    env = os.environ.get(SECRETS_ENV)
    if env:
        p = Path(env).expanduser()
        if p.is_file():
            return p
        log.warning("[config] %s=%s does not exist, skipping", SECRETS_ENV, env)
        return None

    p = config_path.parent / SECRETS_FILENAME
    return p if p.is_file() else None


def read_yaml(path: Path) -> Dict[str, Any]:
    """Parse *path* after ${ENV_VAR} expansion. The document must be a mapping."""
    try:
        raw = path.read_text()
    except OSError as exc:
        raise InputError(f"unable to read {path}: {exc}") from exc
    try:
        data = yaml.safe_load(os.path.expandvars(raw))
    except yaml.YAMLError as exc:
        raise InputError(f"{path} is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InputError(f"{path} must hold a mapping, got {type(data).__name__}")
    return data


def _anchor(value: Any, base: Path) -> Any:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        return value  # left for validation to reject
    p = Path(value).expanduser()
    return str(p if p.is_absolute() else base / p)


def _resolve_paths(data: Dict[str, Any], base: Path) -> None:
    # local paths are relative to the config file, not the working directory
    ssh = data.get("ssh")
    if isinstance(ssh, dict) and "private_key_path" in ssh:
        ssh["private_key_path"] = _anchor(ssh["private_key_path"], base)

    configuration = data.get("configuration")
    if isinstance(configuration, dict):
        for item in configuration.get("payload") or []:
            if isinstance(item, dict) and "source" in item:
                item["source"] = _anchor(item["source"], base)


def load_config(path: str | Path, *, require_key: bool = False) -> NodekeeperConfig:
    """
    Load and validate a nodekeeper YAML config.

    The SSH key path, or anything else sensitive, can live in a secrets.yaml
    that mirrors the config's structure; it is overlaid before validation.
    ${ENV_VAR} placeholders are expanded in both files.

    require_key: commands that dial hosts need ssh.private_key_path; a
    missing one raises InputError here rather than at first connect.
    """
    path = Path(path)
    data = read_yaml(path)

    secrets_path = find_secrets_file(path)
    if secrets_path:
        log.debug("[config] merging secrets from %s", secrets_path)
        data = merge_secrets(data, read_yaml(secrets_path))

    _resolve_paths(data, path.parent.resolve())
    cfg = NodekeeperConfig.model_validate(data)

    if require_key and cfg.ssh.private_key_path is None:
        raise InputError(
            f"ssh.private_key_path must be set in {path.name} or {SECRETS_FILENAME}"
        )
    return cfg
