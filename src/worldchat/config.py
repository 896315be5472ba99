"""Configuration loading utilities for the world chat server.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable WORLDCHAT_CONFIG
3. Fallback to "config/default.yaml"

It also supports optional overrides from environment variables with prefix
``WORLDCHAT__`` (e.g., WORLDCHAT__ROOM__CAPACITY=20).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from .models import RoomPolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "WORLDCHAT__"

DEFAULTS: Dict[str, Any] = {
    "server": {"cors_origins": ["*"], "send_queue_size": 256},
    "room": {
        "capacity": 50,
        "retention_seconds": 24 * 60 * 60,
        "system_author": "System",
        "max_text_chars": 2000,
        "max_image_chars": 2_000_000,
        "max_name_chars": 32,
        "max_reaction_chars": 16,
        "allowed_reactions": None,
        "allow_clear": True,
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix WORLDCHAT__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., WORLDCHAT__ROOM__CAPACITY -> cfg["room"]["capacity"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        leaf = parts[-1]
        # Attempt to parse simple types (bool, int, float)
        if value.lower() in {"true", "false"}:
            sub[leaf] = value.lower() == "true"
        else:
            try:
                if "." in value:
                    sub[leaf] = float(value)
                else:
                    sub[leaf] = int(value)
            except ValueError:
                sub[leaf] = value
    return cfg


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the chat server.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``WORLDCHAT_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Configuration merged over :data:`DEFAULTS` with environment
        overrides applied.
    """
    if path is None:
        path = os.environ.get("WORLDCHAT_CONFIG", "config/default.yaml")

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s, using defaults.", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(cfg, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(DEFAULTS, cfg))


def room_policy(cfg: Dict[str, Any]) -> RoomPolicy:
    """Build the :class:`RoomPolicy` from the ``room`` section."""
    room = cfg.get("room", {}) or {}
    allowed = room.get("allowed_reactions")
    if isinstance(allowed, str):
        allowed = [e.strip() for e in allowed.split(",") if e.strip()]
    capacity = int(room.get("capacity", 50))
    if capacity < 1:
        raise RuntimeError(f"room.capacity must be >= 1, got {capacity}")
    return RoomPolicy(
        capacity=capacity,
        retention_seconds=float(room.get("retention_seconds", 24 * 60 * 60)),
        system_author=str(room.get("system_author") or "System"),
        max_text_chars=int(room.get("max_text_chars", 2000)),
        max_image_chars=int(room.get("max_image_chars", 2_000_000)),
        max_name_chars=int(room.get("max_name_chars", 32)),
        max_reaction_chars=int(room.get("max_reaction_chars", 16)),
        allowed_reactions=frozenset(allowed) if allowed else None,
        allow_clear=bool(room.get("allow_clear", True)),
    )


def configure_logging(cfg: Dict[str, Any]) -> None:
    """Configure root logging from the ``logging`` section."""
    log_cfg = cfg.get("logging", {}) or {}
    level = str(log_cfg.get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=log_cfg.get("format") or DEFAULTS["logging"]["format"],
    )
