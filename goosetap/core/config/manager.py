"""
ConfigManager: cache-backed gameplay configuration access for Goose Tap.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable gameplay values
  (offline earnings cap, energy regeneration, XP rewards, batch ceilings).
- Back configuration with YAML files under the config directory.
- Keep a warm in-memory cache so reads on the hot tap path never touch disk.

Responsibilities
----------------
- Load and deep-merge every YAML file in `Config.CONFIG_DIR`.
- Serve reads from the cache with per-call defaults.
- Allow in-process overrides (operators, tests) without touching YAML.

Non-Responsibilities
--------------------
- Static process settings such as database URLs (see `Config`).
- Catalog data (levels, upgrades, tasks); those are code constants in
  `goosetap.modules.economy.constants`.

Key Design Decisions
--------------------
- YAML is the single source for defaults; overrides live only in memory.
- Every lookup takes a caller default, so a missing YAML file degrades to the
  code defaults instead of failing startup.

Usage
-----
>>> await ConfigManager.initialize()
>>> cap = ConfigManager.get("gameplay.offline.max_hours", 3)
"""

from __future__ import annotations

import asyncio
import copy
import time
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml

from goosetap.core.config.config import Config
from goosetap.core.logging.logger import get_logger

logger = get_logger(__name__)


__all__ = ["ConfigManager"]


_MISSING = object()


class ConfigManager:
    """
    Gameplay configuration with YAML defaults and in-memory overrides.

    Features
    --------
    - Hierarchical config access with dot notation (e.g. `"gameplay.xp.tap"`).
    - Deep-merged YAML composition across multiple files.
    - Runtime overrides via `set()`; `reset()` drops them.
    """

    _cache: Dict[str, Any] = {}
    _defaults: Dict[str, Any] = {}
    _initialized: bool = False
    _init_lock: Optional[asyncio.Lock] = None
    _loaded_files: List[str] = []

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load all YAML config files from the config directory into `_defaults`.

        Files are merged in sorted order so later files win on conflicts.
        Malformed files are logged and skipped.
        """
        config_dir = config_dir or Config.CONFIG_DIR
        cls._defaults = {}
        cls._loaded_files = []

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            cls._cache = {}
            return

        yaml_files = sorted(
            list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
        )

        for yaml_file in yaml_files:
            relative = str(yaml_file.relative_to(config_dir))
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": relative,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                cls._loaded_files.append(relative)
                logger.debug("Loaded YAML config", extra={"file": relative})
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={"file": relative, "root_type": type(data).__name__},
                )

        cls._cache = copy.deepcopy(cls._defaults)

        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": len(cls._loaded_files),
                "total_cache_keys": len(cls._cache),
            },
        )

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    @classmethod
    async def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """Initialize ConfigManager from YAML (idempotent)."""
        if cls._initialized:
            return

        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()

        async with cls._init_lock:
            if cls._initialized:
                return

            start = time.perf_counter()
            cls._load_yaml_configs(config_dir)
            cls._initialized = True

            logger.info(
                "ConfigManager initialization completed",
                extra={
                    "files": cls._loaded_files,
                    "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )

    @classmethod
    def reset(cls) -> None:
        """Drop cache and overrides; next access reloads YAML."""
        cls._cache = {}
        cls._defaults = {}
        cls._loaded_files = []
        cls._initialized = False

    # =========================================================================
    # READS
    # =========================================================================

    @classmethod
    def _resolve(cls, source: Dict[str, Any], key: str) -> Any:
        value: Any = source
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return _MISSING
            value = value[part]
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Parameters
        ----------
        key:
            Dot-notation config path (e.g. `"gameplay.energy.regen_per_second"`).
        default:
            Value to return if the key is not present.

        Examples
        --------
        >>> ConfigManager.get("gameplay.offline.max_hours", 3)
        3
        """
        if not cls._initialized:
            # Lazily bootstrap if we haven't been explicitly initialized.
            logger.debug("ConfigManager accessed before initialization; loading YAML")
            cls._load_yaml_configs()
            cls._initialized = True

        value = cls._resolve(cls._cache, key)
        if value is _MISSING or value is None:
            return default
        return value

    @classmethod
    def get_all_keys(cls) -> List[str]:
        return list(cls._cache.keys())

    # =========================================================================
    # OVERRIDES
    # =========================================================================

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """
        Override a configuration value in memory.

        Overrides are process-local and lost on `reset()` or restart.
        """
        if not cls._initialized:
            cls._load_yaml_configs()
            cls._initialized = True

        parts = key.split(".")
        node: Dict[str, Any] = cls._cache
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child

        old_value = node.get(parts[-1])
        node[parts[-1]] = value

        logger.info(
            "Configuration override applied",
            extra={"config_key": key, "old_value": old_value, "new_value": value},
        )

    @classmethod
    def health_snapshot(cls) -> Dict[str, Any]:
        return {
            "initialized": cls._initialized,
            "files": list(cls._loaded_files),
            "top_level_keys": len(cls._cache),
        }
