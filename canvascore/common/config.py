"""Configuration file loading and management"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from canvascore.common.types import Modifiers


@dataclass
class SyncConfig:
    """Sync transport timing and retry settings"""
    debounce_ms: int = 150
    ack_timeout_ms: int = 2000
    max_retries: int = 3
    backoff_base_ms: int = 100
    heartbeat_enabled: bool = True
    heartbeat_interval_ms: int = 1000


@dataclass
class DragConfig:
    """Drag gesture thresholds"""
    positioning_threshold_px: float = 3.0
    internal_threshold_px: float = 5.0
    external_threshold_px: float = 10.0
    watchdog_ms: int = 3000
    positioning_modifier: str = "shift"


@dataclass
class ZoneConfig:
    """Drop zone candidate and scoring settings"""
    min_width: float = 50.0
    min_height: float = 50.0
    frame_interval_ms: int = 16
    accept_threshold: float = 0.3
    auto_apply_threshold: float = 0.7
    flow_layout_boost: float = 1.2
    multi_child_bonus: float = 0.1
    insertion_band_px: float = 16.0
    directional_ratio: float = 0.25
    directional_min_px: float = 10.0
    directional_max_px: float = 40.0
    momentum_threshold: float = 800.0  # pixels per second
    momentum_boost: float = 1.15
    boundary_factor: float = 0.5


@dataclass
class MarkerConfig:
    """Internal marker classes that never reach the host"""
    node_markers: list[str] = field(default_factory=lambda: [
        "bv-ghost",
        "bv-indicator",
        "bv-internal",
        "ghost-element",
        "drop-indicator",
    ])
    state_markers: list[str] = field(default_factory=lambda: [
        "bv-dragging",
        "bv-highlight",
        "bv-selected",
    ])
    dragging_marker: str = "bv-dragging"  # added to the dragged node; must be a state marker
    palette_markers: list[str] = field(default_factory=lambda: [
        "component-palette",
        "palette-component",
        "bottom-sheet",
    ])


@dataclass
class CanvasConfig:
    """Canvas tree settings"""
    root_id: str = "canvas-root"
    non_content_tags: list[str] = field(default_factory=lambda: ["style", "script", "template"])
    void_tags: list[str] = field(default_factory=lambda: [
        "img", "input", "br", "hr", "meta", "link", "source", "area", "wbr",
    ])


@dataclass
class StoreConfig:
    """Durable store settings"""
    path: Optional[str] = None
    pending_key: str = "canvas_unsynced_snapshot"


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Config:
    """Complete application configuration"""
    sync: SyncConfig = field(default_factory=SyncConfig)
    drag: DragConfig = field(default_factory=DragConfig)
    zones: ZoneConfig = field(default_factory=ZoneConfig)
    markers: MarkerConfig = field(default_factory=MarkerConfig)
    canvas: CanvasConfig = field(default_factory=CanvasConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigLoader:
    """Loads and parses configuration from YAML files"""

    DEFAULT_CONFIG_PATHS = [
        "config.yml",
        "~/.config/canvascore/config.yml",
        "/etc/canvascore/config.yml",
    ]

    @staticmethod
    def configFile_find() -> Optional[Path]:
        """
        Find configuration file in standard locations

        Returns:
            Path to config file, or None if not found
        """
        for config_path in ConfigLoader.DEFAULT_CONFIG_PATHS:
            path = Path(config_path).expanduser().resolve()
            if path.exists() and path.is_file():
                return path
        return None

    @staticmethod
    def yaml_load(file_path: Path) -> Dict[str, Any]:
        """
        Load YAML configuration file

        Args:
            file_path: Path to YAML file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If file does not exist
            yaml.YAMLError: If file is not valid YAML
        """
        with open(file_path, "r") as f:
            data = yaml.safe_load(f)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {file_path} must contain a YAML dictionary")

        return data

    @staticmethod
    def section_get(data: Dict[str, Any], name: str) -> Dict[str, Any]:
        """Return one config section, rejecting non-mapping values"""
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Config section '{name}' must be a mapping")
        return section

    @staticmethod
    def config_parse(data: Dict[str, Any]) -> Config:
        """
        Parse configuration dictionary into Config object

        Every key is optional; missing keys keep dataclass defaults.

        Args:
            data: Raw configuration dictionary

        Returns:
            Parsed and validated Config object

        Raises:
            ValueError: If a section is malformed or a value is out of range
        """
        sync_data = ConfigLoader.section_get(data, "sync")
        drag_data = ConfigLoader.section_get(data, "drag")
        zones_data = ConfigLoader.section_get(data, "zones")
        markers_data = ConfigLoader.section_get(data, "markers")
        canvas_data = ConfigLoader.section_get(data, "canvas")
        store_data = ConfigLoader.section_get(data, "store")
        logging_data = ConfigLoader.section_get(data, "logging")

        config = Config(
            sync=ConfigLoader._dataclass_fill(SyncConfig(), sync_data, "sync"),
            drag=ConfigLoader._dataclass_fill(DragConfig(), drag_data, "drag"),
            zones=ConfigLoader._dataclass_fill(ZoneConfig(), zones_data, "zones"),
            markers=ConfigLoader._dataclass_fill(MarkerConfig(), markers_data, "markers"),
            canvas=ConfigLoader._dataclass_fill(CanvasConfig(), canvas_data, "canvas"),
            store=ConfigLoader._dataclass_fill(StoreConfig(), store_data, "store"),
            logging=ConfigLoader._dataclass_fill(LoggingConfig(), logging_data, "logging"),
        )
        ConfigLoader.config_validate(config)
        return config

    @staticmethod
    def _dataclass_fill(target: Any, values: Dict[str, Any], section: str) -> Any:
        """Copy known keys from ``values`` onto ``target``; unknown keys are errors"""
        for key, value in values.items():
            if not hasattr(target, key):
                raise ValueError(f"Unknown config key '{section}.{key}'")
            setattr(target, key, value)
        return target

    @staticmethod
    def config_validate(config: Config) -> None:
        """
        Validate cross-field constraints

        Args:
            config: Parsed configuration

        Raises:
            ValueError: On the first violated constraint
        """
        sync = config.sync
        for name in ("debounce_ms", "ack_timeout_ms", "backoff_base_ms", "heartbeat_interval_ms"):
            if getattr(sync, name) <= 0:
                raise ValueError(f"sync.{name} must be positive")
        if sync.max_retries < 0:
            raise ValueError("sync.max_retries must not be negative")

        drag = config.drag
        if drag.watchdog_ms <= 0:
            raise ValueError("drag.watchdog_ms must be positive")
        for name in ("positioning_threshold_px", "internal_threshold_px", "external_threshold_px"):
            if getattr(drag, name) < 0:
                raise ValueError(f"drag.{name} must not be negative")
        Modifiers.name_parse(drag.positioning_modifier)

        zones = config.zones
        for name in ("accept_threshold", "auto_apply_threshold"):
            value = getattr(zones, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"zones.{name} must be within [0, 1]")
        if zones.auto_apply_threshold < zones.accept_threshold:
            raise ValueError("zones.auto_apply_threshold must be >= zones.accept_threshold")
        if zones.frame_interval_ms <= 0:
            raise ValueError("zones.frame_interval_ms must be positive")
        if zones.directional_min_px > zones.directional_max_px:
            raise ValueError("zones.directional_min_px must be <= zones.directional_max_px")
        if zones.min_width < 0 or zones.min_height < 0:
            raise ValueError("zones.min_width and zones.min_height must not be negative")

        markers = config.markers
        if markers.dragging_marker not in markers.state_markers:
            raise ValueError("markers.dragging_marker must be listed in markers.state_markers")

        if not config.store.pending_key:
            raise ValueError("store.pending_key must not be empty")

    @staticmethod
    def config_load(file_path: Optional[Path] = None) -> Config:
        """
        Load configuration from file

        Args:
            file_path: Optional path to config file. If None, searches standard
                locations and falls back to built-in defaults.

        Returns:
            Parsed Config object

        Raises:
            FileNotFoundError: If an explicit config file does not exist
            ValueError: If config file is invalid
        """
        if file_path is None:
            file_path = ConfigLoader.configFile_find()
            if file_path is None:
                return ConfigLoader.config_parse({})

        data = ConfigLoader.yaml_load(file_path)
        return ConfigLoader.config_parse(data)

    @staticmethod
    def configWithOverrides_load(
        file_path: Optional[Path] = None,
        **overrides: Any
    ) -> Config:
        """
        Load configuration and apply command-line overrides

        Args:
            file_path: Optional path to config file
            **overrides: Key-value pairs to override config values

        Returns:
            Config object with overrides applied

        Example:
            config = ConfigLoader.configWithOverrides_load(
                log_level="DEBUG",
                store_path="/tmp/canvas-store.json",
            )
        """
        config = ConfigLoader.config_load(file_path)

        if overrides.get("log_level") is not None:
            config.logging.level = overrides["log_level"]
        if overrides.get("log_file") is not None:
            config.logging.file = overrides["log_file"]
        if overrides.get("store_path") is not None:
            config.store.path = overrides["store_path"]
        if overrides.get("root_id") is not None:
            config.canvas.root_id = overrides["root_id"]

        return config
