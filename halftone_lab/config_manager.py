"""Configuration persistence manager for the halftone lab renderer.

This module handles loading and saving of render configuration to/from JSON files.
"""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Optional, Tuple

from halftone_lab.models import CONFIG_FILE, EXPORT_RESOLUTIONS, RenderConfig

logger = logging.getLogger(__name__)


class ConfigManager:
    """Handles loading and saving of render configuration."""

    def __init__(self, config_path: Path = CONFIG_FILE):
        """Initialize config manager.

        Args:
            config_path: Path to configuration file (defaults to ~/.halftone_lab_config.json)
        """
        self.config_path = Path(config_path)

    def load(self) -> RenderConfig:
        """Load configuration from file, returning defaults if not found.

        Returns:
            RenderConfig with loaded or default values
        """
        config = RenderConfig()

        try:
            if self.config_path.exists():
                with open(self.config_path, "r") as f:
                    data = json.load(f)
                config.preview_max_width = int(
                    data.get("preview_max_width", config.preview_max_width)
                )
                config.use_worker = bool(data.get("use_worker", config.use_worker))
                config.worker_count = max(1, int(data.get("worker_count", config.worker_count)))
                resolution = data.get("export_resolution", config.export_resolution)
                if resolution in EXPORT_RESOLUTIONS:
                    config.export_resolution = resolution
                config.svg_min_element_size = float(
                    data.get("svg_min_element_size", config.svg_min_element_size)
                )
                config.background_color = data.get("background_color", config.background_color)
                logger.info("Loaded configuration from %s", self.config_path)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Could not load config file: %s", e)
            config = RenderConfig()

        return config

    def save(self, config: RenderConfig) -> Tuple[bool, Optional[str]]:
        """Save configuration to file.

        Args:
            config: RenderConfig to save

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w") as f:
                json.dump(asdict(config), f, indent=2)
            logger.info("Saved configuration to %s", self.config_path)
            return True, None
        except OSError as e:
            logger.error("Could not save config file: %s", e)
            return False, str(e)
