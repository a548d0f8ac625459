"""Simple YAML configuration loader for podrec."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    'audio': {
        'sample_rate': 44100,
        'channels': 1,
        'frames_per_buffer': 1024,
        'device_id': None,
        'input_gain': 1.0,
    },
    'encoder': {
        'container': 'webm',
        'codec': 'libopus',
        'bit_rate': 128000,
        'timeslice_seconds': 1.0,
    },
    'conversion': {
        'mp3_bit_rate': 128000,
    },
    'autosave': {
        'enabled': True,
        'interval_seconds': 300,
    },
    'meter': {
        'fft_size': 256,
        'smoothing': 0.3,
        'refresh_hz': 60,
        'floor_db': -60.0,
        'clip_threshold_db': -3.0,
        'peak_decay': 0.95,
        'peak_decay_interval_seconds': 0.1,
    },
    'storage': {
        'privileged': True,
        'desktop_directory': '~/Desktop',
        'downloads_directory': '~/Downloads',
    },
    'recording': {
        'title': '',
    },
    'logging': {
        'level': 'INFO',
        'file_path': 'logs/podrec.log',
        'console_output': True,
    },
}

_PATH_KEYS = ('storage.desktop_directory', 'storage.downloads_directory', 'logging.file_path')


class RecorderConfig:
    """podrec configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults are
                        used and relative paths resolve against the working directory.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is not None and not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load YAML configuration and merge it over the defaults."""
        config = copy.deepcopy(DEFAULT_CONFIG)
        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self._resolve_paths(config, Path.cwd())
            return config

        logger.info(f"Loading configuration from: {self.config_file}")
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}")

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        _deep_merge(config, loaded)
        self._resolve_paths(config, self.config_file.parent)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any], base_dir: Path) -> None:
        """Expand ``~`` and resolve relative paths against ``base_dir``."""
        for key_path in _PATH_KEYS:
            section, key = key_path.split('.')
            value = config.get(section, {}).get(key)
            if not value:
                continue
            value = os.path.expanduser(str(value))
            if not os.path.isabs(value):
                value = str(base_dir / value)
            config[section][key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'audio.sample_rate').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return default if value is None else value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'recording.title')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        # Set the final value
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
