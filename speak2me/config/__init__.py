"""Simple YAML configuration loader for speak2me."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..audio.pcm import PcmProfile
from ..audio.tools import ToolSet, default_tools

logger = logging.getLogger(__name__)


def build_default_config(platform: Optional[str] = None) -> Dict[str, Any]:
    """Built-in configuration used when no YAML file overrides a key."""
    profile = PcmProfile()
    return {
        "audio": {
            "sample_rate": profile.sample_rate,
            "channels": profile.channels,
            "chunk_size": 4096,
        },
        "capture": {
            "startup_grace_seconds": 0.3,
            "stop_timeout_seconds": 1.0,
            "event_queue_size": 1024,
        },
        "transcription": {
            "enabled": True,
            "close_timeout_seconds": 1.0,
            "max_pending_chunks": 256,
        },
        "google_cloud": {
            "credentials_path": None,
            "language": "en-US",
            "enable_automatic_punctuation": True,
            "model": "latest_long",
        },
        "playback": {
            "encode_timeout_seconds": 30.0,
            "stop_timeout_seconds": 1.0,
        },
        "tools": default_tools(profile, platform),
        "storage": {
            "data_directory": "data",
        },
        "logging": {
            "level": "INFO",
            "file_path": "data/logs/speak2me.log",
            "console_output": True,
        },
    }


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class Speak2MeConfig:
    """speak2me configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, the built-in
                        defaults are used and relative paths resolve against
                        the current directory.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is not None and not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load the YAML file (if any) on top of the defaults."""
        config = build_default_config()
        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
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
            raise ValueError("Configuration file is empty")
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        _deep_merge(config, {key: value for key, value in loaded.items() if key != 'tools'})
        # Default tool arguments embed the sample rate and channel count,
        # so they are rebuilt from the merged audio section before overriding
        profile = PcmProfile(sample_rate=int(config['audio']['sample_rate']),
                             channels=int(config['audio']['channels']))
        config['tools'] = default_tools(profile)
        if 'tools' in loaded:
            _deep_merge(config, {'tools': loaded['tools']})
        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (('google_cloud', 'credentials_path'),
                             ('storage', 'data_directory'),
                             ('logging', 'file_path')):
            value = config.get(section, {}).get(key)
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'google_cloud.language').

        Args:
            key_path: Dot-separated key path (e.g., 'google_cloud.credentials_path')
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

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'google_cloud.language')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_google_credentials_path(self) -> Optional[str]:
        """Get Google credentials path, or None when transcription has no credentials."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            return None

        creds_file = Path(creds_path)
        if not creds_file.exists():
            logger.warning(f"Google credentials file not found: {creds_path}")
            return None

        return str(creds_file.absolute())

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_pcm_profile(self) -> PcmProfile:
        """Get the raw PCM profile shared by recorder, encoder and backend."""
        return PcmProfile(
            sample_rate=int(self.get('audio.sample_rate', 44100)),
            channels=int(self.get('audio.channels', 1)),
        )

    def get_tools(self) -> ToolSet:
        """Get the configured recorder, encoder and player invocations."""
        return ToolSet.from_config(copy.deepcopy(self.get('tools', {})))
