"""
Configuration Manager for Media Scanner

Handles YAML/JSON configuration files and environment variable overrides
with validation of the settings each component needs.
"""

import os
import json
import yaml
import validators
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict
from pathlib import Path

from mediascan.core.base import ConfigurationError


@dataclass
class ScannerConfig:
    """Page scanning configuration"""
    max_concurrent: int = 20
    fetcher: str = "http"
    request_timeout: int = 30
    user_agent: str = "MediaScanner/0.1"
    enable_categorization: bool = True
    enable_image_analysis: bool = False


@dataclass
class AnalysisConfig:
    """Deep image analysis configuration"""
    extract_dimensions: bool = True
    extract_exif: bool = True
    timeout: int = 15
    max_bytes: int = 20 * 1024 * 1024


@dataclass
class IndexConfig:
    """Index builder configuration"""
    batch_size: Optional[int] = None
    large_dataset_threshold: int = 10000


@dataclass
class SyncConfig:
    """External index synchronization configuration"""
    enabled: bool = False
    api_url: str = ""
    api_key_env: str = "MEDIASCAN_INDEX_API_KEY"
    chunk_size: int = 500
    chunk_delay: float = 0.1
    drift_tolerance: float = 0.1
    timeout: int = 30


@dataclass
class StorageConfig:
    """Local site store configuration"""
    base_path: str = "./data/sites"


@dataclass
class LoggingConfig:
    """Logging system configuration"""
    level: str = "INFO"
    file: str = "./logs/mediascan.log"
    max_size: str = "50MB"
    backup_count: int = 5


@dataclass
class CategoryConfig:
    """Categorizer configuration"""
    patterns_file: Optional[str] = None


class ConfigManager:
    """
    Centralized configuration manager with support for YAML/JSON files
    and environment variable overrides.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or "config/mediascan.yaml"
        self._config_data: Dict[str, Any] = {}
        self.scanner_config: Optional[ScannerConfig] = None
        self.analysis_config: Optional[AnalysisConfig] = None
        self.index_config: Optional[IndexConfig] = None
        self.sync_config: Optional[SyncConfig] = None
        self.storage_config: Optional[StorageConfig] = None
        self.logging_config: Optional[LoggingConfig] = None
        self.category_config: Optional[CategoryConfig] = None

    def load_config(self, config_path: Optional[str] = None) -> Dict[str, Any]:
        """Load configuration from file with environment variable override"""
        if config_path:
            self.config_path = config_path

        config_file = Path(self.config_path)

        if not config_file.exists():
            self._config_data = self._get_default_config()
            self._create_default_config_file()
        else:
            try:
                with open(config_file, 'r', encoding='utf-8') as f:
                    if config_file.suffix.lower() == '.json':
                        self._config_data = json.load(f)
                    else:
                        self._config_data = yaml.safe_load(f) or {}
            except (OSError, ValueError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load config from {config_file}: {e}")

        self._apply_env_overrides()
        self._parse_config()

        return self._config_data

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration dictionary"""
        return {
            'scanner': asdict(ScannerConfig()),
            'analysis': asdict(AnalysisConfig()),
            'index': asdict(IndexConfig()),
            'sync': asdict(SyncConfig()),
            'storage': asdict(StorageConfig()),
            'logging': asdict(LoggingConfig()),
            'categories': asdict(CategoryConfig()),
        }

    def _create_default_config_file(self) -> None:
        """Create default configuration file"""
        config_dir = Path(self.config_path).parent
        config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w', encoding='utf-8') as f:
            if Path(self.config_path).suffix.lower() == '.json':
                json.dump(self._config_data, f, indent=2)
            else:
                yaml.dump(self._config_data, f, default_flow_style=False, indent=2)

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides"""
        if os.getenv('MEDIASCAN_MAX_CONCURRENT'):
            try:
                self._config_data.setdefault('scanner', {})['max_concurrent'] = int(os.getenv('MEDIASCAN_MAX_CONCURRENT'))
            except ValueError:
                pass

        if os.getenv('MEDIASCAN_FETCHER'):
            self._config_data.setdefault('scanner', {})['fetcher'] = os.getenv('MEDIASCAN_FETCHER')

        if os.getenv('MEDIASCAN_INDEX_URL'):
            sync = self._config_data.setdefault('sync', {})
            sync['api_url'] = os.getenv('MEDIASCAN_INDEX_URL')
            sync['enabled'] = True

        if os.getenv('MEDIASCAN_STORAGE_PATH'):
            self._config_data.setdefault('storage', {})['base_path'] = os.getenv('MEDIASCAN_STORAGE_PATH')

        if os.getenv('LOG_LEVEL'):
            self._config_data.setdefault('logging', {})['level'] = os.getenv('LOG_LEVEL')

    def _section(self, name: str, config_class):
        data = self._config_data.get(name) or {}
        known = {k: v for k, v in data.items() if k in config_class.__dataclass_fields__}
        return config_class(**known)

    def _parse_config(self) -> None:
        """Parse configuration into dataclass objects"""
        self.scanner_config = self._section('scanner', ScannerConfig)
        self.analysis_config = self._section('analysis', AnalysisConfig)
        self.index_config = self._section('index', IndexConfig)
        self.sync_config = self._section('sync', SyncConfig)
        self.storage_config = self._section('storage', StorageConfig)
        self.logging_config = self._section('logging', LoggingConfig)
        self.category_config = self._section('categories', CategoryConfig)

    def validate_config(self) -> bool:
        """Validate the loaded configuration"""
        if not self.scanner_config:
            raise ConfigurationError("Configuration not loaded")

        if self.scanner_config.max_concurrent < 1:
            raise ConfigurationError(
                f"max_concurrent must be at least 1, got {self.scanner_config.max_concurrent}"
            )

        if self.scanner_config.fetcher not in ('http', 'browser'):
            raise ConfigurationError(f"Unknown fetcher type: {self.scanner_config.fetcher}")

        if self.sync_config.enabled:
            if not self.sync_config.api_url or not validators.url(self.sync_config.api_url):
                raise ConfigurationError(f"Invalid index API URL: {self.sync_config.api_url!r}")

        if self.category_config.patterns_file and not Path(self.category_config.patterns_file).exists():
            raise ConfigurationError(f"Category patterns file not found: {self.category_config.patterns_file}")

        Path(self.storage_config.base_path).mkdir(parents=True, exist_ok=True)

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Return the parsed configuration as plain dictionaries"""
        if not self.scanner_config:
            raise ConfigurationError("Configuration not loaded")

        return {
            'scanner': asdict(self.scanner_config),
            'analysis': asdict(self.analysis_config),
            'index': asdict(self.index_config),
            'sync': asdict(self.sync_config),
            'storage': asdict(self.storage_config),
            'logging': asdict(self.logging_config),
            'categories': asdict(self.category_config),
        }
