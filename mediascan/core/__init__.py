"""
Core components for the Media Scanner

This package contains the core components for the scanner including:
- Base classes, data types and interfaces
- Configuration management
- Logging system
- Bounded work queue and change detection

The scanner orchestrator lives in mediascan.core.orchestrator.
"""

from mediascan.core.base import (
    MediaKind,
    Confidence,
    AnalysisErrorType,
    PageDescriptor,
    CategoryResult,
    MediaItem,
    ScanMetadata,
    UsageGroup,
    PageScanResult,
    ScanReport,
    BaseComponent,
    PageListProvider,
    DocumentFetcher,
    SiteStore,
    ExternalIndex,
    ScannerError,
    ConfigurationError,
    FetchError,
    ParseError,
    AnalysisError,
    IndexSyncError,
    StorageError
)

from mediascan.core.config import (
    ConfigManager,
    ScannerConfig,
    AnalysisConfig,
    IndexConfig,
    SyncConfig,
    StorageConfig,
    LoggingConfig,
    CategoryConfig
)

from mediascan.core.logging import (
    LoggingManager,
    get_logger,
    setup_logging
)

from mediascan.core.queue import BoundedWorkQueue

from mediascan.core.change_detector import (
    select_changed_pages,
    build_scan_metadata,
    merge_scan_metadata
)

__all__ = [
    # Data types and interfaces
    'MediaKind',
    'Confidence',
    'AnalysisErrorType',
    'PageDescriptor',
    'CategoryResult',
    'MediaItem',
    'ScanMetadata',
    'UsageGroup',
    'PageScanResult',
    'ScanReport',
    'BaseComponent',
    'PageListProvider',
    'DocumentFetcher',
    'SiteStore',
    'ExternalIndex',
    'ScannerError',
    'ConfigurationError',
    'FetchError',
    'ParseError',
    'AnalysisError',
    'IndexSyncError',
    'StorageError',

    # Configuration
    'ConfigManager',
    'ScannerConfig',
    'AnalysisConfig',
    'IndexConfig',
    'SyncConfig',
    'StorageConfig',
    'LoggingConfig',
    'CategoryConfig',

    # Logging
    'LoggingManager',
    'get_logger',
    'setup_logging',

    # Scanning primitives
    'BoundedWorkQueue',
    'select_changed_pages',
    'build_scan_metadata',
    'merge_scan_metadata'
]
