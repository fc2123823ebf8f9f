"""
Component Factory for the Media Scanner

Builds a fully wired SiteScanService from configuration.
"""

from typing import Dict, Any, Optional, Union

from mediascan.core.base import ConfigurationError, DocumentFetcher
from mediascan.core.config import ConfigManager
from mediascan.core.logging import get_logger, setup_logging
from mediascan.core.orchestrator import MediaScanner, SiteScanService
from mediascan.fetchers.http import HttpDocumentFetcher
from mediascan.index.builder import IndexBuilder
from mediascan.index.filters import FilterRegistry
from mediascan.processors.analysis import ImageAnalyzer
from mediascan.processors.extractor import PageExtractor
from mediascan.storage.delta_sync import DeltaSynchronizer
from mediascan.storage.external_index import ExternalIndexClient
from mediascan.storage.site_store import JsonSiteStore
from mediascan.utils.category_factory import create_categorizer_from_config


def create_fetcher(scanner_config: Dict[str, Any]) -> DocumentFetcher:
    """
    Create the document fetcher named by scanner.fetcher

    Raises:
        ConfigurationError: For unknown fetcher types
    """
    fetcher_type = scanner_config.get('fetcher', 'http')
    if fetcher_type == 'http':
        return HttpDocumentFetcher(scanner_config)
    if fetcher_type == 'browser':
        from mediascan.fetchers.browser import BrowserDocumentFetcher
        return BrowserDocumentFetcher(scanner_config)
    raise ConfigurationError(f"Unknown fetcher type: {fetcher_type}")


def create_scan_service(config: Union[ConfigManager, Dict[str, Any]],
                        configure_logging: bool = True,
                        fetcher: Optional[DocumentFetcher] = None) -> SiteScanService:
    """
    Create a SiteScanService and register its components.

    Args:
        config: Loaded ConfigManager or configuration dictionary with the
            sections scanner, analysis, index, sync, storage, logging, categories
        configure_logging: Set up the global logger from the logging section
        fetcher: Fetcher to use instead of the configured one

    Returns:
        SiteScanService; call initialize() (or use it as an async context
        manager) before scanning
    """
    if isinstance(config, ConfigManager):
        config = config.to_dict()

    if configure_logging:
        logging_config = config.get('logging') or {}
        setup_logging(
            level=logging_config.get('level', 'INFO'),
            log_file=logging_config.get('file', './logs/mediascan.log'),
            max_size=logging_config.get('max_size', '50MB'),
            backup_count=logging_config.get('backup_count', 5)
        )
    logger = get_logger()

    scanner_config = config.get('scanner') or {}
    analysis_config = dict(config.get('analysis') or {})
    index_config = config.get('index') or {}
    sync_config = config.get('sync') or {}

    document_fetcher = fetcher or create_fetcher(scanner_config)

    categorizer = None
    if scanner_config.get('enable_categorization', True):
        categorizer = create_categorizer_from_config(config)

    analyzer = None
    if scanner_config.get('enable_image_analysis', False):
        analysis_config.setdefault('user_agent', scanner_config.get('user_agent', 'MediaScanner/0.1'))
        analyzer = ImageAnalyzer(analysis_config)

    extractor = PageExtractor(document_fetcher, categorizer=categorizer, analyzer=analyzer)
    scanner = MediaScanner(extractor, max_concurrent=scanner_config.get('max_concurrent', 20))

    store = JsonSiteStore(config.get('storage') or {})

    categories = categorizer.available_categories() if categorizer else []

    def index_builder_factory() -> IndexBuilder:
        return IndexBuilder(
            registry=FilterRegistry(categories),
            batch_size=index_config.get('batch_size'),
            large_dataset_threshold=index_config.get('large_dataset_threshold', 10000)
        )

    index_client = None
    synchronizer = None
    if sync_config.get('enabled'):
        index_client = ExternalIndexClient(sync_config)
        synchronizer = DeltaSynchronizer(index_client, drift_tolerance=sync_config.get('drift_tolerance', 0.1))

    service = SiteScanService(scanner, store, synchronizer=synchronizer,
                              index_builder_factory=index_builder_factory)
    service.register_component('fetcher', document_fetcher)
    service.register_component('store', store)
    if analyzer is not None:
        service.register_component('analyzer', analyzer)
    if index_client is not None:
        service.register_component('index_client', index_client)

    logger.info(
        f"Created scan service: fetcher={type(document_fetcher).__name__}, "
        f"categorization={'on' if categorizer else 'off'}, "
        f"analysis={'on' if analyzer else 'off'}, sync={'on' if synchronizer else 'off'}"
    )
    return service
