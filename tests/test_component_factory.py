"""
Tests for the component factory
"""

import pytest
import yaml

from mediascan.core.base import ConfigurationError
from mediascan.core.config import ConfigManager
from mediascan.fetchers.http import HttpDocumentFetcher
from mediascan.index.filters import category_filter_name
from mediascan.processors.analysis import ImageAnalyzer
from mediascan.storage.delta_sync import DeltaSynchronizer
from mediascan.storage.external_index import ExternalIndexClient
from mediascan.storage.site_store import JsonSiteStore
from mediascan.utils.component_factory import create_fetcher, create_scan_service


@pytest.fixture
def config(tmp_path):
    return {
        'scanner': {'max_concurrent': 7, 'fetcher': 'http', 'request_timeout': 5},
        'storage': {'base_path': str(tmp_path / 'sites')},
        'logging': {'level': 'DEBUG', 'file': str(tmp_path / 'logs' / 'factory.log')},
    }


class TestCreateFetcher:
    """Test cases for create_fetcher"""

    def test_http_is_default(self):
        assert isinstance(create_fetcher({}), HttpDocumentFetcher)

    def test_browser(self):
        from mediascan.fetchers.browser import BrowserDocumentFetcher

        fetcher = create_fetcher({'fetcher': 'browser', 'request_timeout': 12})

        assert isinstance(fetcher, BrowserDocumentFetcher)
        assert fetcher.timeout == 12

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            create_fetcher({'fetcher': 'carrier-pigeon'})


class TestCreateScanService:
    """Test cases for create_scan_service"""

    def test_default_wiring(self, config, tmp_path):
        service = create_scan_service(config)

        assert service.scanner.max_concurrent == 7
        assert service.scanner.extractor.categorizer is not None
        assert service.scanner.extractor.analyzer is None
        assert isinstance(service.store, JsonSiteStore)
        assert service.synchronizer is None
        assert set(service.components) == {'fetcher', 'store'}
        assert (tmp_path / 'logs' / 'factory.log').exists()

    def test_index_builders_know_categories(self, config):
        service = create_scan_service(config, configure_logging=False)

        builder = service.builder_for('example.com')

        assert category_filter_name('logos') in builder.registry.names()
        assert service.builder_for('example.org') is not builder

    def test_categorization_disabled(self, config):
        config['scanner']['enable_categorization'] = False

        service = create_scan_service(config, configure_logging=False)

        assert service.scanner.extractor.categorizer is None

    def test_image_analysis_enabled(self, config):
        config['scanner']['enable_image_analysis'] = True
        config['scanner']['user_agent'] = 'FactoryTest/1.0'

        service = create_scan_service(config, configure_logging=False)

        analyzer = service.scanner.extractor.analyzer
        assert isinstance(analyzer, ImageAnalyzer)
        assert analyzer.user_agent == 'FactoryTest/1.0'
        assert service.components['analyzer'] is analyzer

    def test_sync_enabled(self, config):
        config['sync'] = {'enabled': True, 'api_url': 'https://index.example.com', 'drift_tolerance': 0.25}

        service = create_scan_service(config, configure_logging=False)

        assert isinstance(service.synchronizer, DeltaSynchronizer)
        assert service.synchronizer.drift_tolerance == 0.25
        assert isinstance(service.components['index_client'], ExternalIndexClient)
        assert service.synchronizer.index_client is service.components['index_client']

    def test_sync_enabled_without_url(self, config):
        config['sync'] = {'enabled': True}

        with pytest.raises(ConfigurationError):
            create_scan_service(config, configure_logging=False)

    def test_explicit_fetcher(self, config):
        fetcher = HttpDocumentFetcher()

        service = create_scan_service(config, configure_logging=False, fetcher=fetcher)

        assert service.components['fetcher'] is fetcher
        assert service.scanner.extractor.fetcher is fetcher

    def test_from_config_manager(self, config, tmp_path):
        path = tmp_path / 'mediascan.yaml'
        path.write_text(yaml.dump(config), encoding='utf-8')
        manager = ConfigManager(str(path))
        manager.load_config()

        service = create_scan_service(manager, configure_logging=False)

        assert service.scanner.max_concurrent == 7
        assert service.store.base_path == tmp_path / 'sites'

    @pytest.mark.asyncio
    async def test_lifecycle(self, config):
        service = create_scan_service(config, configure_logging=False)

        async with service:
            assert all(component.is_initialized() for component in service.components.values())

        assert not any(component.is_initialized() for component in service.components.values())

