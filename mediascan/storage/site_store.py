"""
JSON Site Store Implementation

Keeps each site's media items and scan metadata as JSON files under one
directory per site key.
"""

import json
import os
import re
import shutil
from pathlib import Path
from typing import Dict, Any, List, Optional

import aiofiles

from mediascan.core.base import SiteStore, MediaItem, ScanMetadata, StorageError
from mediascan.core.logging import get_logger

ITEMS_FILE = 'media.json'
METADATA_FILE = 'metadata.json'


class JsonSiteStore(SiteStore):
    """
    Local file system implementation of the SiteStore interface
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.logger = get_logger()
        self.base_path = Path(self.config.get('base_path', './data/sites'))

    async def initialize(self) -> None:
        """Initialize the component"""
        self.logger.info(f"Initializing site store at {self.base_path}")
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._initialized = True

    async def cleanup(self) -> None:
        """Clean up resources"""
        self._initialized = False

    def site_dir(self, site_key: str) -> Path:
        return self.base_path / self._create_safe_dirname(site_key)

    async def load(self, site_key: str) -> List[MediaItem]:
        """
        Load the stored items of a site

        Returns:
            Stored items, or an empty list when the site was never saved

        Raises:
            StorageError: If the stored file is unreadable
        """
        data = await self._read_json(self.site_dir(site_key) / ITEMS_FILE)
        if data is None:
            return []
        try:
            return [MediaItem.from_dict(entry) for entry in data.get('items', [])]
        except (TypeError, KeyError, ValueError) as e:
            raise StorageError(f"Invalid item data for {site_key}: {e}")

    async def save(self, site_key: str, items: List[MediaItem]) -> None:
        await self._write_json(self.site_dir(site_key) / ITEMS_FILE, {
            'site_key': site_key,
            'items': [item.to_dict() for item in items],
        })
        self.logger.debug(f"Saved {len(items)} items for {site_key}")

    async def load_metadata(self, site_key: str) -> Optional[ScanMetadata]:
        data = await self._read_json(self.site_dir(site_key) / METADATA_FILE)
        if data is None:
            return None
        try:
            return ScanMetadata.from_dict(data.get('metadata', {}))
        except (TypeError, ValueError) as e:
            raise StorageError(f"Invalid scan metadata for {site_key}: {e}")

    async def save_metadata(self, site_key: str, metadata: ScanMetadata) -> None:
        await self._write_json(self.site_dir(site_key) / METADATA_FILE, {
            'site_key': site_key,
            'metadata': metadata.to_dict(),
        })

    async def delete_site(self, site_key: str) -> None:
        site_dir = self.site_dir(site_key)
        if site_dir.exists():
            shutil.rmtree(site_dir)
            self.logger.info(f"Deleted stored data for {site_key}")

    async def list_sites(self) -> List[str]:
        """Site keys with stored data, sorted"""
        if not self.base_path.exists():
            return []

        sites = []
        for site_dir in sorted(self.base_path.iterdir()):
            if not site_dir.is_dir():
                continue
            for name in (ITEMS_FILE, METADATA_FILE):
                data = await self._read_json(site_dir / name)
                if data and data.get('site_key'):
                    sites.append(data['site_key'])
                    break
        return sorted(sites)

    async def _read_json(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                content = await f.read()
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt store file {path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}")

    async def _write_json(self, path: Path, data: Dict[str, Any]) -> None:
        tmp_path = path.with_suffix(path.suffix + '.tmp')
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False))
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}")

    def _create_safe_dirname(self, site_key: str) -> str:
        """Create a directory name from a site key"""
        safe = re.sub(r'[^\w.\-]', '_', site_key.strip().lower())
        safe = safe.strip('._')
        if not safe:
            raise StorageError(f"Invalid site key: {site_key!r}")
        return safe[:100]
