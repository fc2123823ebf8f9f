"""
Index Builder

Maintains the query structures over a site's media items: one hash list
per filter, a token search index and usage groups. Builds and merges run
in batches and yield to the event loop between batches.
"""

import asyncio
import hashlib
import re
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Set

from mediascan.core.base import MediaItem, UsageGroup
from mediascan.core.logging import get_logger
from mediascan.index.filters import FilterRegistry, MediaFilter
from mediascan.utils.url import folder_of, grouping_key

DEFAULT_BATCH_SIZE = 1000
LARGE_DATASET_BATCH_SIZE = 500
LARGE_DATASET_THRESHOLD = 10000

SEARCH_FIELDS = ('name', 'alt_text', 'source_document', 'context', 'url')
COLON_FIELDS = {
    'doc': 'source_document',
    'name': 'name',
    'alt': 'alt_text',
    'url': 'url',
}

_TOKEN_SPLIT = re.compile(r'[^0-9a-z]+')
_COLON_QUERY = re.compile(r'^([a-zA-Z]+):(.*)$')

ProgressCallback = Callable[[int], None]


def tokenize(value: Optional[str]) -> Set[str]:
    if not value:
        return set()
    return {token for token in _TOKEN_SPLIT.split(value.lower()) if token}


def item_tokens(item: MediaItem) -> Set[str]:
    tokens: Set[str] = set()
    for name in SEARCH_FIELDS:
        tokens |= tokenize(getattr(item, name))
    return tokens


@dataclass
class MediaIndex:
    """Queryable view over a set of media items"""
    registry: FilterRegistry
    items_by_hash: Dict[str, MediaItem] = field(default_factory=dict)
    filter_arrays: Dict[str, List[str]] = field(default_factory=dict)
    search_index: Dict[str, List[str]] = field(default_factory=dict)
    usage_groups: Dict[str, UsageGroup] = field(default_factory=dict)

    def __post_init__(self):
        for name in self.registry.names():
            self.filter_arrays.setdefault(name, [])

    def __len__(self) -> int:
        return len(self.items_by_hash)

    def __contains__(self, content_hash: str) -> bool:
        return content_hash in self.items_by_hash

    @property
    def items(self) -> List[MediaItem]:
        return list(self.items_by_hash.values())

    def get(self, content_hash: str) -> Optional[MediaItem]:
        return self.items_by_hash.get(content_hash)

    def documents(self) -> List[str]:
        """Distinct source documents, in first-seen order"""
        return list(dict.fromkeys(item.source_document for item in self.items_by_hash.values()))

    def filter_count(self, name) -> int:
        key = name.value if isinstance(name, MediaFilter) else name
        if key not in self.filter_arrays:
            raise ValueError(f"Unknown filter: {key}")
        return len(self.filter_arrays[key])

    def filter_counts(self) -> Dict[str, int]:
        return {name: len(hashes) for name, hashes in self.filter_arrays.items()}

    def filter_items(self, name, document: Optional[str] = None) -> List[MediaItem]:
        """
        Items satisfying a filter, optionally restricted to one page

        Args:
            name: Filter name or MediaFilter member
            document: Source document to scope the result to

        Returns:
            Matching items in index order
        """
        key = name.value if isinstance(name, MediaFilter) else name
        if key not in self.filter_arrays:
            raise ValueError(f"Unknown filter: {key}")
        items = [self.items_by_hash[h] for h in self.filter_arrays[key]]
        if document is not None:
            items = [item for item in items if item.source_document == document]
        return items

    def search(self, query: str) -> List[MediaItem]:
        """
        Search items.

        Plain queries match tokens of name, alt text, source document,
        context and URL; every query token must match. 'field:value'
        queries (doc, name, alt, url, folder) match that field by
        substring, and queries containing '/' search page folders.
        """
        if not query or not query.strip():
            return self.items

        match = _COLON_QUERY.match(query.strip())
        if match and match.group(1).lower() in COLON_FIELDS:
            attribute = COLON_FIELDS[match.group(1).lower()]
            value = match.group(2).strip().lower()
            return [item for item in self.items_by_hash.values()
                    if getattr(item, attribute) and value in getattr(item, attribute).lower()]

        if match and match.group(1).lower() == 'folder':
            return self._search_folder(match.group(2))
        if '/' in query and not match:
            return self._search_folder(query)

        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        candidates: Optional[Set[str]] = None
        for query_token in query_tokens:
            hashes: Set[str] = set()
            for token, token_hashes in self.search_index.items():
                if query_token in token:
                    hashes.update(token_hashes)
            candidates = hashes if candidates is None else candidates & hashes
            if not candidates:
                return []

        return [item for h, item in self.items_by_hash.items() if h in candidates]

    def _search_folder(self, value: str) -> List[MediaItem]:
        value = value.strip().lower()
        results = []
        for item in self.items_by_hash.values():
            if not item.source_document:
                continue
            folder = folder_of(item.source_document).rstrip('/').lower()
            if value in ('', '/'):
                if not folder:
                    results.append(item)
            elif value.rstrip('/') in folder:
                results.append(item)
        return results

    def usage_group(self, item: MediaItem) -> Optional[UsageGroup]:
        return self.usage_groups.get(grouping_key(item.url))

    def usage_count(self, item: MediaItem) -> int:
        group = self.usage_group(item)
        return group.count if group else 0

    def display_items(self) -> List[MediaItem]:
        """One item per usage group, with usage_count set to the group size"""
        displayed = []
        for group in self.usage_groups.values():
            first = self.items_by_hash[group.hashes[0]]
            displayed.append(replace(first, usage_count=group.count))
        return displayed


class IndexBuilder:
    """
    Builds and incrementally maintains MediaIndex instances.

    Calls against one index must be serialized by the caller.
    """

    def __init__(self, registry: Optional[FilterRegistry] = None,
                 batch_size: Optional[int] = None,
                 large_dataset_threshold: int = LARGE_DATASET_THRESHOLD):
        self.logger = get_logger()
        self.registry = registry or FilterRegistry()
        self.batch_size = batch_size
        self.large_dataset_threshold = large_dataset_threshold
        self._cache: Dict[str, MediaIndex] = {}

    def batch_size_for(self, total: int) -> int:
        if self.batch_size:
            return self.batch_size
        if total > self.large_dataset_threshold:
            return LARGE_DATASET_BATCH_SIZE
        return DEFAULT_BATCH_SIZE

    @staticmethod
    def fingerprint(items: Iterable[MediaItem]) -> str:
        """Digest of the item identities and the fields that drive filters and search"""
        digest = hashlib.blake2b(digest_size=16)
        for item in items:
            fields = (
                item.content_hash, item.name, item.context, item.category,
                item.category_confidence, item.orientation, item.has_error, item.error_type,
                item.width, item.height, item.last_seen_at,
            )
            digest.update(("|".join(str(value) for value in fields) + "\n").encode('utf-8'))
        return digest.hexdigest()

    def invalidate(self) -> None:
        """Drop every cached index"""
        self._cache.clear()

    async def build(self, items: List[MediaItem],
                    on_progress: Optional[ProgressCallback] = None) -> MediaIndex:
        """
        Build an index from scratch

        Args:
            items: Media items; duplicates by content hash are indexed once
            on_progress: Called with a percentage after each batch

        Returns:
            New MediaIndex (or the cached one for identical input)
        """
        key = self.fingerprint(items)
        cached = self._cache.get(key)
        if cached is not None:
            self.logger.debug(f"Index cache hit for {len(items)} items")
            if on_progress:
                on_progress(100)
            return cached

        index = MediaIndex(registry=self.registry)
        await self._add_batched(index, items, on_progress)

        self._cache[key] = index
        self.logger.info(f"Built index with {len(index)} items and {len(index.usage_groups)} usage groups")
        return index

    async def merge_new(self, new_items: List[MediaItem], index: MediaIndex,
                        on_progress: Optional[ProgressCallback] = None) -> MediaIndex:
        """
        Add items to an existing index. Items already present (same
        content hash) are skipped.
        """
        self._forget(index)
        added = await self._add_batched(index, new_items, on_progress)
        self.logger.info(f"Merged {added} new items into index ({len(index)} total)")
        return index

    def remove(self, hashes: Iterable[str], index: MediaIndex) -> MediaIndex:
        """Evict items from every filter list, the search index and usage groups"""
        self._forget(index)
        removed = {h: index.items_by_hash.pop(h) for h in set(hashes) if h in index.items_by_hash}
        if not removed:
            return index

        for name, filter_hashes in index.filter_arrays.items():
            index.filter_arrays[name] = [h for h in filter_hashes if h not in removed]

        for content_hash, item in removed.items():
            for token in item_tokens(item):
                token_hashes = index.search_index.get(token)
                if token_hashes is None:
                    continue
                if content_hash in token_hashes:
                    token_hashes.remove(content_hash)
                if not token_hashes:
                    del index.search_index[token]

            key = grouping_key(item.url)
            group = index.usage_groups.get(key)
            if group is None:
                continue
            group.hashes = [h for h in group.hashes if h != content_hash]
            if not group.hashes:
                del index.usage_groups[key]
            else:
                group.documents = {index.items_by_hash[h].source_document for h in group.hashes}

        self.logger.info(f"Removed {len(removed)} items from index ({len(index)} remaining)")
        return index

    def _forget(self, index: MediaIndex) -> None:
        for key in [k for k, cached in self._cache.items() if cached is index]:
            del self._cache[key]

    async def _add_batched(self, index: MediaIndex, items: List[MediaItem],
                           on_progress: Optional[ProgressCallback]) -> int:
        total = len(items)
        if total == 0:
            if on_progress:
                on_progress(100)
            return 0

        batch_size = self.batch_size_for(total)
        added = 0
        for start in range(0, total, batch_size):
            for item in items[start:start + batch_size]:
                if self._add_item(index, item):
                    added += 1
            await asyncio.sleep(0)
            if on_progress:
                processed = min(start + batch_size, total)
                on_progress(int(processed * 100 / total))
        return added

    def _add_item(self, index: MediaIndex, item: MediaItem) -> bool:
        content_hash = item.content_hash
        if content_hash in index.items_by_hash:
            return False

        index.items_by_hash[content_hash] = item

        for name in self.registry.evaluate(item):
            index.filter_arrays.setdefault(name, []).append(content_hash)

        for token in item_tokens(item):
            index.search_index.setdefault(token, []).append(content_hash)

        key = grouping_key(item.url)
        group = index.usage_groups.get(key)
        if group is None:
            group = UsageGroup(key=key)
            index.usage_groups[key] = group
        group.hashes.append(content_hash)
        group.documents.add(item.source_document)
        return True
