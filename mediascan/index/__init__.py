"""
Query index for scanned media: filters, search and usage groups
"""

from mediascan.index.filters import FilterRegistry, MediaFilter
from mediascan.index.builder import IndexBuilder, MediaIndex

__all__ = ['FilterRegistry', 'MediaFilter', 'IndexBuilder', 'MediaIndex']
