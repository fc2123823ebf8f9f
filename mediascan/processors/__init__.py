"""
Media processing components for the Media Scanner

This package contains components for processing pages and assets:
- Media extraction with context capture
- Hierarchical categorization
- Image analysis (dimensions, EXIF, availability)
"""

from mediascan.processors.categorizer import Categorizer, CategoryPattern
from mediascan.processors.analysis import ImageAnalyzer, AnalysisResult
from mediascan.processors.extractor import PageExtractor

__all__ = [
    'Categorizer',
    'CategoryPattern',
    'ImageAnalyzer',
    'AnalysisResult',
    'PageExtractor'
]
