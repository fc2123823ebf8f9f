"""
Media Categorization System

This module assigns media items to content categories (screenshots, logos,
people photos, products, broken media) using weighted keyword scoring over
the asset URL, its structural context, alt text and page position, plus
dimension constraints and category-specific detectors.
"""

import re
import logging
from typing import Dict, List, Optional, Any, Iterable
from collections import Counter
from dataclasses import dataclass, field

from mediascan.core.base import CategoryResult, Confidence, MediaItem

DEFAULT_DETECTION_ORDER = ['screenshots', 'logos', 'people-photos', 'products', '404-media']
FALLBACK_CATEGORY = 'other'
FALLBACK_SOURCE = 'fallback'
MATCH_SOURCE = 'hierarchical-detection'
ERROR_CATEGORY = '404-media'

FILENAME_WEIGHT = 3
CONTEXT_WEIGHT = 2.5
ALT_WEIGHT = 2
POSITION_WEIGHT = 2
NEGATIVE_FILENAME_WEIGHT = 2
NEGATIVE_TEXT_WEIGHT = 1.5
DIMENSION_WEIGHT = 1.5
PEOPLE_WEIGHT = 2
TECHNICAL_WEIGHT = 3
CLUSTER_WEIGHT = 2

DISPLAY_NAMES = {
    'screenshots': 'Screenshots',
    'logos': 'Logos',
    'people-photos': 'People',
    'products': 'Products',
    '404-media': '404 Errors',
    'other': 'Other',
}

DESCRIPTIONS = {
    'screenshots': 'App interfaces, software demos, and UI previews',
    'logos': 'Brand logos, company symbols, and identity elements',
    'people-photos': 'Team photos, headshots, and professional portraits',
    'products': 'Product photos, catalog images, and merchandise',
    '404-media': 'Images that return 404 errors or other HTTP errors',
    'other': "Images that don't fit into other categories",
}

HIGH_PRIORITY_CATEGORIES = {'logos', 'screenshots'}
ACCESSIBILITY_CRITICAL_CATEGORIES = {'people-photos', 'logos', 'products', 'screenshots'}

NAME_PATTERNS = [
    re.compile(r'^[a-z]+ [a-z]+$'),
    re.compile(r'^(mr|ms|dr|prof)\. [a-z]+'),
    re.compile(r'[a-z]+, (ceo|cto|manager|director|founder|president)'),
    re.compile(r'(ceo|cto|manager|director|founder|president) [a-z]+'),
]

PROFESSIONAL_TERMS = [
    'ceo', 'cto', 'manager', 'director', 'founder', 'president',
    'team', 'staff', 'employee', 'worker', 'professional',
]

PEOPLE_ALT_INDICATORS = [
    'person', 'people', 'man', 'woman', 'child', 'baby',
    'portrait', 'headshot', 'photo', 'picture', 'image',
]

TEAM_CONTEXT_INDICATORS = [
    'team', 'staff', 'employees', 'workers', 'professionals',
    'leadership', 'management', 'founders', 'co-founders',
]

PEOPLE_CONTEXT_INDICATORS = [
    'people', 'person', 'individual', 'member', 'colleague',
    'partner', 'associate', 'representative',
]

PROFESSIONAL_CONTEXT = [
    'about us', 'our team', 'meet the team', 'leadership team',
    'company', 'organization', 'business', 'corporate',
]

TECHNICAL_TERMS = [
    'screenshot', 'interface', 'ui', 'ux', 'design', 'mockup',
    'wireframe', 'prototype', 'demo', 'preview', 'example',
    'application', 'app', 'software', 'program', 'system',
    'dashboard', 'admin', 'panel', 'control', 'settings',
    'configuration', 'setup', 'installation', 'deployment',
]

DEVELOPMENT_TERMS = [
    'development', 'coding', 'programming', 'frontend', 'backend',
    'api', 'database', 'server', 'framework', 'library', 'tool', 'utility',
]

CLUSTER_TERMS = {
    'screenshots': ['screenshot', 'interface'],
    'logos': ['logo', 'brand'],
    'people-photos': ['team', 'staff'],
    'products': ['product', 'item'],
}


@dataclass
class DimensionConstraints:
    """Aspect-ratio and pixel-count constraints for a category"""
    min_aspect_ratio: Optional[float] = None
    max_aspect_ratio: Optional[float] = None
    min_pixels: Optional[int] = None
    max_pixels: Optional[int] = None


@dataclass
class CategoryPattern:
    """Scoring configuration for one category"""
    keywords: Dict[str, List[str]]
    negative_indicators: Dict[str, List[str]] = field(default_factory=dict)
    dimensions: Optional[DimensionConstraints] = None
    confidence: Dict[str, float] = field(default_factory=lambda: {'high': 8, 'medium': 5, 'low': 2})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CategoryPattern':
        dimensions = data.get('dimensions')
        return cls(
            keywords=_normalize_lists(data.get('keywords') or {}),
            negative_indicators=_normalize_lists(data.get('negative_indicators') or {}),
            dimensions=DimensionConstraints(**dimensions) if dimensions else None,
            confidence=dict(data.get('confidence') or {'high': 8, 'medium': 5, 'low': 2}),
        )


def _normalize_lists(groups: Dict[str, Iterable[str]]) -> Dict[str, List[str]]:
    """Lower-case keyword lists and drop duplicates, keeping order"""
    normalized = {}
    for group, keywords in groups.items():
        seen = []
        for keyword in keywords or []:
            lower_keyword = str(keyword).lower().strip()
            if lower_keyword and lower_keyword not in seen:
                seen.append(lower_keyword)
        normalized[group] = seen
    return normalized


def _mentions(text: str, terms: Iterable[str]) -> bool:
    """True if any term occurs in text"""
    return any(term in text for term in terms)


def _count_hits(text: str, keywords: Iterable[str]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


class Categorizer:
    """
    Hierarchical media categorizer.

    Categories are scored one at a time in detection order. The first
    category reaching high confidence wins; otherwise the first reaching
    medium confidence with a positive score. Specificity beats the
    highest raw score.
    """

    def __init__(self, patterns: Dict[str, CategoryPattern],
                 detection_order: Optional[List[str]] = None,
                 fallback_category: str = FALLBACK_CATEGORY):
        """
        Initialize the categorizer.

        Args:
            patterns: Mapping of category name to scoring pattern
            detection_order: Order in which categories are tried
            fallback_category: Category reported when nothing matches
        """
        self.patterns = patterns
        self.detection_order = list(detection_order or DEFAULT_DETECTION_ORDER)
        self.fallback_category = fallback_category
        self.logger = logging.getLogger(__name__)

        unknown = [name for name in self.detection_order if name not in self.patterns]
        if unknown:
            self.logger.warning(f"No patterns for categories in detection order: {unknown}")

    def detect_category(self, url: str, context: str = '', alt_text: Optional[str] = '',
                        position: str = '', width: Optional[int] = 0,
                        height: Optional[int] = 0) -> CategoryResult:
        """
        Detect the category of a media asset.

        Args:
            url: Asset URL (filename keywords are matched against all of it)
            context: Structural context captured at extraction time
            alt_text: Alternative text, None treated as empty
            position: Page position hint (header, footer, ...)
            width: Measured width in pixels, 0 when unknown
            height: Measured height in pixels, 0 when unknown

        Returns:
            CategoryResult with category, confidence tier, score and source
        """
        if not self.patterns:
            return CategoryResult(self.fallback_category, Confidence.NONE.value, 0, FALLBACK_SOURCE)

        filename = (url or '').lower()
        context_lower = (context or '').lower()
        alt_lower = (alt_text or '').lower()
        position_lower = (position or '').lower()

        for name in self.detection_order:
            pattern = self.patterns.get(name)
            if pattern is None:
                continue

            score = self.calculate_category_score(
                name, pattern, filename, context_lower, alt_lower, position_lower,
                width or 0, height or 0
            )
            confidence = self.get_confidence_level(score, pattern.confidence)

            if confidence == Confidence.HIGH.value:
                return CategoryResult(name, confidence, score, MATCH_SOURCE)
            if confidence == Confidence.MEDIUM.value and score > 0:
                return CategoryResult(name, confidence, score, MATCH_SOURCE)

        return CategoryResult(self.fallback_category, Confidence.LOW.value, 0, FALLBACK_SOURCE)

    def categorize_item(self, item: MediaItem, position: str = '') -> CategoryResult:
        """Detect and store the category of an extracted item"""
        result = self.detect_category(
            item.url, item.context, item.alt_text, position,
            item.width or 0, item.height or 0
        )
        item.apply_category(result)
        return result

    @staticmethod
    def get_confidence_level(score: float, thresholds: Dict[str, float]) -> str:
        if score >= thresholds.get('high', float('inf')):
            return Confidence.HIGH.value
        if score >= thresholds.get('medium', float('inf')):
            return Confidence.MEDIUM.value
        if score >= thresholds.get('low', float('inf')):
            return Confidence.LOW.value
        return Confidence.NONE.value

    def calculate_category_score(self, name: str, pattern: CategoryPattern, filename: str,
                                 context: str, alt_text: str, position: str,
                                 width: int = 0, height: int = 0) -> float:
        """
        Score one category. All text arguments must be lower-cased.
        """
        keywords = pattern.keywords
        score = 0.0
        score += _count_hits(filename, keywords.get('filename', [])) * FILENAME_WEIGHT
        score += _count_hits(context, keywords.get('context', [])) * CONTEXT_WEIGHT
        score += _count_hits(alt_text, keywords.get('alt', [])) * ALT_WEIGHT
        score += _count_hits(position, keywords.get('position', [])) * POSITION_WEIGHT

        negatives = pattern.negative_indicators
        score -= _count_hits(filename, negatives.get('filename', [])) * NEGATIVE_FILENAME_WEIGHT
        score -= _count_hits(context, negatives.get('context', [])) * NEGATIVE_TEXT_WEIGHT
        score -= _count_hits(alt_text, negatives.get('alt', [])) * NEGATIVE_TEXT_WEIGHT

        if width > 0 and height > 0:
            score += self._dimension_score(name, pattern, width, height) * DIMENSION_WEIGHT

        if name == 'people-photos':
            people = self._people_in_alt_text(alt_text) + self._people_in_context(context)
            score += people * PEOPLE_WEIGHT

        if name == 'screenshots':
            score += self._technical_content(context, alt_text) * TECHNICAL_WEIGHT

        score += self._context_clustering(name, context, alt_text) * CLUSTER_WEIGHT

        return max(0.0, score)

    def _dimension_score(self, name: str, pattern: CategoryPattern, width: int, height: int) -> float:
        aspect_ratio = width / height
        pixels = width * height
        constraints = pattern.dimensions

        if constraints is None:
            return self._orientation_score(name, aspect_ratio)

        score = 0
        satisfied = True
        if constraints.min_aspect_ratio and aspect_ratio < constraints.min_aspect_ratio:
            score -= 2
            satisfied = False
        if constraints.max_aspect_ratio and aspect_ratio > constraints.max_aspect_ratio:
            score -= 2
            satisfied = False
        if constraints.min_pixels and pixels < constraints.min_pixels:
            score -= 2
            satisfied = False
        if constraints.max_pixels and pixels > constraints.max_pixels:
            score -= 2
            satisfied = False
        if satisfied:
            score += 2
        return score

    @staticmethod
    def _orientation_score(name: str, aspect_ratio: float) -> float:
        """Built-in orientation preferences for categories without constraints"""
        is_square = abs(aspect_ratio - 1) < 0.1
        is_portrait = aspect_ratio < 0.8
        is_landscape = aspect_ratio > 1.2

        if name == 'logos':
            if is_square or is_landscape:
                return 2
            if is_portrait:
                return -1
        elif name == 'screenshots':
            if is_landscape:
                return 2
            if is_square:
                return 1
            if is_portrait:
                return -2
        elif name == 'people-photos':
            if is_portrait or is_square:
                return 2
        elif name == 'products':
            if is_square or is_landscape:
                return 1
        return 0

    @staticmethod
    def _people_in_alt_text(alt_text: str) -> int:
        if not alt_text:
            return 0

        score = 0
        if any(p.search(alt_text) for p in NAME_PATTERNS):
            score += 3
        if _mentions(alt_text, PROFESSIONAL_TERMS):
            score += 2
        if _mentions(alt_text, PEOPLE_ALT_INDICATORS):
            score += 1
        return min(score, 5)

    @staticmethod
    def _people_in_context(context: str) -> int:
        if not context:
            return 0

        score = 0
        if _mentions(context, TEAM_CONTEXT_INDICATORS):
            score += 3
        if _mentions(context, PEOPLE_CONTEXT_INDICATORS):
            score += 2
        if _mentions(context, PROFESSIONAL_CONTEXT):
            score += 2
        return min(score, 5)

    @staticmethod
    def _technical_content(context: str, alt_text: str) -> int:
        if not context and not alt_text:
            return 0

        text = f"{context} {alt_text}"
        score = 0
        if _mentions(text, TECHNICAL_TERMS):
            score += 3
        if _mentions(text, DEVELOPMENT_TERMS):
            score += 2
        return min(score, 5)

    @staticmethod
    def _context_clustering(name: str, context: str, alt_text: str) -> int:
        if not context and not alt_text:
            return 0

        text = f"{context} {alt_text}"
        score = 0
        if _mentions(text, CLUSTER_TERMS.get(name, [])):
            score += 2
        return min(score, 3)

    def available_categories(self) -> List[str]:
        """Category names known to this categorizer, fallback included"""
        names = [name for name in self.detection_order if name in self.patterns]
        names.extend(name for name in self.patterns if name not in names)
        if self.fallback_category not in names:
            names.append(self.fallback_category)
        return names

    @staticmethod
    def category_display_name(name: str) -> str:
        return DISPLAY_NAMES.get(name, name)

    @staticmethod
    def category_description(name: str) -> str:
        return DESCRIPTIONS.get(name, 'Unknown category')

    @staticmethod
    def is_high_priority(name: str) -> bool:
        return name in HIGH_PRIORITY_CATEGORIES

    @staticmethod
    def is_accessibility_critical(name: str) -> bool:
        return name in ACCESSIBILITY_CRITICAL_CATEGORIES

    def get_category_stats(self, items: Iterable[MediaItem]) -> Dict[str, Any]:
        """
        Summarize category assignments.

        Args:
            items: Categorized media items

        Returns:
            Counts per category and per confidence tier
        """
        categories = Counter()
        confidences = Counter()
        total = 0
        for item in items:
            total += 1
            categories[item.category or self.fallback_category] += 1
            confidences[item.category_confidence or Confidence.NONE.value] += 1

        return {
            'total_items': total,
            'category_counts': dict(categories),
            'confidence_counts': dict(confidences),
        }
