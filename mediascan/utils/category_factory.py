"""
Factory for creating Categorizer instances from configuration

Loads category scoring patterns from the bundled YAML table or a
user-supplied file and builds a Categorizer from them.
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml

from mediascan.core.base import ConfigurationError
from mediascan.processors.categorizer import Categorizer, CategoryPattern

DEFAULT_PATTERNS_FILE = Path(__file__).resolve().parent.parent / 'data' / 'category_patterns.yaml'


def load_category_patterns(path: Optional[Union[str, Path]] = None) -> Dict[str, CategoryPattern]:
    """
    Load category patterns from a YAML file.

    Args:
        path: Pattern file, defaults to the bundled table

    Returns:
        Mapping of category name to CategoryPattern

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    patterns_file = Path(path) if path else DEFAULT_PATTERNS_FILE

    try:
        with open(patterns_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load category patterns from {patterns_file}: {e}")

    categories = data.get('categories')
    if not isinstance(categories, dict) or not categories:
        raise ConfigurationError(f"No categories defined in {patterns_file}")

    try:
        return {name: CategoryPattern.from_dict(spec or {}) for name, spec in categories.items()}
    except TypeError as e:
        raise ConfigurationError(f"Invalid category pattern in {patterns_file}: {e}")


def create_categorizer_from_config(config: Dict[str, Any]) -> Categorizer:
    """
    Create a Categorizer from configuration.

    Args:
        config: Configuration dictionary; reads categories.patterns_file
            and categories.detection_order

    Returns:
        Configured Categorizer instance
    """
    logger = logging.getLogger(__name__)

    category_config = config.get('categories') or {}
    patterns = load_category_patterns(category_config.get('patterns_file'))
    categorizer = Categorizer(patterns, detection_order=category_config.get('detection_order'))

    logger.info(f"Created Categorizer with {len(patterns)} categories, "
                f"order: {categorizer.detection_order}")

    return categorizer
