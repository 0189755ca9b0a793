"""
Marketplace category suggestions.

Maps the category reported by the recognition step onto a marketplace
category, with confidence raised by keywords found in the item name.
"""

import logging
from typing import Dict, Optional

from item_memory.models import CategoryHint

logger = logging.getLogger(__name__)

CATEGORY_MAPPINGS: Dict[str, dict] = {
    "Electronics": {
        "marketplace_id": 293,
        "path": "Consumer Electronics",
        "keywords": ["phone", "laptop", "tablet", "camera", "headphones"],
    },
    "Clothing": {
        "marketplace_id": 11450,
        "path": "Clothing, Shoes & Accessories",
        "keywords": ["shirt", "pants", "dress", "shoes", "jacket"],
    },
    "Home & Garden": {
        "marketplace_id": 11700,
        "path": "Home & Garden",
        "keywords": ["furniture", "decor", "kitchen", "garden", "tools"],
    },
    "Collectibles": {
        "marketplace_id": 1,
        "path": "Collectibles",
        "keywords": ["vintage", "antique", "rare", "limited", "collectible"],
    },
    "Books": {
        "marketplace_id": 267,
        "path": "Books",
        "keywords": ["book", "novel", "textbook", "magazine", "manual"],
    },
}

UNKNOWN_CATEGORY_CONFIDENCE = 0.5


def suggest_marketplace_category(
    category: Optional[str],
    item_name: str = "",
    mappings: Optional[Dict[str, dict]] = None,
) -> CategoryHint:
    """
    Suggest a marketplace category for a recognized item.

    Args:
        category: Category reported by the recognition step
        item_name: Recognized item name, scanned for category keywords
        mappings: Category table (default: CATEGORY_MAPPINGS)

    Returns:
        CategoryHint with confidence ``min(0.9, 0.6 + 0.1 * matches)`` for
        known categories and 0.5 for unknown ones
    """
    table = mappings if mappings is not None else CATEGORY_MAPPINGS
    category = (category or "").strip()

    mapping = next(
        (value for name, value in table.items() if name.lower() == category.lower()),
        None,
    )
    if mapping is None:
        logger.debug(f"No marketplace mapping for category {category!r}")
        return CategoryHint(
            category=category,
            marketplace_id=None,
            confidence=UNKNOWN_CATEGORY_CONFIDENCE,
            original_category=category or None,
        )

    name = (item_name or "").lower()
    matches = sum(1 for keyword in mapping["keywords"] if keyword in name)

    return CategoryHint(
        category=mapping["path"],
        marketplace_id=mapping["marketplace_id"],
        confidence=round(min(0.9, 0.6 + 0.1 * matches), 2),
        original_category=category,
        keyword_matches=matches,
    )
