"""
Pricing helpers: price insight aggregation and marketplace category hints.
"""

from item_memory.pricing.aggregator import (
    CATEGORY_MULTIPLIERS,
    PriceInsightAggregator,
    category_multiplier,
    parse_price,
)
from item_memory.pricing.categories import CATEGORY_MAPPINGS, suggest_marketplace_category

__all__ = [
    "PriceInsightAggregator",
    "parse_price",
    "category_multiplier",
    "CATEGORY_MULTIPLIERS",
    "suggest_marketplace_category",
    "CATEGORY_MAPPINGS",
]
