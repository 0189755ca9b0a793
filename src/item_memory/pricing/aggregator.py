"""
Price insight aggregation.

Derives a suggested price range from the metadata of similar items, adjusted
by a per-category multiplier. Prices arrive as loosely formatted strings
("$10-25", "$15.99", "1,200") written by the marketplace lookup or the AI
recognition step.
"""

import logging
import math
import re
from typing import Dict, Iterable, List, Optional, Union

from item_memory.errors import ParsePriceFailed
from item_memory.models import PriceInsight, PriceRange, SimilarityResult

logger = logging.getLogger(__name__)

PRICE_KEYS = ("price", "suggested_price", "price_hint")

CATEGORY_MULTIPLIERS: Dict[str, float] = {
    "Electronics": 1.2,
    "Collectibles": 1.5,
    "Clothing": 0.8,
    "Books": 0.6,
    "Home & Garden": 1.0,
}

# Confidence rises 0.1 per priced neighbor, capped
BASE_CONFIDENCE = 0.5
CONFIDENCE_STEP = 0.1
MAX_CONFIDENCE = 0.9

NO_PRICE_SIGNAL = "no price signal"

_NUMBER = re.compile(r"\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?")
_RANGE = re.compile(r"\d\s*(?:-|–|—|to)\s*[^\d\s]?\s*\d", re.IGNORECASE)


def parse_price(value: Union[str, int, float, None]) -> float:
    """
    Turn a price value into a positive number.

    Numbers pass through. Strings are parsed tolerantly: a range such as
    ``"$10-25"`` or ``"10 to 25"`` gives its midpoint, ``"$15.99"`` gives
    15.99 and thousands separators are accepted.

    Raises:
        ParsePriceFailed: If no positive price can be extracted
    """
    if isinstance(value, bool) or value is None:
        raise ParsePriceFailed(f"Not a price: {value!r}")

    if isinstance(value, (int, float)):
        price = float(value)
    elif isinstance(value, str):
        price = _parse_price_string(value)
    else:
        raise ParsePriceFailed(f"Unsupported price type: {type(value).__name__}")

    if not math.isfinite(price) or price <= 0:
        raise ParsePriceFailed(f"Price must be positive, got {value!r}")

    return price


def _parse_price_string(text: str) -> float:
    text = text.strip()
    if text.startswith("-"):
        raise ParsePriceFailed(f"Price must be positive, got {text!r}")

    numbers = [float(match.replace(",", "")) for match in _NUMBER.findall(text)]
    if not numbers:
        raise ParsePriceFailed(f"No number in price string {text!r}")

    if len(numbers) >= 2 and _RANGE.search(text):
        return (numbers[0] + numbers[1]) / 2

    return numbers[0]


def category_multiplier(
    category: Optional[str], multipliers: Optional[Dict[str, float]] = None
) -> Optional[float]:
    """Case-insensitive multiplier lookup. None for unknown categories."""
    if not category:
        return None

    table = multipliers if multipliers is not None else CATEGORY_MULTIPLIERS
    wanted = category.strip().lower()
    for name, multiplier in table.items():
        if name.lower() == wanted:
            return multiplier
    return None


class PriceInsightAggregator:
    """
    Builds a PriceInsight from similar items.

    Example:
        >>> aggregator = PriceInsightAggregator()
        >>> insight = aggregator.aggregate(neighbors, category="Electronics")
        >>> insight.suggested_min, insight.suggested_max
    """

    def __init__(self, multipliers: Optional[Dict[str, float]] = None):
        self.multipliers = dict(multipliers if multipliers is not None else CATEGORY_MULTIPLIERS)
        self.aggregations = 0
        self.skipped_prices = 0

    def extract_prices(self, neighbors: Iterable[SimilarityResult]) -> List[float]:
        """First parsable price of each neighbor; unparsable entries are skipped."""
        prices = []
        for neighbor in neighbors:
            for key in PRICE_KEYS:
                raw = neighbor.metadata.get(key)
                if raw is None:
                    continue
                try:
                    prices.append(parse_price(raw))
                    break
                except ParsePriceFailed as e:
                    self.skipped_prices += 1
                    logger.debug(f"Skipping price of neighbor {neighbor.id}: {e}")
        return prices

    def aggregate(
        self, neighbors: Iterable[SimilarityResult], category: Optional[str] = None
    ) -> PriceInsight:
        """
        Aggregate neighbor prices into a suggested range.

        Never raises: any unexpected failure yields a zero-confidence insight
        marked unavailable.

        Args:
            neighbors: Similar items whose metadata may carry a price
            category: Category of the item being priced

        Returns:
            PriceInsight with ``suggested_range=None`` when no price was found
        """
        self.aggregations += 1
        try:
            return self._aggregate(list(neighbors), category)
        except Exception as e:
            logger.warning(f"Price insight aggregation failed: {e}")
            return PriceInsight.unavailable()

    def _aggregate(self, neighbors: List[SimilarityResult], category: Optional[str]) -> PriceInsight:
        prices = self.extract_prices(neighbors)
        if not prices:
            logger.debug(f"No price signal in {len(neighbors)} neighbors")
            return PriceInsight(suggested_range=None, confidence=0.0, reasoning=[NO_PRICE_SIGNAL])

        multiplier = category_multiplier(category, self.multipliers)
        m = multiplier if multiplier is not None else 1.0

        # Rounding first keeps float noise (1.1 * 30 = 33.000000000000004) out of floor/ceil
        suggested = PriceRange(
            min=math.floor(round(0.9 * min(prices) * m, 6)),
            max=math.ceil(round(1.1 * max(prices) * m, 6)),
            avg=round(sum(prices) / len(prices) * m, 2),
        )

        reasoning = [f"Based on {len(prices)} similar items"]
        if multiplier is not None:
            reasoning.append(f"{category} category adjustment applied (x{multiplier})")

        confidence = round(min(MAX_CONFIDENCE, BASE_CONFIDENCE + CONFIDENCE_STEP * len(prices)), 2)

        logger.debug(
            f"Price insight: {suggested.min}-{suggested.max} (avg {suggested.avg}), "
            f"confidence={confidence}, prices={len(prices)}"
        )
        return PriceInsight(
            suggested_range=suggested,
            confidence=confidence,
            reasoning=reasoning,
            similar_prices=prices,
        )
