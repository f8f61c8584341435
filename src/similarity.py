"""Content similarity matrix and trending detection"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
from tqdm.auto import tqdm

from behavior import BehaviorStore
from catalog import Catalog
from config import (
    CATEGORY_WEIGHT,
    MAX_RATING,
    PRICE_WEIGHT,
    RATING_WEIGHT,
    TRENDING_SIZE,
    TRENDING_WINDOW_MS,
)
from utils import aggregate_product_weights, top_by_count

logger = logging.getLogger(__name__)


class SimilarityIndex:
    """Pairwise product similarity over the whole catalog, computed once.

    similarity = 0.4 * same category
               + 0.3 * (1 - |price_a - price_b| / max(price_a, price_b))
               + 0.3 * (1 - |rating_a - rating_b| / 5)

    clamped to [0, 1]. Two free products count as identically priced.
    """

    def __init__(self, catalog: Catalog, show_progress: bool = False):
        self.catalog = catalog
        self.ids = [p.id for p in catalog]
        self.positions: Dict[str, int] = {pid: i for i, pid in enumerate(self.ids)}
        self.matrix = self._build(show_progress)

    def _build(self, show_progress: bool) -> np.ndarray:
        n = len(self.ids)
        categories = np.array([p.category for p in self.catalog], dtype=object)
        prices = np.array([p.price for p in self.catalog], dtype=np.float64)
        ratings = np.array([p.rating for p in self.catalog], dtype=np.float64)
        matrix = np.zeros((n, n), dtype=np.float64)

        for i in tqdm(range(n), desc="Similarity", unit="product", disable=not show_progress):
            same_category = (categories == categories[i]).astype(np.float64)

            price_diff = np.abs(prices - prices[i])
            max_price = np.maximum(prices, prices[i])
            safe_max = np.where(max_price > 0, max_price, 1.0)
            price_sim = np.where(max_price > 0, 1 - price_diff / safe_max, 1.0)

            rating_sim = 1 - np.abs(ratings - ratings[i]) / MAX_RATING

            row = (
                CATEGORY_WEIGHT * same_category
                + PRICE_WEIGHT * price_sim
                + RATING_WEIGHT * rating_sim
            )
            matrix[i] = np.clip(row, 0.0, 1.0)

        # A product is never similar to itself
        np.fill_diagonal(matrix, -np.inf)
        logger.info(f"Built similarity index for {n} products")
        return matrix

    def similarity(self, a_id: str, b_id: str) -> Optional[float]:
        i, j = self.positions.get(a_id), self.positions.get(b_id)
        if i is None or j is None or i == j:
            return None
        return float(self.matrix[i, j])

    def row(self, product_id: str) -> Dict[str, float]:
        i = self.positions.get(product_id)
        if i is None:
            return {}
        return {pid: float(self.matrix[i, j]) for j, pid in enumerate(self.ids) if j != i}

    def most_similar(self, product_id: str, limit: int) -> List[Tuple[str, float]]:
        """Top `limit` other products, highest similarity first (ties keep catalog order)."""
        i = self.positions.get(product_id)
        if i is None or limit <= 0:
            return []
        order = np.argsort(-self.matrix[i], kind="stable")
        return [(self.ids[j], float(self.matrix[i, j])) for j in order if j != i][:limit]


class TrendingDetector:
    """Top products by weighted recent behavior (purchase 3, cart 2, view 1)."""

    def __init__(self, behaviors: BehaviorStore):
        self.behaviors = behaviors
        self.products: List[str] = []
        self.refresh()

    def refresh(self) -> List[str]:
        recent = self.behaviors.recent(TRENDING_WINDOW_MS)
        scores = aggregate_product_weights(recent)
        self.products = [pid for pid, _ in top_by_count(scores, TRENDING_SIZE)]
        return self.products
