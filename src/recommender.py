"""Context-aware product recommendations blended from several strategies.

Results are truncated to the requested limit but not deduplicated across
strategies: a product that qualifies twice may appear twice.
"""

import logging
import math
from collections import defaultdict
from typing import Any, Dict, List, Optional, Union

from behavior import BehaviorStore, UserProfileIndex
from catalog import Catalog
from config import (
    FREQUENTLY_BOUGHT_SCORE,
    TOP_PREFERRED_CATEGORIES,
    complementary_categories,
    strategy_confidence,
)
from models import (
    Action,
    Recommendation,
    RecommendationContext,
    RecommendationSet,
    UserBehavior,
    UserProfile,
)
from similarity import SimilarityIndex, TrendingDetector
from utils import rank_score, top_by_count

logger = logging.getLogger(__name__)


def _recommendation(product, score: float, algorithm: str, reason: str) -> Recommendation:
    return Recommendation(
        product=product,
        score=score,
        algorithm=algorithm,
        reason=reason,
        confidence=strategy_confidence[algorithm],
    )


class RecommendationEngine:
    def __init__(
        self,
        catalog: Catalog,
        behaviors: BehaviorStore,
        profiles: UserProfileIndex,
        similarity: SimilarityIndex,
        trending: TrendingDetector,
    ):
        self.catalog = catalog
        self.behaviors = behaviors
        self.profiles = profiles
        self.similarity = similarity
        self.trending = trending

    def get_recommendations(
        self,
        context: Union[RecommendationContext, Dict[str, Any]],
        user_id: Optional[str] = None,
        limit: int = 8,
    ) -> RecommendationSet:
        if not isinstance(context, RecommendationContext):
            context = RecommendationContext.model_validate(context)
        limit = max(limit, 0)
        profile = self.profiles.get(user_id)

        if context.type == "homepage":
            return self._homepage(profile, limit)
        if context.type == "product" and context.product_id:
            return self._product_page(context.product_id, profile, limit)
        if context.type == "cart" and context.cart_items is not None:
            return self._cart(context.cart_items, limit)
        if context.type == "category" and context.category_id:
            return self._category(context.category_id, limit)
        if context.type == "search" and context.search_query:
            return self._search(context.search_query, limit)

        if context.type in ("product", "cart", "category", "search"):
            logger.warning(f"Missing context field for '{context.type}' recommendations, using fallback")
        return self._fallback(limit)

    def track_user_behavior(
        self, action: Action, context: Dict[str, Any], user_id: Optional[str] = None
    ) -> UserBehavior:
        behavior = self.behaviors.track_user_behavior(action, context, user_id)
        self.trending.refresh()
        return behavior

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        return self.profiles.get(user_id)

    # Context handlers

    def _homepage(self, profile: Optional[UserProfile], limit: int) -> RecommendationSet:
        recs: List[Recommendation] = []
        if profile:
            recs.extend(self.personalized(profile, limit / 2))

        recs.extend(self.trending_products(limit - len(recs)))

        if len(recs) < limit:
            recs.extend(self.popular(limit - len(recs)))

        return RecommendationSet(
            recommendations=recs[:limit],
            title="Recommended for You" if profile else "Trending Now",
            subtitle="Curated based on your preferences and current trends",
            algorithm="hybrid_homepage",
        )

    def _product_page(
        self, product_id: str, profile: Optional[UserProfile], limit: int
    ) -> RecommendationSet:
        product = self.catalog.get(product_id)
        if product is None:
            return self._fallback(limit)

        recs = self.similar_products(product_id, limit // 2)
        if profile:
            recs.extend(self.collaborative(product_id, limit // 2))

        if len(recs) < limit:
            recs.extend(self.category_based(product.category, limit - len(recs)))

        return RecommendationSet(
            recommendations=recs[:limit],
            title="You might also like",
            subtitle="Based on this product and your preferences",
            algorithm="product_similarity",
        )

    def _cart(self, cart_items: List[str], limit: int) -> RecommendationSet:
        recs = self.frequently_bought_together(cart_items, limit / 2)
        recs.extend(self.complementary_products(cart_items, limit / 2))

        return RecommendationSet(
            recommendations=recs[:limit],
            title="Complete your look",
            subtitle="Items that go well with your cart",
            algorithm="cart_based",
        )

    def _category(self, category: str, limit: int) -> RecommendationSet:
        ranked = [p for p in self.catalog.by_popularity() if p.category == category][:limit]
        recs = [
            _recommendation(p, rank_score(i, len(ranked)), "category_popular", f"Popular in {category}")
            for i, p in enumerate(ranked)
        ]
        return RecommendationSet(
            recommendations=recs,
            title=f"Popular in {category[:1].upper()}{category[1:]}",
            subtitle="Top-rated products in this category",
            algorithm="category_based",
        )

    def _search(self, query: str, limit: int) -> RecommendationSet:
        results = self.catalog.search(query)
        recs = [
            _recommendation(p, rank_score(i, len(results)), "search_relevance", f'Matches "{query}"')
            for i, p in enumerate(results[:limit])
        ]
        return RecommendationSet(
            recommendations=recs,
            title=f'Results for "{query}"',
            subtitle=f"{len(results)} products found",
            algorithm="search_based",
        )

    def _fallback(self, limit: int) -> RecommendationSet:
        return RecommendationSet(
            recommendations=self.popular(limit),
            title="Popular Products",
            subtitle="Customer favorites",
            algorithm="fallback",
        )

    # Strategies

    def personalized(self, profile: UserProfile, limit: float) -> List[Recommendation]:
        """Top-rated products from the user's strongest categories within their price range."""
        preferred = top_by_count(profile.preferences.categories, TOP_PREFERRED_CATEGORIES)
        if not preferred or limit <= 0:
            return []

        price_range = profile.preferences.price_range
        per_category = math.ceil(limit / len(preferred))
        recs: List[Recommendation] = []
        for category, interest in preferred:
            candidates = [
                p
                for p in self.catalog.in_category(category)
                if price_range.min <= p.price <= price_range.max
            ]
            candidates.sort(key=lambda p: p.rating, reverse=True)
            for product in candidates[:per_category]:
                recs.append(
                    _recommendation(
                        product,
                        interest * (product.rating / 5),
                        "personalized",
                        f"Based on your interest in {category}",
                    )
                )
        return recs[: int(limit)]

    def trending_products(self, limit: int) -> List[Recommendation]:
        trending = self.trending.products
        recs = []
        for i, product_id in enumerate(trending[: max(limit, 0)]):
            product = self.catalog.get(product_id)
            if product:
                recs.append(_recommendation(product, rank_score(i, len(trending)), "trending", "Trending now"))
        return recs

    def popular(self, limit: int) -> List[Recommendation]:
        ranked = self.catalog.by_popularity()[: max(limit, 0)]
        return [
            _recommendation(p, rank_score(i, len(ranked)), "popularity", "Highly rated")
            for i, p in enumerate(ranked)
        ]

    def similar_products(self, product_id: str, limit: int) -> List[Recommendation]:
        recs = []
        for similar_id, score in self.similarity.most_similar(product_id, limit):
            product = self.catalog.get(similar_id)
            if product:
                recs.append(_recommendation(product, score, "content_similarity", "Similar style and features"))
        return recs

    def collaborative(self, product_id: str, limit: int) -> List[Recommendation]:
        """Products that other viewers of `product_id` also interacted with."""
        co_viewers = {
            b.user_id
            for b in self.behaviors.behaviors
            if b.product_id == product_id and b.action == "view" and b.user_id
        }
        if not co_viewers or limit <= 0:
            return []

        co_occurrence: Dict[str, int] = defaultdict(int)
        for b in self.behaviors.behaviors:
            if b.user_id in co_viewers and b.product_id and b.product_id != product_id:
                co_occurrence[b.product_id] += 1

        recs = []
        for other_id, count in top_by_count(co_occurrence, limit):
            product = self.catalog.get(other_id)
            if product:
                recs.append(
                    _recommendation(
                        product,
                        count / len(co_viewers),
                        "collaborative_filtering",
                        "Others who viewed this also liked",
                    )
                )
        return recs

    def category_based(self, category: str, limit: int) -> List[Recommendation]:
        ranked = sorted(self.catalog.in_category(category), key=lambda p: p.rating, reverse=True)
        ranked = ranked[: max(limit, 0)]
        return [
            _recommendation(p, rank_score(i, len(ranked)), "category_based", f"Popular in {category}")
            for i, p in enumerate(ranked)
        ]

    def frequently_bought_together(self, cart_items: List[str], limit: float) -> List[Recommendation]:
        """Top-rated products from categories complementary to the cart's."""
        cart_categories = [p.category for p in map(self.catalog.get, cart_items) if p]
        categories = complementary_for(cart_categories)
        if not categories or limit <= 0:
            return []

        per_category = math.ceil(limit / len(categories))
        in_cart = set(cart_items)
        recs: List[Recommendation] = []
        for category in categories:
            candidates = [p for p in self.catalog.in_category(category) if p.id not in in_cart]
            candidates.sort(key=lambda p: p.rating, reverse=True)
            for product in candidates[:per_category]:
                recs.append(
                    _recommendation(
                        product,
                        FREQUENTLY_BOUGHT_SCORE,
                        "frequently_bought_together",
                        "Frequently bought together",
                    )
                )
        return recs[: int(limit)]

    # Complementary items share the frequently-bought-together logic
    complementary_products = frequently_bought_together


def complementary_for(categories: List[str]) -> List[str]:
    """Complementary categories for the given ones, first-seen order, no repeats."""
    result: Dict[str, None] = {}
    for category in categories:
        for complement in complementary_categories.get(category, []):
            result[complement] = None
    return list(result)
