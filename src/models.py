"""Data models shared by the personalization and experimentation engine.

Field names serialize in camelCase so the persisted JSON keeps the shape the
storefront client reads (``sessionId``, ``targetAudience``, ...).
"""

from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from config import DEFAULT_PRICE_RANGE

Action = Literal["view", "cart", "purchase", "wishlist", "search"]
ExperimentStatus = Literal["draft", "running", "paused", "completed"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Catalog ===


class Product(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str
    name: str = ""
    description: str = ""
    category: str
    price: float = Field(ge=0)
    rating: float = Field(default=0.0, ge=0, le=5)
    reviews: int = Field(default=0, ge=0)


# === Analytics ===


class AnalyticsEvent(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    event: str
    properties: Optional[Dict[str, Any]] = None
    value: Optional[float] = None
    timestamp: int
    user_id: Optional[str] = None
    session_id: str


class UserBehavior(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    user_id: Optional[str] = None
    session_id: str
    action: Action
    product_id: Optional[str] = None
    category: Optional[str] = None
    timestamp: int
    context: Dict[str, Any] = Field(default_factory=dict)


class PriceRange(CamelModel):
    min: float = DEFAULT_PRICE_RANGE[0]
    max: float = DEFAULT_PRICE_RANGE[1]


class Preferences(CamelModel):
    categories: Dict[str, int] = Field(default_factory=dict)
    price_range: PriceRange = Field(default_factory=PriceRange)
    brands: Dict[str, int] = Field(default_factory=dict)
    styles: Dict[str, int] = Field(default_factory=dict)


class BehaviorStats(CamelModel):
    total_views: int = 0
    total_purchases: int = 0
    average_order_value: float = 0.0
    last_activity: int = 0
    session_count: int = 0


class UserProfile(CamelModel):
    user_id: str
    preferences: Preferences = Field(default_factory=Preferences)
    behavior: BehaviorStats = Field(default_factory=BehaviorStats)
    segments: List[str] = Field(default_factory=list)


# === Recommendations ===


class RecommendationContext(CamelModel):
    type: str
    product_id: Optional[str] = None
    category_id: Optional[str] = None
    search_query: Optional[str] = None
    cart_items: Optional[List[str]] = None
    user_segment: Optional[Literal["new", "returning", "vip"]] = None


class Recommendation(CamelModel):
    product: Product
    score: float
    algorithm: str
    reason: str
    confidence: float


class RecommendationSet(CamelModel):
    recommendations: List[Recommendation]
    title: str
    subtitle: Optional[str] = None
    algorithm: str


# === Experiments ===


class TargetConditions(CamelModel):
    user_type: Optional[Literal["new", "returning", "all"]] = None
    location: Optional[List[str]] = None
    device: Optional[Literal["mobile", "desktop", "tablet", "all"]] = None
    min_orders: Optional[int] = None
    max_orders: Optional[int] = None


class TargetAudience(CamelModel):
    percentage: float = Field(default=100, ge=0, le=100)
    conditions: Optional[TargetConditions] = None


class ExperimentVariant(CamelModel):
    id: str
    name: str = ""
    description: str = ""
    weight: float = Field(ge=0, le=100)
    config: Dict[str, Any] = Field(default_factory=dict)


class ExperimentMetrics(CamelModel):
    primary: str = ""
    secondary: List[str] = Field(default_factory=list)


class VariantResult(CamelModel):
    participants: int = 0
    conversions: int = 0
    conversion_rate: float = 0.0
    revenue: float = 0.0
    average_order_value: float = 0.0
    confidence: float = 0.0
    is_winner: Optional[bool] = None


class ExperimentResults(CamelModel):
    total_participants: int = 0
    variant_results: Dict[str, VariantResult] = Field(default_factory=dict)
    statistical_significance: bool = False
    winning_variant: Optional[str] = None


class Experiment(CamelModel):
    id: str
    name: str = ""
    description: str = ""
    status: ExperimentStatus = "draft"
    start_date: str = ""
    end_date: Optional[str] = None
    target_audience: TargetAudience = Field(default_factory=TargetAudience)
    variants: List[ExperimentVariant] = Field(default_factory=list)
    metrics: ExperimentMetrics = Field(default_factory=ExperimentMetrics)
    results: Optional[ExperimentResults] = None

    def find_variant(self, variant_id: str) -> Optional[ExperimentVariant]:
        return next((v for v in self.variants if v.id == variant_id), None)


class UserExperiment(CamelModel):
    experiment_id: str
    variant_id: str
    assigned_at: int
    converted: Optional[bool] = None
    conversion_value: Optional[float] = None


class ExperimentHandle(BaseModel):
    """What a UI layer needs to branch on an experiment."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    variant: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    track_conversion: Callable[..., None]
