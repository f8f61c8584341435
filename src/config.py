# Storage keys
EVENTS_KEY = "goat_analytics_events"
BEHAVIORS_KEY = "goat_user_behaviors"
PROFILES_KEY = "goat_user_profiles"
EXPERIMENTS_KEY = "goat_experiments"
USER_EXPERIMENTS_KEY = "goat_user_experiments"

# Constants
DAY_MS = 24 * 60 * 60 * 1000
MAX_STORED_EVENTS = 1000  # Oldest events are trimmed on every save
BEHAVIOR_RETENTION_MS = 30 * DAY_MS
TRENDING_WINDOW_MS = 7 * DAY_MS
TRENDING_SIZE = 20
ANONYMOUS_USER = "anonymous"
UNKNOWN_SESSION = "unknown"

# Events echoed at info level; everything else goes to debug
IMPORTANT_EVENTS = {
    "page_view",
    "product_view",
    "add_to_cart",
    "purchase",
    "identify",
    "session_start",
    "session_end",
    "error",
    "recommendation_converted",
}

action_weights = {
    # === TRENDING SIGNALS (recent behavior only) ===
    "purchase": 3,  # Strongest signal - user bought it
    "cart": 2,  # Strong intent but not committed
    "view": 1,  # Browsing
    # wishlist / search fall back to DEFAULT_ACTION_WEIGHT
}
DEFAULT_ACTION_WEIGHT = 1

# Content similarity weights (sum to 1.0)
CATEGORY_WEIGHT = 0.4
PRICE_WEIGHT = 0.3
RATING_WEIGHT = 0.3
MAX_RATING = 5.0

# Profile defaults
DEFAULT_PRICE_RANGE = (0, 1000)
TOP_PREFERRED_CATEGORIES = 3

complementary_categories = {
    "men": ["accessories"],
    "women": ["accessories"],
    "accessories": ["men", "women"],
}

# Confidence reported per strategy
strategy_confidence = {
    "personalized": 0.85,
    "trending": 0.7,
    "popularity": 0.75,
    "content_similarity": 0.8,
    "collaborative_filtering": 0.7,
    "category_based": 0.6,
    "category_popular": 0.8,
    "frequently_bought_together": 0.75,
    "search_relevance": 0.9,
}
FREQUENTLY_BOUGHT_SCORE = 0.8

# Experiment results heuristics
MIN_PARTICIPANTS_FOR_CONFIDENCE = 30
MIN_PARTICIPANTS_FOR_SIGNIFICANCE = 100
CONFIDENCE_THRESHOLD = 95.0
Z_SCORE_95 = 1.96
