import logging
import time
import uuid
from config import action_weights, DEFAULT_ACTION_WEIGHT
from typing import Dict, Iterable, List, Tuple
from collections import defaultdict

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_session_id(timestamp: int) -> str:
    return f"session_{timestamp}_{uuid.uuid4().hex[:13]}"


def get_action_weight(action: str) -> int:
    return action_weights.get(action, DEFAULT_ACTION_WEIGHT)


def hash_user_key(user_key: str) -> int:
    """Rolling 32-bit hash (hash * 31 + code unit), absolute value.

    Iterates UTF-16 code units so keys outside the BMP hash the same way a
    browser-side client would.
    """
    encoded = user_key.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + code_unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def rank_score(index: int, total: int) -> float:
    """Linear decay by rank position: 1.0 for the first of `total` items."""
    if total <= 0:
        return 0.0
    return 1 - (index / total)


def aggregate_product_weights(behaviors: Iterable) -> Dict[str, int]:
    """Aggregate action weights per product, keeping first-seen order."""
    product_weights: Dict[str, int] = defaultdict(int)
    for b in behaviors:
        if not b.product_id:
            continue
        product_weights[b.product_id] += get_action_weight(b.action)
    return product_weights


def top_by_count(counts: Dict[str, float], limit: int) -> List[Tuple[str, float]]:
    """Sort (key, count) pairs descending; ties keep insertion order."""
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[: max(limit, 0)]
