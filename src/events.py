"""Append-only analytics event log"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from pydantic import TypeAdapter

from config import EVENTS_KEY, IMPORTANT_EVENTS, MAX_STORED_EVENTS
from models import AnalyticsEvent
from storage import KeyValueStore, load_json, save_json
from utils import generate_session_id, now_ms

logger = logging.getLogger(__name__)

_events_adapter = TypeAdapter(List[AnalyticsEvent])


class EventStore:
    def __init__(self, store: KeyValueStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock
        self.enabled = True
        self.user_id: Optional[str] = None
        self.session_id = generate_session_id(self.clock())
        self.events: List[AnalyticsEvent] = load_json(store, EVENTS_KEY, _events_adapter, [])
        self._active_session_id = self._last_session_start()

    # Core tracking

    def track(
        self,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
        value: Optional[float] = None,
    ) -> Optional[AnalyticsEvent]:
        if not self.enabled:
            return None

        analytics_event = AnalyticsEvent(
            event=event,
            properties=properties,
            value=value,
            timestamp=self.clock(),
            user_id=self.user_id,
            session_id=self.session_id,
        )
        self.events.append(analytics_event)
        self._save()

        if event in IMPORTANT_EVENTS:
            logger.info(f"Analytics event: {event} session={self.session_id}")
        else:
            logger.debug(f"Analytics event: {event} session={self.session_id}")
        return analytics_event

    def track_page_view(self, path: str, title: Optional[str] = None):
        return self.track("page_view", {"path": path, "title": title or ""})

    def track_product_view(self, product_id: str, product_name: str, category: str, price: float):
        return self.track(
            "product_view",
            {
                "productId": product_id,
                "productName": product_name,
                "category": category,
                "price": price,
            },
            price,
        )

    def track_add_to_cart(
        self, product_id: str, product_name: str, category: str, price: float, quantity: int = 1
    ):
        return self.track(
            "add_to_cart",
            {
                "productId": product_id,
                "productName": product_name,
                "category": category,
                "price": price,
                "quantity": quantity,
            },
            price * quantity,
        )

    def track_purchase(
        self,
        order_id: str,
        products: List[Dict[str, Any]],
        total_value: float,
        currency: str = "USD",
    ):
        """`products` items carry productId, productName, category, price, quantity."""
        return self.track(
            "purchase",
            {
                "orderId": order_id,
                "products": products,
                "currency": currency,
                "itemCount": len(products),
            },
            total_value,
        )

    def track_search(self, query: str, results: Optional[int] = None):
        return self.track("search", {"query": query, "results": results or 0})

    def track_experiment(self, experiment_id: str, variant_id: str):
        return self.track(
            "experiment_exposure", {"experimentId": experiment_id, "variantId": variant_id}
        )

    def track_error(self, error: str, context: Optional[Dict[str, Any]] = None):
        return self.track("error", {"error": error, "context": context})

    # User identification

    def identify(self, user_id: str, properties: Optional[Dict[str, Any]] = None):
        self.user_id = user_id
        return self.track("identify", {"userId": user_id, **(properties or {})})

    def set_user_id(self, user_id: Optional[str]) -> None:
        self.user_id = user_id

    # Session management

    @property
    def current_session_id(self) -> str:
        return self.session_id

    @property
    def active_session_id(self) -> Optional[str]:
        """Session id of the most recent session_start, if any."""
        return self._active_session_id

    def start_session(self) -> str:
        self.session_id = generate_session_id(self.clock())
        self._active_session_id = self.session_id
        self.track("session_start")
        return self.session_id

    def end_session(self) -> None:
        """Must be called by the host on process/tab teardown."""
        self.track("session_end")
        self._save()

    # Data retrieval

    def get_events(self) -> List[AnalyticsEvent]:
        return list(self.events)

    def get_events_by_type(self, event_type: str) -> List[AnalyticsEvent]:
        return [e for e in self.events if e.event == event_type]

    def get_events_by_time_range(self, start_time: int, end_time: int) -> List[AnalyticsEvent]:
        return [e for e in self.events if start_time <= e.timestamp <= end_time]

    def get_user_events(self, user_id: str) -> List[AnalyticsEvent]:
        return [e for e in self.events if e.user_id == user_id]

    def get_session_events(self, session_id: str) -> List[AnalyticsEvent]:
        return [e for e in self.events if e.session_id == session_id]

    # Analytics insights

    def get_top_products(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Products ranked by view count, with purchase tallies alongside."""
        stats: Dict[str, Dict[str, int]] = defaultdict(lambda: {"views": 0, "purchases": 0})

        for event in self.events:
            props = event.properties or {}
            if event.event == "product_view" and props.get("productId"):
                stats[props["productId"]]["views"] += 1
            elif event.event == "purchase" and props.get("products"):
                for item in props["products"]:
                    product_id = item.get("productId") if isinstance(item, dict) else None
                    if product_id:
                        stats[product_id]["purchases"] += 1

        ranked = sorted(stats.items(), key=lambda kv: kv[1]["views"], reverse=True)
        return [{"productId": pid, **counts} for pid, counts in ranked[: max(limit, 0)]]

    def get_conversion_rate(self) -> float:
        sessions = {e.session_id for e in self.events}
        purchase_sessions = {e.session_id for e in self.events if e.event == "purchase"}
        return len(purchase_sessions) / len(sessions) if sessions else 0.0

    def get_average_order_value(self) -> float:
        purchases = self.get_events_by_type("purchase")
        if not purchases:
            return 0.0
        return sum(e.value or 0 for e in purchases) / len(purchases)

    # Configuration

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    def clear_events(self) -> None:
        self.events = []
        self._save()

    def _last_session_start(self) -> Optional[str]:
        for event in reversed(self.events):
            if event.event == "session_start":
                return event.session_id
        return None

    def _save(self) -> None:
        # Keep only the newest events so the store does not grow unbounded
        self.events = self.events[-MAX_STORED_EVENTS:]
        save_json(self.store, EVENTS_KEY, _events_adapter, self.events)
