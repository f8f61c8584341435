import json

import pytest

from config import EVENTS_KEY
from events import EventStore
from storage import MemoryStore


class QuotaExceededStore(MemoryStore):
    def set(self, key, value):
        raise OSError("quota exceeded")


@pytest.fixture
def events(store, clock):
    return EventStore(store, clock=clock)


def test_track_stamps_session_and_user(events, clock):
    events.identify("u1", {"plan": "vip"})
    event = events.track("custom", {"a": 1}, 3.5)

    assert event.user_id == "u1"
    assert event.session_id == events.current_session_id
    assert event.timestamp == clock.now
    assert event.value == 3.5

    identify = events.get_events_by_type("identify")[0]
    assert identify.properties == {"userId": "u1", "plan": "vip"}


def test_events_trimmed_to_newest_thousand(events, store):
    for i in range(1500):
        events.track("tick", {"i": i})

    kept = events.get_events()
    assert len(kept) == 1000
    assert kept[0].properties["i"] == 500
    assert kept[-1].properties["i"] == 1499
    assert len(json.loads(store.get(EVENTS_KEY))) == 1000


def test_convenience_wrappers_use_fixed_event_names(events):
    events.track_page_view("/shop", "Shop")
    events.track_product_view("p1", "Shirt", "men", 80)
    events.track_add_to_cart("p1", "Shirt", "men", 80, quantity=2)
    events.track_purchase("o1", [{"productId": "p1", "quantity": 2}], 160)
    events.track_search("shirt", 3)
    events.track_experiment("E1", "control")
    events.track_error("boom", {"where": "checkout"})

    names = [e.event for e in events.get_events()]
    assert names == [
        "page_view",
        "product_view",
        "add_to_cart",
        "purchase",
        "search",
        "experiment_exposure",
        "error",
    ]
    assert events.get_events_by_type("add_to_cart")[0].value == 160
    purchase = events.get_events_by_type("purchase")[0]
    assert purchase.properties["itemCount"] == 1
    assert purchase.properties["currency"] == "USD"


def test_query_filters(events, clock):
    events.set_user_id("u1")
    events.track("a")
    clock.advance(1000)
    events.set_user_id("u2")
    events.track("b")

    assert [e.event for e in events.get_user_events("u1")] == ["a"]
    assert [e.event for e in events.get_events_by_time_range(clock.now, clock.now)] == ["b"]
    assert len(events.get_session_events(events.current_session_id)) == 2


def test_top_products_ranks_by_views_with_stable_ties(events):
    for pid in ["p1", "p3", "p1", "p2", "p3"]:
        events.track_product_view(pid, pid, "men", 10)
    events.track_purchase("o1", [{"productId": "p2"}], 10)

    top = events.get_top_products(3)
    assert [t["productId"] for t in top] == ["p1", "p3", "p2"]
    assert top[2] == {"productId": "p2", "views": 1, "purchases": 1}


def test_conversion_rate_counts_sessions(events):
    events.track_page_view("/")
    events.track_purchase("o1", [], 100)
    events.start_session()
    events.track_page_view("/")

    assert events.get_conversion_rate() == 0.5


def test_average_order_value(events):
    assert events.get_average_order_value() == 0
    events.track_purchase("o1", [], 100)
    events.track_purchase("o2", [], 50)
    assert events.get_average_order_value() == 75


def test_session_lifecycle(events):
    first = events.current_session_id
    assert events.active_session_id is None

    second = events.start_session()
    assert second != first
    assert events.active_session_id == second

    events.end_session()
    last = events.get_events()[-1]
    assert last.event == "session_end"
    assert last.session_id == second


def test_active_session_restored_from_log(store, clock):
    events = EventStore(store, clock=clock)
    session = events.start_session()

    reloaded = EventStore(store, clock=clock)
    assert reloaded.active_session_id == session
    assert reloaded.current_session_id != session


def test_storage_failure_is_swallowed(clock):
    events = EventStore(QuotaExceededStore(), clock=clock)
    events.track("page_view")
    assert len(events.get_events()) == 1


def test_corrupt_log_loads_empty(clock):
    events = EventStore(MemoryStore({EVENTS_KEY: "{not json"}), clock=clock)
    assert events.get_events() == []


def test_disabled_store_drops_events(events):
    events.disable()
    assert events.track("page_view") is None
    events.enable()
    events.track("page_view")
    assert len(events.get_events()) == 1


def test_clear_events(events, store):
    events.track("page_view")
    events.clear_events()
    assert events.get_events() == []
    assert json.loads(store.get(EVENTS_KEY)) == []
