import pytest

from catalog import Catalog
from service import Service
from storage import MemoryStore


PRODUCTS = [
    {"id": "p1", "name": "Classic Oxford Shirt", "description": "Crisp cotton button-down", "category": "men", "price": 80, "rating": 4.5, "reviews": 120},
    {"id": "p2", "name": "Slim Chinos", "description": "Stretch twill trousers", "category": "men", "price": 90, "rating": 4.2, "reviews": 80},
    {"id": "p3", "name": "Wool Overcoat", "description": "Double-breasted winter coat", "category": "men", "price": 300, "rating": 4.8, "reviews": 40},
    {"id": "p4", "name": "Silk Blouse", "description": "Relaxed fit with pearl buttons", "category": "women", "price": 120, "rating": 4.6, "reviews": 150},
    {"id": "p5", "name": "Summer Dress", "description": "Light linen midi", "category": "women", "price": 95, "rating": 4.1, "reviews": 60},
    {"id": "p6", "name": "Leather Belt", "description": "Full-grain with brass buckle", "category": "accessories", "price": 45, "rating": 4.7, "reviews": 200},
    {"id": "p7", "name": "Canvas Tote", "description": "Everyday carry bag", "category": "accessories", "price": 35, "rating": 3.9, "reviews": 30},
    {"id": "p8", "name": "Gold Watch", "description": "Automatic movement", "category": "accessories", "price": 1500, "rating": 4.9, "reviews": 10},
]


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def catalog():
    return Catalog(PRODUCTS)


@pytest.fixture
def service(catalog, store, clock):
    return Service(catalog, store=store, clock=clock)
