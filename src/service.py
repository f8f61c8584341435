"""Service layer wiring the personalization and experimentation engine"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Union

from behavior import BehaviorStore, UserProfileIndex
from catalog import Catalog
from events import EventStore
from experiments import AssignmentLog, ExperimentAssignment, ExperimentRegistry, default_experiments
from models import Product
from recommender import RecommendationEngine
from results import ResultsAnalyzer
from similarity import SimilarityIndex, TrendingDetector
from storage import KeyValueStore, MemoryStore
from utils import now_ms

logger = logging.getLogger(__name__)


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    logging.basicConfig(level=level)


class Service:
    """One instance per process; owns every component over a shared store.

    The host must call `end_session()` on teardown so the final session_end
    event is persisted.
    """

    def __init__(
        self,
        catalog: Union[Catalog, Iterable[Union[Product, dict]], None],
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], int] = now_ms,
        show_progress: bool = False,
    ):
        self.catalog = catalog if isinstance(catalog, Catalog) else Catalog(catalog)
        self.store = store if store is not None else MemoryStore()

        self.events = EventStore(self.store, clock=clock)
        self.profiles = UserProfileIndex(self.store)
        self.behaviors = BehaviorStore(self.store, self.events, self.profiles, clock=clock)
        self.similarity = SimilarityIndex(self.catalog, show_progress=show_progress)
        self.trending = TrendingDetector(self.behaviors)
        self.recommendations = RecommendationEngine(
            self.catalog, self.behaviors, self.profiles, self.similarity, self.trending
        )

        self.assignment_log = AssignmentLog(self.store)
        self.experiments = ExperimentRegistry(
            self.store, self.assignment_log, ResultsAnalyzer(), clock=clock
        )
        self.assignment = ExperimentAssignment(self.experiments, self.events, clock=clock)

    # Identity is shared by analytics and experiment bucketing

    def identify(self, user_id: str, properties: Optional[Dict[str, Any]] = None) -> None:
        self.events.identify(user_id, properties)
        self.assignment.set_user_id(user_id)

    def set_user_id(self, user_id: Optional[str]) -> None:
        self.events.set_user_id(user_id)
        self.assignment.set_user_id(user_id)

    def start_session(self) -> str:
        return self.events.start_session()

    def end_session(self) -> None:
        self.events.end_session()

    def initialize_default_experiments(self) -> None:
        for definition in default_experiments(self.experiments.clock()):
            self.experiments.create_experiment(definition)

    # Convenience pass-throughs

    def get_recommendations(self, context, user_id: Optional[str] = None, limit: int = 8):
        return self.recommendations.get_recommendations(context, user_id, limit)

    def track_user_behavior(self, action, context: Dict[str, Any], user_id: Optional[str] = None):
        return self.recommendations.track_user_behavior(action, context, user_id)

    def get_variant(self, experiment_id: str) -> Optional[str]:
        return self.assignment.get_variant(experiment_id)

    def get_variant_config(self, experiment_id: str) -> Optional[Dict[str, Any]]:
        return self.assignment.get_variant_config(experiment_id)

    def track_conversion(self, experiment_id: str, value: Optional[float] = None) -> bool:
        return self.assignment.track_conversion(experiment_id, value)

    def calculate_results(self, experiment_id: str):
        return self.experiments.calculate_results(experiment_id)
