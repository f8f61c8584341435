"""Experiment registry and deterministic, sticky variant assignment.

Bucketing uses `hash_user_key(user_key) % 100` both to decide whether a user
falls inside the targeted percentage and to pick the variant, walking the
variants' cumulative weights. Weights are expected to sum to 100; any bucket
they leave uncovered lands on the first variant.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import TypeAdapter

from config import ANONYMOUS_USER, EXPERIMENTS_KEY, USER_EXPERIMENTS_KEY
from events import EventStore
from models import Experiment, ExperimentHandle, ExperimentResults, UserExperiment
from results import ResultsAnalyzer
from storage import KeyValueStore, load_json, save_json
from utils import hash_user_key, now_ms

logger = logging.getLogger(__name__)

_experiments_adapter = TypeAdapter(Dict[str, Experiment])
_assignments_adapter = TypeAdapter(Dict[str, List[UserExperiment]])


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AssignmentLog:
    """Persisted map of user key -> that user's experiment assignments."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.assignments: Dict[str, List[UserExperiment]] = load_json(
            store, USER_EXPERIMENTS_KEY, _assignments_adapter, {}
        )

    def find(self, user_key: str, experiment_id: str) -> Optional[UserExperiment]:
        return next(
            (ue for ue in self.assignments.get(user_key, []) if ue.experiment_id == experiment_id),
            None,
        )

    def add(self, user_key: str, assignment: UserExperiment) -> None:
        self.assignments.setdefault(user_key, []).append(assignment)
        self.save()

    def participants(self, experiment_id: str, variant_id: str) -> List[UserExperiment]:
        """Every user's assignment to (experiment, variant)."""
        found = []
        for user_assignments in self.assignments.values():
            match = next(
                (
                    ue
                    for ue in user_assignments
                    if ue.experiment_id == experiment_id and ue.variant_id == variant_id
                ),
                None,
            )
            if match:
                found.append(match)
        return found

    def save(self) -> None:
        save_json(self.store, USER_EXPERIMENTS_KEY, _assignments_adapter, self.assignments)


class ExperimentRegistry:
    def __init__(
        self,
        store: KeyValueStore,
        assignments: AssignmentLog,
        analyzer: Optional[ResultsAnalyzer] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.assignments = assignments
        self.analyzer = analyzer or ResultsAnalyzer()
        self.clock = clock
        self.experiments: Dict[str, Experiment] = load_json(
            store, EXPERIMENTS_KEY, _experiments_adapter, {}
        )

    def create_experiment(self, definition: Union[Experiment, Dict[str, Any]]) -> Experiment:
        """Store a definition, replacing any experiment with the same id."""
        if isinstance(definition, Experiment):
            experiment = definition.model_copy(deep=True)
        else:
            experiment = Experiment.model_validate(definition)
        experiment.results = None

        if experiment.id in self.experiments:
            logger.info(f"Overwriting experiment {experiment.id}")
        self.experiments[experiment.id] = experiment
        self.save()
        return experiment

    def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        return self.experiments.get(experiment_id)

    def get_all_experiments(self) -> List[Experiment]:
        return list(self.experiments.values())

    def start_experiment(self, experiment_id: str) -> Optional[Experiment]:
        experiment = self.experiments.get(experiment_id)
        if experiment:
            experiment.status = "running"
            experiment.start_date = _iso(self.clock())
            self.save()
            logger.info(f"Started experiment {experiment_id}")
        return experiment

    def pause_experiment(self, experiment_id: str) -> Optional[Experiment]:
        experiment = self.experiments.get(experiment_id)
        if experiment:
            experiment.status = "paused"
            self.save()
            logger.info(f"Paused experiment {experiment_id}")
        return experiment

    def stop_experiment(self, experiment_id: str) -> Optional[Experiment]:
        experiment = self.experiments.get(experiment_id)
        if experiment:
            experiment.status = "completed"
            experiment.end_date = _iso(self.clock())
            self.calculate_results(experiment_id)
            self.save()
            logger.info(f"Stopped experiment {experiment_id}")
        return experiment

    def calculate_results(self, experiment_id: str) -> Optional[ExperimentResults]:
        experiment = self.experiments.get(experiment_id)
        if not experiment:
            return None
        experiment.results = self.analyzer.calculate_results(experiment, self.assignments)
        return experiment.results

    def get_experiment_results(self, experiment_id: str) -> Optional[ExperimentResults]:
        experiment = self.experiments.get(experiment_id)
        return experiment.results if experiment else None

    def save(self) -> None:
        save_json(self.store, EXPERIMENTS_KEY, _experiments_adapter, self.experiments)


class ExperimentAssignment:
    def __init__(
        self,
        registry: ExperimentRegistry,
        events: EventStore,
        clock: Callable[[], int] = now_ms,
    ):
        self.registry = registry
        self.assignments = registry.assignments
        self.events = events
        self.clock = clock
        self.user_id: Optional[str] = None

    def set_user_id(self, user_id: Optional[str]) -> None:
        self.user_id = user_id

    @property
    def user_key(self) -> str:
        # All anonymous traffic on one device shares a bucket
        return self.user_id or ANONYMOUS_USER

    def get_variant(self, experiment_id: str) -> Optional[str]:
        experiment = self.registry.get_experiment(experiment_id)
        if not experiment or experiment.status != "running":
            return None

        user_key = self.user_key
        existing = self.assignments.find(user_key, experiment_id)
        if existing:
            return existing.variant_id

        bucket = hash_user_key(user_key) % 100
        if bucket >= experiment.target_audience.percentage:
            return None

        variant_id = self._pick_variant(experiment, bucket)
        if variant_id is None:
            return None

        self.assignments.add(
            user_key,
            UserExperiment(experiment_id=experiment_id, variant_id=variant_id, assigned_at=self.clock()),
        )
        self.events.track_experiment(experiment_id, variant_id)
        logger.debug(f"Assigned {user_key} to {experiment_id}/{variant_id}")
        return variant_id

    def get_variant_config(self, experiment_id: str) -> Optional[Dict[str, Any]]:
        variant_id = self.get_variant(experiment_id)
        if not variant_id:
            return None
        experiment = self.registry.get_experiment(experiment_id)
        variant = experiment.find_variant(variant_id) if experiment else None
        return variant.config if variant else None

    def track_conversion(self, experiment_id: str, value: Optional[float] = None) -> bool:
        """Mark the current user's assignment converted; only the first call counts."""
        assignment = self.assignments.find(self.user_key, experiment_id)
        if not assignment or assignment.converted:
            return False

        assignment.converted = True
        assignment.conversion_value = value
        self.assignments.save()

        self.events.track(
            "experiment_conversion",
            {
                "category": "experiment",
                "action": "conversion",
                "label": experiment_id,
                "value": value,
                "experimentId": experiment_id,
                "variantId": assignment.variant_id,
            },
        )
        return True

    def use_experiment(self, experiment_id: str) -> ExperimentHandle:
        return ExperimentHandle(
            variant=self.get_variant(experiment_id),
            config=self.get_variant_config(experiment_id),
            track_conversion=lambda value=None: self.track_conversion(experiment_id, value),
        )

    @staticmethod
    def _pick_variant(experiment: Experiment, bucket: int) -> Optional[str]:
        cumulative = 0.0
        for variant in experiment.variants:
            cumulative += variant.weight
            if bucket < cumulative:
                return variant.id
        return experiment.variants[0].id if experiment.variants else None


def default_experiments(now: int) -> List[Dict[str, Any]]:
    """The storefront's predefined experiments, created as drafts."""
    started = _iso(now)
    return [
        {
            "id": "hero_cta_test",
            "name": "Hero CTA Button Test",
            "description": "Test different CTA button texts on the hero section",
            "status": "draft",
            "startDate": started,
            "targetAudience": {"percentage": 50, "conditions": {"userType": "all"}},
            "variants": [
                {
                    "id": "control",
                    "name": "Control - Shop Collection",
                    "description": "Original button text",
                    "weight": 50,
                    "config": {"buttonText": "Shop Collection", "buttonColor": "black"},
                },
                {
                    "id": "variant_a",
                    "name": "Variant A - Discover Now",
                    "description": "Alternative button text",
                    "weight": 50,
                    "config": {"buttonText": "Discover Now", "buttonColor": "black"},
                },
            ],
            "metrics": {
                "primary": "click_through_rate",
                "secondary": ["time_on_page", "bounce_rate"],
            },
        },
        {
            "id": "product_grid_layout",
            "name": "Product Grid Layout Test",
            "description": "Test different product grid layouts",
            "status": "draft",
            "startDate": started,
            "targetAudience": {"percentage": 30, "conditions": {"userType": "all"}},
            "variants": [
                {
                    "id": "control",
                    "name": "Control - 4 Column Grid",
                    "description": "Standard 4 column grid",
                    "weight": 50,
                    "config": {"columns": 4, "showQuickAdd": True, "showWishlist": True},
                },
                {
                    "id": "variant_a",
                    "name": "Variant A - 3 Column Grid",
                    "description": "Larger product cards in 3 columns",
                    "weight": 50,
                    "config": {"columns": 3, "showQuickAdd": True, "showWishlist": True},
                },
            ],
            "metrics": {
                "primary": "add_to_cart_rate",
                "secondary": ["product_view_rate", "wishlist_add_rate"],
            },
        },
    ]
