import random

import pytest

from config import USER_EXPERIMENTS_KEY
from experiments import ExperimentAssignment
from models import Experiment
from service import Service
from utils import hash_user_key


def experiment(exp_id="E1", percentage=100, status="running", weights=(50, 50)):
    return {
        "id": exp_id,
        "name": "Hero copy",
        "status": status,
        "startDate": "2024-01-01T00:00:00.000Z",
        "targetAudience": {"percentage": percentage},
        "variants": [
            {"id": "control", "name": "Control", "weight": weights[0], "config": {"buttonText": "Shop"}},
            {"id": "variant_a", "name": "Variant A", "weight": weights[1], "config": {"buttonText": "Discover"}},
        ],
        "metrics": {"primary": "ctr", "secondary": []},
    }


def test_hash_matches_32_bit_string_hash():
    assert hash_user_key("a") == 97
    assert hash_user_key("u1") == 3676
    assert hash_user_key("hello") == 99162322
    # Wraps to INT_MIN; absolute value is taken without re-wrapping
    assert hash_user_key("polygenelubricants") == 2147483648


def test_end_to_end_assignment_and_conversion(service):
    service.experiments.create_experiment(experiment())
    service.set_user_id("u1")

    variant = service.get_variant("E1")
    assert variant == "variant_a"  # 3676 % 100 = 76 lands in the second half
    assert service.get_variant("E1") == variant

    service.track_conversion("E1", 25)
    results = service.calculate_results("E1")
    bucket = results.variant_results[variant]
    assert bucket.participants == 1
    assert bucket.conversions == 1
    assert bucket.revenue == 25
    assert bucket.conversion_rate == 1.0
    assert results.total_participants == 1


def test_assignment_survives_restart_and_weight_changes(catalog, store, clock):
    first = Service(catalog, store=store, clock=clock)
    first.experiments.create_experiment(experiment())
    first.set_user_id("u1")
    variant = first.get_variant("E1")

    second = Service(catalog, store=store, clock=clock)
    second.experiments.create_experiment(experiment(weights=(100, 0)))
    second.set_user_id("u1")
    assert second.get_variant("E1") == variant


def test_exposure_tracked_once(service):
    service.experiments.create_experiment(experiment())
    service.set_user_id("u1")
    service.get_variant("E1")
    service.get_variant("E1")

    exposures = service.events.get_events_by_type("experiment_exposure")
    assert len(exposures) == 1
    assert exposures[0].properties == {"experimentId": "E1", "variantId": "variant_a"}


def test_conversion_is_idempotent(service):
    service.experiments.create_experiment(experiment())
    service.set_user_id("u1")
    service.get_variant("E1")

    assert service.track_conversion("E1", 10) is True
    assert service.track_conversion("E1", 10) is False

    bucket = service.calculate_results("E1").variant_results["variant_a"]
    assert bucket.conversions == 1
    assert bucket.revenue == 10
    assert len(service.events.get_events_by_type("experiment_conversion")) == 1


def test_conversion_without_assignment_is_ignored(service):
    service.experiments.create_experiment(experiment())
    assert service.track_conversion("E1", 10) is False


@pytest.mark.parametrize("status", ["draft", "paused", "completed"])
def test_only_running_experiments_assign(service, status):
    service.experiments.create_experiment(experiment(status=status))
    assert service.get_variant("E1") is None
    assert service.get_variant("missing") is None


def test_untargeted_user_gets_nothing_and_no_record(service, store):
    service.experiments.create_experiment(experiment(percentage=0))
    service.set_user_id("u1")

    assert service.get_variant("E1") is None
    assert service.assignment_log.find("u1", "E1") is None
    assert store.get(USER_EXPERIMENTS_KEY) is None
    assert service.events.get_events_by_type("experiment_exposure") == []


def test_targeting_converges_to_percentage():
    rng = random.Random(1234)
    keys = [f"user-{rng.getrandbits(64):x}" for _ in range(10_000)]

    for percentage in (10, 30, 50, 90):
        qualifying = sum(1 for k in keys if hash_user_key(k) % 100 < percentage)
        assert abs(qualifying / len(keys) - percentage / 100) < 0.05


def test_variant_split_follows_weights():
    rng = random.Random(99)
    exp = Experiment.model_validate(experiment(weights=(20, 80)))
    picks = [
        ExperimentAssignment._pick_variant(exp, hash_user_key(f"visitor-{rng.getrandbits(48)}") % 100)
        for _ in range(10_000)
    ]
    assert abs(picks.count("control") / len(picks) - 0.2) < 0.05


def test_uncovered_bucket_defaults_to_first_variant(service):
    service.experiments.create_experiment(experiment(weights=(10, 10)))
    service.set_user_id("u1")
    assert service.get_variant("E1") == "control"


def test_anonymous_users_share_one_bucket(service):
    service.experiments.create_experiment(experiment())
    variant = service.get_variant("E1")
    assert service.assignment_log.find("anonymous", "E1").variant_id == variant


def test_variant_config(service):
    service.experiments.create_experiment(experiment())
    service.set_user_id("u1")
    assert service.get_variant_config("E1") == {"buttonText": "Discover"}
    assert service.get_variant_config("missing") is None


def test_use_experiment_bundle(service):
    service.experiments.create_experiment(experiment())
    service.set_user_id("u1")
    handle = service.assignment.use_experiment("E1")

    assert handle.variant == "variant_a"
    assert handle.config == {"buttonText": "Discover"}
    handle.track_conversion(5)
    assert service.assignment_log.find("u1", "E1").conversion_value == 5


def test_create_overwrites_and_defaults_to_draft(service):
    definition = experiment()
    del definition["status"]
    created = service.experiments.create_experiment(definition)
    assert created.status == "draft"

    service.experiments.create_experiment({**definition, "name": "Renamed"})
    assert service.experiments.get_experiment("E1").name == "Renamed"
    assert len(service.experiments.get_all_experiments()) == 1


def test_lifecycle_transitions(catalog, store, clock):
    service = Service(catalog, store=store, clock=clock)
    service.experiments.create_experiment(experiment(status="draft"))
    service.set_user_id("u1")

    service.experiments.start_experiment("E1")
    assert service.get_variant("E1") == "variant_a"

    service.experiments.pause_experiment("E1")
    assert service.get_variant("E1") is None

    stopped = service.experiments.stop_experiment("E1")
    assert stopped.status == "completed"
    assert stopped.end_date is not None
    assert stopped.results.total_participants == 1

    reloaded = Service(catalog, store=store, clock=clock)
    assert reloaded.experiments.get_experiment_results("E1").total_participants == 1
    assert reloaded.experiments.get_experiment("E1").status == "completed"


def test_unknown_experiment_lifecycle_is_noop(service):
    assert service.experiments.start_experiment("missing") is None
    assert service.experiments.stop_experiment("missing") is None
    assert service.calculate_results("missing") is None


def test_default_experiments(service):
    service.initialize_default_experiments()
    ids = [e.id for e in service.experiments.get_all_experiments()]
    assert ids == ["hero_cta_test", "product_grid_layout"]
    assert all(e.status == "draft" for e in service.experiments.get_all_experiments())


def test_lifecycle_dates_follow_injected_clock(service, clock):
    service.experiments.create_experiment(experiment(status="draft"))

    started = service.experiments.start_experiment("E1")
    assert started.start_date == "2023-11-14T22:13:20.000Z"

    clock.advance(86_400_000 + 1_500)
    stopped = service.experiments.stop_experiment("E1")
    assert stopped.end_date == "2023-11-15T22:13:21.500Z"


def test_default_experiments_start_at_clock_time(service):
    service.initialize_default_experiments()
    dates = {e.start_date for e in service.experiments.get_all_experiments()}
    assert dates == {"2023-11-14T22:13:20.000Z"}
