"""Per-variant experiment results.

The confidence figure is a heuristic (one minus the 95% margin of error of the
variant's own conversion rate), not a hypothesis test between variants.
"""

import logging
import math
from typing import List, Optional, Protocol

from config import (
    CONFIDENCE_THRESHOLD,
    MIN_PARTICIPANTS_FOR_CONFIDENCE,
    MIN_PARTICIPANTS_FOR_SIGNIFICANCE,
    Z_SCORE_95,
)
from models import Experiment, ExperimentResults, UserExperiment, VariantResult

logger = logging.getLogger(__name__)


class ParticipantSource(Protocol):
    def participants(self, experiment_id: str, variant_id: str) -> List[UserExperiment]: ...


def confidence(participants: int, conversions: int) -> float:
    if participants < MIN_PARTICIPANTS_FOR_CONFIDENCE:
        return 0.0
    p = conversions / participants
    margin_of_error = Z_SCORE_95 * math.sqrt(p * (1 - p) / participants)
    return max(0.0, min(100.0, (1 - margin_of_error) * 100))


class ResultsAnalyzer:
    def calculate_results(
        self, experiment: Experiment, source: ParticipantSource
    ) -> ExperimentResults:
        results = ExperimentResults()

        for variant in experiment.variants:
            participants = source.participants(experiment.id, variant.id)
            n = len(participants)
            conversions = sum(1 for p in participants if p.converted)
            revenue = sum(p.conversion_value or 0 for p in participants)

            results.variant_results[variant.id] = VariantResult(
                participants=n,
                conversions=conversions,
                conversion_rate=conversions / n if n else 0.0,
                revenue=revenue,
                average_order_value=revenue / conversions if conversions else 0.0,
                confidence=confidence(n, conversions),
            )
            results.total_participants += n

        results.statistical_significance = self.is_significant(results)
        if results.statistical_significance:
            results.winning_variant = self.determine_winner(results)
            if results.winning_variant:
                results.variant_results[results.winning_variant].is_winner = True

        logger.info(
            f"Results for {experiment.id}: {results.total_participants} participants, "
            f"significant={results.statistical_significance}, winner={results.winning_variant}"
        )
        return results

    @staticmethod
    def is_significant(results: ExperimentResults) -> bool:
        variants = list(results.variant_results.values())
        if len(variants) < 2:
            return False
        return any(
            v.confidence > CONFIDENCE_THRESHOLD and v.participants > MIN_PARTICIPANTS_FOR_SIGNIFICANCE
            for v in variants
        )

    @staticmethod
    def determine_winner(results: ExperimentResults) -> Optional[str]:
        # Ties go to the variant listed first
        best_variant, best_rate = None, 0.0
        for variant_id, result in results.variant_results.items():
            if result.conversion_rate > best_rate and result.confidence > CONFIDENCE_THRESHOLD:
                best_rate = result.conversion_rate
                best_variant = variant_id
        return best_variant
